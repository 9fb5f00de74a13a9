# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.06.07
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/cloudsave/__init__.py

"""cloudsave: versioned game-save snapshots synced to a remote store."""

__version__ = "0.1.0"

# Version of the HTTP wire protocol spoken by remote.client
API_VERSION = 1
