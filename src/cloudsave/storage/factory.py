# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.06.13
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/cloudsave/storage/factory.py

import loguru

from cloudsave.config.manager import UserConfig
from cloudsave.core.hashing import ContentHasher
from cloudsave.storage.caching import CachingRepository
from cloudsave.storage.repository import DirectRepository

logger = loguru.logger


def create_repository(config: UserConfig) -> DirectRepository | CachingRepository:
    """Build the repository flavor named by ``config.repository``.

    The caching flavor is preloaded before it is returned.
    """
    direct = DirectRepository(config.datastore, ContentHasher(config.hash_algorithm))
    if config.repository == "direct":
        logger.debug(f"Using direct repository at {config.datastore}")
        return direct
    if config.repository == "caching":
        repo = CachingRepository(direct)
        repo.preload()
        return repo
    raise ValueError(f"Unknown repository type: {config.repository}")
