# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.06.13
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/cloudsave/remote/envelope.py

"""JSON response envelope used by every remote endpoint."""

from datetime import datetime
from typing import Any, Optional

import orjson
from pydantic import BaseModel, ValidationError

from cloudsave.system.exceptions import TransferError


class Envelope(BaseModel):
    """``{status, timestamp, path, data}`` or ``{status, timestamp, path, error, message}``."""
    status: int
    timestamp: Optional[datetime] = None
    path: str = ""
    data: Any = None
    error: Optional[str] = None
    message: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.error is not None or self.status >= 400

    def describe(self) -> str:
        if self.message:
            return f"{self.error or self.status}: {self.message}"
        return str(self.error or self.status)


def parse_envelope(raw: bytes) -> Envelope:
    try:
        return Envelope.model_validate(orjson.loads(raw))
    except (orjson.JSONDecodeError, ValidationError) as e:
        raise TransferError(f"Invalid payload sent by the server: {e}", retry_possible=False) from e
