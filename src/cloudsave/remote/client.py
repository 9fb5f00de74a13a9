# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.06.13
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/cloudsave/remote/client.py

"""
HTTP implementation of ``TransferClient``.

Every request carries HTTP Basic credentials. JSON endpoints answer with the
envelope from ``remote.envelope``; blob endpoints stream raw bytes. Idempotent
JSON reads are retried on transient failures, blob transfers are not.
"""

from __future__ import annotations

from typing import Any, BinaryIO, Optional
from urllib.parse import quote

import httpx
import loguru
from pydantic import ValidationError

from cloudsave.core.retry import NETWORK_RETRY_CONFIG, RetryConfig, RetryableOperation
from cloudsave.data.models import Backup, SaveRecord, ServerInfo
from cloudsave.remote.envelope import parse_envelope
from cloudsave.system.exceptions import (
    ConnectionTimeoutError, NetworkError, RemoteNotFoundError, TransferError,
    TransportError, UnauthorizedError
)

logger = loguru.logger

API_PREFIX = "/api/v1"
BLOB_FILENAME = "data.tar.gz"
STREAM_CHUNK_SIZE = 64 * 1024


def _q(segment: str) -> str:
    return quote(segment, safe="")


class HTTPTransferClient:
    """Client for a cloudsave remote."""

    def __init__(self, base_url: str, username: str, password: str, timeout: float = 60.0,
                 transport: Optional[httpx.BaseTransport] = None,
                 retry_config: Optional[RetryConfig] = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.retry_config = retry_config or NETWORK_RETRY_CONFIG
        self.client = httpx.Client(
            base_url=self.base_url,
            auth=(username, password),
            timeout=timeout,
            transport=transport,
        )

    def __repr__(self) -> str:
        return f"HTTPTransferClient({self.base_url!r})"

    def close(self) -> None:
        """Close the HTTP client."""
        self.client.close()

    def __enter__(self) -> HTTPTransferClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # ---- plumbing ----

    def _send(self, request: httpx.Request, stream: bool = False) -> httpx.Response:
        try:
            return self.client.send(request, stream=stream)
        except httpx.TimeoutException as e:
            raise ConnectionTimeoutError(f"Timed out talking to {self.base_url}: {e}") from e
        except httpx.TransportError as e:
            raise NetworkError(f"Cannot connect to {self.base_url}: {e}") from e

    def _check(self, response: httpx.Response, expected: tuple[int, ...] = (200,)) -> None:
        if response.status_code in expected:
            return

        detail = response.reason_phrase
        try:
            envelope = parse_envelope(response.read())
            detail = envelope.describe()
        except TransferError:
            pass  # non-JSON error body

        status = response.status_code
        where = f"{response.request.method} {response.request.url.path}"
        message = f"{where} returned {status} ({detail})"
        if status in (401, 403):
            raise UnauthorizedError(message, status_code=status)
        if status == 404:
            raise RemoteNotFoundError(message, status_code=status)
        retry_after = response.headers.get("Retry-After")
        raise TransferError(
            message,
            retry_possible=status >= 500 or status == 429,
            backoff_seconds=int(retry_after) if retry_after and retry_after.isdigit() else None,
            status_code=status,
        )

    def _get_data_once(self, path: str) -> Any:
        response = self._send(self.client.build_request("GET", path))
        self._check(response)
        envelope = parse_envelope(response.content)
        return envelope.data

    def _get_data(self, path: str) -> Any:
        with RetryableOperation(f"GET {path}", self.retry_config) as op:
            return op.execute(self._get_data_once, path)

    def _download(self, path: str, dest: BinaryIO) -> int:
        response = self._send(self.client.build_request("GET", path), stream=True)
        try:
            self._check(response)
            written = 0
            try:
                for chunk in response.iter_bytes(STREAM_CHUNK_SIZE):
                    dest.write(chunk)
                    written += len(chunk)
            except httpx.TransportError as e:
                raise NetworkError(f"Download of {path} interrupted: {e}") from e
        finally:
            response.close()
        logger.debug(f"Downloaded {written} bytes from {path}")
        return written

    def _upload(self, path: str, blob: BinaryIO, fields: dict[str, str]) -> None:
        request = self.client.build_request(
            "POST", path,
            data=fields,
            files={"payload": (BLOB_FILENAME, blob, "application/gzip")},
        )
        response = self._send(request)
        self._check(response, expected=(200, 201))
        logger.debug(f"Uploaded {path}")

    @staticmethod
    def _record_fields(record: SaveRecord) -> dict[str, str]:
        return {
            "name": record.name,
            "version": str(record.version),
            "date": record.date.isoformat(),
        }

    def _parse(self, model, data: Any, what: str):
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise TransferError(f"Invalid {what} sent by the server: {e}", retry_possible=False) from e

    # ---- TransferClient ----

    def ping(self) -> None:
        response = self._send(self.client.build_request("GET", "/heartbeat"))
        self._check(response)

    def exists(self, game_id: str) -> bool:
        try:
            self.metadata(game_id)
        except RemoteNotFoundError:
            return False
        return True

    def metadata(self, game_id: str) -> SaveRecord:
        data = self._get_data(f"{API_PREFIX}/games/{_q(game_id)}/metadata")
        return self._parse(SaveRecord, data, "metadata")

    def list_backups(self, game_id: str) -> list[str]:
        data = self._get_data(f"{API_PREFIX}/games/{_q(game_id)}/hist")
        if data is None:
            return []
        if not isinstance(data, list):
            raise TransferError("Invalid backup list sent by the server", retry_possible=False)
        return sorted(str(uuid) for uuid in data)

    def backup_info(self, game_id: str, backup_id: str) -> Backup:
        data = self._get_data(f"{API_PREFIX}/games/{_q(game_id)}/hist/{_q(backup_id)}/info")
        backup = self._parse(Backup, data, "backup info")
        return backup if backup.uuid else backup.model_copy(update={"uuid": backup_id})

    def push_save(self, game_id: str, blob: BinaryIO, record: SaveRecord) -> None:
        self._upload(f"{API_PREFIX}/games/{_q(game_id)}/data", blob, self._record_fields(record))

    def push_backup(self, game_id: str, backup: Backup, blob: BinaryIO, record: SaveRecord) -> None:
        fields = self._record_fields(record)
        fields["created_at"] = backup.created_at.isoformat()
        self._upload(f"{API_PREFIX}/games/{_q(game_id)}/hist/{_q(backup.uuid)}/data", blob, fields)

    def pull(self, game_id: str, dest: BinaryIO) -> None:
        self._download(f"{API_PREFIX}/games/{_q(game_id)}/data", dest)

    def pull_backup(self, game_id: str, backup_id: str, dest: BinaryIO) -> None:
        self._download(f"{API_PREFIX}/games/{_q(game_id)}/hist/{_q(backup_id)}/data", dest)

    # ---- extras ----

    def version(self) -> ServerInfo:
        return self._parse(ServerInfo, self._get_data(f"{API_PREFIX}/version"), "server info")

    def all(self) -> list[SaveRecord]:
        data = self._get_data(f"{API_PREFIX}/games") or []
        if not isinstance(data, list):
            raise TransferError("Invalid save list sent by the server", retry_possible=False)
        return [self._parse(SaveRecord, item, "save list") for item in data]


def connect(url: str, username: str, password: str, timeout: float = 60.0) -> HTTPTransferClient:
    """Open a client; raises ``TransportError`` if the remote is unusable."""
    client = HTTPTransferClient(url, username, password, timeout=timeout)
    try:
        client.ping()
    except TransportError:
        client.close()
        raise
    return client
