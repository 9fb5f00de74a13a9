# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.06.08
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/cloudsave/system/exceptions.py

"""
cloudsave-specific exception classes.

Storage failures carry the identifier key and the operation that failed,
transport failures say whether a retry could help, and sync failures carry
enough context (the conflict, the per-record failures) for the caller to act.
"""


class CloudSaveError(Exception):
    """Base exception for all cloudsave errors."""
    pass


class ConfigError(CloudSaveError):
    """cloudsave.yml could not be loaded or holds invalid values."""
    pass


class ArchiveError(CloudSaveError):
    """Raised when an archive is malformed or would escape its destination."""
    pass


# === REPOSITORY ERRORS ===

class RepositoryError(CloudSaveError):
    """Base class for local repository failures."""

    def __init__(self, message: str, key: str = None, operation: str = None):
        self.key = key
        self.operation = operation
        super().__init__(message)


class NotFoundError(RepositoryError):
    """The save, backup or blob does not exist."""
    pass


class CorruptedError(RepositoryError):
    """A stored metadata or remote file could not be parsed."""
    pass


class IOFailureError(RepositoryError):
    """The filesystem refused an operation."""
    pass


# === TRANSPORT ERRORS ===

class TransportError(CloudSaveError):
    """Talking to a remote save server failed."""

    def __init__(self, message: str, retry_possible: bool = True,
                 backoff_seconds: int = None, status_code: int = None):
        self.retry_possible = retry_possible
        self.backoff_seconds = backoff_seconds
        self.status_code = status_code
        super().__init__(message)


class NetworkError(TransportError):
    """The remote could not be reached."""
    pass


class ConnectionTimeoutError(NetworkError):
    """The remote did not answer within ``request_timeout``."""
    pass


class UnauthorizedError(TransportError):
    """The remote rejected the credentials."""

    def __init__(self, message: str, **kwargs):
        kwargs['retry_possible'] = False
        super().__init__(message, **kwargs)


class RemoteNotFoundError(TransportError):
    """The remote has no such save or backup."""

    def __init__(self, message: str, **kwargs):
        kwargs['retry_possible'] = False
        super().__init__(message, **kwargs)


class TransferError(TransportError):
    """An upload or download of a save archive failed."""
    pass


class TransferIntegrityError(TransferError):
    """Transferred content does not match the announced hash."""

    def __init__(self, message: str, expected_hash: str = None, actual_hash: str = None, **kwargs):
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        kwargs['retry_possible'] = False
        super().__init__(message, **kwargs)


# === SYNC ERRORS ===

class SyncError(CloudSaveError):
    """A sync pass could not converge a save with its remote."""
    pass


class ConflictError(SyncError):
    """Both sides changed at the same version and nobody chose a winner."""

    def __init__(self, conflict):
        self.conflict = conflict
        super().__init__(
            f"conflict on {conflict.game_id}: local and remote are both at "
            f"version {conflict.local.version} with different content"
        )


class PartialFailureError(SyncError):
    """Some records of a sync pass failed; the others went through."""

    def __init__(self, failures: dict):
        self.failures = failures
        names = ", ".join(sorted(failures))
        super().__init__(f"{len(failures)} save(s) failed to sync: {names}")
