from .client import (
    HostLockedError,
    InvalidRecordError,
    SessionNotFoundError,
    SyncClient,
    SyncError,
    SyncUnavailableError,
    generate_code,
    normalize_code,
)
from .hub import SessionHub
from .outbox import DebouncedOutbox

__all__ = [
    "DebouncedOutbox",
    "HostLockedError",
    "InvalidRecordError",
    "SessionHub",
    "SessionNotFoundError",
    "SyncClient",
    "SyncError",
    "SyncUnavailableError",
    "generate_code",
    "normalize_code",
]
