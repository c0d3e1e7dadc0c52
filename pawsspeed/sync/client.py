"""Sync client: replicate one CompetitionStore through a SessionHub.

Lifecycle:
- `create_session()` (host only): new code, upload the full state, subscribe
- `join_session(code)`: fetch the record and destructively replace local state, subscribe
- `leave_session()`: unsubscribe, drop any pending push, status back to "off"

While connected, every local change to competitors / course times / rounds made on a
host device is pushed through a debounced outbox. Remote updates tagged with this
device's id are ignored, and applying a remote update never schedules a push.
"""
from __future__ import annotations

import logging
import random
import string
from typing import Any, Callable, Dict, FrozenSet, Optional

from pydantic import ValidationError

from pawsspeed.core.state import SYNCED_KEYS, CompetitionStore
from pawsspeed.core.types import SyncRecord, SyncStatus
from pawsspeed.core.validation import SyncPayload

from .hub import SessionHub
from .outbox import DEFAULT_DELAY_SEC, DebouncedOutbox

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
DEFAULT_CODE_LENGTH = 6


class SyncError(Exception):
    """Base class for sync failures."""


class SessionNotFoundError(SyncError):
    def __init__(self, code: str) -> None:
        super().__init__(f"session not found: {code}")
        self.code = code


class SyncUnavailableError(SyncError):
    """Remote store unreachable or the write failed."""


class HostLockedError(SyncError):
    """Creating a session requires host privilege."""


class InvalidRecordError(SyncError):
    """The session record does not have the replicated-state shape."""

    def __init__(self, code: str, detail: str) -> None:
        super().__init__(f"invalid record for session {code}: {detail}")
        self.code = code


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def generate_code(length: int = DEFAULT_CODE_LENGTH, rng: random.Random | None = None) -> str:
    rng = rng or random.SystemRandom()
    return "".join(rng.choice(CODE_ALPHABET) for _ in range(length))


class SyncClient:
    def __init__(
        self,
        store: CompetitionStore,
        hub: SessionHub,
        device_id: str,
        *,
        debounce_sec: float = DEFAULT_DELAY_SEC,
        code_length: int = DEFAULT_CODE_LENGTH,
        rng: random.Random | None = None,
    ) -> None:
        self.store = store
        self.hub = hub
        self.device_id = device_id
        self.code_length = code_length
        self._rng = rng
        self.status: SyncStatus = "off"
        self.session_code: Optional[str] = None
        self.last_error: Optional[str] = None
        self._applying_remote = False
        self._unsubscribe_remote: Optional[Callable[[], None]] = None
        self._unsubscribe_store: Optional[Callable[[], None]] = None
        self.outbox = DebouncedOutbox(self._push, delay=debounce_sec, on_error=self._on_push_error)

    # -------------------- Public API --------------------

    @property
    def applying_remote(self) -> bool:
        return self._applying_remote

    def snapshot(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "sessionCode": self.session_code,
            "deviceId": self.device_id,
            "isHost": self.store.host_unlocked,
            "pendingPush": self.outbox.has_pending,
            "error": self.last_error,
        }

    async def create_session(self) -> str:
        if not self.store.host_unlocked:
            raise HostLockedError("host is locked")
        self._detach()
        self._set_status("connecting")

        code = generate_code(self.code_length, self._rng)
        while self.hub.exists(code):
            code = generate_code(self.code_length, self._rng)

        record: SyncRecord = {
            "session_id": code,
            **self.store.sync_payload(),  # type: ignore[misc]
            "last_updated_by": self.device_id,
        }
        try:
            await self.hub.upsert(record)
        except Exception as exc:
            self._fail(f"create failed: {exc}")
            logger.error("Failed to create session %s: %s", code, exc, exc_info=True)
            raise SyncUnavailableError(str(exc)) from exc

        self._attach(code)
        logger.info("Created sync session %s", code)
        return code

    async def join_session(self, code: str) -> SyncRecord:
        code = normalize_code(code)
        self._detach()
        self._set_status("connecting")
        try:
            record = await self.hub.fetch(code)
        except Exception as exc:
            self._fail(f"join failed: {exc}")
            logger.error("Failed to join session %s: %s", code, exc, exc_info=True)
            raise SyncUnavailableError(str(exc)) from exc
        if record is None:
            self._fail("not_found")
            logger.warning("Join failed: session %s not found", code)
            raise SessionNotFoundError(code)

        try:
            self._apply_remote(record)
        except ValidationError as exc:
            self._fail("invalid_record")
            logger.error("Join failed: session %s holds a malformed record: %s", code, exc)
            raise InvalidRecordError(code, str(exc)) from exc
        self._attach(code)
        logger.info("Joined sync session %s", code)
        return record

    def leave_session(self) -> None:
        """Safe with a push in flight: the push is cancelled, not awaited."""
        code = self.session_code
        self._detach()
        self.last_error = None
        self._set_status("off")
        if code:
            logger.info("Left sync session %s", code)

    async def flush(self) -> bool:
        return await self.outbox.flush()

    # -------------------- Internals --------------------

    def _set_status(self, status: SyncStatus) -> None:
        if status != self.status:
            logger.debug("Sync status %s -> %s", self.status, status)
        self.status = status

    def _fail(self, message: str) -> None:
        self.last_error = message
        self._set_status("error")

    def _attach(self, code: str) -> None:
        self.session_code = code
        self.last_error = None
        self._unsubscribe_remote = self.hub.subscribe(code, self._on_remote)
        self._unsubscribe_store = self.store.subscribe(self._on_local_change)
        self._set_status("connected")

    def _detach(self) -> None:
        if self._unsubscribe_remote:
            self._unsubscribe_remote()
        if self._unsubscribe_store:
            self._unsubscribe_store()
        self._unsubscribe_remote = None
        self._unsubscribe_store = None
        self.session_code = None
        self.outbox.cancel()

    def _on_local_change(self, store: CompetitionStore, changed: FrozenSet[str]) -> None:
        if self._applying_remote:
            return
        if self.session_code is None or self.status != "connected":
            return
        if not store.host_unlocked or not (changed & SYNCED_KEYS):
            return
        self.outbox.schedule(store.sync_payload())

    async def _push(self, payload: Dict[str, Any]) -> None:
        if self.session_code is None:
            return
        await self.hub.upsert(
            {
                "session_id": self.session_code,
                **payload,  # type: ignore[misc]
                "last_updated_by": self.device_id,
            }
        )

    def _on_push_error(self, exc: Exception) -> None:
        self._fail(f"push failed: {exc}")

    def _on_remote(self, record: SyncRecord) -> None:
        code = record.get("session_id")
        if self.status != "connected":
            logger.debug("Ignoring update for session %s while %s", code, self.status)
            return
        if record.get("last_updated_by") == self.device_id:
            logger.debug("Ignoring own echo for session %s", code)
            return
        try:
            self._apply_remote(record)
        except ValidationError as exc:
            # Local state stays as it was; the next valid update replaces it.
            self.last_error = "invalid remote record"
            logger.warning("Dropped malformed update for session %s: %s", code, exc)

    def _apply_remote(self, record: SyncRecord) -> None:
        """Validate the whole record, then replace local state. Raises ValidationError."""
        competitors, course_times, rounds = SyncPayload.model_validate(record).unpack()
        self._applying_remote = True
        try:
            self.store.replace_synced(competitors, course_times, rounds or None)  # type: ignore[arg-type]
        finally:
            self._applying_remote = False
