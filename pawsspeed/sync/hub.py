"""Session hub: the shared record store + change feed behind the sync protocol.

One record per session code holds the replicated state (competitors, course time
config, rounds) tagged with the device that wrote it last. Writes replace the
whole record (last writer wins) and are fanned out to every subscriber of that
code, including the writer itself; peers drop their own echoes by device tag.
"""
from __future__ import annotations

import asyncio
import logging
from copy import deepcopy
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from pawsspeed.core.types import SyncRecord
from pawsspeed.storage import json_store

logger = logging.getLogger(__name__)

RecordListener = Callable[[SyncRecord], None]


def _updated_before(record: dict, cutoff: datetime) -> bool:
    # Records without a readable timestamp are kept.
    try:
        updated = datetime.fromisoformat(str(record.get("updated_at")))
    except ValueError:
        return False
    if updated.tzinfo is None:
        updated = updated.replace(tzinfo=timezone.utc)
    return updated < cutoff


class SessionHub:
    def __init__(self, *, persist: bool = True) -> None:
        self._records: Dict[str, SyncRecord] = {}
        self._listeners: Dict[str, List[RecordListener]] = {}
        self._lock = asyncio.Lock()
        self._persist = persist

    def load(self, max_age_hours: float = 0, now: Optional[datetime] = None) -> int:
        """Load persisted session records (startup).

        With `max_age_hours > 0`, records not updated within that window are deleted
        from disk instead of loaded.
        """
        if not self._persist:
            return 0
        cutoff = None
        if max_age_hours > 0:
            cutoff = (now or datetime.now(timezone.utc)) - timedelta(hours=max_age_hours)
        for code, record in json_store.load_session_records().items():
            if cutoff is not None and _updated_before(record, cutoff):
                json_store.delete_session_record(code)
                logger.info("Expired session %s (last update %s)", code, record.get("updated_at"))
                continue
            self._records[code] = record  # type: ignore[assignment]
        return len(self._records)

    def exists(self, code: str) -> bool:
        return code in self._records

    def codes(self) -> List[str]:
        return sorted(self._records)

    async def fetch(self, code: str) -> Optional[SyncRecord]:
        record = self._records.get(code)
        return deepcopy(record) if record is not None else None

    async def upsert(self, record: SyncRecord) -> SyncRecord:
        """Store the full record (stamping `updated_at`) and notify subscribers."""
        code = record.get("session_id")
        if not code:
            raise ValueError("record requires session_id")
        stored: SyncRecord = {
            "session_id": code,
            "competitors": deepcopy(list(record.get("competitors") or [])),
            "course_time_config": deepcopy(dict(record.get("course_time_config") or {})),
            "rounds": deepcopy(list(record.get("rounds") or [])),
            "last_updated_by": record.get("last_updated_by"),
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        async with self._lock:
            self._records[code] = stored
            if self._persist:
                await json_store.save_session_record(code, dict(stored))
        logger.debug("Session %s updated by %s", code, stored["last_updated_by"])
        self._notify(code, stored)
        return deepcopy(stored)

    def subscribe(self, code: str, listener: RecordListener) -> Callable[[], None]:
        """Listen for updates to one session; returns the unsubscribe callable."""
        self._listeners.setdefault(code, []).append(listener)

        def unsubscribe() -> None:
            listeners = self._listeners.get(code, [])
            if listener in listeners:
                listeners.remove(listener)
            if not listeners:
                self._listeners.pop(code, None)

        return unsubscribe

    def subscriber_count(self, code: str) -> int:
        return len(self._listeners.get(code, []))

    def _notify(self, code: str, record: SyncRecord) -> None:
        for listener in list(self._listeners.get(code, [])):
            try:
                listener(deepcopy(record))
            except Exception as exc:
                logger.error("Session %s listener failed: %s", code, exc, exc_info=True)
