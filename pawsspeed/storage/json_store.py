"""
JSON storage backend (file-based persistence).

This module provides:
- The persisted competition state under `STORAGE_DIR/competition.json` (atomic writes)
- A stable per-device identifier in `STORAGE_DIR/device.json` (used to tag sync pushes)
- Shared session records under `STORAGE_DIR/sessions/{code}.json` (sync backend)
- Append-only audit log in NDJSON format (`STORAGE_DIR/events.ndjson`) with size-based rotation
- Periodic full-state backups with retention

Concurrency model:
- The competition state file is written synchronously from the store listener (one writer)
- Per-session locks prevent overlapping writes for the same session code
- A global audit lock serializes appends/rotations of the NDJSON audit log
"""

# -------------------- Standard library imports --------------------
import asyncio
import json
import logging
import os
import re
import uuid
from collections import deque
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

# -------------------- Local application imports --------------------
from pawsspeed.config import settings

# -------------------- Storage configuration --------------------
STORAGE_DIR = settings.storage_dir
MAX_AUDIT_FILE_SIZE_MB = settings.max_audit_file_size_mb

# -------------------- Concurrency primitives --------------------
_session_locks: Dict[str, asyncio.Lock] = {}
_session_locks_lock = asyncio.Lock()
_audit_lock = asyncio.Lock()

_SESSION_CODE_RE = re.compile(r"^[A-Z0-9]{1,32}$")

logger = logging.getLogger(__name__)


async def _get_session_lock(code: str) -> asyncio.Lock:
    # Lazily create the lock for this session code (safe under `_session_locks_lock`).
    async with _session_locks_lock:
        lock = _session_locks.get(code)
        if lock is None:
            lock = asyncio.Lock()
            _session_locks[code] = lock
        return lock


def _storage_dir() -> Path:
    return Path(STORAGE_DIR)


def _state_path() -> Path:
    return _storage_dir() / "competition.json"


def _device_path() -> Path:
    return _storage_dir() / "device.json"


def _sessions_dir() -> Path:
    return _storage_dir() / "sessions"


def _events_path() -> Path:
    # Append-only audit log (NDJSON: 1 JSON object per line).
    return _storage_dir() / "events.ndjson"


def ensure_storage_dirs() -> None:
    # Create the root + `sessions/` folder if missing (idempotent).
    _storage_dir().mkdir(parents=True, exist_ok=True)
    _sessions_dir().mkdir(parents=True, exist_ok=True)


def _atomic_write_json(path: Path, payload: Any) -> None:
    # Write to `*.tmp` then replace the target in one filesystem operation,
    # so a crash never leaves a half-written JSON file behind.
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(
        json.dumps(payload, ensure_ascii=False, indent=2),
        encoding="utf-8",
    )
    os.replace(tmp_path, path)


def _read_json(path: Path) -> Any:
    """Parse a JSON file; corrupt/unreadable files are logged and read as None."""
    if not path.exists():
        return None
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        logger.error(f"Corrupt JSON in {path.name}: {exc}")
    except Exception as exc:
        logger.error(f"Failed to read {path.name}: {exc}")
    return None


# -------------------- Competition state --------------------


def load_competition_state() -> Optional[dict]:
    """Load the persisted competition state (None when missing or unreadable)."""
    ensure_storage_dirs()
    data = _read_json(_state_path())
    if data is None:
        return None
    if not isinstance(data, dict):
        logger.warning("Invalid competition state format (not a dict), ignoring")
        return None
    logger.debug(
        "Loaded competition state (schemaVersion=%s, competitors=%s)",
        data.get("schemaVersion"),
        len(data.get("competitors") or []),
    )
    return data


def save_competition_state_sync(state: dict) -> None:
    ensure_storage_dirs()
    _atomic_write_json(_state_path(), dict(state))


def clear_competition_state() -> bool:
    """Delete the persisted competition state. Returns True when a file was removed."""
    path = _state_path()
    if not path.exists():
        return False
    try:
        path.unlink()
        return True
    except Exception as exc:
        logger.warning("Failed to delete competition state file %s: %s", path, exc)
        return False


# -------------------- Device identity --------------------


def get_device_id() -> str:
    """Stable per-install identifier (created on first use)."""
    ensure_storage_dirs()
    data = _read_json(_device_path())
    if isinstance(data, dict) and isinstance(data.get("deviceId"), str) and data["deviceId"]:
        return data["deviceId"]
    device_id = str(uuid.uuid4())
    _atomic_write_json(
        _device_path(),
        {"deviceId": device_id, "createdAt": datetime.now(timezone.utc).isoformat()},
    )
    logger.info("Generated device id %s", device_id)
    return device_id


# -------------------- Session records (sync backend) --------------------


def _session_path(code: str) -> Path:
    if not _SESSION_CODE_RE.match(code or ""):
        raise ValueError(f"invalid session code: {code!r}")
    return _sessions_dir() / f"{code}.json"


def load_session_records() -> Dict[str, dict]:
    """Load all session records, skipping invalid/corrupt files."""
    ensure_storage_dirs()
    records: Dict[str, dict] = {}
    for path in _sessions_dir().glob("*.json"):
        code = path.stem
        if not _SESSION_CODE_RE.match(code):
            logger.warning(f"Skipping invalid session filename: {path.name}")
            continue
        data = _read_json(path)
        if not isinstance(data, dict) or data.get("session_id") != code:
            logger.warning(f"Invalid session record in {path.name}, skipping")
            continue
        records[code] = data
    if records:
        logger.info(f"Loaded {len(records)} session records")
    return records


async def save_session_record(code: str, record: dict) -> None:
    ensure_storage_dirs()
    path = _session_path(code)
    lock = await _get_session_lock(code)
    async with lock:
        _atomic_write_json(path, dict(record))


def delete_session_record(code: str) -> bool:
    """Remove a session record file. Returns True when a file was removed."""
    path = _session_path(code)
    if not path.exists():
        return False
    path.unlink()
    return True


# -------------------- Audit log --------------------


def _rotate_audit_file_if_needed() -> None:
    """Rotate audit file if it exceeds MAX_AUDIT_FILE_SIZE_MB."""
    path = _events_path()
    if not path.exists():
        return
    try:
        size_mb = path.stat().st_size / (1024 * 1024)
        if size_mb >= MAX_AUDIT_FILE_SIZE_MB:
            timestamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
            archive_name = f"events.{timestamp}.ndjson"
            path.rename(path.parent / archive_name)
            logger.info("Rotated audit file to %s (was %.2f MB)", archive_name, size_mb)
    except Exception as exc:
        logger.warning("Failed to rotate audit file: %s", exc)


async def append_audit_event(event: dict) -> None:
    # Rotation happens under the same lock so rename + append cannot interleave.
    ensure_storage_dirs()
    line = json.dumps(event, ensure_ascii=False)
    async with _audit_lock:
        try:
            _rotate_audit_file_if_needed()
            with _events_path().open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")
        except Exception as exc:
            logger.warning("Failed to append audit event: %s", exc)


def build_audit_event(
    *,
    action: str,
    payload: dict,
    ok: bool,
    reason: str | None = None,
    actor: dict | None = None,
) -> dict:
    # Normalized event envelope written to NDJSON.
    return {
        "id": str(uuid.uuid4()),
        "createdAt": datetime.now(timezone.utc).isoformat(),
        "action": action,
        "ok": ok,
        "reason": reason,
        "actorIp": (actor or {}).get("ip"),
        "actorUserAgent": (actor or {}).get("user_agent"),
        "payload": payload if isinstance(payload, dict) else {},
    }


def read_latest_events(*, limit: int = 200, include_payload: bool = False) -> List[dict]:
    # Tail the NDJSON audit log in a memory-bounded way using a deque.
    path = _events_path()
    if not path.exists():
        return []
    tail: deque[dict] = deque(maxlen=limit)
    with path.open("r", encoding="utf-8") as handle:
        for line in handle:
            line = line.strip()
            if not line:
                continue
            try:
                event = json.loads(line)
            except json.JSONDecodeError:
                continue
            if not include_payload:
                event = dict(event)
                event["payload"] = None
            tail.append(event)
    return list(reversed(list(tail)))


# -------------------- Backups --------------------


def write_backup_file(output_dir: Path, state: dict) -> Path:
    """Persist a full-state backup to a timestamped JSON file."""
    output_dir.mkdir(parents=True, exist_ok=True)
    ts = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
    path = output_dir / f"backup_{ts}.json"
    _atomic_write_json(path, {"createdAt": datetime.now(timezone.utc).isoformat(), "state": state})
    return path


def prune_backups(output_dir: Path, keep: int) -> int:
    """Delete all but the newest `keep` backup files. Returns the number removed."""
    files = sorted(output_dir.glob("backup_*.json"), reverse=True)
    removed = 0
    for old in files[max(keep, 0):]:
        try:
            old.unlink()
            removed += 1
        except OSError as exc:
            logger.warning("Failed to delete old backup %s: %s", old, exc)
    return removed


def latest_backup_file(output_dir: Path) -> Path | None:
    files = sorted(output_dir.glob("backup_*.json"), reverse=True)
    return files[0] if files else None


def storage_usage() -> Dict[str, Any]:
    """Byte sizes of the main storage files (health diagnostics)."""
    def size(path: Path) -> int:
        return path.stat().st_size if path.exists() else 0

    root = _storage_dir()
    total = sum(f.stat().st_size for f in root.rglob("*") if f.is_file()) if root.exists() else 0
    return {
        "dir": str(root),
        "totalMb": round(total / (1024 * 1024), 2),
        "stateBytes": size(_state_path()),
        "auditBytes": size(_events_path()),
        "sessions": len(list(_sessions_dir().glob("*.json"))) if _sessions_dir().exists() else 0,
    }
