from .json_store import (
    STORAGE_DIR,
    append_audit_event,
    build_audit_event,
    clear_competition_state,
    delete_session_record,
    ensure_storage_dirs,
    get_device_id,
    load_competition_state,
    load_session_records,
    read_latest_events,
    save_competition_state_sync,
    save_session_record,
)

__all__ = [
    "STORAGE_DIR",
    "append_audit_event",
    "build_audit_event",
    "clear_competition_state",
    "delete_session_record",
    "ensure_storage_dirs",
    "get_device_id",
    "load_competition_state",
    "load_session_records",
    "read_latest_events",
    "save_competition_state_sync",
    "save_session_record",
]
