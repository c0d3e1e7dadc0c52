"""
Sync session endpoints.

Two audiences:
- Browser peers talk to the hub directly: create/read/replace a session record and
  follow its change feed over `WS /api/sessions/{code}/ws`.
- The local host process drives its own `SyncClient` via `/api/sync/*`
  (create, join, leave, status).
"""

# -------------------- Standard library imports --------------------
import asyncio
import json
import logging
from typing import Optional

# -------------------- Third-party imports --------------------
from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field
from starlette.websockets import WebSocket

# -------------------- Local application imports --------------------
from pawsspeed.api import live
from pawsspeed.config import settings
from pawsspeed.core.validation import SyncPayload
from pawsspeed.sync import (
    HostLockedError,
    InvalidRecordError,
    SessionNotFoundError,
    SyncUnavailableError,
    generate_code,
    normalize_code,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["sync"])


class SessionRecordIn(SyncPayload):
    """Whole session record as written by a peer (same shape the local client pushes)."""

    last_updated_by: Optional[str] = Field(None, max_length=128)


class JoinIn(BaseModel):
    code: str = Field(..., min_length=1, max_length=32)


# -------------------- Hub (shared record store) --------------------


@router.post("/sessions")
async def create_session_record(payload: SessionRecordIn):
    code = generate_code(settings.session_code_length)
    while live.hub.exists(code):
        code = generate_code(settings.session_code_length)
    record = await live.hub.upsert({"session_id": code, **payload.model_dump()})
    logger.info("Session %s created by %s", code, payload.last_updated_by)
    return record


@router.get("/sessions/{code}")
async def get_session_record(code: str):
    record = await live.hub.fetch(normalize_code(code))
    if record is None:
        raise HTTPException(status_code=404, detail="session_not_found")
    return record


@router.put("/sessions/{code}")
async def replace_session_record(code: str, payload: SessionRecordIn):
    """Whole-record replace (last writer wins)."""
    code = normalize_code(code)
    if not live.hub.exists(code):
        raise HTTPException(status_code=404, detail="session_not_found")
    return await live.hub.upsert({"session_id": code, **payload.model_dump()})


@router.websocket("/sessions/{code}/ws")
async def session_feed(ws: WebSocket, code: str):
    """Change feed: the current record on connect, then every update as SESSION_UPDATE."""
    code = normalize_code(code)
    if not live.hub.exists(code):
        await ws.close(code=4404, reason="session_not_found")
        return

    await ws.accept()
    queue: asyncio.Queue = asyncio.Queue()
    unsubscribe = live.hub.subscribe(code, queue.put_nowait)
    current = await live.hub.fetch(code)
    await ws.send_text(json.dumps({"type": "SESSION_UPDATE", "record": current}, ensure_ascii=False))

    async def forward() -> None:
        while True:
            record = await queue.get()
            await ws.send_text(json.dumps({"type": "SESSION_UPDATE", "record": record}, ensure_ascii=False))

    forward_task = asyncio.create_task(forward())
    logger.info("Session %s feed connected (%s listeners)", code, live.hub.subscriber_count(code))
    try:
        while True:
            try:
                data = await ws.receive_text()
            except Exception as e:
                logger.debug(f"Session {code} feed closed: {e}")
                break
            try:
                msg = json.loads(data)
            except json.JSONDecodeError:
                continue
            if isinstance(msg, dict) and msg.get("type") == "PING":
                await ws.send_text(json.dumps({"type": "PONG", "timestamp": msg.get("timestamp")}))
    finally:
        unsubscribe()
        forward_task.cancel()
        try:
            await forward_task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.debug(f"Session {code} forwarder stopped: {e}")


# -------------------- Local sync client --------------------


@router.get("/sync/status")
async def sync_status():
    return live.get_sync_client().snapshot()


@router.post("/sync/create")
async def sync_create():
    client = live.get_sync_client()
    try:
        code = await client.create_session()
    except HostLockedError:
        raise HTTPException(status_code=403, detail="host_locked")
    except SyncUnavailableError as e:
        raise HTTPException(status_code=503, detail=f"sync_unavailable: {e}")
    return {"status": "ok", "code": code, **client.snapshot()}


@router.post("/sync/join")
async def sync_join(payload: JoinIn):
    client = live.get_sync_client()
    try:
        await client.join_session(payload.code)
    except SessionNotFoundError:
        raise HTTPException(status_code=404, detail="session_not_found")
    except InvalidRecordError:
        raise HTTPException(status_code=422, detail="invalid_session_record")
    except SyncUnavailableError as e:
        raise HTTPException(status_code=503, detail=f"sync_unavailable: {e}")
    return {"status": "ok", **client.snapshot()}


@router.post("/sync/leave")
async def sync_leave():
    client = live.get_sync_client()
    client.leave_session()
    return {"status": "ok", **client.snapshot()}
