# pawsspeed/api/live.py
"""
Live competition API (state + WebSockets).

This module is the "authoritative runtime" for the competition:
- POST `/api/cmd`: apply a named store action (rounds, entrants, scores, course times, running order)
- POST `/api/unlock` / `/api/lock`: host privilege (PIN)
- GET `/api/state`: full state snapshot for hydration/recovery
- GET `/api/rounds/{round_id}/queue`: now running + up next across all sizes
- GET `/api/rounds/{round_id}/ranking?size=`: ranked group (+ podium)
- WS `/api/ws`: read-only viewer feed (STATE_SNAPSHOT after every change)

Key design points:
- One CompetitionStore per process, created lazily from the persisted JSON state
- Store listeners persist the state file on every change and notify viewers
- Commands are serialized with `state_lock` and recorded in the NDJSON audit log
"""

# -------------------- Standard library imports --------------------
import asyncio
import json
import logging
from typing import Any, Dict, FrozenSet, Literal

# -------------------- Third-party imports --------------------
from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel
from starlette.websockets import WebSocket

# -------------------- Local application imports --------------------
from pawsspeed.config import settings
from pawsspeed.core import CompetitionStore, apply_command, parse_command
from pawsspeed.core.ranking import podium, rank_competitors
from pawsspeed.core.running_order import group_members, run_queue, up_next
from pawsspeed.core.state import PERSISTED_KEYS
from pawsspeed.storage import json_store
from pawsspeed.sync import SessionHub, SyncClient

logger = logging.getLogger(__name__)

router = APIRouter()

# -------------------- Runtime (authoritative in-process state) --------------------
store: CompetitionStore | None = None
hub = SessionHub()
sync_client: SyncClient | None = None
# Serializes command application + persistence.
state_lock = asyncio.Lock()

# Read-only viewer sockets.
viewers: set[WebSocket] = set()
viewers_lock = asyncio.Lock()


def _persist_listener(changed_store: CompetitionStore, changed: FrozenSet[str]) -> None:
    # Durable write on every change of a persisted key (atomic replace).
    if changed & set(PERSISTED_KEYS):
        json_store.save_competition_state_sync(changed_store.to_persisted())


def _broadcast_listener(changed_store: CompetitionStore, changed: FrozenSet[str]) -> None:
    if not viewers:
        return
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return
    loop.create_task(_send_state_snapshot())


def _build_store() -> CompetitionStore:
    data = json_store.load_competition_state()
    built = CompetitionStore.from_persisted(data)
    built.subscribe(_persist_listener)
    built.subscribe(_broadcast_listener)
    return built


def get_store() -> CompetitionStore:
    """Return the process store, loading it from disk on first use."""
    global store
    if store is None:
        store = _build_store()
        logger.info(
            "Competition state ready (%s rounds, %s competitors)",
            len(store.rounds),
            len(store.competitors),
        )
    return store


def get_sync_client() -> SyncClient:
    global sync_client
    if sync_client is None:
        sync_client = SyncClient(
            get_store(),
            hub,
            json_store.get_device_id(),
            debounce_sec=settings.sync_debounce_ms / 1000,
            code_length=settings.session_code_length,
        )
    return sync_client


async def preload_state() -> int:
    """
    Load persisted state + session records into memory.

    Set `RESET_STATE_ON_START=true` to start every launch from the default rounds.
    """
    json_store.ensure_storage_dirs()
    if settings.reset_state_on_start:
        removed = json_store.clear_competition_state()
        logger.warning("Starting clean (RESET_STATE_ON_START): removed state file=%s", removed)
    reset_runtime()
    get_store()
    loaded = hub.load(max_age_hours=settings.session_ttl_hours)
    if loaded:
        logger.info("Preloaded %s sync sessions", loaded)
    return len(get_store().competitors)


def reset_runtime() -> None:
    """Drop in-memory runtime objects (next access reloads from disk)."""
    global store, sync_client, hub
    if sync_client is not None:
        sync_client.leave_session()
    store = None
    sync_client = None
    hub = SessionHub()


# -------------------- Snapshots --------------------


def build_snapshot() -> Dict[str, Any]:
    """Full state snapshot sent to clients (GET /state and the viewer feed)."""
    current = get_store()
    state = current.get_state()
    live_round = state.get("liveRoundId")
    competitors = state.get("competitors") or []
    queue = run_queue(competitors, live_round) if live_round else []
    return {
        "type": "STATE_SNAPSHOT",
        **state,
        "nowRunning": queue[0] if queue else None,
        "upNext": up_next(competitors, live_round) if live_round else [],
        "sync": get_sync_client().snapshot() if sync_client is not None else {"status": "off"},
    }


async def _send_state_snapshot(targets: set[WebSocket] | None = None) -> None:
    payload = json.dumps(build_snapshot(), ensure_ascii=False)
    if targets is None:
        async with viewers_lock:
            targets = set(viewers)
    dead = []
    for ws in list(targets):
        try:
            await asyncio.wait_for(ws.send_text(payload), timeout=5.0)
        except Exception as e:
            logger.debug(f"Failed to send snapshot to viewer: {e}")
            dead.append(ws)
    if dead:
        async with viewers_lock:
            for ws in dead:
                viewers.discard(ws)


# -------------------- Commands --------------------


def _actor(request: Request | None) -> dict | None:
    if request is None:
        return None
    return {
        "ip": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
    }


@router.post("/cmd")
async def cmd(payload: Dict[str, Any], request: Request = None):
    """
    Apply one command to the competition store.

    - 400: malformed command (unknown type, missing required field, bad value type)
    - 409: the store rejected the action (state unchanged; `detail` carries the reason)
    """
    try:
        validated = parse_command(payload)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    async with state_lock:
        outcome = apply_command(get_store(), validated)
        event = json_store.build_audit_event(
            action=outcome.type,
            payload=validated.model_dump(exclude_none=True),
            ok=outcome.ok,
            reason=outcome.reason,
            actor=_actor(request),
        )
        await json_store.append_audit_event(event)

    if not outcome.ok:
        raise HTTPException(status_code=409, detail=outcome.reason)

    return {
        "status": "ok",
        "type": outcome.type,
        "changed": sorted(outcome.changed),
        "toast": outcome.toast,
        "data": outcome.data,
    }


class PinIn(BaseModel):
    pin: str


@router.post("/unlock")
async def unlock(payload: PinIn):
    """Grant host privilege (scoring + sync push) when the PIN matches."""
    if payload.pin.strip() != settings.host_pin:
        logger.warning("Host unlock rejected: wrong PIN")
        raise HTTPException(status_code=403, detail="invalid_pin")
    get_store().set_host_unlocked(True)
    return {"status": "ok", "hostUnlocked": True}


@router.post("/lock")
async def lock():
    get_store().set_host_unlocked(False)
    return {"status": "ok", "hostUnlocked": False}


# -------------------- Read endpoints --------------------


@router.get("/state")
async def get_state():
    return build_snapshot()


def _require_round(round_id: str) -> None:
    if get_store().get_round(round_id) is None:
        raise HTTPException(status_code=404, detail="round_not_found")


@router.get("/rounds/{round_id}/queue")
async def round_queue(round_id: str):
    """Now running + up next for a round (all sizes, S→L, then run order)."""
    _require_round(round_id)
    competitors = get_store().competitors
    queue = run_queue(competitors, round_id)
    return {
        "roundId": round_id,
        "nowRunning": queue[0] if queue else None,
        "upNext": up_next(competitors, round_id),
        "remaining": len(queue),
    }


@router.get("/rounds/{round_id}/ranking")
async def round_ranking(round_id: str, size: Literal["S", "M", "I", "L"]):
    _require_round(round_id)
    current = get_store()
    ranked = rank_competitors(group_members(current.competitors, round_id, size))
    return {
        "roundId": round_id,
        "size": size,
        "courseTime": current.course_time_for(round_id),
        "ranking": ranked,
        "podium": podium(ranked),
    }


# -------------------- Viewer WebSocket --------------------


async def _heartbeat(ws: WebSocket, last_pong: dict[str, float]) -> None:
    """Send PING every 30s; close if no PONG for 60s."""
    heartbeat_interval = 30
    heartbeat_timeout = 60
    while True:
        try:
            await asyncio.sleep(heartbeat_interval)
            now = asyncio.get_running_loop().time()
            if now - (last_pong.get("ts") or 0.0) > heartbeat_timeout:
                logger.warning("Viewer heartbeat timeout, closing")
                await ws.close(code=1000)
                break
            await ws.send_text(json.dumps({"type": "PING", "timestamp": now}))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug(f"Heartbeat error: {e}")
            break


@router.websocket("/ws")
async def viewer_websocket(ws: WebSocket):
    """
    Read-only viewer feed.

    Clients receive a STATE_SNAPSHOT on connect and after every change, and may send
    REQUEST_STATE to refresh. PING/PONG keep the connection alive.
    """
    await ws.accept()
    async with viewers_lock:
        viewers.add(ws)
        count = len(viewers)
    logger.info(f"Viewer connected, total: {count}")
    await _send_state_snapshot(targets={ws})

    last_pong = {"ts": asyncio.get_running_loop().time()}
    heartbeat_task = asyncio.create_task(_heartbeat(ws, last_pong))
    try:
        while True:
            try:
                data = await asyncio.wait_for(ws.receive_text(), timeout=180)
            except asyncio.TimeoutError:
                logger.warning("Viewer WebSocket receive timeout")
                break
            except Exception as e:
                logger.debug(f"Viewer WebSocket closed: {e}")
                break

            try:
                msg = json.loads(data)
            except json.JSONDecodeError:
                logger.debug("Invalid JSON from viewer WebSocket")
                continue
            if not isinstance(msg, dict):
                continue
            msg_type = msg.get("type")
            if msg_type == "PONG":
                last_pong["ts"] = asyncio.get_running_loop().time()
            elif msg_type == "PING":
                await ws.send_text(json.dumps({"type": "PONG", "timestamp": msg.get("timestamp")}))
            elif msg_type == "REQUEST_STATE":
                await _send_state_snapshot(targets={ws})
    finally:
        heartbeat_task.cancel()
        try:
            await heartbeat_task
        except asyncio.CancelledError:
            pass
        async with viewers_lock:
            viewers.discard(ws)
            remaining = len(viewers)
        logger.info(f"Viewer disconnected, remaining: {remaining}")
