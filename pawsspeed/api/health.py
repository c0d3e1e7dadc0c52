# pawsspeed/api/health.py
"""Probes for the ringside laptop's process supervisor and the viewer screens."""

# -------------------- Standard library imports --------------------
import logging
import os
from datetime import datetime, timezone

# -------------------- Third-party imports --------------------
from fastapi import APIRouter

# -------------------- Local application imports --------------------
from pawsspeed.api import live
from pawsspeed.storage import json_store

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """
    Competition overview for monitoring.

    Counts come from the in-memory store; `storage` reports the JSON files on disk.
    """
    current = live.get_store()
    return {
        "status": "ok",
        "rounds": len(current.rounds),
        "competitors": len(current.competitors),
        "liveRoundId": current.live_round_id,
        "viewers": len(live.viewers),
        "sync": live.sync_client.status if live.sync_client is not None else "off",
        "storage": json_store.storage_usage(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/health/ready")
async def readiness_check():
    # Ready once the store is loaded and the storage dir accepts writes.
    try:
        rounds = len(live.get_store().rounds)
        json_store.ensure_storage_dirs()
        writable = os.access(json_store.STORAGE_DIR, os.W_OK)
    except Exception as e:
        logger.error("Readiness check failed: %s", e)
        return {"status": "not_ready", "error": str(e)}
    if not writable:
        return {"status": "not_ready", "error": "storage_not_writable"}
    return {"status": "ready", "rounds": rounds}


@router.get("/health/live")
async def liveness_check():
    return {"status": "alive"}
