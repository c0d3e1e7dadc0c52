"""Single-slot debounced outbox.

Holds at most one pending payload. Every `schedule()` overwrites the pending
payload and restarts the quiet-period timer, so a burst of mutations produces
one send carrying the latest state. Intermediate states are dropped.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

DEFAULT_DELAY_SEC = 0.4


class DebouncedOutbox:
    def __init__(
        self,
        send: Callable[[Any], Awaitable[None]],
        delay: float = DEFAULT_DELAY_SEC,
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> None:
        self._send = send
        self._delay = max(delay, 0.0)
        self._on_error = on_error
        self._pending: Any = None
        self._has_pending = False
        self._timer: Optional[asyncio.Task] = None
        self._sending: Optional[asyncio.Task] = None

    @property
    def has_pending(self) -> bool:
        return self._has_pending

    @property
    def pending(self) -> Any:
        return self._pending

    @property
    def scheduled(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def schedule(self, payload: Any) -> None:
        """Replace the pending payload and restart the timer. Needs a running event loop."""
        self._pending = payload
        self._has_pending = True
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = asyncio.get_running_loop().create_task(self._fire())

    async def _fire(self) -> None:
        await asyncio.sleep(self._delay)
        self._timer = None
        self._sending = asyncio.current_task()
        try:
            await self._send_pending()
        finally:
            self._sending = None

    async def _send_pending(self) -> bool:
        if not self._has_pending:
            return False
        payload = self._pending
        self._pending = None
        self._has_pending = False
        try:
            await self._send(payload)
            return True
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("Outbox send failed: %s", exc, exc_info=True)
            if self._on_error is not None:
                self._on_error(exc)
            return False

    async def flush(self) -> bool:
        """Send the pending payload now (skipping the quiet period)."""
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None
        return await self._send_pending()

    def cancel(self) -> None:
        """Drop the pending payload and cancel the timer and any in-flight send.

        Never awaits, so it is safe to call from synchronous code.
        """
        self._pending = None
        self._has_pending = False
        for task in (self._timer, self._sending):
            if task is not None and not task.done():
                task.cancel()
        self._timer = None
        self._sending = None
