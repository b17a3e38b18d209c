"""Long-polling update loop, used when ``delivery_mode`` is ``polling``."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from .errors import GatewayError

logger = logging.getLogger(__name__)

Handler = Callable[[Dict[str, Any]], Awaitable[None]]


class UpdatePoller:
    """Fetch updates with ``getUpdates`` and hand each to ``handler`` as its own task."""

    def __init__(self, gateway: Any, handler: Handler, *, timeout: int = 30, backoff: float = 3.0) -> None:
        self.gateway = gateway
        self.handler = handler
        self.timeout = timeout
        self.backoff = backoff
        self.offset: Optional[int] = None
        self._task: Optional[asyncio.Task] = None
        self._inflight: Set[asyncio.Task] = set()

    async def _run_handler(self, update: Dict[str, Any]) -> None:
        try:
            await self.handler(update)
        except Exception:
            logger.exception("handling update %s failed", update.get("update_id"))

    def _spawn(self, update: Dict[str, Any]) -> None:
        task = asyncio.create_task(self._run_handler(update))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def poll_once(self) -> int:
        """Fetch one batch and schedule its updates; returns the batch size."""
        updates = await self.gateway.get_updates(offset=self.offset, timeout=self.timeout)
        for update in updates:
            if not isinstance(update, dict):
                logger.warning("skipping malformed update %r", update)
                continue
            update_id = update.get("update_id")
            if isinstance(update_id, int):
                self.offset = update_id + 1
            self._spawn(update)
        return len(updates)

    async def run(self) -> None:
        logger.info("polling for updates (timeout=%ss)", self.timeout)
        while True:
            try:
                await self.poll_once()
            except GatewayError as e:
                logger.warning("getUpdates failed: %s (retry in %.1fs)", e, self.backoff)
                await asyncio.sleep(self.backoff)
            except Exception:
                logger.exception("polling failed (retry in %.1fs)", self.backoff)
                await asyncio.sleep(self.backoff)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)
