"""Ephemeral message channel: one screen of bot messages per chat.

Every message the bot sends through :class:`EphemeralChannel` is tracked per
chat. Rendering a new screen first deletes everything tracked (best effort) and
empties the set, so a chat only ever sees the latest view.

All operations touching one chat's tracked set run under that chat's
``asyncio.Lock``; different chats never wait on each other.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Dict, List, Optional

from .gateway import PLAIN, Gateway, Presentation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeleteOutcome:
    message_id: int
    ok: bool
    error: str = ""


class Screen:
    """Handle for one in-progress render; only valid inside ``render()``."""

    def __init__(self, channel: "EphemeralChannel", chat_id: int) -> None:
        self._channel = channel
        self.chat_id = chat_id

    async def send(self, text: str, presentation: Presentation = PLAIN) -> Optional[int]:
        return await self._channel._send_locked(self.chat_id, text, presentation)


class EphemeralChannel:
    def __init__(self, gateway: Gateway) -> None:
        self._gateway = gateway
        self._tracked: Dict[int, List[int]] = {}
        self._locks: Dict[int, asyncio.Lock] = {}

    # --------- locking ----------
    def _lock_for(self, chat_id: int) -> asyncio.Lock:
        lock = self._locks.get(chat_id)
        if lock is None:
            lock = self._locks[chat_id] = asyncio.Lock()
        return lock

    # --------- introspection ----------
    def tracked(self, chat_id: int) -> List[int]:
        """Message ids currently on the chat's screen."""
        return list(self._tracked.get(chat_id, ()))

    # --------- internals (caller holds the chat lock) ----------
    async def _delete_one(self, chat_id: int, message_id: int) -> DeleteOutcome:
        try:
            await self._gateway.delete_message(chat_id, message_id)
        except Exception as e:
            # already gone or too old to delete; nothing to do about it
            logger.debug("delete of message %s in chat %s failed: %s", message_id, chat_id, e)
            return DeleteOutcome(message_id, False, str(e))
        return DeleteOutcome(message_id, True)

    async def _clear_locked(self, chat_id: int) -> List[DeleteOutcome]:
        ids = self._tracked.get(chat_id) or []
        try:
            if not ids:
                return []
            return list(await asyncio.gather(*(self._delete_one(chat_id, mid) for mid in ids)))
        finally:
            self._tracked[chat_id] = []

    async def _send_locked(self, chat_id: int, text: str, presentation: Presentation) -> Optional[int]:
        try:
            message_id = await self._gateway.send_message(chat_id, text, presentation)
        except Exception as e:
            logger.error("send to chat %s failed: %s", chat_id, e)
            return None
        self._tracked.setdefault(chat_id, []).append(message_id)
        return message_id

    # --------- public API ----------
    async def clear_screen(self, chat_id: int) -> List[DeleteOutcome]:
        """Delete every tracked message of the chat; the set is empty afterwards.

        Returns one outcome per attempted delete. Failures never raise.
        """
        async with self._lock_for(chat_id):
            return await self._clear_locked(chat_id)

    async def send(self, chat_id: int, text: str, presentation: Presentation = PLAIN) -> Optional[int]:
        """Send a message onto the current screen; returns its id or None on failure."""
        async with self._lock_for(chat_id):
            return await self._send_locked(chat_id, text, presentation)

    # alias used by callers that add to a screen rather than replacing it
    append = send

    @asynccontextmanager
    async def render(self, chat_id: int) -> AsyncIterator[Screen]:
        """Replace the chat's screen.

        Holds the chat lock for the whole block: the old screen is cleared before
        the block runs, and no other operation on the chat interleaves with the
        sends made through the yielded :class:`Screen`.
        """
        async with self._lock_for(chat_id):
            await self._clear_locked(chat_id)
            yield Screen(self, chat_id)
