"""Command dispatcher: turns inbound Telegram updates into screens.

States per chat are just the session store's ``authorized`` flag:

* unauthenticated: only ``/start <secret>`` does anything useful
* authenticated: the three menu buttons render record tables
* copy callbacks are handled independently and append to the current screen
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, Optional, Tuple

from . import formatting as fmt
from .errors import RecordSourceError
from .gateway import PLAIN, Gateway, Presentation
from .records import Collection, RecordSource
from .screen import EphemeralChannel, Screen
from .sessions import ChatSessionStore

logger = logging.getLogger(__name__)

START_RE = re.compile(r"^/start(.*)", re.DOTALL)
COPY_RE = re.compile(r"^copy_([a-z]+)_(\d+)$")


def parse_copy_token(data: str) -> Optional[Tuple[Collection, int]]:
    """``copy_app_12`` -> (APPLICATIONS, 12); None for anything unrecognised."""
    m = COPY_RE.match(data or "")
    if not m:
        return None
    collection = Collection.from_tag(m.group(1))
    if collection is None:
        return None
    return collection, int(m.group(2))


class CommandDispatcher:
    def __init__(
        self,
        sessions: ChatSessionStore,
        channel: EphemeralChannel,
        records: RecordSource,
        gateway: Gateway,
    ) -> None:
        self.sessions = sessions
        self.channel = channel
        self.records = records
        self.gateway = gateway

    async def handle_update(self, update: Dict[str, Any]) -> None:
        """Entry point for one raw update from webhook or polling."""
        if update.get("callback_query"):
            await self.handle_callback(update["callback_query"])
            return
        message = update.get("message")
        if message and (message.get("chat") or {}).get("id") is not None:
            await self.handle_message(message)
            return
        logger.debug("ignoring update %s without message or callback", update.get("update_id"))

    # -----------------------------
    # Text messages
    # -----------------------------
    async def handle_message(self, message: Dict[str, Any]) -> None:
        chat_id = int(message["chat"]["id"])
        text = message.get("text") or ""

        m = START_RE.match(text)
        if m:
            await self._start(chat_id, m.group(1).strip())
            return

        if not self.sessions.is_authorized(chat_id):
            async with self.channel.render(chat_id) as screen:
                await screen.send(fmt.PLEASE_AUTHENTICATE, Presentation(parse_mode=fmt.MARKDOWN))
            return

        async with self.channel.render(chat_id) as screen:
            if text == fmt.SHOW_ALL:
                await self._show(screen, Collection.APPLICATIONS)
                await screen.send(fmt.SEPARATOR, fmt.MENU)
                await self._show(screen, Collection.CALLBACKS)
            elif text == fmt.SHOW_APPLICATIONS:
                await self._show(screen, Collection.APPLICATIONS)
            elif text == fmt.SHOW_CALLBACKS:
                await self._show(screen, Collection.CALLBACKS)
            else:
                await screen.send(fmt.USE_BUTTONS, fmt.MENU)

    async def _start(self, chat_id: int, secret: str) -> None:
        async with self.channel.render(chat_id) as screen:
            if not secret:
                await screen.send(fmt.USAGE_HINT, Presentation(parse_mode=fmt.MARKDOWN))
            elif self.sessions.authorize(chat_id, secret):
                await screen.send(fmt.AUTH_OK, fmt.MENU_HTML)
            else:
                await screen.send(fmt.WRONG_PASSWORD)

    async def _show(self, screen: Screen, collection: Collection) -> None:
        try:
            rows = await self.records.list(collection)
        except RecordSourceError as e:
            logger.error("fetching %s failed: %s", collection.value, e)
            await screen.send(fmt.FETCH_FAILED[collection], fmt.MENU)
            return
        if not rows:
            await screen.send(fmt.EMPTY[collection], fmt.MENU)
            return
        text, presentation = fmt.record_table(collection, rows)
        await screen.send(text, presentation)

    # -----------------------------
    # Inline "copy" buttons
    # -----------------------------
    async def handle_callback(self, query: Dict[str, Any]) -> None:
        message = query.get("message") or {}
        chat_id = (message.get("chat") or {}).get("id")

        try:
            await self.gateway.answer_callback(str(query.get("id", "")))
        except Exception as e:
            logger.warning("answerCallbackQuery failed: %s", e)

        if chat_id is None:
            logger.debug("callback %s without a chat, ignoring", query.get("id"))
            return
        chat_id = int(chat_id)

        if not self.sessions.is_authorized(chat_id):
            try:
                await self.gateway.send_message(chat_id, fmt.NOT_AUTHORIZED, PLAIN)
            except Exception as e:
                logger.error("send to chat %s failed: %s", chat_id, e)
            return

        data = str(query.get("data") or "")
        if not data.startswith("copy_"):
            logger.debug("unknown callback data %r", data)
            return

        text = await self._detail(data)
        if text is None:
            await self.channel.append(chat_id, fmt.RECORD_NOT_FOUND, fmt.MENU)
        else:
            await self.channel.append(chat_id, text, fmt.MENU_HTML)

    async def _detail(self, data: str) -> Optional[str]:
        parsed = parse_copy_token(data)
        if parsed is None:
            return None
        collection, record_id = parsed
        try:
            record = await self.records.get(collection, record_id)
        except RecordSourceError as e:
            logger.error("fetching %s #%s failed: %s", collection.value, record_id, e)
            return None
        if record is None:
            return None
        return fmt.record_detail(collection, record)
