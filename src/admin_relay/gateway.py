"""Messaging gateway: the Telegram Bot API over httpx.

The rest of the package only depends on the :class:`Gateway` protocol, so tests
can swap in an in-memory fake.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple, runtime_checkable

import httpx

from .errors import GatewayError

logger = logging.getLogger(__name__)

API_BASE = "https://api.telegram.org"
TIMEOUT = httpx.Timeout(connect=5.0, read=20.0, write=10.0, pool=5.0)


# -----------------------------
# Presentation options
# -----------------------------
@dataclass(frozen=True)
class Presentation:
    """Rendering options for one outgoing message.

    ``reply_keyboard`` is a list of rows of button labels; ``inline_keyboard`` is
    a list of rows of ``(label, action token)`` pairs. Only one keyboard is sent;
    the inline one wins when both are set.
    """

    parse_mode: Optional[str] = None
    reply_keyboard: Tuple[Tuple[str, ...], ...] = ()
    inline_keyboard: Tuple[Tuple[Tuple[str, str], ...], ...] = ()

    def with_parse_mode(self, parse_mode: Optional[str]) -> "Presentation":
        return Presentation(parse_mode, self.reply_keyboard, self.inline_keyboard)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        if self.parse_mode:
            payload["parse_mode"] = self.parse_mode
        if self.inline_keyboard:
            payload["reply_markup"] = {
                "inline_keyboard": [
                    [{"text": label, "callback_data": token} for label, token in row]
                    for row in self.inline_keyboard
                ]
            }
        elif self.reply_keyboard:
            payload["reply_markup"] = {
                "keyboard": [[{"text": label} for label in row] for row in self.reply_keyboard],
                "resize_keyboard": True,
            }
        return payload


PLAIN = Presentation()


@runtime_checkable
class Gateway(Protocol):
    """What the relay needs from a chat transport."""

    async def send_message(self, chat_id: int, text: str, presentation: Presentation = PLAIN) -> int:
        """Send a message and return its id."""
        ...

    async def delete_message(self, chat_id: int, message_id: int) -> None:
        ...

    async def answer_callback(self, callback_id: str) -> None:
        ...

    async def set_webhook(self, url: str) -> None:
        ...

    async def delete_webhook(self) -> None:
        ...

    async def get_updates(self, offset: Optional[int] = None, timeout: int = 30) -> List[Dict[str, Any]]:
        ...


# -----------------------------
# Telegram implementation
# -----------------------------
class TelegramGateway:
    """Thin async client for the handful of Bot API methods the relay uses."""

    def __init__(
        self,
        token: str,
        *,
        client: Optional[httpx.AsyncClient] = None,
        api_base: str = API_BASE,
    ) -> None:
        self._token = token
        self._base = f"{api_base.rstrip('/')}/bot{token}"
        self._client = client or httpx.AsyncClient(timeout=TIMEOUT)

    async def _call(self, method: str, payload: Dict[str, Any], *, timeout: Optional[float] = None) -> Any:
        kwargs: Dict[str, Any] = {"json": payload}
        if timeout is not None:
            kwargs["timeout"] = timeout
        try:
            resp = await self._client.post(f"{self._base}/{method}", **kwargs)
        except httpx.HTTPError as e:
            # never include the URL: it carries the bot token
            raise GatewayError(method, type(e).__name__) from e

        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        if resp.status_code >= 400 or not body.get("ok", False):
            detail = body.get("description") or f"HTTP {resp.status_code}"
            raise GatewayError(method, str(detail), status=resp.status_code)
        return body.get("result")

    async def send_message(self, chat_id: int, text: str, presentation: Presentation = PLAIN) -> int:
        payload = {"chat_id": chat_id, "text": text}
        payload.update(presentation.to_payload())
        result = await self._call("sendMessage", payload)
        try:
            return int(result["message_id"])
        except (TypeError, KeyError, ValueError) as e:
            raise GatewayError("sendMessage", "response without message_id") from e

    async def delete_message(self, chat_id: int, message_id: int) -> None:
        await self._call("deleteMessage", {"chat_id": chat_id, "message_id": message_id})

    async def answer_callback(self, callback_id: str) -> None:
        await self._call("answerCallbackQuery", {"callback_query_id": callback_id})

    async def set_webhook(self, url: str) -> None:
        await self._call("setWebhook", {"url": url})

    async def delete_webhook(self) -> None:
        await self._call("deleteWebhook", {"drop_pending_updates": False})

    async def get_updates(self, offset: Optional[int] = None, timeout: int = 30) -> List[Dict[str, Any]]:
        payload: Dict[str, Any] = {"timeout": timeout, "allowed_updates": ["message", "callback_query"]}
        if offset is not None:
            payload["offset"] = offset
        # long poll: the read must outlast the server-side timeout
        result = await self._call("getUpdates", payload, timeout=timeout + 10)
        return list(result or [])

    async def aclose(self) -> None:
        await self._client.aclose()


def inline_rows(pairs: Sequence[Tuple[str, str]]) -> Tuple[Tuple[Tuple[str, str], ...], ...]:
    """One inline button per row."""
    return tuple(((label, token),) for label, token in pairs)
