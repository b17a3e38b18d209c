"""Push notifications for newly created records.

Notifications bypass the ephemeral channel: they are never tracked and never
cleared by a later screen.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, List, Set

from .errors import MissingRecordError
from .formatting import HTML, notification_text
from .gateway import Gateway, Presentation
from .records import Collection
from .sessions import ChatSessionStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeliveryReport:
    chat_id: int
    ok: bool
    error: str = ""


class NotificationRelay:
    """Fan a record-creation event out to the audience.

    ``audience_mode`` is ``"authorized"`` (every authorized chat) or ``"admin"``
    (only the configured admin chat).
    """

    def __init__(self, gateway: Gateway, sessions: ChatSessionStore, audience_mode: str = "authorized") -> None:
        self.gateway = gateway
        self.sessions = sessions
        self.audience_mode = audience_mode

    def recipients(self) -> Set[int]:
        if self.audience_mode == "admin":
            admin = self.sessions.admin_chat_id
            return {admin} if admin is not None else set()
        return self.sessions.audience()

    async def _deliver(self, chat_id: int, text: str) -> DeliveryReport:
        try:
            await self.gateway.send_message(chat_id, text, Presentation(parse_mode=HTML))
        except Exception as e:
            logger.warning("notification to chat %s failed: %s", chat_id, e)
            return DeliveryReport(chat_id, False, str(e))
        return DeliveryReport(chat_id, True)

    async def notify(self, collection: Collection, record: Any) -> List[DeliveryReport]:
        """Format ``record`` and send it to every recipient.

        Raises
        ------
        MissingRecordError
            If ``record`` is absent or not an object. Nothing is sent.
        """
        if record is None or not isinstance(record, dict):
            raise MissingRecordError(f"{collection.value}: notification without a record")

        text = notification_text(collection, record)
        targets = sorted(self.recipients())
        results = await asyncio.gather(
            *(self._deliver(cid, text) for cid in targets), return_exceptions=True
        )

        reports: List[DeliveryReport] = []
        for cid, res in zip(targets, results):
            if isinstance(res, BaseException):
                logger.error("notification to chat %s raised: %s", cid, res)
                reports.append(DeliveryReport(cid, False, str(res)))
            else:
                reports.append(res)
        delivered = sum(1 for r in reports if r.ok)
        logger.info("%s notification delivered to %d/%d chats", collection.value, delivered, len(reports))
        return reports
