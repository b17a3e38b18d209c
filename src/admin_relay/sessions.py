"""In-memory chat authorization store (thread-safe).

State is lost on restart: every chat except the configured admin must
authenticate again.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, Optional, Set

logger = logging.getLogger(__name__)

ChatId = int


class ChatSessionStore:
    """Owns the ChatIdentity -> authorized mapping.

    There is no revoke: once a chat is authorized it stays authorized for the
    lifetime of the process.
    """

    def __init__(self, secret: str, admin_chat_id: Optional[ChatId] = None) -> None:
        if not secret:
            raise ValueError("secret must be non-empty")
        self._secret = secret
        self._admin = admin_chat_id
        self._authorized: Dict[ChatId, bool] = {}
        if admin_chat_id is not None:
            self._authorized[admin_chat_id] = True
        self._lock = threading.RLock()

    @property
    def admin_chat_id(self) -> Optional[ChatId]:
        return self._admin

    def is_authorized(self, chat_id: ChatId) -> bool:
        with self._lock:
            return self._authorized.get(chat_id, False)

    def authorize(self, chat_id: ChatId, supplied_secret: str) -> bool:
        """Mark ``chat_id`` authorized if ``supplied_secret`` is the shared secret."""
        if supplied_secret != self._secret:
            logger.info("authorization rejected for chat %s", chat_id)
            return False
        with self._lock:
            first = not self._authorized.get(chat_id, False)
            self._authorized[chat_id] = True
        if first:
            logger.info("chat %s authorized", chat_id)
        return True

    def audience(self) -> Set[ChatId]:
        """Snapshot of every authorized chat, admin included."""
        with self._lock:
            return {cid for cid, ok in self._authorized.items() if ok}
