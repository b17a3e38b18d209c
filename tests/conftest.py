"""Pytest configuration and shared fixtures."""
from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Tuple

import pytest

# Ensure src/ is on the import path (for local imports without installing as package)
SRC_PATH = Path(__file__).resolve().parent.parent / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from admin_relay.config import Settings  # noqa: E402
from admin_relay.errors import GatewayError, RecordSourceError  # noqa: E402
from admin_relay.gateway import PLAIN, Presentation  # noqa: E402
from admin_relay.records import Collection  # noqa: E402

ADMIN = 1000
SECRET = "letmein"
TOKEN = "123:abc"


class FakeGateway:
    """In-memory gateway recording every call."""

    def __init__(self) -> None:
        self.next_id = 1
        self.sent: List[Tuple[int, int, str, Presentation]] = []
        self.deleted: List[Tuple[int, int]] = []
        self.answered: List[str] = []
        self.webhooks: List[str] = []
        self.fail_send_to: Set[int] = set()
        self.fail_delete: Set[int] = set()
        self.fail_answer = False
        self.updates: List[Dict[str, Any]] = []
        self.offsets: List[Optional[int]] = []

    async def send_message(self, chat_id: int, text: str, presentation: Presentation = PLAIN) -> int:
        if chat_id in self.fail_send_to:
            raise GatewayError("sendMessage", "chat not found", status=400)
        mid = self.next_id
        self.next_id += 1
        self.sent.append((chat_id, mid, text, presentation))
        return mid

    async def delete_message(self, chat_id: int, message_id: int) -> None:
        if message_id in self.fail_delete:
            raise GatewayError("deleteMessage", "message can't be deleted", status=400)
        self.deleted.append((chat_id, message_id))

    async def answer_callback(self, callback_id: str) -> None:
        if self.fail_answer:
            raise GatewayError("answerCallbackQuery", "query is too old", status=400)
        self.answered.append(callback_id)

    async def set_webhook(self, url: str) -> None:
        self.webhooks.append(url)

    async def delete_webhook(self) -> None:
        self.webhooks.clear()

    async def get_updates(self, offset: Optional[int] = None, timeout: int = 30) -> List[Dict[str, Any]]:
        self.offsets.append(offset)
        # stand-in for the long poll so the loop yields
        await asyncio.sleep(0.01)
        batch, self.updates = self.updates, []
        return batch

    def texts(self, chat_id: Optional[int] = None) -> List[str]:
        return [t for cid, _, t, _ in self.sent if chat_id is None or cid == chat_id]


class FakeRecords:
    """Record source backed by plain lists; ``fail`` makes every call raise."""

    def __init__(self, data: Optional[Dict[Collection, List[Dict[str, Any]]]] = None) -> None:
        self.data = data or {Collection.APPLICATIONS: [], Collection.CALLBACKS: []}
        self.fail = False
        self.calls: List[Tuple[str, Collection, Any]] = []

    async def list(self, collection: Collection, order_by: str = "id.asc") -> List[Dict[str, Any]]:
        self.calls.append(("list", collection, order_by))
        if self.fail:
            raise RecordSourceError("boom")
        return sorted(self.data.get(collection, []), key=lambda r: r["id"])

    async def get(self, collection: Collection, record_id: int) -> Optional[Dict[str, Any]]:
        self.calls.append(("get", collection, record_id))
        if self.fail:
            raise RecordSourceError("boom")
        for row in self.data.get(collection, []):
            if row["id"] == record_id:
                return row
        return None


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def records() -> FakeRecords:
    return FakeRecords()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        bot_token=TOKEN,
        secret_password=SECRET,
        supabase_url="https://db.example.co",
        supabase_key="anon-key",
        admin_chat_id=ADMIN,
        external_url="https://bot.example.com",
    )


def text_update(chat_id: int, text: str, update_id: int = 1) -> Dict[str, Any]:
    return {"update_id": update_id, "message": {"message_id": 50, "chat": {"id": chat_id}, "text": text}}


def callback_update(chat_id: int, data: str, update_id: int = 2) -> Dict[str, Any]:
    return {
        "update_id": update_id,
        "callback_query": {"id": f"cq{update_id}", "data": data, "message": {"chat": {"id": chat_id}}},
    }
