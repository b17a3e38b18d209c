from __future__ import annotations

import pytest

from admin_relay import formatting as fmt
from admin_relay.dispatcher import CommandDispatcher, parse_copy_token
from admin_relay.records import Collection
from admin_relay.screen import EphemeralChannel
from admin_relay.sessions import ChatSessionStore

from conftest import ADMIN, SECRET, callback_update, text_update

STAFF = 2000

APPS = [
    {"id": 2, "firstName": "Olena", "lastName": "P", "email": "olena@example.com", "phone": "+380111", "lessonFormat": "online"},
    {"id": 1, "firstName": "Anna", "lastName": "K", "email": None, "phone": "+380000000", "lessonFormat": "offline"},
]
CALLBACKS = [{"id": 9, "phone": "+380999"}]


@pytest.fixture
def sessions():
    return ChatSessionStore(SECRET, admin_chat_id=ADMIN)


@pytest.fixture
def dispatcher(sessions, gateway, records):
    return CommandDispatcher(sessions, EphemeralChannel(gateway), records, gateway)


def test_parse_copy_token():
    assert parse_copy_token("copy_app_12") == (Collection.APPLICATIONS, 12)
    assert parse_copy_token("copy_cb_3") == (Collection.CALLBACKS, 3)
    assert parse_copy_token("copy_xx_3") is None
    assert parse_copy_token("copy_app_") is None
    assert parse_copy_token("copy_app_1; drop") is None
    assert parse_copy_token("") is None


# -----------------------------
# Authorization
# -----------------------------
@pytest.mark.asyncio
async def test_login_scenario(dispatcher, gateway, sessions):
    await dispatcher.handle_update(text_update(STAFF, "/start wrongpass"))
    assert gateway.texts(STAFF)[-1] == fmt.WRONG_PASSWORD
    assert not sessions.is_authorized(STAFF)

    await dispatcher.handle_update(text_update(STAFF, f"/start {SECRET}"))
    assert sessions.is_authorized(STAFF)
    _, _, text, presentation = gateway.sent[-1]
    assert text == fmt.AUTH_OK
    assert presentation.reply_keyboard == fmt.MENU.reply_keyboard

    await dispatcher.handle_update(text_update(STAFF, fmt.SHOW_APPLICATIONS))
    assert gateway.texts(STAFF)[-1] == fmt.EMPTY[Collection.APPLICATIONS]
    assert "<pre>" not in gateway.texts(STAFF)[-1]


@pytest.mark.asyncio
async def test_start_without_secret_shows_usage(dispatcher, gateway, sessions):
    await dispatcher.handle_update(text_update(ADMIN, "/start"))
    await dispatcher.handle_update(text_update(STAFF, "/start   "))
    assert gateway.texts(ADMIN) == [fmt.USAGE_HINT]
    assert gateway.texts(STAFF) == [fmt.USAGE_HINT]
    assert sessions.is_authorized(ADMIN)
    assert not sessions.is_authorized(STAFF)


@pytest.mark.asyncio
async def test_unauthenticated_text_prompts_for_login(dispatcher, gateway, records):
    await dispatcher.handle_update(text_update(STAFF, fmt.SHOW_ALL))
    assert gateway.texts(STAFF) == [fmt.PLEASE_AUTHENTICATE]
    assert records.calls == []


@pytest.mark.asyncio
async def test_each_screen_replaces_the_previous(dispatcher, gateway):
    await dispatcher.handle_update(text_update(STAFF, "hello"))
    first_id = gateway.sent[-1][1]
    await dispatcher.handle_update(text_update(STAFF, "again"))
    assert (STAFF, first_id) in gateway.deleted
    assert dispatcher.channel.tracked(STAFF) == [gateway.sent[-1][1]]


# -----------------------------
# Menu actions
# -----------------------------
@pytest.mark.asyncio
async def test_show_applications_renders_table_with_copy_buttons(dispatcher, gateway, records):
    records.data[Collection.APPLICATIONS] = APPS
    await dispatcher.handle_update(text_update(ADMIN, fmt.SHOW_APPLICATIONS))

    _, _, text, presentation = gateway.sent[-1]
    assert "<pre>" in text
    assert "Anna K" in text
    assert "olena@example.com" in text
    assert presentation.parse_mode == fmt.HTML
    tokens = [row[0][1] for row in presentation.inline_keyboard]
    assert tokens == ["copy_app_1", "copy_app_2"]


@pytest.mark.asyncio
async def test_show_all_renders_both_collections_and_separator(dispatcher, gateway, records):
    records.data[Collection.APPLICATIONS] = APPS
    records.data[Collection.CALLBACKS] = CALLBACKS
    await dispatcher.handle_update(text_update(ADMIN, fmt.SHOW_ALL))

    texts = gateway.texts(ADMIN)
    assert len(texts) == 3
    assert "заявки на урок" in texts[0]
    assert texts[1] == fmt.SEPARATOR
    assert "+380999" in texts[2]
    assert len(dispatcher.channel.tracked(ADMIN)) == 3


@pytest.mark.asyncio
async def test_show_callbacks_empty(dispatcher, gateway):
    await dispatcher.handle_update(text_update(ADMIN, fmt.SHOW_CALLBACKS))
    assert gateway.texts(ADMIN) == [fmt.EMPTY[Collection.CALLBACKS]]


@pytest.mark.asyncio
async def test_unknown_text_when_authenticated(dispatcher, gateway, records):
    await dispatcher.handle_update(text_update(ADMIN, "what?"))
    assert gateway.texts(ADMIN) == [fmt.USE_BUTTONS]
    assert records.calls == []


@pytest.mark.asyncio
async def test_message_without_text_counts_as_other_input(dispatcher, gateway):
    update = {"update_id": 3, "message": {"message_id": 1, "chat": {"id": ADMIN}, "sticker": {}}}
    await dispatcher.handle_update(update)
    assert gateway.texts(ADMIN) == [fmt.USE_BUTTONS]


@pytest.mark.asyncio
async def test_fetch_failure_is_reported_not_raised(dispatcher, gateway, records):
    records.fail = True
    await dispatcher.handle_update(text_update(ADMIN, fmt.SHOW_ALL))
    texts = gateway.texts(ADMIN)
    assert texts == [
        fmt.FETCH_FAILED[Collection.APPLICATIONS],
        fmt.SEPARATOR,
        fmt.FETCH_FAILED[Collection.CALLBACKS],
    ]


@pytest.mark.asyncio
async def test_gateway_send_failure_does_not_crash(dispatcher, gateway, records):
    records.data[Collection.APPLICATIONS] = APPS
    gateway.fail_send_to = {ADMIN}
    await dispatcher.handle_update(text_update(ADMIN, fmt.SHOW_APPLICATIONS))
    assert dispatcher.channel.tracked(ADMIN) == []


@pytest.mark.asyncio
async def test_update_without_message_is_ignored(dispatcher, gateway):
    await dispatcher.handle_update({"update_id": 5, "poll": {}})
    assert gateway.sent == []


# -----------------------------
# Copy action
# -----------------------------
@pytest.mark.asyncio
async def test_copy_application_appends_detail(dispatcher, gateway, records):
    records.data[Collection.APPLICATIONS] = APPS
    await dispatcher.handle_update(text_update(ADMIN, fmt.SHOW_APPLICATIONS))
    table_id = gateway.sent[-1][1]

    await dispatcher.handle_update(callback_update(ADMIN, "copy_app_1"))

    _, _, text, presentation = gateway.sent[-1]
    assert text.startswith("<code>") and text.endswith("</code>")
    assert "Anna K" in text
    assert "+380000000" in text
    assert "offline" in text
    assert presentation.parse_mode == fmt.HTML
    # menu stays visible under the detail
    assert gateway.deleted == []
    assert table_id in dispatcher.channel.tracked(ADMIN)
    assert gateway.answered == ["cq2"]


@pytest.mark.asyncio
async def test_copy_callback_record(dispatcher, gateway, records):
    records.data[Collection.CALLBACKS] = CALLBACKS
    await dispatcher.handle_update(callback_update(ADMIN, "copy_cb_9"))
    assert "+380999" in gateway.texts(ADMIN)[-1]


@pytest.mark.asyncio
async def test_copy_unknown_id_reports_not_found(dispatcher, gateway, records):
    records.data[Collection.APPLICATIONS] = APPS
    await dispatcher.handle_update(callback_update(ADMIN, "copy_app_404"))
    assert gateway.texts(ADMIN) == [fmt.RECORD_NOT_FOUND]
    assert ("get", Collection.APPLICATIONS, 404) in records.calls


@pytest.mark.asyncio
async def test_copy_with_fetch_error_reports_not_found(dispatcher, gateway, records):
    records.fail = True
    await dispatcher.handle_update(callback_update(ADMIN, "copy_cb_9"))
    assert gateway.texts(ADMIN) == [fmt.RECORD_NOT_FOUND]


@pytest.mark.asyncio
async def test_copy_with_malformed_token_reports_not_found(dispatcher, gateway, records):
    await dispatcher.handle_update(callback_update(ADMIN, "copy_zz_1"))
    assert gateway.texts(ADMIN) == [fmt.RECORD_NOT_FOUND]
    assert records.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("data", ["copy_app_1", "copy_app_2", "copy_cb_9", "copy_cb_1"])
async def test_unauthenticated_copy_never_leaks(dispatcher, gateway, records, data):
    records.data[Collection.APPLICATIONS] = APPS
    records.data[Collection.CALLBACKS] = CALLBACKS

    await dispatcher.handle_update(callback_update(STAFF, data))

    assert gateway.texts(STAFF) == [fmt.NOT_AUTHORIZED]
    assert records.calls == []
    # rejection is not tracked as part of the screen
    assert dispatcher.channel.tracked(STAFF) == []


@pytest.mark.asyncio
async def test_copy_survives_acknowledge_failure(dispatcher, gateway, records):
    records.data[Collection.CALLBACKS] = CALLBACKS
    gateway.fail_answer = True
    await dispatcher.handle_update(callback_update(ADMIN, "copy_cb_9"))
    assert "+380999" in gateway.texts(ADMIN)[-1]


@pytest.mark.asyncio
async def test_edited_messages_are_ignored(dispatcher, gateway, sessions):
    update = {
        "update_id": 6,
        "edited_message": {"message_id": 1, "chat": {"id": STAFF}, "text": f"/start {SECRET}"},
    }
    await dispatcher.handle_update(update)
    assert gateway.sent == []
    assert not sessions.is_authorized(STAFF)
