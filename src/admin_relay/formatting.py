"""User-facing texts and keyboards (Ukrainian, HTML parse mode)."""

from __future__ import annotations

from html import escape
from typing import Any, Dict, Iterable, List, Tuple

from .gateway import Presentation, inline_rows
from .records import Collection, Record

HTML = "HTML"
MARKDOWN = "Markdown"

SHOW_ALL = "Показати все"
SHOW_APPLICATIONS = "Показати заявки на урок"
SHOW_CALLBACKS = "Показати запити на дзвінок"
SEPARATOR = "---"
NOT_SPECIFIED = "не вказано"

MENU = Presentation(reply_keyboard=((SHOW_ALL,), (SHOW_APPLICATIONS, SHOW_CALLBACKS)))
MENU_HTML = MENU.with_parse_mode(HTML)

USAGE_HINT = "Вітаю! Для доступу введіть команду з паролем:\n`/start ваш_пароль`"
AUTH_OK = "✅ <b>Авторизація успішна!</b>\n\nОберіть дію:"
WRONG_PASSWORD = "❌ Неправильний пароль."
PLEASE_AUTHENTICATE = "Будь ласка, авторизуйтесь. Введіть `/start [пароль]`"
USE_BUTTONS = "Будь ласка, використовуйте кнопки."
NOT_AUTHORIZED = "❌ Помилка: ви не авторизовані."
RECORD_NOT_FOUND = "❌ Не вдалося знайти запис."

EMPTY = {
    Collection.APPLICATIONS: "📂 Заявок на урок поки що немає.",
    Collection.CALLBACKS: "📂 Запитів на дзвінок поки що немає.",
}
FETCH_FAILED = {
    Collection.APPLICATIONS: "❌ Не вдалося отримати заявки на урок.",
    Collection.CALLBACKS: "❌ Не вдалося отримати запити на дзвінок.",
}
_COPY_LABEL = {
    Collection.APPLICATIONS: "📋 Копіювати заявку №{id}",
    Collection.CALLBACKS: "📞 Копіювати дзвінок №{id}",
}


def _field(record: Record, key: str) -> str:
    value = record.get(key)
    return "" if value is None else str(value)


def full_name(record: Record) -> str:
    return f"{_field(record, 'firstName')} {_field(record, 'lastName')}".strip()


def contact(record: Record) -> str:
    """Email wins over phone."""
    return _field(record, "email") or _field(record, "phone") or NOT_SPECIFIED


def copy_token(collection: Collection, record_id: Any) -> str:
    return f"copy_{collection.tag}_{record_id}"


def _applications_table(rows: Iterable[Record]) -> str:
    lines = [
        "📋 <b>Всі заявки на урок:</b>\n",
        "<pre>ID  | Ім'я та Прізвище    | Контакти",
        "----|----------------------|--------------------------",
    ]
    for row in rows:
        rid = _field(row, "id").ljust(4)
        name = full_name(row)[:20].ljust(22)
        lines.append(escape(f"{rid}| {name}| {contact(row)[:26]}"))
    return "\n".join(lines) + "</pre>"


def _callbacks_table(rows: Iterable[Record]) -> str:
    lines = [
        "📞 <b>Всі запити на дзвінок:</b>\n",
        "<pre>ID  | Номер телефону",
        "----|------------------",
    ]
    for row in rows:
        lines.append(escape(f"{_field(row, 'id').ljust(4)}| {_field(row, 'phone')}"))
    return "\n".join(lines) + "</pre>"


def record_table(collection: Collection, rows: List[Record]) -> Tuple[str, Presentation]:
    """Render a table plus one inline copy button per row."""
    if collection is Collection.APPLICATIONS:
        text = _applications_table(rows)
    else:
        text = _callbacks_table(rows)
    buttons = [
        (_COPY_LABEL[collection].format(id=row.get("id")), copy_token(collection, row.get("id")))
        for row in rows
    ]
    return text, Presentation(parse_mode=HTML, inline_keyboard=inline_rows(buttons))


def record_detail(collection: Collection, record: Record) -> str:
    """Copyable detail block for one record."""
    body = "Дані для копіювання:\n\n"
    if collection is Collection.APPLICATIONS:
        body += (
            f"Ім'я: {full_name(record)}\n"
            f"Email: {_field(record, 'email') or NOT_SPECIFIED}\n"
            f"Телефон: {_field(record, 'phone') or NOT_SPECIFIED}\n"
            f"Формат: {_field(record, 'lessonFormat') or NOT_SPECIFIED}"
        )
    else:
        body += f"Телефон: {_field(record, 'phone') or NOT_SPECIFIED}"
    return f"<code>{escape(body)}</code>"


def notification_text(collection: Collection, record: Dict[str, Any]) -> str:
    """Summary pushed to the audience when a new record is created."""
    if collection is Collection.APPLICATIONS:
        return (
            "🎉 <b>Нова заявка на урок!</b>\n\n"
            f"<b>Ім'я:</b> {escape(full_name(record))}\n"
            f"<b>Контакти:</b> <code>{escape(contact(record))}</code>\n"
            f"<b>Формат:</b> {escape(_field(record, 'lessonFormat') or NOT_SPECIFIED)}"
        )
    return (
        "🔔 <b>Замовлено зворотний дзвінок!</b>\n\n"
        f"<b>Телефон:</b> <code>{escape(_field(record, 'phone') or NOT_SPECIFIED)}</code>"
    )
