"""FastAPI application: Telegram webhook, record notifications and liveness."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import BackgroundTasks, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, ValidationError

from .config import Settings, load_settings
from .dispatcher import CommandDispatcher
from .errors import GatewayError, MissingRecordError
from .gateway import Gateway, TelegramGateway
from .polling import UpdatePoller
from .records import Collection, RecordSource
from .relay import NotificationRelay
from .screen import EphemeralChannel
from .sessions import ChatSessionStore

logger = logging.getLogger(__name__)


# -----------------------------
# Pydantic request models
# -----------------------------
class NotifyRequest(BaseModel):
    """Body posted by the database webhook; only ``record`` is used."""
    record: Optional[Dict[str, Any]] = None
    type: Optional[str] = None
    table: Optional[str] = None


# -----------------------------
# Utilities
# -----------------------------
def _redact(url: str, token: str) -> str:
    return url.replace(token, "<token>") if token else url


async def _parse_json(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError:
        return None


async def _close(obj: Any) -> None:
    closer = getattr(obj, "aclose", None)
    if closer is None:
        return
    try:
        await closer()
    except Exception as e:
        logger.warning("closing %s failed: %s", type(obj).__name__, e)


# -----------------------------
# App factory
# -----------------------------
def create_app(
    config_path: Optional[str] = None,
    settings: Optional[Settings] = None,
    gateway: Optional[Gateway] = None,
    records: Optional[RecordSource] = None,
) -> FastAPI:
    settings = settings or load_settings(config_path)

    # Services
    gateway = gateway or TelegramGateway(settings.bot_token)
    records = records or RecordSource(
        settings.supabase_url, settings.supabase_key, timeout=settings.http_timeout
    )
    sessions = ChatSessionStore(settings.secret_password, settings.admin_chat_id)
    channel = EphemeralChannel(gateway)
    dispatcher = CommandDispatcher(sessions, channel, records, gateway)
    relay = NotificationRelay(gateway, sessions, settings.notify_audience)
    poller = UpdatePoller(gateway, dispatcher.handle_update, timeout=settings.poll_timeout)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if settings.delivery_mode == "webhook":
            try:
                await gateway.set_webhook(settings.webhook_url)
                logger.info("webhook registered at %s", _redact(settings.webhook_url, settings.bot_token))
            except GatewayError as e:
                logger.error("setWebhook failed: %s", e)
        else:
            try:
                await gateway.delete_webhook()
            except GatewayError as e:
                logger.warning("deleteWebhook failed: %s", e)
            poller.start()
        try:
            yield
        finally:
            await poller.stop()
            await _close(gateway)
            await _close(records)

    app = FastAPI(title="Admin Relay Bot", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.sessions = sessions
    app.state.channel = channel
    app.state.dispatcher = dispatcher
    app.state.relay = relay
    app.state.poller = poller

    @app.get("/", response_class=PlainTextResponse)
    def health() -> str:
        return "Bot server is running and healthy."

    @app.post("/webhook/{token}")
    async def telegram_update(token: str, request: Request, background: BackgroundTasks) -> Dict[str, Any]:
        if settings.delivery_mode != "webhook" or token != settings.bot_token:
            raise HTTPException(status_code=404, detail="Not Found")
        update = await _parse_json(request)
        if isinstance(update, dict):
            background.add_task(_handle_update, update)
        else:
            logger.warning("ignoring malformed telegram update")
        return {"ok": True}

    async def _handle_update(update: Dict[str, Any]) -> None:
        try:
            await dispatcher.handle_update(update)
        except Exception:
            logger.exception("handling update %s failed", update.get("update_id"))

    async def _notify(request: Request, collection: Collection) -> JSONResponse:
        body = await _parse_json(request)
        try:
            req = NotifyRequest.model_validate(body)
        except ValidationError:
            logger.warning("%s notification with an invalid body", collection.value)
            return JSONResponse({"status": "bad request"}, status_code=400)

        try:
            await relay.notify(collection, req.record)
        except MissingRecordError as e:
            logger.warning("%s", e)
            return JSONResponse({"status": "bad request"}, status_code=400)
        except Exception:
            logger.exception("processing %s notification failed", collection.value)
            return JSONResponse({"status": "error"}, status_code=500)
        return JSONResponse({"status": "ok"}, status_code=200)

    @app.post("/notify/application")
    async def notify_application(request: Request) -> JSONResponse:
        return await _notify(request, Collection.APPLICATIONS)

    @app.post("/notify/callback")
    async def notify_callback(request: Request) -> JSONResponse:
        return await _notify(request, Collection.CALLBACKS)

    return app
