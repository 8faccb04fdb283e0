import asyncio
import hmac
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import PlainTextResponse

from bot_bridge.dependencies import get_services, request_id
from bot_bridge.metrics import WEBHOOK_UPDATES
from bot_bridge.services.container import BridgeServices
from bot_bridge.services.health import Component

router = APIRouter()
logger = logging.getLogger(__name__)

SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"


@router.get("", response_class=PlainTextResponse)
async def webhook_alive() -> str:
    return "Hey, Bot is awake!"


@router.post("/{secret}", response_class=PlainTextResponse)
async def receive_update(
    secret: str,
    request: Request,
    services: BridgeServices = Depends(get_services),
) -> PlainTextResponse:
    settings = services.settings
    expected = settings.resolved_webhook_secret
    if not expected or not hmac.compare_digest(secret, expected):
        WEBHOOK_UPDATES.labels("rejected").inc()
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")

    if settings.webhook_secret:
        header = request.headers.get(SECRET_HEADER, "")
        if not hmac.compare_digest(header, settings.webhook_secret):
            WEBHOOK_UPDATES.labels("rejected").inc()
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")

    try:
        update = await request.json()
    except ValueError:
        WEBHOOK_UPDATES.labels("rejected").inc()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON body")
    if not isinstance(update, dict):
        WEBHOOK_UPDATES.labels("rejected").inc()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Update must be an object")

    log_extra = {"request_id": request_id(request), "update_id": update.get("update_id")}
    try:
        # wait_for cancels the dispatch when the deadline passes
        await asyncio.wait_for(
            services.dispatcher.dispatch(update),
            timeout=settings.webhook_timeout_seconds,
        )
    except asyncio.TimeoutError:
        WEBHOOK_UPDATES.labels("timeout").inc()
        logger.error("Webhook processing timed out; update cancelled", extra=log_extra)
        return PlainTextResponse(
            "Webhook processing timeout", status_code=status.HTTP_504_GATEWAY_TIMEOUT
        )
    except Exception as exc:
        WEBHOOK_UPDATES.labels("error").inc()
        services.health.mark_unhealthy(Component.REQUEST_HANDLING, f"webhook: {exc}")
        logger.exception("Error handling webhook", extra=log_extra)
        return PlainTextResponse(
            "Webhook processing error", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR
        )

    WEBHOOK_UPDATES.labels("ok").inc()
    return PlainTextResponse("OK")
