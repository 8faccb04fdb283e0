import hmac
import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from bot_bridge.dependencies import get_services, request_id
from bot_bridge.metrics import CACHE_ENTRIES, CACHE_EVICTIONS
from bot_bridge.schemas.notifications import (
    BotMessageRequest,
    CacheClearResponse,
    CacheEntryResponse,
    CacheStatsResponse,
    NotificationResponse,
    ReferralNotificationRequest,
    WelcomeMessageRequest,
)
from bot_bridge.services.container import BridgeServices
from bot_bridge.services.notification_service import DeliveryError, MissingFieldError

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post(
    "/sendWelcomeMessage",
    response_model=NotificationResponse,
    response_model_exclude_none=True,
)
async def send_welcome_message(
    body: WelcomeMessageRequest,
    request: Request,
    services: BridgeServices = Depends(get_services),
) -> NotificationResponse:
    logger.info(
        "Received sendWelcomeMessage request",
        extra={"request_id": request_id(request), "user_id": body.user_id},
    )
    try:
        return await services.notifications.send_welcome(body)
    except MissingFieldError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


@router.post(
    "/sendReferralNotification",
    response_model=NotificationResponse,
    response_model_exclude_none=True,
)
async def send_referral_notification(
    body: ReferralNotificationRequest,
    request: Request,
    services: BridgeServices = Depends(get_services),
) -> NotificationResponse:
    logger.info(
        "Received sendReferralNotification request",
        extra={"request_id": request_id(request), "referrer_id": body.referrer_id},
    )
    try:
        return await services.notifications.send_referral(body)
    except MissingFieldError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


@router.post(
    "/sendBotMessage",
    response_model=NotificationResponse,
    response_model_exclude_none=True,
)
async def send_bot_message(
    body: BotMessageRequest,
    request: Request,
    services: BridgeServices = Depends(get_services),
) -> NotificationResponse:
    logger.info(
        "Received sendBotMessage request",
        extra={"request_id": request_id(request), "telegram_id": body.telegram_id},
    )
    try:
        return await services.notifications.send_bot_message(body)
    except MissingFieldError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except DeliveryError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to send message: {exc}",
        )


@router.delete("/clearMessageCache", response_model=CacheClearResponse)
async def clear_message_cache(
    request: Request,
    x_admin_token: str | None = Header(default=None),
    services: BridgeServices = Depends(get_services),
) -> CacheClearResponse:
    admin_token = services.settings.admin_token
    if not admin_token:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Cache administration is disabled",
        )
    if x_admin_token is None or not hmac.compare_digest(x_admin_token, admin_token):
        logger.warning(
            "Rejected clearMessageCache request",
            extra={"request_id": request_id(request)},
        )
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid admin token")

    cleared = services.cache.clear()
    CACHE_EVICTIONS.labels("clear").inc(cleared)
    CACHE_ENTRIES.set(0)
    return CacheClearResponse(message=f"Cleared {cleared} cached messages", cleared=cleared)


@router.get("/messageCacheStats", response_model=CacheStatsResponse)
async def message_cache_stats(
    services: BridgeServices = Depends(get_services),
) -> CacheStatsResponse:
    stats = services.cache.stats(sample_size=10)
    return CacheStatsResponse(
        total=stats.total,
        sample=[
            CacheEntryResponse(
                key=entry.key,
                sent_at=entry.sent_at.isoformat(),
                age_seconds=entry.age_seconds,
            )
            for entry in stats.sample
        ],
    )
