"""
Notifications triggered by the web front-end.

Welcome and referral notifications are side channels of a user-facing flow:
they are de-duplicated through the NotificationCache and never report failure
to the caller. A recipient who blocked the bot is an expected outcome, not an
error. Direct bot messages are not de-duplicated and do surface failures.
"""

import logging

from bot_bridge.metrics import CACHE_ENTRIES, NOTIFICATIONS
from bot_bridge.schemas.notifications import (
    BotMessageRequest,
    NotificationResponse,
    ReferralNotificationRequest,
    WelcomeMessageRequest,
)
from bot_bridge.services.message_cache import NotificationCache, referral_key, welcome_key
from bot_bridge.telegram import messages
from bot_bridge.telegram.client import BotBlockedError, TelegramAPIError, TelegramClient

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class MissingFieldError(ValueError):
    """A required request field is absent; answered with 400."""


class DeliveryError(Exception):
    """A direct bot message could not be delivered."""


def _present(value: object) -> bool:
    return value is not None and value != ""


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class NotificationService:
    def __init__(
        self,
        client: TelegramClient,
        cache: NotificationCache,
        web_app_url: str,
        community_url: str,
        welcome_window_seconds: float = 24 * 3600.0,
        referral_window_seconds: float = 24 * 3600.0,
    ) -> None:
        self._client = client
        self._cache = cache
        self._web_app_url = web_app_url
        self._community_url = community_url
        self.welcome_window_seconds = welcome_window_seconds
        self.referral_window_seconds = referral_window_seconds

    async def _send_deduplicated(
        self,
        kind: str,
        key: str,
        window_seconds: float,
        chat_id: int | str,
        text: str,
        reply_markup: dict | None = None,
    ) -> NotificationResponse | None:
        """
        Send once per window. Returns a finished response when the send was
        suppressed, blocked or failed; None when it went through.
        """
        if not self._cache.reserve(key, window_seconds):
            NOTIFICATIONS.labels(kind, "duplicate").inc()
            logger.info("Notification already sent, skipping", extra={"key": key})
            return NotificationResponse(
                success=True,
                message=f"{kind.capitalize()} notification already sent",
                already_sent=True,
            )

        try:
            await self._client.send_message(
                chat_id, text, parse_mode="HTML", reply_markup=reply_markup
            )
        except BotBlockedError:
            self._cache.release(key)
            NOTIFICATIONS.labels(kind, "blocked").inc()
            logger.info("Recipient has blocked the bot", extra={"key": key, "chat_id": chat_id})
            return NotificationResponse(
                success=True,
                message="User has blocked the bot",
                bot_blocked=True,
            )
        except TelegramAPIError as exc:
            self._cache.release(key)
            NOTIFICATIONS.labels(kind, "failed").inc()
            logger.error(
                "Failed to send notification",
                extra={"key": key, "chat_id": chat_id, "error": str(exc)},
            )
            return NotificationResponse(
                success=True,
                message=f"{kind.capitalize()} notification could not be delivered",
                delivered=False,
            )
        except BaseException:
            self._cache.release(key)
            raise

        self._cache.mark_sent(key)
        CACHE_ENTRIES.set(len(self._cache))
        NOTIFICATIONS.labels(kind, "sent").inc()
        logger.info("Notification sent", extra={"key": key, "chat_id": chat_id})
        return None

    async def send_welcome(self, request: WelcomeMessageRequest) -> NotificationResponse:
        if not _present(request.user_id):
            raise MissingFieldError("userId is required")

        has_referrer = _present(request.referrer_id)
        name = messages.display_name(request.username, request.first_name)
        outcome = await self._send_deduplicated(
            "welcome",
            welcome_key(request.user_id),
            self.welcome_window_seconds,
            chat_id=request.user_id,
            text=messages.welcome_text(name, has_referrer),
            reply_markup=messages.start_keyboard(
                self._web_app_url, self._community_url, request.referrer_id
            ),
        )
        if outcome is not None:
            return outcome
        return NotificationResponse(
            success=True,
            message="Welcome message sent",
            has_referrer=has_referrer,
        )

    async def send_referral(self, request: ReferralNotificationRequest) -> NotificationResponse:
        if not _present(request.referrer_id):
            raise MissingFieldError("referrerId is required")
        if request.new_user is None or not _present(request.new_user.id):
            raise MissingFieldError("newUser with an id is required")

        new_user = request.new_user
        name = messages.display_name(new_user.username, new_user.first_name, fallback="A new player")
        outcome = await self._send_deduplicated(
            "referral",
            referral_key(request.referrer_id, new_user.id),
            self.referral_window_seconds,
            chat_id=request.referrer_id,
            text=messages.referral_text(name),
        )
        if outcome is not None:
            return outcome
        return NotificationResponse(success=True, message="Referral notification sent")

    async def send_bot_message(self, request: BotMessageRequest) -> NotificationResponse:
        if not _present(request.telegram_id) or not _present(request.message):
            raise MissingFieldError("telegramId and message are required")

        try:
            await self._client.send_message(request.telegram_id, request.message, parse_mode="HTML")
        except BotBlockedError:
            NOTIFICATIONS.labels("direct", "blocked").inc()
            logger.info("Recipient has blocked the bot", extra={"chat_id": request.telegram_id})
            return NotificationResponse(
                success=True,
                message="User has blocked the bot",
                bot_blocked=True,
            )
        except TelegramAPIError as exc:
            NOTIFICATIONS.labels("direct", "failed").inc()
            logger.error(
                "Failed to send bot message",
                extra={"chat_id": request.telegram_id, "error": str(exc)},
            )
            raise DeliveryError(exc.description) from exc

        NOTIFICATIONS.labels("direct", "sent").inc()
        return NotificationResponse(success=True, message="Message sent")
