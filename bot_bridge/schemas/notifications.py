from pydantic import BaseModel, ConfigDict, Field

# Request fields are optional at the schema level so a missing field reaches
# the service and is answered with a 400 and a readable message.


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class WelcomeMessageRequest(_CamelModel):
    user_id: int | str | None = Field(default=None, alias="userId")
    username: str | None = None
    first_name: str | None = Field(default=None, alias="firstName")
    referrer_id: int | str | None = Field(default=None, alias="referrerId")


class NewUser(_CamelModel):
    id: int | str | None = None
    username: str | None = None
    first_name: str | None = Field(default=None, alias="firstName")


class ReferralNotificationRequest(_CamelModel):
    referrer_id: int | str | None = Field(default=None, alias="referrerId")
    new_user: NewUser | None = Field(default=None, alias="newUser")


class BotMessageRequest(_CamelModel):
    telegram_id: int | str | None = Field(default=None, alias="telegramId")
    message: str | None = None


class NotificationResponse(_CamelModel):
    success: bool
    message: str
    already_sent: bool | None = Field(default=None, alias="alreadySent")
    has_referrer: bool | None = Field(default=None, alias="hasReferrer")
    bot_blocked: bool | None = Field(default=None, alias="botBlocked")
    delivered: bool | None = None


class ErrorResponse(BaseModel):
    success: bool = False
    error: str


class CacheEntryResponse(BaseModel):
    key: str
    sent_at: str
    age_seconds: float


class CacheStatsResponse(BaseModel):
    success: bool = True
    total: int
    sample: list[CacheEntryResponse]


class CacheClearResponse(BaseModel):
    success: bool = True
    message: str
    cleared: int
