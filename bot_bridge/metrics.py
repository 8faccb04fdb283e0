from prometheus_client import Counter, Gauge

NOTIFICATIONS = Counter(
    "bot_notifications_total",
    "Outbound notifications handled by the bridge",
    ["kind", "outcome"],  # welcome|referral|direct|start x sent|duplicate|blocked|failed
)

REGISTRATION_ATTEMPTS = Counter(
    "bot_webhook_registration_attempts_total",
    "setWebhook calls made by the registrar",
    ["outcome"],  # success | failure
)

WEBHOOK_UPDATES = Counter(
    "bot_webhook_updates_total",
    "Inbound Telegram updates",
    ["outcome"],  # ok | error | timeout | rejected
)

CACHE_ENTRIES = Gauge(
    "bot_notification_cache_entries",
    "Records currently held by the notification de-duplication cache",
)

CACHE_EVICTIONS = Counter(
    "bot_notification_cache_evictions_total",
    "Records removed from the notification cache",
    ["reason"],  # sweep | clear
)

HEALTH_COMPONENT = Gauge(
    "bot_health_component",
    "Health component state (1=healthy, 0=unhealthy)",
    ["component"],
)

RATE_LIMITED = Counter(
    "bot_rate_limited_requests_total",
    "Requests rejected with 429",
)
