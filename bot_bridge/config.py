from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    log_level: str = "INFO"

    # HTTP listener
    host: str = "0.0.0.0"
    port: int = 4040

    # Telegram
    bot_token: str = ""
    telegram_api_base: str = "https://api.telegram.org"
    server_url: str = "http://localhost:4040"
    webhook_secret: str = ""  # falls back to bot_token
    webhook_timeout_seconds: float = 10.0

    # Webhook registration
    retry_timeout: int = 5000  # milliseconds between attempts
    max_retries: int = 5

    # Keep-alive
    health_probe_interval_seconds: float = 60.0
    health_probe_path: str = "/webhook"

    # Notification cache
    cache_sweep_interval_seconds: float = 3600.0
    cache_retention_seconds: float = 7 * 24 * 3600.0
    welcome_dedup_window_seconds: float = 24 * 3600.0
    referral_dedup_window_seconds: float = 24 * 3600.0

    # Rate limiting (applies to /api/)
    rate_limit_window_seconds: float = 15 * 60.0
    rate_limit_max_requests: int = 100

    # Front-end
    web_app_url: str = "https://megadogs1990.netlify.app"
    community_url: str = "https://t.me/codesrushdev"
    welcome_photo_path: str = "public/like.jpg"
    static_dir: str = "public"

    # Administrative endpoints are disabled while this is empty
    admin_token: str = ""

    # Observability
    otlp_endpoint: str = ""

    model_config = {"env_file": ".env"}

    @property
    def resolved_webhook_secret(self) -> str:
        return self.webhook_secret or self.bot_token

    @property
    def webhook_url(self) -> str:
        return f"{self.server_url.rstrip('/')}/webhook/{self.resolved_webhook_secret}"

    @property
    def retry_delay_seconds(self) -> float:
        return self.retry_timeout / 1000


settings = Settings()
