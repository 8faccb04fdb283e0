import logging
import sys
from typing import Iterable

from pythonjsonlogger import jsonlogger

REDACTED = "[redacted]"
HANDLER_NAME = "bot-bridge-json"


class SecretRedactingFilter(logging.Filter):
    """Masks the bot token and webhook secret anywhere in a record.

    Covers the rendered message, string fields passed through `extra=`, and
    the formatted traceback.
    """

    def __init__(self, secrets: Iterable[str]) -> None:
        super().__init__()
        self._secrets = sorted({s for s in secrets if s}, key=len, reverse=True)

    def _mask(self, text: str) -> str:
        for secret in self._secrets:
            text = text.replace(secret, REDACTED)
        return text

    def filter(self, record: logging.LogRecord) -> bool:
        if not self._secrets:
            return True

        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            # Malformed format args: leave rendering and its error to the handler
            message = None
        if message is not None:
            record.msg = self._mask(message)
            record.args = None

        if record.exc_info:
            record.exc_text = logging.Formatter().formatException(record.exc_info)
            # Formatters re-render exc_info when present; keep only the masked text
            record.exc_info = None
        for key, value in list(record.__dict__.items()):
            if isinstance(value, str) and key != "msg":
                record.__dict__[key] = self._mask(value)
        return True


class BridgeJsonFormatter(jsonlogger.JsonFormatter):
    def __init__(self, service: str, **kwargs) -> None:
        super().__init__(**kwargs)
        self.service = service

    def add_fields(self, log_record, record, message_dict) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["level"] = record.levelname
        log_record["service"] = self.service


def setup_logging(
    log_level: str = "INFO",
    redact: Iterable[str] = (),
    service: str = "bot-bridge",
) -> None:
    """Install the JSON stdout handler, replacing one installed earlier.

    Handlers added by others (test harnesses, uvicorn) are left in place.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for existing in list(root_logger.handlers):
        if existing.get_name() == HANDLER_NAME:
            root_logger.removeHandler(existing)

    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(HANDLER_NAME)
    handler.setFormatter(
        BridgeJsonFormatter(
            service,
            fmt="%(asctime)s %(name)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%SZ",
        )
    )
    handler.addFilter(SecretRedactingFilter(redact))
    root_logger.addHandler(handler)

    # httpx logs full request URLs, and Bot API URLs embed the token
    for noisy in ("uvicorn.access", "httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
