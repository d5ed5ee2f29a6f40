"""Logging setup for ShieldMatch.

Every handler installed here carries a ``SecretRedactingFilter`` so the
token-signing secret and channel credentials never reach the log stream,
even when an exception message or a third-party library echoes them.
"""

import json
import logging
import sys

from shieldmatch.config import Settings, mask_secret

SERVICE_NAME = "shieldmatch"
REDACTED = "[REDACTED]"

# Attributes every LogRecord has; anything else arrived through ``extra=``
_RECORD_ATTRIBUTES = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "taskName"}


def _secret_values(settings: Settings) -> list[str]:
    secrets = [
        settings.accept_token_secret,
        settings.smtp_password,
        settings.twilio_auth_token,
    ]
    values = [s.get_secret_value() for s in secrets if s is not None]
    # Longest first so a secret containing another is replaced whole
    return sorted({v for v in values if v}, key=len, reverse=True)


class SecretRedactingFilter(logging.Filter):
    """Replaces configured secret values in a record's rendered message"""

    def __init__(self, secrets: list[str]):
        super().__init__()
        self.secrets = secrets

    def redact(self, text: str) -> str:
        for secret in self.secrets:
            text = text.replace(secret, REDACTED)
        return text

    def filter(self, record: logging.LogRecord) -> bool:
        if not self.secrets:
            return True

        message = record.getMessage()
        redacted = self.redact(message)
        if redacted != message:
            record.msg = redacted
            record.args = None

        if record.exc_info and not record.exc_text:
            record.exc_text = logging.Formatter().formatException(record.exc_info)
        if record.exc_text:
            record.exc_text = self.redact(record.exc_text)
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line, with any context fields passed via ``extra``"""

    def __init__(self, environment: str = "development"):
        super().__init__()
        self.environment = environment

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": self.formatTime(record),
            "service": SERVICE_NAME,
            "environment": self.environment,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context = {
            key: str(value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRIBUTES and not key.startswith("_")
        }
        entry.update(context)

        if record.levelno >= logging.WARNING:
            entry["location"] = f"{record.module}.{record.funcName}:{record.lineno}"
        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            entry["exception"] = record.exc_text
        return json.dumps(entry)


def setup_logging(settings: Settings) -> logging.Handler:
    """Route all logging to stdout with secrets redacted; returns the handler"""

    if settings.log_format == "json":
        formatter: logging.Formatter = JsonFormatter(environment=settings.app_env)
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.addFilter(SecretRedactingFilter(_secret_values(settings)))
    root_logger.addHandler(handler)

    # Twilio's client logs full request bodies at INFO
    logging.getLogger("twilio.http_client").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    root_logger.info(
        f"Logging configured (level={settings.log_level}, format={settings.log_format}, "
        f"token secret {mask_secret(settings.accept_token_secret)})"
    )
    return handler
