"""
Logging setup.

Production emits one JSON object per line for the host's log drain;
development gets a readable single-line format. Either way, gateway
credentials and bearer tokens are scrubbed before a record is written,
since Pesapal error bodies get logged verbatim.
"""

import sys
import re
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List

from wedfund.config import settings

REDACTED = "[redacted]"

BEARER_PATTERN = re.compile(r"(Bearer\s+)[A-Za-z0-9._\-]+")
TOKEN_FIELD_PATTERN = re.compile(r"""(["']?(?:token|consumer_secret)["']?\s*[:=]\s*["']?)[^"',\s}]+""")

QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "httpx", "httpcore")


class SecretFilter(logging.Filter):
    """Rewrites record messages so no configured secret reaches a handler."""

    def __init__(self, secrets: Iterable[str] = ()):
        super().__init__()
        # Short values would redact ordinary words
        self.secrets: List[str] = [s for s in secrets if s and len(s) >= 6]

    def scrub(self, text: str) -> str:
        for secret in self.secrets:
            text = text.replace(secret, REDACTED)
        text = BEARER_PATTERN.sub(rf"\1{REDACTED}", text)
        return TOKEN_FIELD_PATTERN.sub(rf"\1{REDACTED}", text)

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        scrubbed = self.scrub(message)
        if scrubbed != message:
            record.msg = scrubbed
            record.args = None
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "app": settings.app_name,
            "env": settings.app_env,
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        # logger.info(..., extra={"extra": {...}})
        fields = getattr(record, "extra", None)
        if isinstance(fields, dict):
            entry.update(fields)

        return json.dumps(entry, default=str)


def configured_secrets() -> List[str]:
    return [
        settings.pesapal_consumer_key,
        settings.pesapal_consumer_secret,
        settings.admin_api_key,
    ]


def configure_logging():
    """Install a single stdout handler on the root logger."""
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(SecretFilter(configured_secrets()))
    if settings.is_production:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)-8s %(name)s: %(message)s"))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(logging.INFO if settings.is_production else logging.DEBUG)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
