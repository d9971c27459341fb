"""Structured JSON logging with request and wallet context fields."""

import logging
import sys
from contextvars import ContextVar

from pythonjsonlogger.json import JsonFormatter

from wallet_engine.config import settings


request_id_ctx: ContextVar[str] = ContextVar("request_id", default="")
account_id_ctx: ContextVar[str] = ContextVar("account_id", default="")


class ContextFilter(logging.Filter):
    """Inject the service name and correlation identifiers into every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.service_name = settings.APP_NAME
        record.request_id = request_id_ctx.get()
        record.account_id = account_id_ctx.get()
        return True


def configure_logging() -> None:
    """Configure the root logger once per process."""

    handler = logging.StreamHandler(sys.stdout)
    context_filter = ContextFilter()
    handler.addFilter(context_filter)
    handler.setFormatter(
        JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(service_name)s %(request_id)s %(account_id)s %(message)s"
        )
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(settings.LOG_LEVEL)


logger = logging.getLogger("wallet_engine")
