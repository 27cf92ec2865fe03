"""
Logging configuration for the API.

Services log through the standard library (``logging.getLogger(__name__)``)
or the request-scoped ``get_logger`` wrapper; every record is rendered by
structlog, as JSON when ``log_format == "json"`` and as coloured console
lines otherwise. The current request id is attached to each record.
"""
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional

import structlog

from katazuke_api.core.config import Settings, settings as default_settings
from katazuke_api.middleware.logging_middleware import get_request_id

NOISY_LOGGERS = ["uvicorn.access", "uvicorn.error", "httpx", "httpcore", "google_genai"]

MAX_LOG_BYTES = 10 * 1024 * 1024


def add_request_id(logger, method_name, event_dict):
    """structlog processor: attach the id set by RequestLoggingMiddleware"""
    request_id = get_request_id()
    if request_id:
        event_dict.setdefault("request_id", request_id)
    return event_dict


def _pre_chain() -> List:
    return [
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.ExtraAdder(),
        add_request_id,
        structlog.processors.TimeStamper(fmt="iso"),
    ]


def _renderer(settings: Settings):
    if settings.log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=True, exception_formatter=structlog.dev.plain_traceback)


def _formatter(settings: Settings, renderer=None) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_pre_chain(),
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            renderer or _renderer(settings),
        ],
    )


def _file_handler(path: Path, level: int, settings: Settings) -> RotatingFileHandler:
    handler = RotatingFileHandler(path, maxBytes=MAX_LOG_BYTES, backupCount=5)
    handler.setLevel(level)
    # files are always JSON so they can be grepped after an upstream incident
    handler.setFormatter(_formatter(settings, structlog.processors.JSONRenderer()))
    return handler


def setup_logging(settings: Optional[Settings] = None):
    """Configure structlog and route every stdlib record through it."""
    settings = settings or default_settings
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *_pre_chain(),
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = []

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(_formatter(settings))
    root_logger.addHandler(console_handler)

    if settings.environment == "production":
        log_dir = Path(settings.log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        root_logger.addHandler(_file_handler(log_dir / "api.log", logging.DEBUG, settings))
        root_logger.addHandler(_file_handler(log_dir / "api_errors.log", logging.ERROR, settings))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        f"Logging configured: level={settings.log_level}, format={settings.log_format}, env={settings.environment}"
    )
