"""
Structured logging configuration using structlog.
JSON lines in production, console output when DEBUG is set.
"""

import logging
import sys
from typing import Optional, TextIO

import structlog

from extraction_quality.config import Settings, settings as default_settings

# Libraries that log per font, per image or per subprocess call
_NOISY_LOGGERS = ("pdfminer", "pdfplumber", "PIL", "pytesseract")


def _renderer(cfg: Settings):
    if cfg.DEBUG:
        return structlog.dev.ConsoleRenderer()
    return structlog.processors.JSONRenderer()


def setup_logging(cfg: Optional[Settings] = None, stream: Optional[TextIO] = None) -> None:
    """
    Route structlog through stdlib logging with one handler on the root logger.
    Call once at process start; calling again replaces the handler.
    """
    cfg = cfg or default_settings

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(cfg),
            ],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, cfg.LOG_LEVEL.upper(), logging.INFO))

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
