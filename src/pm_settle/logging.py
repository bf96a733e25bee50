from __future__ import annotations

import logging
import structlog

from pm_settle.config import settings


def configure_logging(level: str | None = None, json: bool | None = None) -> None:
    logging.basicConfig(level=getattr(logging, (level or settings.log_level).upper(), logging.INFO))
    renderer = (
        structlog.processors.JSONRenderer()
        if (settings.log_json if json is None else json)
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
    )
