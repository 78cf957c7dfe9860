"""structlog setup shared by the API process and the CLIs."""

import logging

import structlog

from tipnaden.config import settings


def configure_logging(level: str | None = None, *, json: bool | None = None) -> None:
    """Install structlog processors and the console or JSON renderer."""
    level_name = (level or settings.log_level).upper()
    use_json = settings.log_json if json is None else json

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if use_json:
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level_name)
        ),
        cache_logger_on_first_use=True,
    )
