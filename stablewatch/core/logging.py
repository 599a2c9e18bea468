"""Application logging with Loguru + Slack notifications."""

import logging
import sys
from pathlib import Path
from typing import Any

import httpx
from loguru import logger

from stablewatch.core.config import settings

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level} | {extra[name]}:{function}:{line} | {extra[source_id]} | {message}"
LEVEL_ALIASES = {"WARN": "WARNING", "FATAL": "CRITICAL"}
VALID_LEVELS = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}

# Track if logging is already configured to prevent duplicates
_logging_configured = False


class InterceptHandler(logging.Handler):
    """Redirect stdlib logs (httpx, uvicorn) to Loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_name == "emit":
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def _slack_sink(message: Any) -> None:
    if not settings.SLACK_WEBHOOK_URL:
        return

    record = message.record
    name = record["extra"].get("name") or record.get("name", "stablewatch")
    source_id = record["extra"].get("source_id", "-")
    text = f"[{record['level'].name}] {name}:{record['function']}:{record['line']} ({source_id})\n{record['message']}"
    try:
        httpx.post(settings.SLACK_WEBHOOK_URL, json={"text": text}, timeout=5.0)
    except Exception:  # noqa: BLE001
        # Avoid recursive logging on Slack failures
        pass


def resolve_level(raw: str | None) -> str:
    level = (raw or "INFO").strip().upper()
    level = LEVEL_ALIASES.get(level, level)
    return level if level in VALID_LEVELS else "INFO"


def configure_logging() -> None:
    global _logging_configured

    if _logging_configured:
        return
    _logging_configured = True

    log_dir = Path("logs")
    log_dir.mkdir(exist_ok=True)
    level = resolve_level(settings.effective_log_level)

    logger.remove()
    logger.configure(extra={"name": "stablewatch", "source_id": "-"})
    logger.add(
        sys.stdout,
        level=level,
        format=LOG_FORMAT,
        backtrace=False,
        diagnose=False,
    )
    logger.add(
        log_dir / "app.log",
        level=level,
        format=LOG_FORMAT,
        rotation="10 MB",
        retention="14 days",
        enqueue=True,
        backtrace=False,
        diagnose=False,
    )

    if settings.SLACK_WEBHOOK_URL:
        logger.add(_slack_sink, level="ERROR", enqueue=True)

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

    for logger_name in ["uvicorn", "uvicorn.error", "uvicorn.access"]:
        logging.getLogger(logger_name).handlers = [InterceptHandler()]
        logging.getLogger(logger_name).propagate = False


def get_logger(name: str) -> logger.__class__:
    return logger.bind(name=name)


def source_logger(source_id: str) -> logger.__class__:
    """Logger for one data source; every record carries ``extra["source_id"]``."""
    return get_logger(f"ingestion.{source_id}").bind(source_id=source_id)


configure_logging()
