from __future__ import annotations

import asyncio
import logging
import re
from logging.handlers import RotatingFileHandler
from pathlib import Path

from .config import load_settings
from .formatting import short_address
from .service import AlertService

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOG_MAX_BYTES = 10 * 1024 * 1024
LOG_BACKUP_COUNT = 5

_REDACTIONS = (
    (re.compile(r"(https://(?:\w+\.)?discord(?:app)?\.com/api/webhooks/)[\w/-]+"), r"\1[MASKED]"),
    (re.compile(r"(api\.telegram\.org/bot)[^/\s]+"), r"\1[MASKED]"),
)

_ADDRESS = re.compile(r"\b[1-9A-HJ-NP-Za-km-z]{32,88}\b")


def redact(text: str) -> str:
    for pattern, replacement in _REDACTIONS:
        text = pattern.sub(replacement, text)
    return _ADDRESS.sub(lambda m: short_address(m.group()), text)


class RedactingFilter(logging.Filter):
    """Masks webhook secrets, bot tokens and full addresses in log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = redact(record.getMessage())
        record.args = None
        return True


def build_file_handler(path: str) -> RotatingFileHandler:
    log_path = Path(path)
    log_path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        log_path, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUP_COUNT, encoding="utf-8"
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    return handler


def configure_logging(level: str, log_file: str | None = None) -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
    root = logging.getLogger()
    if log_file:
        root.addHandler(build_file_handler(log_file))
    for handler in root.handlers:
        handler.addFilter(RedactingFilter())


async def _main() -> None:
    settings = load_settings()
    configure_logging(settings.log_level, settings.log_file)
    service = AlertService(settings)
    await service.run()


def main() -> None:
    try:
        asyncio.run(_main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
