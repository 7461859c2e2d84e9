import logging
import os
import re
from pathlib import Path
from typing import Optional


# Telegram Bot API URLs embed the bot token: https://api.telegram.org/bot<id>:<secret>/sendMessage
_BOT_TOKEN_RE = re.compile(r"/bot\d+:[A-Za-z0-9_-]+")

NOISY_LOGGERS = ("playwright", "httpx", "httpcore")


class RedactBotToken(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        if _BOT_TOKEN_RE.search(message):
            record.msg = _BOT_TOKEN_RE.sub("/bot<redacted>", message)
            record.args = ()
        return True


def configure_logging(level: str = "INFO", file_path: Optional[str] = None) -> None:
    numeric_level = getattr(logging, (level or "INFO").upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler()]

    if file_path:
        path = Path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))

    for handler in handlers:
        handler.addFilter(RedactBotToken())

    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
        handlers=handlers,
        force=True,  # main() sets up from LOG_LEVEL first, then again once config.yaml is read
    )

    for noisy in NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(os.getenv("NOISY_LOG_LEVEL", "WARNING"))
