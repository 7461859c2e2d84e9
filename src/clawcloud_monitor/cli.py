from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import ValidationError

from .config import AppConfig, load_config
from .logging_config import configure_logging
from .models import RunOutcome
from .notify.telegram import TelegramNotifier
from .runner import RunController
from .secret_store import GitHubSecretStore


logger = logging.getLogger("clawcloud_monitor")


async def run_once(cfg: AppConfig) -> RunOutcome:
    notifier = TelegramNotifier(cfg.telegram)
    secret_store = GitHubSecretStore(cfg.secrets)
    try:
        return await RunController(cfg, notifier=notifier, secret_store=secret_store).run()
    finally:
        await notifier.aclose()
        await secret_store.aclose()


def main() -> int:
    """
    Run one monitoring attempt. Configuration comes from the environment only (ENV_FILE, CONFIG_FILE).
    """
    env_path = Path(os.getenv("ENV_FILE", ".env"))
    if env_path.exists():
        load_dotenv(env_path)

    # Default logging: can be overridden once config is loaded.
    configure_logging(level=os.getenv("LOG_LEVEL", "INFO"))

    try:
        cfg = load_config(os.getenv("CONFIG_FILE", "config.yaml"))
    except ValidationError as e:
        logger.error("Invalid configuration: %s", e)
        return 2
    configure_logging(level=cfg.logging.level, file_path=cfg.logging.file_path or None)

    outcome = asyncio.run(run_once(cfg))
    logger.info("Run finished (ok=%s auth_state=%s)", outcome.ok, outcome.auth_state)
    return 0 if outcome.ok else 1
