from __future__ import annotations

import asyncio
import logging
import re
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import httpx

from ..config import TelegramConfig
from ..errors import NotificationFailure


logger = logging.getLogger(__name__)

CODE_COMMAND_RE = re.compile(r"/code\s+(\d{6,8})")

CAPTION_LIMIT = 1024


def parse_code_command(text: str) -> Optional[str]:
    """
    Return the digits of a `/code 123456` command, or None.

    The whole message must be the command: "/code 123456 thanks" and "/CODE 123456" do not count.
    """
    m = CODE_COMMAND_RE.fullmatch(text or "")
    return m.group(1) if m else None


class TelegramNotifier:
    """
    Telegram Bot API channel: outbound status messages/screenshots and inbound `/code` polling.

    Outbound calls are best-effort. A messaging outage is logged at debug level and never reaches the caller.
    """

    def __init__(
        self,
        cfg: TelegramConfig,
        *,
        client: Optional[httpx.AsyncClient] = None,
        long_poll_seconds: int = 10,
        poll_interval_seconds: float = 1.0,
        backoff_seconds: float = 2.0,
    ) -> None:
        self._chat_id = str(cfg.chat_id or "").strip()
        self.enabled = bool(cfg.bot_token and self._chat_id)
        self._client = client or httpx.AsyncClient(
            base_url=f"{cfg.api_base.rstrip('/')}/bot{cfg.bot_token}",
            timeout=httpx.Timeout(long_poll_seconds + 15),
        )
        self._long_poll_seconds = long_poll_seconds
        self._poll_interval_seconds = poll_interval_seconds
        self._backoff_seconds = backoff_seconds
        # getUpdates cursor: only moves forward, survives across await_code() calls.
        self._offset = 0

    @property
    def offset(self) -> int:
        return self._offset

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _call(self, method: str, **kwargs: Any) -> Any:
        resp = await self._client.post(f"/{method}", **kwargs)
        resp.raise_for_status()
        body = resp.json()
        if not body.get("ok"):
            raise NotificationFailure(f"Telegram {method} failed: {body.get('description') or 'ok=false'}")
        return body.get("result")

    async def announce(self, message: str) -> None:
        if not self.enabled:
            return
        try:
            await self._call(
                "sendMessage",
                json={"chat_id": self._chat_id, "text": message, "parse_mode": "HTML"},
            )
        except Exception:
            logger.debug("Telegram sendMessage failed; continuing.", exc_info=True)

    async def attach(self, image_path: Optional[str], caption: str = "") -> None:
        if not self.enabled or not image_path:
            return
        path = Path(image_path)
        if not path.is_file():
            return
        try:
            await self._call(
                "sendPhoto",
                data={"chat_id": self._chat_id, "caption": (caption or "")[:CAPTION_LIMIT]},
                files={"photo": (path.name, path.read_bytes(), "image/png")},
            )
        except Exception:
            logger.debug("Telegram sendPhoto failed (path=%s); continuing.", path, exc_info=True)

    async def _fetch_updates(self, timeout: int, *, request_timeout: float) -> list[dict[str, Any]]:
        result = await self._call(
            "getUpdates",
            json={"offset": self._offset, "timeout": timeout},
            timeout=httpx.Timeout(request_timeout),
        )
        return list(result or [])

    def _match(self, update: dict[str, Any], not_before: Optional[datetime]) -> Optional[str]:
        msg = update.get("message") or {}
        chat = msg.get("chat") or {}
        if str(chat.get("id", "")) != self._chat_id:
            return None
        if not_before is not None and msg.get("date") is not None:
            sent_at = datetime.fromtimestamp(int(msg["date"]), tz=timezone.utc)
            # Telegram dates have one-second resolution.
            if sent_at < not_before.replace(microsecond=0):
                return None
        return parse_code_command(msg.get("text") or "")

    async def await_code(
        self,
        timeout_seconds: float,
        *,
        not_before: Optional[datetime] = None,
    ) -> Optional[str]:
        """
        Poll for `/code <6-8 digits>` from the configured chat until `timeout_seconds` elapse.

        Returns the digits, or None at the deadline. `not_before` drops commands sent before the challenge
        was issued, so a leftover code from an earlier run is never submitted.
        """
        if not self.enabled:
            return None

        deadline = time.monotonic() + max(0.0, float(timeout_seconds))
        logger.info("Waiting up to %.0fs for a Telegram reply (/code XXXXXX)...", timeout_seconds)

        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None
            try:
                # The HTTP request itself must not outlive the challenge deadline.
                updates = await self._fetch_updates(
                    max(0, min(self._long_poll_seconds, int(remaining) - 1)),
                    request_timeout=remaining,
                )
            except Exception:
                # Transient: keep polling until the deadline.
                logger.debug("Telegram getUpdates failed; backing off.", exc_info=True)
                await asyncio.sleep(min(self._backoff_seconds, max(0.0, deadline - time.monotonic())))
                continue

            for upd in updates:
                update_id = int(upd.get("update_id", -1))
                if update_id + 1 > self._offset:
                    self._offset = update_id + 1
                code = self._match(upd, not_before)
                if code:
                    logger.info("Received second-factor code from Telegram (code=%s)", f"{code[:2]}****{code[-2:]}")
                    return code

            if not updates:
                await asyncio.sleep(min(self._poll_interval_seconds, max(0.0, deadline - time.monotonic())))
