from __future__ import annotations

import html
import logging
from datetime import timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .journal import RunJournal
from .models import RunOutcome


logger = logging.getLogger(__name__)


def _resolve_tz(name: str) -> tzinfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown REPORT_TIMEZONE=%r; using UTC.", name)
        return timezone.utc


def format_summary(
    outcome: RunOutcome,
    *,
    journal: RunJournal,
    tz_name: str = "UTC",
    recent_lines: int = 6,
) -> str:
    """
    Telegram HTML summary of one run. Values are escaped; the session credential is never part of it.
    """
    stamp = outcome.finished_at.astimezone(_resolve_tz(tz_name)).strftime("%Y-%m-%d %H:%M:%S %Z")
    status = "✅ Success" if outcome.ok else "❌ Failure"
    lines = [
        "<b>🤖 ClawCloud Monitor</b>",
        "",
        f"<b>Status:</b> {status}",
        f"<b>Balance:</b> <code>{html.escape(outcome.balance or 'N/A')}</code>",
        f"<b>Time:</b> {html.escape(stamp)}",
    ]
    if outcome.error:
        detail = f"{outcome.error_kind}: {outcome.error}" if outcome.error_kind else outcome.error
        lines.append(f"<b>Details:</b> <code>{html.escape(detail)}</code>")
    recent = journal.recent(recent_lines)
    if recent:
        lines += ["", "<b>Log:</b>", html.escape(recent)]
    return "\n".join(lines)
