from __future__ import annotations

import logging
import re
from typing import Iterable, Optional

from ..browser.artifacts import ArtifactRecorder
from ..browser.session import BrowserSession
from ..config import AppConfig
from ..errors import ExtractionFailure
from ..journal import RunJournal


logger = logging.getLogger(__name__)

BALANCE_UNAVAILABLE = "Error (see screenshot)"

_DOLLAR_AMOUNT_RE = re.compile(r"\$\d+\.\d+")

PLAN_READY_TEXT = "Credits Available"
SNIPPET_SELECTOR = "div, span, p"


def parse_balance(snippets: Iterable[str]) -> str:
    """
    Pick the credit balance and the usage line out of the plan page's text snippets.

    e.g. ["Credits Available", "$4.99", "$0.01/5 used"] -> "$4.99 ($0.01/5 used)"
    """
    amount: Optional[str] = None
    usage: Optional[str] = None
    for raw in snippets:
        text = (raw or "").strip()
        if amount is None and _DOLLAR_AMOUNT_RE.fullmatch(text):
            amount = text
        # Outer containers also "contain" the usage line; keep the tightest single-line match.
        if "used" in text and "\n" not in text and (usage is None or len(text) < len(usage)):
            usage = text
    return f"{amount or 'N/A'} ({usage or '0/5 used'})"


class BalanceReader:
    """
    Reads the credit balance from the console's plan page.

    Best-effort and read-only: any failure becomes BALANCE_UNAVAILABLE (plus a screenshot), never an exception.
    """

    def __init__(
        self,
        session: BrowserSession,
        cfg: AppConfig,
        *,
        artifacts: Optional[ArtifactRecorder] = None,
        journal: Optional[RunJournal] = None,
    ) -> None:
        self.session = session
        self.cfg = cfg
        self._artifacts = artifacts
        self.journal = journal or RunJournal(logger)

    async def _extract(self) -> str:
        await self.session.goto(
            self.cfg.console.plan_url,
            wait_until="networkidle",
            timeout_ms=self.cfg.browser.navigation_timeout_ms,
        )
        if not await self.session.wait_for_text(PLAN_READY_TEXT, timeout_ms=self.cfg.browser.balance_timeout_ms):
            raise ExtractionFailure(f"'{PLAN_READY_TEXT}' did not render on the plan page")
        return parse_balance(await self.session.text_snippets(SNIPPET_SELECTOR))

    async def read(self) -> str:
        self.journal.step("Reading the credit balance from the plan page...")
        try:
            info = await self._extract()
        except Exception as e:
            self.journal.warning(f"Balance not found: {e}")
            if self._artifacts is not None:
                await self._artifacts.capture(self.session, "balance_error")
            return BALANCE_UNAVAILABLE
        self.journal.success(f"Balance: {info}")
        return info
