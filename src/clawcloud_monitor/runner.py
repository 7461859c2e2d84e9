from __future__ import annotations

import logging
from contextlib import AbstractAsyncContextManager
from datetime import datetime
from typing import Callable, Optional, Protocol

from .auth.flow import AuthFlow, AuthState
from .browser.artifacts import ArtifactRecorder
from .browser.session import BrowserSession, open_browser
from .config import AppConfig, BrowserConfig
from .console.balance import BalanceReader
from .errors import ConfigurationMissing, MonitorError
from .journal import RunJournal
from .models import ChallengeRequest, RunOutcome, SessionCredential
from .report import format_summary


logger = logging.getLogger(__name__)

# Balance shown in the summary of a failed run.
FAILED_RUN_BALANCE = "Error"

BrowserFactory = Callable[[BrowserConfig, Optional[SessionCredential]], AbstractAsyncContextManager[BrowserSession]]


class Notifier(Protocol):
    async def announce(self, message: str) -> None: ...

    async def attach(self, image_path: Optional[str], caption: str = "") -> None: ...

    async def await_code(self, timeout_seconds: float, *, not_before: Optional[datetime] = None) -> Optional[str]: ...


class SecretStore(Protocol):
    async def rotate(self, name: str, plaintext: str) -> bool: ...


class RunController:
    """
    One end-to-end attempt: browser -> login -> balance -> session rotation -> one Telegram summary.

    `run()` always returns exactly one RunOutcome and reports it exactly once, whichever step failed.
    Concurrent runs against the same account are not supported (they race on GH_SESSION and on the
    Telegram update cursor).
    """

    def __init__(
        self,
        cfg: AppConfig,
        *,
        notifier: Notifier,
        secret_store: SecretStore,
        journal: Optional[RunJournal] = None,
        browser_factory: BrowserFactory = open_browser,
        artifacts: Optional[ArtifactRecorder] = None,
    ) -> None:
        self.cfg = cfg
        self.notifier = notifier
        self.secret_store = secret_store
        self.journal = journal or RunJournal(logging.getLogger("clawcloud_monitor"))
        self.browser_factory = browser_factory
        self.artifacts = artifacts or ArtifactRecorder(cfg.browser.artifact_dir)
        self.auth_state: Optional[AuthState] = None
        self.rotation_attempts = 0

    def _cached_credential(self) -> Optional[SessionCredential]:
        provider = self.cfg.provider
        if not provider.session:
            return None
        return SessionCredential(
            value=provider.session,
            name=provider.session_cookie_name,
            domain=provider.session_cookie_domain,
        )

    def _check_preconditions(self, credential: Optional[SessionCredential]) -> None:
        if credential is None and not self.cfg.provider.has_password_login:
            raise ConfigurationMissing("Set GH_SESSION or GH_USERNAME + GH_PASSWORD before running")

    async def _await_code(self, challenge: ChallengeRequest) -> Optional[str]:
        return await self.notifier.await_code(challenge.timeout_seconds, not_before=challenge.issued_at)

    async def run(self) -> RunOutcome:
        self.journal.log("Starting ClawCloud monitor run.")
        try:
            credential = self._cached_credential()
            self._check_preconditions(credential)
            if credential is not None:
                self.journal.success("Loaded cached GitHub session.")
            async with self.browser_factory(self.cfg.browser, credential) as session:
                try:
                    outcome = await self._attempt(session)
                except Exception as e:
                    await self.artifacts.capture(session, "critical_error")
                    outcome = self._failure(e)
        except Exception as e:
            # Precondition or browser launch failures: nothing to screenshot.
            outcome = self._failure(e)

        await self._report(outcome)
        return outcome

    async def _attempt(self, session: BrowserSession) -> RunOutcome:
        flow = AuthFlow(
            session,
            self.cfg,
            code_source=self._await_code,
            announcer=self.notifier,
            artifacts=self.artifacts,
            journal=self.journal,
        )
        try:
            await flow.run()
        finally:
            self.auth_state = flow.state

        balance = await BalanceReader(session, self.cfg, artifacts=self.artifacts, journal=self.journal).read()

        rotated = await self._rotate_session(session)

        await self.artifacts.capture(session, "success_final")
        self.journal.success("Run finished.")
        return RunOutcome(
            ok=True,
            balance=balance,
            artifact=self.artifacts.last,
            auth_state=AuthState.AUTHENTICATED.value,
            secret_rotated=rotated,
        )

    async def _rotate_session(self, session: BrowserSession) -> bool:
        provider = self.cfg.provider
        live = SessionCredential.from_cookies(
            await session.cookies(),
            name=provider.session_cookie_name,
            domain=provider.session_cookie_domain,
        )
        if live is None:
            self.journal.warning("No GitHub session cookie in the browser; secret not rotated.")
            return False

        self.rotation_attempts += 1
        name = self.cfg.secrets.secret_name
        if await self.secret_store.rotate(name, live.value):
            self.journal.success(f"{name} updated in repository secrets.")
            return True
        self.journal.warning(f"{name}: secret not rotated.")
        return False

    def _failure(self, e: BaseException) -> RunOutcome:
        kind = e.kind if isinstance(e, MonitorError) else "unexpected_error"
        message = str(e) or e.__class__.__name__
        self.journal.error(f"Run failed: {message}")
        logger.debug("Run failure detail", exc_info=e)
        return RunOutcome(
            ok=False,
            balance=FAILED_RUN_BALANCE,
            artifact=self.artifacts.last,
            error=message,
            error_kind=kind,
            auth_state=self.auth_state.value if self.auth_state else None,
        )

    async def _report(self, outcome: RunOutcome) -> None:
        message = format_summary(
            outcome,
            journal=self.journal,
            tz_name=self.cfg.report.timezone,
            recent_lines=self.cfg.report.recent_log_lines,
        )
        await self.notifier.announce(message)
        await self.notifier.attach(outcome.artifact, "Final state" if outcome.ok else "Error screenshot")
