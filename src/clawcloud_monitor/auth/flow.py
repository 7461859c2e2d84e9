from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Optional, Protocol
from urllib.parse import urlparse

from ..browser.artifacts import ArtifactRecorder
from ..browser.session import BrowserSession
from ..config import AppConfig
from ..errors import AuthFlowError, ChallengeTimeout, ConfigurationMissing, LoginRejected, RedirectTimeout
from ..journal import RunJournal
from ..models import ChallengeRequest
from .selectors import AuthSelectors


logger = logging.getLogger(__name__)


class AuthState(str, Enum):
    START = "start"
    PROVIDER_REDIRECT = "provider_redirect"
    CREDENTIAL_ENTRY = "credential_entry"
    CHALLENGE_PENDING = "challenge_pending"
    CONSENT_PENDING = "consent_pending"
    AUTHENTICATED = "authenticated"
    DONE = "done"
    FAILED = "failed"


TERMINAL_STATES = frozenset({AuthState.DONE, AuthState.FAILED})


def _edges(*targets: AuthState) -> frozenset[AuthState]:
    # FAILED is reachable from every non-terminal state.
    return frozenset(targets) | {AuthState.FAILED}


TRANSITIONS: dict[AuthState, frozenset[AuthState]] = {
    AuthState.START: _edges(AuthState.PROVIDER_REDIRECT, AuthState.AUTHENTICATED),
    AuthState.PROVIDER_REDIRECT: _edges(
        AuthState.CREDENTIAL_ENTRY, AuthState.CONSENT_PENDING, AuthState.AUTHENTICATED
    ),
    AuthState.CREDENTIAL_ENTRY: _edges(
        AuthState.CHALLENGE_PENDING, AuthState.CONSENT_PENDING, AuthState.AUTHENTICATED
    ),
    AuthState.CHALLENGE_PENDING: _edges(AuthState.CONSENT_PENDING, AuthState.AUTHENTICATED),
    AuthState.CONSENT_PENDING: _edges(AuthState.AUTHENTICATED),
    AuthState.AUTHENTICATED: _edges(AuthState.DONE),
    AuthState.DONE: frozenset(),
    AuthState.FAILED: frozenset(),
}


def is_allowed(src: AuthState, dst: AuthState) -> bool:
    return dst in TRANSITIONS.get(src, frozenset())


# Resolves a challenge to a code, or None once the challenge deadline passes.
CodeSource = Callable[[ChallengeRequest], Awaitable[Optional[str]]]


class Announcer(Protocol):
    async def announce(self, message: str) -> None: ...

    async def attach(self, image_path: Optional[str], caption: str = "") -> None: ...


@dataclass
class AuthResult:
    state: AuthState
    history: list[AuthState] = field(default_factory=list)
    credentials_submitted: bool = False
    challenge_resolved: bool = False
    consent_resolved: bool = False


def _host(url: str) -> str:
    return (urlparse(url or "").hostname or "").lower()


def _path(url: str) -> str:
    return urlparse(url or "").path or "/"


def _host_matches(host: str, domain: str) -> bool:
    return bool(domain) and (host == domain or host.endswith(f".{domain}"))


class AuthFlow:
    """
    Drives "Sign in with GitHub" on the ClawCloud console as an explicit state machine.

    `advance()` performs exactly one transition; `run()` loops until DONE and moves to FAILED (re-raising)
    on the first error. There is no retry: a second-factor prompt cannot be safely re-driven automatically,
    so the only retry is the next run.
    """

    def __init__(
        self,
        session: BrowserSession,
        cfg: AppConfig,
        *,
        code_source: CodeSource,
        announcer: Optional[Announcer] = None,
        artifacts: Optional[ArtifactRecorder] = None,
        journal: Optional[RunJournal] = None,
        selectors: Optional[AuthSelectors] = None,
        step_timeout_ms: int = 15_000,
        consent_probe_ms: int = 3_000,
    ) -> None:
        self.session = session
        self.cfg = cfg
        self.selectors = selectors or AuthSelectors()
        self.journal = journal or RunJournal(logger)
        self._code_source = code_source
        self._announcer = announcer
        self._artifacts = artifacts
        self._step_timeout_ms = step_timeout_ms
        self._consent_probe_ms = consent_probe_ms

        self.state = AuthState.START
        self.history: list[AuthState] = [AuthState.START]
        self.failure_reason: Optional[str] = None
        self.challenge: Optional[ChallengeRequest] = None
        self.credentials_submitted = False
        self.challenge_resolved = False
        self.consent_resolved = False

    # --- location predicates ---

    def _on_console(self, url: str) -> bool:
        console = self.cfg.console
        if not _host_matches(_host(url), console.target_domain):
            return False
        return not _path(url).startswith(console.signin_path)

    def _on_signin_page(self, url: str) -> bool:
        console = self.cfg.console
        return _host_matches(_host(url), console.target_domain) and _path(url).startswith(console.signin_path)

    def _on_provider_login(self, url: str) -> bool:
        if not _host_matches(_host(url), self.selectors.provider_host):
            return False
        # A failed POST re-renders the form at /session.
        return _path(url).rstrip("/") in (self.selectors.login_path, "/session")

    def _on_two_factor(self, url: str) -> bool:
        return (
            _host_matches(_host(url), self.selectors.provider_host)
            and self.selectors.two_factor_path_fragment in _path(url)
        )

    # --- state machine ---

    async def run(self) -> AuthResult:
        self.journal.step("Opening ClawCloud sign-in...")
        while self.state not in TERMINAL_STATES:
            try:
                nxt = await self.advance(self.state)
            except Exception as e:
                self.failure_reason = str(e) or e.__class__.__name__
                self._enter(AuthState.FAILED)
                self.journal.error(f"Login failed in state {self.history[-2].value}: {self.failure_reason}")
                raise
            self._enter(nxt)
        return AuthResult(
            state=self.state,
            history=list(self.history),
            credentials_submitted=self.credentials_submitted,
            challenge_resolved=self.challenge_resolved,
            consent_resolved=self.consent_resolved,
        )

    def _enter(self, nxt: AuthState) -> None:
        if not is_allowed(self.state, nxt):
            raise AuthFlowError(f"Illegal auth transition {self.state.value} -> {nxt.value}")
        logger.debug("Auth state %s -> %s", self.state.value, nxt.value)
        self.state = nxt
        self.history.append(nxt)

    async def advance(self, state: AuthState) -> AuthState:
        handlers = {
            AuthState.START: self._start,
            AuthState.PROVIDER_REDIRECT: self._provider_redirect,
            AuthState.CREDENTIAL_ENTRY: self._credential_entry,
            AuthState.CHALLENGE_PENDING: self._challenge_pending,
            AuthState.CONSENT_PENDING: self._consent_pending,
            AuthState.AUTHENTICATED: self._authenticated,
        }
        handler = handlers.get(state)
        if handler is None:
            raise AuthFlowError(f"No transition out of terminal state {state.value}")
        nxt = await handler()
        if not is_allowed(state, nxt):
            raise AuthFlowError(f"Illegal auth transition {state.value} -> {nxt.value}")
        return nxt

    async def _start(self) -> AuthState:
        console = self.cfg.console
        await self.session.goto(
            console.signin_url,
            wait_until="networkidle",
            timeout_ms=self.cfg.browser.navigation_timeout_ms,
        )
        await self.session.settle()
        if self._on_signin_page(self.session.url):
            self.journal.log("Sign-in required; continuing with GitHub.")
            return AuthState.PROVIDER_REDIRECT
        # The console accepted an existing session without showing the sign-in page.
        return await self._confirm_handoff()

    async def _provider_redirect(self) -> AuthState:
        await self.session.click(self.selectors.provider_button)
        timeout_ms = self.cfg.browser.redirect_timeout_ms
        if not await self.session.wait_for_url(lambda u: not self._on_signin_page(u), timeout_ms=timeout_ms):
            raise RedirectTimeout(f"provider redirect timeout ({timeout_ms / 1000:.0f}s, still on sign-in)")
        # The OAuth authorize hop may still be redirecting to the login form.
        await self.session.wait_for_url(
            lambda u: self._on_provider_login(u) or self._on_console(u),
            timeout_ms=self._consent_probe_ms,
        )
        await self.session.settle()
        if self._on_provider_login(self.session.url):
            return AuthState.CREDENTIAL_ENTRY
        # The cached GitHub session was honored: no login form.
        self.journal.log("GitHub session reused; skipping credential entry.")
        if await self._consent_visible():
            return AuthState.CONSENT_PENDING
        return await self._confirm_handoff()

    async def _credential_entry(self) -> AuthState:
        provider = self.cfg.provider
        if not provider.has_password_login:
            raise ConfigurationMissing("GitHub login requested but GH_USERNAME/GH_PASSWORD are not configured")

        self.journal.step("Signing in to GitHub...")
        await self.session.fill(self.selectors.username_input, provider.username)
        await self.session.fill(self.selectors.password_input, provider.password)
        await self.session.click(self.selectors.submit_button)
        self.credentials_submitted = True

        left_form = await self.session.wait_for_url(
            lambda u: not self._on_provider_login(u),
            timeout_ms=self._step_timeout_ms,
        )
        await self.session.settle()
        if self._on_two_factor(self.session.url):
            return AuthState.CHALLENGE_PENDING
        if await self._consent_visible():
            return AuthState.CONSENT_PENDING
        if not left_form or self._on_provider_login(self.session.url):
            raise LoginRejected("GitHub rejected the username/password (still on the login form)")
        return await self._confirm_handoff()

    async def _challenge_pending(self) -> AuthState:
        if self.challenge is not None:
            raise AuthFlowError("Second-factor challenge already issued for this run")
        self.challenge = ChallengeRequest.issue(self.cfg.challenge.wait_seconds)

        self.journal.warning("GitHub requires a second factor; asking the operator via Telegram.")
        shot = await self._artifacts.capture(self.session, "2fa_required") if self._artifacts else None
        if self._announcer is not None:
            await self._announcer.announce(
                "🔐 <b>GitHub two-factor code required</b>\n\n"
                "Reply in this chat with:\n<code>/code XXXXXX</code>\n"
                f"Waiting up to {self.cfg.challenge.wait_seconds}s."
            )
            await self._announcer.attach(shot, "GitHub two-factor prompt")

        code = await self._code_source(self.challenge)
        if not code or not self.challenge.accepts(code):
            raise ChallengeTimeout("second-factor timeout")

        self.journal.success("Second-factor code received; submitting.")
        await self.session.fill(self.selectors.code_input, code)
        await self.session.press(self.selectors.code_input, "Enter")
        self.challenge_resolved = True

        left_challenge = await self.session.wait_for_url(
            lambda u: not self._on_two_factor(u),
            timeout_ms=self._step_timeout_ms,
        )
        await self.session.settle()
        if not left_challenge or self._on_two_factor(self.session.url):
            raise LoginRejected("second-factor code rejected")
        # GitHub may still ask to authorize the app after the code.
        if await self._consent_visible():
            return AuthState.CONSENT_PENDING
        return await self._confirm_handoff()

    async def _consent_pending(self) -> AuthState:
        self.journal.step("Authorizing ClawCloud on GitHub...")
        await self.session.click(self.selectors.consent_button)
        self.consent_resolved = True
        await self.session.settle()
        return await self._confirm_handoff()

    async def _authenticated(self) -> AuthState:
        self.journal.success("Authenticated on ClawCloud.")
        return AuthState.DONE

    async def _consent_visible(self) -> bool:
        return await self.session.wait_for_selector(self.selectors.consent_button, timeout_ms=self._consent_probe_ms)

    async def _confirm_handoff(self) -> AuthState:
        timeout_ms = self.cfg.browser.redirect_timeout_ms
        if not await self.session.wait_for_url(self._on_console, timeout_ms=timeout_ms):
            raise RedirectTimeout(f"authentication redirect timeout ({timeout_ms / 1000:.0f}s, at {_host(self.session.url)})")
        return AuthState.AUTHENTICATED
