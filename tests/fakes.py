"""
In-memory stand-ins for the browser, Telegram and the secrets API, shared by the unit tests.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from clawcloud_monitor.auth.selectors import AuthSelectors
from clawcloud_monitor.config import AppConfig


SEL = AuthSelectors()

CONSOLE = "https://ap-southeast-1.run.claw.cloud"
SIGNIN = f"{CONSOLE}/signin"
DASHBOARD = f"{CONSOLE}/apps"
PLAN = f"{CONSOLE}/plan"
GH_LOGIN = "https://github.com/login?client_id=abc&return_to=%2Flogin%2Foauth%2Fauthorize"
GH_SESSION_POST = "https://github.com/session"
GH_2FA = "https://github.com/sessions/two-factor/app"
GH_AUTHORIZE = "https://github.com/login/oauth/authorize?client_id=abc"


def make_config(tmp_path: Path, **sections: dict[str, Any]) -> AppConfig:
    data: dict[str, Any] = {
        "console": {"base_url": CONSOLE},
        "provider": {"username": "octocat", "password": "hunter2", "session": ""},
        "challenge": {"wait_seconds": 5},
        "telegram": {"bot_token": "TOKEN", "chat_id": "42"},
        "secrets": {"token": "repo-token", "repository": "octocat/monitor"},
        "browser": {"artifact_dir": str(tmp_path / "artifacts"), "redirect_timeout_ms": 100},
        "report": {"timezone": "UTC"},
    }
    for name, values in sections.items():
        data[name] = {**data.get(name, {}), **values}
    return AppConfig.model_validate(data)


class FakeBrowserSession:
    """
    Scripted browser tab: navigation targets are looked up in small routing tables.

    - `routes`: goto(url) lands on routes[url] (default: url itself)
    - `click_routes` / `press_routes`: selector -> url after the click / key press
    - `visible`: url -> selectors visible on that page
    - `texts`: url -> texts rendered on that page
    """

    def __init__(self) -> None:
        self._url = "about:blank"
        self.routes: dict[str, str] = {}
        self.click_routes: dict[str, str] = {}
        self.press_routes: dict[str, str] = {}
        self.visible: dict[str, set[str]] = {}
        self.texts: dict[str, set[str]] = {}
        self.snippets: list[str] = []
        self.jar: list[dict[str, Any]] = []
        self.calls: list[tuple[str, ...]] = []
        self.fills: dict[str, str] = {}
        self.goto_error: Optional[Exception] = None
        self.closed = False

    @property
    def url(self) -> str:
        return self._url

    async def goto(self, url: str, *, wait_until: str = "networkidle", timeout_ms: int = 60_000) -> None:
        self.calls.append(("goto", url))
        if self.goto_error is not None:
            raise self.goto_error
        self._url = self.routes.get(url, url)

    async def settle(self, *, timeout_ms: int = 10_000) -> None:
        return None

    async def fill(self, selector: str, value: str) -> None:
        self.calls.append(("fill", selector))
        self.fills[selector] = value

    async def click(self, selector: str) -> None:
        self.calls.append(("click", selector))
        if selector in self.click_routes:
            self._url = self.click_routes[selector]

    async def press(self, selector: str, key: str) -> None:
        self.calls.append(("press", selector, key))
        if selector in self.press_routes:
            self._url = self.press_routes[selector]

    async def wait_for_url(self, predicate, *, timeout_ms: int) -> bool:
        return bool(predicate(self._url))

    async def wait_for_selector(self, selector: str, *, timeout_ms: int) -> bool:
        return selector in self.visible.get(self._url, set())

    async def wait_for_text(self, text: str, *, timeout_ms: int) -> bool:
        return text in self.texts.get(self._url, set())

    async def cookies(self) -> list[dict[str, Any]]:
        return [dict(c) for c in self.jar]

    async def add_cookies(self, cookies: list[dict[str, Any]]) -> None:
        self.jar.extend(dict(c) for c in cookies)

    async def screenshot(self, path: str) -> None:
        Path(path).write_bytes(b"\x89PNG fake")

    async def text_snippets(self, selector: str) -> list[str]:
        return list(self.snippets)

    @property
    def credential_submitted(self) -> bool:
        return ("fill", SEL.password_input) in self.calls


class SlowRedirectSession(FakeBrowserSession):
    """
    Like FakeBrowserSession, but a click lands on its target only after `click_delays[selector]` seconds,
    `settle()` is a short fixed pause, and `wait_for_url` polls the way a real page wait does.
    """

    def __init__(self, *, settle_seconds: float = 0.05) -> None:
        super().__init__()
        self.click_delays: dict[str, float] = {}
        self.settle_seconds = settle_seconds

    async def settle(self, *, timeout_ms: int = 10_000) -> None:
        await asyncio.sleep(self.settle_seconds)

    async def click(self, selector: str) -> None:
        delay = self.click_delays.get(selector)
        if delay is None or selector not in self.click_routes:
            await super().click(selector)
            return
        self.calls.append(("click", selector))
        target = self.click_routes[selector]
        asyncio.get_running_loop().call_later(delay, setattr, self, "_url", target)

    async def wait_for_url(self, predicate, *, timeout_ms: int) -> bool:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_ms / 1000
        while not predicate(self._url):
            if loop.time() >= deadline:
                return False
            await asyncio.sleep(0.01)
        return True


def browser_factory(session: FakeBrowserSession, *, fail_on_enter: Optional[Exception] = None):
    @asynccontextmanager
    async def factory(cfg, credential):
        if fail_on_enter is not None:
            raise fail_on_enter
        if credential is not None:
            await session.add_cookies([credential.to_cookie()])
        try:
            yield session
        finally:
            session.closed = True

    return factory


class FakeNotifier:
    def __init__(self, code: Optional[str] = None) -> None:
        self.code = code
        self.messages: list[str] = []
        self.attachments: list[tuple[Optional[str], str]] = []
        self.code_requests: list[tuple[float, Optional[datetime]]] = []

    async def announce(self, message: str) -> None:
        self.messages.append(message)

    async def attach(self, image_path: Optional[str], caption: str = "") -> None:
        self.attachments.append((image_path, caption))

    async def await_code(self, timeout_seconds: float, *, not_before: Optional[datetime] = None) -> Optional[str]:
        self.code_requests.append((timeout_seconds, not_before))
        return self.code


class FakeSecretStore:
    def __init__(self, result: bool = True) -> None:
        self.result = result
        self.calls: list[tuple[str, str]] = []

    async def rotate(self, name: str, plaintext: str) -> bool:
        self.calls.append((name, plaintext))
        return self.result


def console_site(session: FakeBrowserSession, *, plan_renders: bool = True) -> FakeBrowserSession:
    """
    Common wiring: sign-in page with a GitHub button, consent click lands on the dashboard, plan page text.
    """
    session.click_routes[SEL.consent_button] = DASHBOARD
    session.visible[GH_AUTHORIZE] = {SEL.consent_button}
    if plan_renders:
        session.texts[PLAN] = {"Credits Available"}
        session.snippets = ["Credits Available\n$4.99\n$0.01/5 used", "Credits Available", "$4.99", "$0.01/5 used"]
    return session
