from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from clawcloud_monitor.config import DEFAULT_CONSOLE_URL, _derive_target_domain, load_config


_ENV_VARS = (
    "CLAW_CLOUD_URL",
    "TWO_FACTOR_WAIT",
    "GH_USERNAME",
    "GH_PASSWORD",
    "GH_SESSION",
    "TG_BOT_TOKEN",
    "TG_CHAT_ID",
    "REPO_TOKEN",
    "GITHUB_REPOSITORY",
    "HEADLESS",
    "ARTIFACT_DIR",
    "REPORT_TIMEZONE",
    "LOG_LEVEL",
    "LOG_FILE",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def _write(tmp_path: Path, name: str, text: str) -> Path:
    p = tmp_path / name
    p.write_text(text, encoding="utf-8")
    return p


def test_derive_target_domain() -> None:
    assert _derive_target_domain("https://ap-southeast-1.run.claw.cloud") == "claw.cloud"
    assert _derive_target_domain("https://console.example.com:8443/") == "example.com"
    assert _derive_target_domain("localhost") == "localhost"


def test_defaults_without_env_or_file(tmp_path: Path) -> None:
    cfg = load_config(tmp_path / "missing.yaml")

    assert cfg.console.base_url == DEFAULT_CONSOLE_URL
    assert cfg.console.signin_url == f"{DEFAULT_CONSOLE_URL}/signin"
    assert cfg.console.plan_url == f"{DEFAULT_CONSOLE_URL}/plan"
    assert cfg.console.target_domain == "claw.cloud"
    assert cfg.challenge.wait_seconds == 120
    assert cfg.provider.has_password_login is False
    assert cfg.browser.headless is True
    assert cfg.secrets.secret_name == "GH_SESSION"


def test_env_values_are_read(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CLAW_CLOUD_URL", "https://us-west-1.run.claw.cloud/")
    monkeypatch.setenv("TWO_FACTOR_WAIT", "300")
    monkeypatch.setenv("GH_USERNAME", "octocat")
    monkeypatch.setenv("GH_PASSWORD", "hunter2")
    monkeypatch.setenv("GH_SESSION", "cached")
    monkeypatch.setenv("TG_CHAT_ID", "42")
    monkeypatch.setenv("GITHUB_REPOSITORY", "octocat/monitor")
    monkeypatch.setenv("HEADLESS", "false")

    cfg = load_config(None)

    assert cfg.console.base_url == "https://us-west-1.run.claw.cloud"
    assert cfg.challenge.wait_seconds == 300
    assert cfg.provider.has_password_login is True
    assert cfg.provider.session == "cached"
    assert cfg.telegram.chat_id == "42"
    assert cfg.secrets.repository == "octocat/monitor"
    assert cfg.browser.headless is False


def test_invalid_wait_falls_back_to_default(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TWO_FACTOR_WAIT", "two minutes")
    assert load_config(None).challenge.wait_seconds == 120


def test_secrets_are_hidden_from_repr(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GH_PASSWORD", "hunter2")
    monkeypatch.setenv("GH_SESSION", "session-value")
    monkeypatch.setenv("TG_BOT_TOKEN", "bot-token")
    monkeypatch.setenv("REPO_TOKEN", "repo-token")

    text = repr(load_config(None))

    for secret in ("hunter2", "session-value", "bot-token", "repo-token"):
        assert secret not in text


def test_yaml_overrides_env_with_expansion(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GH_USERNAME", "from-env")
    monkeypatch.setenv("MY_CHAT", "777")
    cfg_path = _write(
        tmp_path,
        "config.yaml",
        """
console:
  base_url: "https://eu-central-1.run.claw.cloud"
telegram:
  chat_id: "${MY_CHAT}"
browser:
  redirect_timeout_ms: 5000
""",
    )

    cfg = load_config(cfg_path)

    assert cfg.console.base_url == "https://eu-central-1.run.claw.cloud"
    assert cfg.telegram.chat_id == "777"
    assert cfg.browser.redirect_timeout_ms == 5000
    # Untouched keys still come from the environment.
    assert cfg.provider.username == "from-env"


def test_base_url_must_be_absolute(tmp_path: Path) -> None:
    cfg_path = _write(tmp_path, "config.yaml", "console:\n  base_url: \"run.claw.cloud\"\n")
    with pytest.raises(ValidationError):
        _ = load_config(cfg_path)
