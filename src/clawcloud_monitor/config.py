from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Union
from urllib.parse import urlparse

import yaml
from pydantic import BaseModel, Field, model_validator


_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z0-9_]+)\}")

DEFAULT_CONSOLE_URL = "https://ap-southeast-1.run.claw.cloud"


def _expand_env_vars(value: object) -> object:
    if isinstance(value, str):
        def repl(match: re.Match[str]) -> str:
            var = match.group(1)
            return os.getenv(var, "")

        return _ENV_VAR_PATTERN.sub(repl, value)
    if isinstance(value, list):
        return [_expand_env_vars(v) for v in value]
    if isinstance(value, dict):
        return {k: _expand_env_vars(v) for k, v in value.items()}
    return value


def _derive_target_domain(base_url: str) -> str:
    parsed = urlparse(base_url)
    host = (parsed.netloc or parsed.path or "").strip().lower()
    if ":" in host:
        host = host.split(":", 1)[0]
    # e.g. "ap-southeast-1.run.claw.cloud" -> "claw.cloud"
    labels = [p for p in host.split(".") if p]
    if len(labels) >= 2:
        return ".".join(labels[-2:])
    return host


def _env_bool(name: str, default: bool = False) -> bool:
    raw = (os.getenv(name, "") or "").strip().lower()
    if not raw:
        return bool(default)
    return raw in {"1", "true", "t", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name, "") or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _deep_merge(base: object, override: object) -> object:
    if isinstance(base, dict) and isinstance(override, dict):
        out = dict(base)
        for k, v in override.items():
            if k in out:
                out[k] = _deep_merge(out[k], v)
            else:
                out[k] = v
        return out
    return override


def _default_config_from_env() -> dict:
    """
    Env-only config: the monitor normally runs from CI where everything arrives as environment variables.

    A YAML file (CONFIG_FILE) may override any of these keys.
    """
    return {
        "console": {
            "base_url": os.getenv("CLAW_CLOUD_URL", DEFAULT_CONSOLE_URL),
        },
        "provider": {
            "username": os.getenv("GH_USERNAME", ""),
            "password": os.getenv("GH_PASSWORD", ""),
            "session": os.getenv("GH_SESSION", ""),
        },
        "challenge": {
            "wait_seconds": _env_int("TWO_FACTOR_WAIT", 120),
        },
        "telegram": {
            "bot_token": os.getenv("TG_BOT_TOKEN", ""),
            "chat_id": os.getenv("TG_CHAT_ID", ""),
        },
        "secrets": {
            "token": os.getenv("REPO_TOKEN", ""),
            "repository": os.getenv("GITHUB_REPOSITORY", ""),
        },
        "browser": {
            "headless": _env_bool("HEADLESS", default=True),
            "artifact_dir": os.getenv("ARTIFACT_DIR", "data/artifacts"),
        },
        "report": {
            "timezone": os.getenv("REPORT_TIMEZONE", "Asia/Shanghai"),
        },
        "logging": {
            "level": os.getenv("LOG_LEVEL", "INFO"),
            "file_path": os.getenv("LOG_FILE", ""),
        },
    }


class ConsoleConfig(BaseModel):
    """
    The ClawCloud console (relying site).

    `target_domain` is derived from `base_url` when left empty; a browser location whose host ends with it
    counts as "back on the console".
    """

    base_url: str = DEFAULT_CONSOLE_URL
    signin_path: str = "/signin"
    plan_path: str = "/plan"
    target_domain: str = ""

    @model_validator(mode="after")
    def _normalize(self) -> "ConsoleConfig":
        base_url = (self.base_url or "").strip().rstrip("/")
        parsed = urlparse(base_url)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError(f"console.base_url must be a full URL like '{DEFAULT_CONSOLE_URL}'")
        self.base_url = base_url
        if not self.target_domain:
            self.target_domain = _derive_target_domain(base_url)
        self.target_domain = self.target_domain.strip().lower()
        return self

    @property
    def signin_url(self) -> str:
        return f"{self.base_url}{self.signin_path}"

    @property
    def plan_url(self) -> str:
        return f"{self.base_url}{self.plan_path}"


class ProviderConfig(BaseModel):
    # GitHub account used for "Sign in with GitHub".
    username: str = ""
    password: str = Field(default="", repr=False)
    # Cached `user_session` cookie from the previous run (GH_SESSION).
    session: str = Field(default="", repr=False)
    session_cookie_name: str = "user_session"
    session_cookie_domain: str = "github.com"

    @property
    def has_password_login(self) -> bool:
        return bool(self.username and self.password)


class ChallengeConfig(BaseModel):
    wait_seconds: int = Field(default=120, ge=1)


class TelegramConfig(BaseModel):
    bot_token: str = Field(default="", repr=False)
    chat_id: str = ""
    api_base: str = "https://api.telegram.org"


class SecretsConfig(BaseModel):
    token: str = Field(default="", repr=False)
    repository: str = ""
    secret_name: str = "GH_SESSION"
    api_base: str = "https://api.github.com"


class BrowserConfig(BaseModel):
    headless: bool = True
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/120.0.0.0 Safari/537.36"
    )
    artifact_dir: str = "data/artifacts"
    navigation_timeout_ms: int = 60_000
    redirect_timeout_ms: int = 40_000
    balance_timeout_ms: int = 20_000


class ReportConfig(BaseModel):
    timezone: str = "Asia/Shanghai"
    recent_log_lines: int = 6


class LoggingConfig(BaseModel):
    level: str = "INFO"
    file_path: str = ""


class AppConfig(BaseModel):
    console: ConsoleConfig = ConsoleConfig()
    provider: ProviderConfig = ProviderConfig()
    challenge: ChallengeConfig = ChallengeConfig()
    telegram: TelegramConfig = TelegramConfig()
    secrets: SecretsConfig = SecretsConfig()
    browser: BrowserConfig = BrowserConfig()
    report: ReportConfig = ReportConfig()
    logging: LoggingConfig = LoggingConfig()


def load_config(path: Union[str, Path, None] = None) -> AppConfig:
    raw: dict = {}
    if path:
        p = Path(path)
        if p.exists():
            raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
            raw = _expand_env_vars(raw)  # supports ${ENV_VAR} in YAML

    merged = _deep_merge(_default_config_from_env(), raw)
    return AppConfig.model_validate(merged)
