from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Optional

from pydantic import BaseModel, Field


CHALLENGE_CODE_PATTERN = r"\d{6,8}"


def _mask(value: str) -> str:
    return f"{value[:2]}****{value[-2:]}" if len(value) >= 8 else "****"


@dataclass(frozen=True)
class SessionCredential:
    """
    GitHub `user_session` cookie: lets the next run skip the interactive login.
    """

    value: str = field(repr=False)
    name: str = "user_session"
    domain: str = "github.com"
    path: str = "/"

    def __repr__(self) -> str:
        return f"SessionCredential(name={self.name!r}, domain={self.domain!r}, value={_mask(self.value)!r})"

    def to_cookie(self) -> dict[str, Any]:
        return {"name": self.name, "value": self.value, "domain": self.domain, "path": self.path}

    @classmethod
    def from_cookies(
        cls,
        cookies: Iterable[dict[str, Any]],
        *,
        name: str = "user_session",
        domain: str = "github.com",
    ) -> Optional["SessionCredential"]:
        for c in cookies:
            if c.get("name") != name:
                continue
            # Playwright reports host-only cookies as "github.com" and domain cookies as ".github.com".
            cookie_domain = str(c.get("domain") or "").lstrip(".").lower()
            if cookie_domain != domain.lower():
                continue
            value = str(c.get("value") or "")
            if not value:
                continue
            return cls(value=value, name=name, domain=domain, path=str(c.get("path") or "/"))
        return None


@dataclass(frozen=True)
class ChallengeRequest:
    """
    One outstanding second-factor prompt. Never reused once resolved or expired.
    """

    issued_at: datetime
    deadline: datetime
    pattern: str = CHALLENGE_CODE_PATTERN

    @classmethod
    def issue(cls, timeout_seconds: int, *, now: Optional[datetime] = None) -> "ChallengeRequest":
        issued = now or datetime.now(timezone.utc)
        return cls(issued_at=issued, deadline=issued + timedelta(seconds=timeout_seconds))

    @property
    def timeout_seconds(self) -> float:
        return max(0.0, (self.deadline - self.issued_at).total_seconds())

    def accepts(self, code: str) -> bool:
        return bool(re.fullmatch(self.pattern, code or ""))


@dataclass(frozen=True)
class SealedSecret:
    # Base64 ciphertext; decryptable only by the holder of the repository's private key.
    encrypted_value: str = field(repr=False)
    key_id: str = ""

    def to_payload(self) -> dict[str, str]:
        return {"encrypted_value": self.encrypted_value, "key_id": self.key_id}


class RunOutcome(BaseModel):
    ok: bool
    balance: str = ""
    artifact: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    auth_state: Optional[str] = None
    secret_rotated: bool = False
    finished_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
