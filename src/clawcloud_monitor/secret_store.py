from __future__ import annotations

import logging
from typing import Optional

import httpx
from nacl.encoding import Base64Encoder
from nacl.public import PublicKey, SealedBox

from .config import SecretsConfig
from .errors import SecretRotationFailure
from .models import SealedSecret


logger = logging.getLogger(__name__)


def seal(public_key_b64: str, plaintext: str, *, key_id: str = "") -> SealedSecret:
    """
    Encrypt `plaintext` for the holder of the private half of `public_key_b64` (libsodium sealed box).
    """
    box = SealedBox(PublicKey(public_key_b64.encode("ascii"), encoder=Base64Encoder))
    encrypted = box.encrypt(plaintext.encode("utf-8"), encoder=Base64Encoder)
    return SealedSecret(encrypted_value=encrypted.decode("ascii"), key_id=key_id)


class GitHubSecretStore:
    """
    Publishes a value as a GitHub Actions repository secret.

    `rotate()` never raises: a missed rotation only costs the next run its cached session.
    """

    def __init__(self, cfg: SecretsConfig, *, client: Optional[httpx.AsyncClient] = None) -> None:
        self._token = cfg.token
        self._repository = (cfg.repository or "").strip().strip("/")
        self._client = client or httpx.AsyncClient(base_url=cfg.api_base.rstrip("/"), timeout=30)

    @property
    def configured(self) -> bool:
        return bool(self._token and self._repository)

    async def aclose(self) -> None:
        await self._client.aclose()

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"token {self._token}",
            "Accept": "application/vnd.github+json",
        }

    async def _public_key(self) -> tuple[str, str]:
        resp = await self._client.get(
            f"/repos/{self._repository}/actions/secrets/public-key",
            headers=self._headers(),
        )
        resp.raise_for_status()
        data = resp.json()
        key_id = str(data.get("key_id") or "")
        key = str(data.get("key") or "")
        if not key_id or not key:
            raise SecretRotationFailure("Secrets API returned no public key")
        return key_id, key

    async def _publish(self, name: str, sealed: SealedSecret) -> None:
        resp = await self._client.put(
            f"/repos/{self._repository}/actions/secrets/{name}",
            headers=self._headers(),
            json=sealed.to_payload(),
        )
        if resp.status_code not in (201, 204):
            # 422 here usually means the key id went stale between fetch and publish.
            raise SecretRotationFailure(f"Secrets API rejected {name} (HTTP {resp.status_code})")

    async def rotate(self, name: str, plaintext: str) -> bool:
        if not self.configured:
            logger.info("Secret store not configured (REPO_TOKEN/GITHUB_REPOSITORY unset); skipping %s.", name)
            return False
        try:
            key_id, key = await self._public_key()
            sealed = seal(key, plaintext, key_id=key_id)
            await self._publish(name, sealed)
        except (httpx.HTTPError, SecretRotationFailure, ValueError) as e:
            logger.warning("Secret not rotated (name=%s): %s", name, e)
            return False
        logger.info("Secret %s updated in %s.", name, self._repository)
        return True
