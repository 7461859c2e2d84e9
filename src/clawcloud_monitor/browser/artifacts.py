from __future__ import annotations

import logging
import re
import time
from pathlib import Path
from typing import Optional

from .session import BrowserSession


logger = logging.getLogger(__name__)


class ArtifactRecorder:
    """
    Full-page screenshots for the operator (2FA prompt, balance errors, final state).

    Capturing is best-effort: a failed screenshot returns None and never interrupts the run.
    """

    def __init__(self, artifact_dir: str) -> None:
        self.artifact_dir = Path(artifact_dir)
        self._captured: list[str] = []

    @property
    def last(self) -> Optional[str]:
        return self._captured[-1] if self._captured else None

    async def capture(self, session: BrowserSession, name: str) -> Optional[str]:
        safe = re.sub(r"[^a-zA-Z0-9_-]+", "_", name).strip("_")[:60] or "shot"
        path = self.artifact_dir / f"{int(time.time() * 1000)}_{safe}.png"
        try:
            self.artifact_dir.mkdir(parents=True, exist_ok=True)
            await session.screenshot(str(path))
        except Exception:
            logger.debug("Failed to save screenshot (name=%s).", name, exc_info=True)
            return None
        self._captured.append(str(path))
        return str(path)
