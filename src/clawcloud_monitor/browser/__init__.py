from .artifacts import ArtifactRecorder
from .session import BrowserSession, PlaywrightSession, open_browser

__all__ = ["ArtifactRecorder", "BrowserSession", "PlaywrightSession", "open_browser"]
