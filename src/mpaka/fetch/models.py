from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple


class FetchStrategy(str, Enum):
    DIRECT = "direct"
    RENDER = "render"


class FetchOutcome(str, Enum):
    SUCCESS = "success"
    TIMEOUT = "timeout"
    HTTP_ERROR = "http_error"
    NETWORK_ERROR = "network_error"
    REDIRECT_LOOP = "redirect_loop"


class BrowserFamily(str, Enum):
    CHROME = "chrome"
    EDGE = "edge"
    FIREFOX = "firefox"
    SAFARI = "safari"

    @property
    def is_chromium(self) -> bool:
        return self in (BrowserFamily.CHROME, BrowserFamily.EDGE)


@dataclass(frozen=True, slots=True)
class Profile:
    """A coherent browser fingerprint: user agent plus the headers that browser sends."""

    family: BrowserFamily
    user_agent: str
    header_items: Tuple[Tuple[str, str], ...]

    def as_headers(self) -> Dict[str, str]:
        return dict(self.header_items)

    def header(self, name: str) -> Optional[str]:
        wanted = name.lower()
        for key, value in self.header_items:
            if key.lower() == wanted:
                return value
        return None


@dataclass(frozen=True, slots=True)
class FetchAttempt:
    strategy: FetchStrategy
    url: str
    outcome: FetchOutcome
    elapsed_seconds: float
    profile: Optional[Profile] = None
    status: Optional[int] = None
    error: str = ""


@dataclass(frozen=True, slots=True)
class DirectResponse:
    body: str
    final_url: str
    status: int
    redirect_chain: Tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class FetchResult:
    html: str
    final_url: str
    strategy: FetchStrategy
    attempts: Tuple[FetchAttempt, ...] = field(default_factory=tuple)
