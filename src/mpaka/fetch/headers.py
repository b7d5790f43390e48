from __future__ import annotations

import random
import re
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence

from mpaka.fetch.models import BrowserFamily, Profile


@dataclass(frozen=True, slots=True)
class UserAgentEntry:
    family: BrowserFamily
    user_agent: str
    platform: str


USER_AGENTS: Sequence[UserAgentEntry] = (
    # Chrome Windows
    UserAgentEntry(
        BrowserFamily.CHROME,
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
        "Windows",
    ),
    UserAgentEntry(
        BrowserFamily.CHROME,
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/130.0.0.0 Safari/537.36",
        "Windows",
    ),
    UserAgentEntry(
        BrowserFamily.CHROME,
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/129.0.0.0 Safari/537.36",
        "Windows",
    ),
    # Firefox Windows
    UserAgentEntry(
        BrowserFamily.FIREFOX,
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:132.0) Gecko/20100101 Firefox/132.0",
        "Windows",
    ),
    UserAgentEntry(
        BrowserFamily.FIREFOX,
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:131.0) Gecko/20100101 Firefox/131.0",
        "Windows",
    ),
    # Chrome Mac
    UserAgentEntry(
        BrowserFamily.CHROME,
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
        "macOS",
    ),
    UserAgentEntry(
        BrowserFamily.CHROME,
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/130.0.0.0 Safari/537.36",
        "macOS",
    ),
    # Firefox Mac
    UserAgentEntry(
        BrowserFamily.FIREFOX,
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:132.0) Gecko/20100101 Firefox/132.0",
        "macOS",
    ),
    # Safari Mac
    UserAgentEntry(
        BrowserFamily.SAFARI,
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/18.1.1 Safari/605.1.15",
        "macOS",
    ),
    # Edge Windows
    UserAgentEntry(
        BrowserFamily.EDGE,
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36 Edg/131.0.0.0",
        "Windows",
    ),
)

_BASE_HEADERS: Sequence[tuple[str, str]] = (
    (
        "Accept",
        "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,image/apng,*/*;q=0.8,"
        "application/signed-exchange;v=b3;q=0.7",
    ),
    ("Accept-Language", "en-US,en;q=0.9,fr;q=0.8"),
    ("Accept-Encoding", "gzip, deflate, br"),
    ("DNT", "1"),
    ("Connection", "keep-alive"),
    ("Upgrade-Insecure-Requests", "1"),
)

_MAJOR_VERSION_RE = re.compile(r"(?:Chrome|Edg)/(\d+)")


class ProfileSelector(Protocol):
    def choose(self, pool: Sequence[UserAgentEntry]) -> UserAgentEntry:
        ...


class RandomProfileSelector:
    """Uniform choice backed by the OS entropy source, so no state is shared between callers."""

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self._rng = rng or random.SystemRandom()

    def choose(self, pool: Sequence[UserAgentEntry]) -> UserAgentEntry:
        return self._rng.choice(pool)


def _client_hint_brands(entry: UserAgentEntry) -> str:
    match = _MAJOR_VERSION_RE.search(entry.user_agent)
    major = match.group(1) if match else "131"
    brand = "Microsoft Edge" if entry.family is BrowserFamily.EDGE else "Google Chrome"
    return f'"{brand}";v="{major}", "Chromium";v="{major}", "Not_A Brand";v="24"'


def build_profile(entry: UserAgentEntry) -> Profile:
    headers: list[tuple[str, str]] = [("User-Agent", entry.user_agent), *_BASE_HEADERS]

    if entry.family is not BrowserFamily.FIREFOX:
        site = "same-origin" if entry.family is BrowserFamily.SAFARI else "none"
        headers.extend(
            [
                ("Sec-Fetch-Dest", "document"),
                ("Sec-Fetch-Mode", "navigate"),
                ("Sec-Fetch-Site", site),
                ("Sec-Fetch-User", "?1"),
            ]
        )

    headers.append(("Cache-Control", "max-age=0"))

    if entry.family.is_chromium:
        headers.extend(
            [
                ("sec-ch-ua", _client_hint_brands(entry)),
                ("sec-ch-ua-mobile", "?0"),
                ("sec-ch-ua-platform", f'"{entry.platform}"'),
            ]
        )

    return Profile(family=entry.family, user_agent=entry.user_agent, header_items=tuple(headers))


class HeaderProfile:
    def __init__(
        self,
        *,
        selector: Optional[ProfileSelector] = None,
        pool: Sequence[UserAgentEntry] = USER_AGENTS,
    ) -> None:
        if not pool:
            raise ValueError("User agent pool must not be empty")
        self._selector = selector or RandomProfileSelector()
        self._pool = tuple(pool)

    def next(self) -> Profile:
        return build_profile(self._selector.choose(self._pool))
