"""Resilient page retrieval: direct requests with a browser-render fallback."""

from mpaka.fetch.errors import (
    ExhaustedError,
    FetchError,
    FetchTimeoutError,
    HttpStatusError,
    NetworkError,
    RedirectLoopError,
    RenderError,
    RetryExhaustedError,
)
from mpaka.fetch.models import FetchAttempt, FetchOutcome, FetchResult, FetchStrategy, Profile

__all__ = [
    "ExhaustedError",
    "FetchAttempt",
    "FetchError",
    "FetchOutcome",
    "FetchResult",
    "FetchStrategy",
    "FetchTimeoutError",
    "HttpStatusError",
    "NetworkError",
    "Profile",
    "RedirectLoopError",
    "RenderError",
    "RetryExhaustedError",
]
