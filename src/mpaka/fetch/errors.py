from __future__ import annotations

from typing import Optional, Sequence, Tuple

from mpaka.fetch.models import FetchAttempt, FetchOutcome

BLOCKED_STATUS = 403


class FetchError(Exception):
    """Base class for every failure of the fetch pipeline."""

    outcome: FetchOutcome = FetchOutcome.NETWORK_ERROR

    def __init__(self, message: str, *, url: str) -> None:
        super().__init__(message)
        self.url = url

    @property
    def status(self) -> Optional[int]:
        return None


class FetchTimeoutError(FetchError):
    outcome = FetchOutcome.TIMEOUT


class NetworkError(FetchError):
    outcome = FetchOutcome.NETWORK_ERROR


class HttpStatusError(FetchError):
    outcome = FetchOutcome.HTTP_ERROR

    def __init__(self, status: int, *, url: str, reason: str = "") -> None:
        message = f"HTTP {status}: {reason}" if reason else f"HTTP {status}"
        super().__init__(message, url=url)
        self.code = status
        self.reason = reason

    @property
    def status(self) -> Optional[int]:
        return self.code

    @property
    def retryable(self) -> bool:
        # Only a likely bot block is worth another fingerprint.
        return self.code == BLOCKED_STATUS


class RedirectLoopError(FetchError):
    outcome = FetchOutcome.REDIRECT_LOOP

    def __init__(self, chain: Sequence[str], *, url: str) -> None:
        super().__init__(f"Too many redirects after {len(chain) - 1} hops", url=url)
        self.chain: Tuple[str, ...] = tuple(chain)


class RenderError(FetchError):
    def __init__(
        self,
        message: str,
        *,
        url: str,
        engine: str,
        outcome: FetchOutcome = FetchOutcome.NETWORK_ERROR,
        status: Optional[int] = None,
    ) -> None:
        super().__init__(message, url=url)
        self.engine = engine
        self.outcome = outcome
        self._status = status

    @property
    def status(self) -> Optional[int]:
        return self._status


class RetryExhaustedError(FetchError):
    """Raised by the retry stage once it stops; wraps the last attempt's error."""

    def __init__(self, last_error: FetchError, attempts: Sequence[FetchAttempt]) -> None:
        super().__init__(
            f"Direct fetch failed after {len(attempts)} attempt(s): {last_error}",
            url=last_error.url,
        )
        self.last_error = last_error
        self.attempts: Tuple[FetchAttempt, ...] = tuple(attempts)
        self.outcome = last_error.outcome

    @property
    def status(self) -> Optional[int]:
        return self.last_error.status


class ExhaustedError(FetchError):
    """Both the direct stage and the render fallback failed."""

    def __init__(
        self,
        *,
        url: str,
        direct_error: FetchError,
        render_error: FetchError,
        attempts: Sequence[FetchAttempt] = (),
    ) -> None:
        super().__init__(
            f"All fetch strategies failed. direct: {direct_error}; render: {render_error}",
            url=url,
        )
        self.direct_error = direct_error
        self.render_error = render_error
        self.attempts: Tuple[FetchAttempt, ...] = tuple(attempts)
        self.outcome = render_error.outcome

    @property
    def blocked(self) -> bool:
        return self.direct_error.status == BLOCKED_STATUS or self.render_error.status == BLOCKED_STATUS
