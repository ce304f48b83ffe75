from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


class CreativeSyncError(RuntimeError):
    """Base error, optionally tagged with the creative it concerns."""

    def __init__(
        self,
        message: str,
        *,
        variant: Optional[int] = None,
        aspect_ratio: Optional[Any] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.variant = variant
        self.aspect_ratio = aspect_ratio

    def __str__(self) -> str:
        tags = []
        if self.variant is not None:
            tags.append(f"V{self.variant}")
        if self.aspect_ratio is not None:
            tags.append(str(getattr(self.aspect_ratio, "value", self.aspect_ratio)))
        if tags:
            return f"[{' '.join(tags)}] {self.message}"
        return self.message


class ValidationError(CreativeSyncError):
    """Malformed or oversized asset. Never sent over the network."""


class TransportError(CreativeSyncError):
    """Download or upload still failing after the retry budget was spent."""


class NotFoundError(CreativeSyncError):
    """No package folder, or no matching creatives inside it."""


class PlatformRejectionError(CreativeSyncError):
    """The ad platform answered with a structured error body."""

    def __init__(
        self,
        message: str,
        *,
        code: Any = "unknown",
        error_type: str = "unknown",
        status_code: Optional[int] = None,
        endpoint: str = "",
        error_subcode: Any = None,
        fbtrace_id: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.error_type = error_type
        self.status_code = status_code
        self.endpoint = endpoint
        self.error_subcode = error_subcode
        self.fbtrace_id = fbtrace_id
        self.payload = payload or {}

    @classmethod
    def from_response_body(
        cls,
        body: Dict[str, Any],
        *,
        status_code: Optional[int] = None,
        endpoint: str = "",
        reason: str = "",
    ) -> "PlatformRejectionError":
        err = body.get("error") if isinstance(body, dict) else None
        if not isinstance(err, dict):
            err = {}
        return cls(
            err.get("message") or reason or f"HTTP {status_code}",
            code=err.get("code", "unknown"),
            error_type=err.get("type", "unknown"),
            status_code=status_code,
            endpoint=endpoint,
            error_subcode=err.get("error_subcode"),
            fbtrace_id=err.get("fbtrace_id"),
            payload=body if isinstance(body, dict) else {},
        )

    def __str__(self) -> str:
        return f"Meta API Error ({self.code}/{self.error_type}): {super().__str__()}"


class PlatformTimeoutError(CreativeSyncError, TimeoutError):
    """A single request exceeded its time bound."""

    def __init__(self, endpoint: str, timeout: float) -> None:
        super().__init__(f"Meta API timeout after {timeout:g}s: {endpoint}")
        self.endpoint = endpoint
        self.timeout = timeout


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 60.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay < 0 or self.multiplier < 1:
            raise ValueError("base_delay must be >= 0 and multiplier >= 1")

    def delay_for(self, attempt: int) -> float:
        """Delay after the given 0-based failed attempt."""
        return min(self.base_delay * (self.multiplier ** attempt), self.max_delay)


DOWNLOAD_RETRY = RetryPolicy(max_attempts=3, base_delay=2.0)
IMAGE_UPLOAD_RETRY = RetryPolicy(max_attempts=3, base_delay=2.0)
VIDEO_UPLOAD_RETRY = RetryPolicy(max_attempts=3, base_delay=3.0)


class RetryHandler:
    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
        retryable_exceptions: tuple = (Exception,),
    ) -> None:
        self.policy = policy or RetryPolicy()
        self.sleep = sleep
        self.retryable_exceptions = retryable_exceptions

    def execute(self, func: Callable[..., T], *args, context: str = "operation", **kwargs) -> T:
        last_exception: Optional[BaseException] = None
        for attempt in range(self.policy.max_attempts):
            try:
                return func(*args, **kwargs)
            except self.retryable_exceptions as e:
                last_exception = e
                if attempt < self.policy.max_attempts - 1:
                    delay = self.policy.delay_for(attempt)
                    logger.warning(
                        f"[Retry] {context} - attempt {attempt + 1}/{self.policy.max_attempts} "
                        f"failed, retrying in {delay:.2f}s: {e}"
                    )
                    self.sleep(delay)
                else:
                    logger.error(f"[Retry] {context} - max attempts ({self.policy.max_attempts}) exceeded: {e}")
        raise last_exception  # type: ignore[misc]


def with_retry(
    func: Callable[..., T],
    *args,
    policy: Optional[RetryPolicy] = None,
    sleep: Callable[[float], None] = time.sleep,
    context: str = "operation",
    **kwargs,
) -> T:
    return RetryHandler(policy, sleep=sleep).execute(func, *args, context=context, **kwargs)


__all__ = [
    "CreativeSyncError",
    "ValidationError",
    "TransportError",
    "NotFoundError",
    "PlatformRejectionError",
    "PlatformTimeoutError",
    "RetryPolicy",
    "RetryHandler",
    "with_retry",
    "DOWNLOAD_RETRY",
    "IMAGE_UPLOAD_RETRY",
    "VIDEO_UPLOAD_RETRY",
]
