from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


# -------------------------
# Error taxonomy
# -------------------------
class DeploymentError(Exception):
    """Base class for every failure the deployment pipeline reports."""

    kind = "deployment_error"

    def __init__(
        self,
        message: str,
        *,
        code: Optional[int] = None,
        error_type: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.error_type = error_type
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"error": self.message, "kind": self.kind}
        if self.code is not None:
            out["code"] = self.code
        if self.error_type:
            out["type"] = self.error_type
        if self.details:
            out["details"] = dict(self.details)
        return out


class RequestInvalid(DeploymentError):
    kind = "request_invalid"


class AccessDenied(RequestInvalid):
    kind = "access_denied"


class PrerequisiteUnavailable(DeploymentError):
    kind = "prerequisite_unavailable"


class ValidationFailed(DeploymentError):
    kind = "validation_failed"


class UpstreamRejected(DeploymentError):
    kind = "upstream_rejected"


class VerificationFailed(DeploymentError):
    kind = "verification_failed"


class MetaApiError(RuntimeError):
    """Structured Graph API error: code, type, message (and subcode when Meta sends one)."""

    def __init__(
        self,
        message: str,
        *,
        code: Optional[int] = None,
        error_type: Optional[str] = None,
        subcode: Optional[int] = None,
        http_status: Optional[int] = None,
        endpoint: str = "",
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.error_type = error_type
        self.subcode = subcode
        self.http_status = http_status
        self.endpoint = endpoint

    @classmethod
    def from_response(cls, payload: Any, *, http_status: Optional[int] = None, endpoint: str = "") -> "MetaApiError":
        err = payload.get("error") if isinstance(payload, dict) else None
        if not isinstance(err, dict):
            err = {"message": str(payload)}
        return cls(
            str(err.get("message") or f"Graph API error ({http_status})"),
            code=err.get("code"),
            error_type=err.get("type"),
            subcode=err.get("error_subcode"),
            http_status=http_status,
            endpoint=endpoint,
        )

    def as_upstream(self, prefix: str) -> UpstreamRejected:
        details: Dict[str, Any] = {}
        if self.subcode is not None:
            details["error_subcode"] = self.subcode
        if self.endpoint:
            details["endpoint"] = self.endpoint
        return UpstreamRejected(
            f"{prefix}: {self.message}",
            code=self.code,
            error_type=self.error_type,
            details=details,
        )

    def __str__(self) -> str:
        parts = [self.message]
        if self.code is not None:
            parts.append(f"code={self.code}")
        if self.error_type:
            parts.append(f"type={self.error_type}")
        return " ".join(parts)


# Rate-limit and throttling codes Meta documents as transient.
RATE_LIMIT_CODES = (4, 17, 32, 613)


def is_retriable(exc: BaseException) -> bool:
    if isinstance(exc, MetaApiError):
        if exc.code in RATE_LIMIT_CODES:
            return True
        if exc.code is not None and 80000 <= exc.code <= 80014:
            return True
        return isinstance(exc.http_status, int) and 500 <= exc.http_status < 600
    return False


# -------------------------
# Retry
# -------------------------
@dataclass
class RetryConfig:
    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 60.0
    exponential_base: float = 2.0
    jitter: bool = True
    should_retry: Callable[[BaseException], bool] = is_retriable


class RetryHandler:
    def __init__(self, config: Optional[RetryConfig] = None, sleep: Callable[[float], None] = time.sleep) -> None:
        self.config = config or RetryConfig()
        self._sleep = sleep

    def execute(self, func: Callable[..., T], *args, **kwargs) -> T:
        for attempt in range(self.config.max_retries + 1):
            try:
                return func(*args, **kwargs)
            except Exception as e:
                if not self.config.should_retry(e) or attempt >= self.config.max_retries:
                    if attempt:
                        logger.error(f"Giving up after {attempt + 1} attempts: {e}")
                    raise
                delay = self._calculate_delay(attempt)
                logger.warning(
                    f"Retry attempt {attempt + 1}/{self.config.max_retries} "
                    f"after {delay:.2f}s: {e}"
                )
                self._sleep(delay)
        raise RuntimeError("Retry loop exited without result")

    def _calculate_delay(self, attempt: int) -> float:
        delay = self.config.initial_delay * (
            self.config.exponential_base ** attempt
        )
        delay = min(delay, self.config.max_delay)
        if self.config.jitter:
            delay = delay * (0.5 + random.random() * 0.5)
        return delay


__all__ = [
    "DeploymentError",
    "RequestInvalid",
    "AccessDenied",
    "PrerequisiteUnavailable",
    "ValidationFailed",
    "UpstreamRejected",
    "VerificationFailed",
    "MetaApiError",
    "RATE_LIMIT_CODES",
    "is_retriable",
    "RetryConfig",
    "RetryHandler",
]
