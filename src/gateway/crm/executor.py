"""Retry-aware request executor for the PipeRun CRM REST API.

Wraps a single outbound HTTP call with bounded retry. Failures are classified
before any retry decision is made:

- network-level failure with no response (httpx.TransportError): retryable
- 429 or any 5xx response: retryable
- any other 4xx response: permanent, surfaced immediately
- anything else (bad descriptor, programming error): propagated unchanged

Retry orchestration uses tenacity with exponential backoff, the same way the
rest of the codebase wraps external APIs, but the stop, wait and retry
predicates are derived from an explicit RetryPolicy instead of being fixed
in a decorator. When the budget runs out the last observed failure is
translated into the gateway failure taxonomy.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from src.gateway.config import Settings
from src.gateway.core.monitoring import (
    upstream_attempts_total,
    upstream_request_duration_seconds,
    upstream_retries_total,
)
from src.gateway.crm.errors import (
    AuthFailure,
    CRMError,
    InternalFailure,
    NotFoundFailure,
    RateLimited,
    UpstreamServerFailure,
    ValidationFailure,
)

logger = structlog.get_logger(__name__)

HTTP_METHODS = frozenset({"GET", "POST", "PUT", "DELETE"})

# Upstream expects the API token in a header named "token"
TOKEN_HEADER = "token"


def is_retryable_status(status: int) -> bool:
    """Default status classification: 429 and every 5xx are transient."""
    return status == 429 or status >= 500


@dataclass(frozen=True)
class RetryPolicy:
    """Immutable retry configuration, built once at startup.

    Attributes:
        max_attempts: Retries allowed after the initial attempt.
        initial_delay: Seconds to wait before the first retry.
        backoff_multiplier: Growth factor between consecutive delays.
        retryable_status: Predicate deciding which HTTP statuses are transient.
    """

    max_attempts: int = 3
    initial_delay: float = 1.0
    backoff_multiplier: float = 2.0
    retryable_status: Callable[[int], bool] = is_retryable_status

    def __post_init__(self) -> None:
        if self.max_attempts < 0:
            raise ValueError("max_attempts must be >= 0")
        if self.initial_delay < 0:
            raise ValueError("initial_delay must be >= 0")

    @classmethod
    def from_settings(cls, settings: Settings) -> RetryPolicy:
        return cls(
            max_attempts=settings.MAX_RETRIES,
            initial_delay=settings.INITIAL_RETRY_DELAY,
        )

    @property
    def total_attempts(self) -> int:
        return self.max_attempts + 1

    def delay_before(self, retry_number: int) -> float:
        """Backoff delay before retry ``retry_number`` (1 is the first retry)."""
        return self.initial_delay * self.backoff_multiplier ** (retry_number - 1)

    def is_retryable(self, exc: BaseException) -> bool:
        """Classify an attempt failure as transient (True) or permanent (False)."""
        if isinstance(exc, httpx.HTTPStatusError):
            return self.retryable_status(exc.response.status_code)
        return isinstance(exc, httpx.TransportError)


@dataclass(frozen=True)
class CallDescriptor:
    """In-memory description of one upstream HTTP call.

    The credential is excluded from repr so descriptors are safe to log.
    """

    method: str
    path: str
    credential: str = field(repr=False)
    params: Mapping[str, Any] = field(default_factory=dict)
    body: Mapping[str, Any] | None = None
    operation: str = ""


class RequestExecutor:
    """Executes CallDescriptors against the upstream CRM with bounded retry.

    Holds no per-call state: the only shared resource is the httpx client's
    connection pool, so one executor serves any number of concurrent calls.

    Args:
        client: httpx.AsyncClient configured with the upstream base URL and
            the per-attempt timeout.
        sleep: Awaitable sleep used between attempts (injectable for tests).
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: Settings) -> RequestExecutor:
        """Create an executor with its own client for the configured upstream."""
        client = httpx.AsyncClient(
            base_url=settings.PIPERUN_API_BASE_URL,
            timeout=settings.REQUEST_TIMEOUT,
            headers={"Content-Type": "application/json", "Accept": "application/json"},
        )
        return cls(client)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def execute(self, descriptor: CallDescriptor, policy: RetryPolicy) -> Any:
        """Perform the described call, retrying transient failures.

        Returns:
            The decoded upstream JSON body (``{}`` for an empty body).

        Raises:
            CRMError: A taxonomy failure describing the last observed failure.
            ValueError: The descriptor names an unsupported HTTP method.
        """
        if descriptor.method not in HTTP_METHODS:
            raise ValueError(f"Unsupported HTTP method: {descriptor.method!r}")

        retrying = AsyncRetrying(
            stop=stop_after_attempt(policy.total_attempts),
            wait=wait_exponential(
                multiplier=policy.initial_delay,
                exp_base=policy.backoff_multiplier,
            ),
            retry=retry_if_exception(policy.is_retryable),
            sleep=self._sleep,
            before_sleep=self._log_retry(descriptor, policy),
            reraise=True,
        )

        try:
            response = await retrying(self._attempt, descriptor)
        except httpx.HTTPStatusError as exc:
            failure = failure_from_response(exc.response)
            logger.warning(
                "executor.call_failed",
                operation=descriptor.operation,
                method=descriptor.method,
                path=descriptor.path,
                status_code=exc.response.status_code,
                failure=type(failure).__name__,
            )
            raise failure from exc
        except httpx.TransportError as exc:
            logger.warning(
                "executor.call_failed",
                operation=descriptor.operation,
                method=descriptor.method,
                path=descriptor.path,
                error=type(exc).__name__,
                failure="UpstreamServerFailure",
            )
            raise UpstreamServerFailure(
                f"Upstream CRM unreachable: {_describe_transport_error(exc)}",
                status_code=500,
            ) from exc

        return decode_body(response)

    async def _attempt(self, descriptor: CallDescriptor) -> httpx.Response:
        """Send one request; raise on network failure or non-2xx status."""
        outcome = "network_error"
        start_time = time.perf_counter()
        try:
            response = await self._client.request(
                descriptor.method,
                descriptor.path,
                params=dict(descriptor.params) or None,
                json=dict(descriptor.body) if descriptor.body is not None else None,
                headers={TOKEN_HEADER: descriptor.credential},
            )
            outcome = str(response.status_code)
            response.raise_for_status()
            return response
        finally:
            upstream_attempts_total.labels(
                operation=descriptor.operation,
                outcome=outcome,
            ).inc()
            upstream_request_duration_seconds.labels(
                operation=descriptor.operation,
            ).observe(time.perf_counter() - start_time)

    @staticmethod
    def _log_retry(
        descriptor: CallDescriptor,
        policy: RetryPolicy,
    ) -> Callable[[RetryCallState], None]:
        def before_sleep(retry_state: RetryCallState) -> None:
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            status_code = None
            if isinstance(exc, httpx.HTTPStatusError):
                status_code = exc.response.status_code
            upstream_retries_total.labels(operation=descriptor.operation).inc()
            logger.info(
                "executor.retry_scheduled",
                operation=descriptor.operation,
                method=descriptor.method,
                path=descriptor.path,
                attempt=retry_state.attempt_number,
                max_attempts=policy.total_attempts,
                delay_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
                status_code=status_code,
                error=type(exc).__name__ if exc else None,
            )

        return before_sleep


# ── Response Translation ─────────────────────────────────────────────────────


def decode_body(response: httpx.Response) -> Any:
    """Decode a successful upstream response; empty bodies become ``{}``."""
    if not response.content or not response.content.strip():
        return {}
    try:
        return response.json()
    except ValueError as exc:
        logger.error(
            "executor.malformed_body",
            status_code=response.status_code,
            content_type=response.headers.get("content-type"),
        )
        raise InternalFailure("Upstream CRM returned a malformed response body") from exc


def failure_from_response(response: httpx.Response) -> CRMError:
    """Map a non-2xx upstream response onto the failure taxonomy."""
    status = response.status_code
    details = _safe_body(response)
    message = _upstream_message(details, response)

    if status in (401, 403):
        # Upstream auth bodies are not echoed back to the caller
        return AuthFailure(status_code=status)
    if status == 404:
        return NotFoundFailure("Resource not found", status_code=404, details=details)
    if status == 429:
        return RateLimited(
            "Rate limited by upstream CRM; retry budget exhausted",
            status_code=429,
            details=details,
        )
    if 400 <= status < 500:
        return ValidationFailure(
            f"Upstream rejected the request: {message}",
            status_code=status,
            details=details,
        )
    if status >= 500:
        return UpstreamServerFailure(
            f"Upstream CRM error ({status}): {message}",
            status_code=status,
            details=details,
        )
    return UpstreamServerFailure(
        f"Unexpected upstream status {status}",
        details=details,
    )


def _safe_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text or None


def _upstream_message(details: Any, response: httpx.Response) -> str:
    if isinstance(details, dict):
        for key in ("message", "error", "errors"):
            value = details.get(key)
            if isinstance(value, str) and value:
                return value
    if isinstance(details, str) and details:
        return details[:200]
    return response.reason_phrase or "no details"


def _describe_transport_error(exc: httpx.TransportError) -> str:
    if isinstance(exc, httpx.TimeoutException):
        return "request timed out"
    if isinstance(exc, httpx.ConnectError):
        return "connection failed"
    return type(exc).__name__
