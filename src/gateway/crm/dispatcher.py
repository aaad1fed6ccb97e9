"""Operation dispatch: resolve, validate, build, execute.

Both front ends funnel every request through OperationDispatcher so that the
router and validator fail fast (no network call) and the executor remains the
only component that retries.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import structlog

from src.gateway.crm.errors import AuthFailure, CRMError
from src.gateway.crm.executor import RequestExecutor, RetryPolicy
from src.gateway.crm.operations import build_descriptor, resolve
from src.gateway.crm.validation import validate_args

logger = structlog.get_logger(__name__)


def resolve_credential(
    explicit: str | None = None,
    header: str | None = None,
    query: str | None = None,
    default: str | None = None,
) -> str | None:
    """Pick the credential by priority: explicit > header > query > default.

    Blank strings count as absent. Returns None when nothing is configured.
    """
    for candidate in (explicit, header, query, default):
        if isinstance(candidate, str) and candidate.strip():
            return candidate.strip()
    return None


class OperationDispatcher:
    """Runs a named operation against the upstream CRM.

    Args:
        executor: Shared RequestExecutor.
        policy: Process-wide RetryPolicy applied to every call.
    """

    def __init__(self, executor: RequestExecutor, policy: RetryPolicy) -> None:
        self._executor = executor
        self._policy = policy

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    async def dispatch(
        self,
        operation_name: str,
        arguments: Mapping[str, Any] | None,
        credential: str | None,
    ) -> Any:
        """Execute ``operation_name`` with ``arguments`` and return the upstream body.

        Raises:
            UnknownOperation: Operation not in the table (no network call).
            ValidationFailure: Arguments rejected (no network call).
            AuthFailure: No credential, or upstream rejected it.
            CRMError: Any other taxonomy failure from the executor.
        """
        spec = resolve(operation_name)
        args = validate_args(spec, arguments if arguments is not None else {})
        if not credential:
            raise AuthFailure("API token not provided")

        descriptor = build_descriptor(spec, args, credential)
        log = logger.bind(operation=spec.name, method=descriptor.method, path=descriptor.path)
        log.debug("dispatcher.operation_started")

        try:
            result = await self._executor.execute(descriptor, self._policy)
        except CRMError as exc:
            log.warning(
                "dispatcher.operation_failed",
                failure=type(exc).__name__,
                status_code=exc.status_code,
            )
            raise

        log.info("dispatcher.operation_completed")
        return result
