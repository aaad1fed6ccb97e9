"""Failure taxonomy shared by the executor, the dispatcher and both front ends.

Every failure path in the gateway resolves to one of these exceptions. Each
carries the HTTP status the REST front end should answer with and, when the
upstream CRM sent one, the upstream response body as ``details``. The tool
front end maps the same classes onto protocol error codes.
"""

from __future__ import annotations

from typing import Any


class CRMError(Exception):
    """Base class for every caller-visible gateway failure.

    Args:
        message: Human-readable description, safe to show to callers.
        status_code: HTTP status the REST front end responds with.
        details: Upstream response body, when one was received.
    """

    status_code: int = 500

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        details: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details

    def to_envelope(self) -> dict[str, Any]:
        """Render the REST error envelope ``{success, error, details?}``."""
        envelope: dict[str, Any] = {"success": False, "error": self.message}
        if self.details is not None:
            envelope["details"] = self.details
        return envelope


class ValidationFailure(CRMError):
    """Malformed or missing arguments, detected locally or reported upstream."""

    status_code = 400

    def __init__(
        self,
        message: str,
        fields: list[str] | None = None,
        status_code: int | None = None,
        details: Any = None,
    ) -> None:
        super().__init__(message, status_code=status_code, details=details)
        self.fields = list(fields or [])


class AuthFailure(CRMError):
    """Credential missing, or rejected by the upstream CRM (401/403)."""

    status_code = 401
    default_message = "Invalid token or insufficient permissions"

    def __init__(
        self,
        message: str | None = None,
        status_code: int | None = None,
        details: Any = None,
    ) -> None:
        super().__init__(message or self.default_message, status_code=status_code, details=details)


class NotFoundFailure(CRMError):
    """The upstream CRM reports that the requested resource does not exist."""

    status_code = 404


class RateLimited(CRMError):
    """Upstream kept answering 429 until the retry budget ran out."""

    status_code = 429


class UpstreamServerFailure(CRMError):
    """Upstream 5xx or network-level failure after the retry budget ran out.

    5xx responses carry the upstream status; network failures have none and
    answer 500.
    """

    status_code = 500


class UnknownOperation(CRMError):
    """The caller named an operation that is not in the operation table."""

    status_code = 404

    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown operation: {name}")
        self.name = name


class InternalFailure(CRMError):
    """Anything not classifiable above, such as an undecodable response body."""

    status_code = 500
