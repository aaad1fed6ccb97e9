"""PipeRun CRM request layer -- one operation table and one executor for both front ends.

Provides:
- RequestExecutor / RetryPolicy: bounded retry with failure classification
- OPERATIONS / resolve: static operation table (name -> upstream path, fields)
- validate: generic FieldSpec-driven argument validation
- format_response: short human-readable summaries for the tool front end
- OperationDispatcher: resolve -> validate -> build -> execute

Architecture: front ends never talk to httpx directly; every upstream call
goes through the dispatcher and the executor.
"""

from src.gateway.crm.dispatcher import OperationDispatcher, resolve_credential
from src.gateway.crm.errors import (
    AuthFailure,
    CRMError,
    InternalFailure,
    NotFoundFailure,
    RateLimited,
    UnknownOperation,
    UpstreamServerFailure,
    ValidationFailure,
)
from src.gateway.crm.executor import CallDescriptor, RequestExecutor, RetryPolicy
from src.gateway.crm.formatters import format_response
from src.gateway.crm.operations import OPERATIONS, FieldSpec, OperationSpec, resolve
from src.gateway.crm.validation import validate

__all__ = [
    "AuthFailure",
    "CRMError",
    "CallDescriptor",
    "FieldSpec",
    "InternalFailure",
    "NotFoundFailure",
    "OPERATIONS",
    "OperationDispatcher",
    "OperationSpec",
    "RateLimited",
    "RequestExecutor",
    "RetryPolicy",
    "UnknownOperation",
    "UpstreamServerFailure",
    "ValidationFailure",
    "format_response",
    "resolve",
    "resolve_credential",
    "validate",
]
