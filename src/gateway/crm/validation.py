"""Generic argument validation driven by the operation table.

One function checks every operation against its declared FieldSpecs instead
of a hand-written predicate per operation. Validation is pure: no network
access, no hidden state, and the caller's mapping is never mutated. On
success a narrowed copy holding only declared fields is returned.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from src.gateway.crm.errors import ValidationFailure
from src.gateway.crm.operations import FieldSpec, OperationSpec, resolve


def validate(operation_name: str, raw_args: Any) -> dict[str, Any]:
    """Validate arguments for the named operation.

    Raises:
        UnknownOperation: If the operation is not in the table.
        ValidationFailure: If the arguments do not satisfy its FieldSpecs.
    """
    return validate_args(resolve(operation_name), raw_args)


def validate_args(spec: OperationSpec, raw_args: Any) -> dict[str, Any]:
    """Validate ``raw_args`` against ``spec`` and return the narrowed arguments."""
    if not isinstance(raw_args, Mapping):
        raise ValidationFailure(f"Arguments for {spec.name} must be an object")

    narrowed: dict[str, Any] = {}
    problems: list[str] = []
    bad_fields: list[str] = []

    for field_spec in spec.fields:
        value = raw_args.get(field_spec.name)
        if value is None:
            if field_spec.required:
                problems.append(f"'{field_spec.name}' is required")
                bad_fields.append(field_spec.name)
            continue
        problem = _type_problem(field_spec, value)
        if problem:
            problems.append(problem)
            bad_fields.append(field_spec.name)
        else:
            narrowed[field_spec.name] = value

    if spec.at_least_one_of and not any(name in narrowed for name in spec.at_least_one_of):
        names = ", ".join(spec.at_least_one_of)
        problems.append(f"at least one of {names} is required")
        bad_fields.extend(n for n in spec.at_least_one_of if n not in bad_fields)

    if problems:
        raise ValidationFailure(
            f"Invalid arguments for {spec.name}: {'; '.join(problems)}",
            fields=bad_fields,
        )

    if spec.kind == "update" and spec.id_field is not None:
        if not any(name != spec.id_field for name in narrowed):
            raise ValidationFailure(
                f"nothing to update: provide at least one field besides '{spec.id_field}'",
                fields=[spec.id_field],
            )

    return narrowed


def _type_problem(field_spec: FieldSpec, value: Any) -> str | None:
    if field_spec.type == "string":
        if not isinstance(value, str):
            return f"'{field_spec.name}' must be a string"
        if field_spec.required and not value.strip():
            return f"'{field_spec.name}' must not be empty"
        return None
    # bool is an int subclass but never a valid numeric argument
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return f"'{field_spec.name}' must be a number"
    return None
