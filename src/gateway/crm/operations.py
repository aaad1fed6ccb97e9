"""Operation table -- the single route table shared by both front ends.

Each OperationSpec names one unit of functionality (e.g. ``create_deal``)
and declares the upstream method and path template it maps to, plus the
fields it accepts. The HTTP front end maps REST routes onto these names; the
tool front end uses them directly as tool names and derives each tool's
input schema from the same FieldSpecs the validator checks.

Exports:
    FieldSpec, OperationSpec: Declarative table entries.
    OPERATIONS: Read-only mapping of operation name to OperationSpec.
    resolve(): Exact-match lookup raising UnknownOperation.
    build_descriptor(): Turn validated arguments into a CallDescriptor.
    coerce_query(): Convert query-string values to declared field types.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Literal

from src.gateway.crm.errors import UnknownOperation
from src.gateway.crm.executor import CallDescriptor

FieldType = Literal["string", "integer", "number"]
OperationKind = Literal["list", "get", "create", "update", "delete", "search"]


@dataclass(frozen=True)
class FieldSpec:
    """One accepted argument: its name, expected type and whether it is required."""

    name: str
    type: FieldType
    required: bool = False
    description: str = ""


@dataclass(frozen=True)
class OperationSpec:
    """Router table entry describing how an operation maps to the upstream API."""

    name: str
    method: str
    path: str
    kind: OperationKind
    entity: str
    description: str
    fields: tuple[FieldSpec, ...] = ()
    at_least_one_of: tuple[str, ...] = ()
    id_field: str | None = None

    @property
    def required_fields(self) -> frozenset[str]:
        return frozenset(f.name for f in self.fields if f.required)

    @property
    def optional_fields(self) -> frozenset[str]:
        return frozenset(f.name for f in self.fields if not f.required)

    def field(self, name: str) -> FieldSpec | None:
        for spec in self.fields:
            if spec.name == name:
                return spec
        return None


# ── Table Builders ───────────────────────────────────────────────────────────

PAGINATION = (
    FieldSpec("page", "integer", description="Page number (default: 1)"),
    FieldSpec("show", "integer", description="Items per page (default: 20, max: 200)"),
)


def _article(entity: str) -> str:
    return f"an {entity}" if entity[0] in "aeiou" else f"a {entity}"


def _id(name: str, label: str) -> FieldSpec:
    return FieldSpec(name, "integer", required=True, description=f"ID of the {label}")


def _opt_id(name: str, label: str) -> FieldSpec:
    return FieldSpec(name, "integer", description=f"Optional {label} ID")


def _list(
    entity: str,
    plural: str,
    path: str,
    *filters: FieldSpec,
    name: str | None = None,
) -> OperationSpec:
    return OperationSpec(
        name=name or f"list_{plural.replace(' ', '_')}",
        method="GET",
        path=path,
        kind="list",
        entity=entity,
        description=f"List {plural} from PipeRun CRM.",
        fields=(*filters, *PAGINATION),
    )


def _by_id(
    kind: OperationKind,
    entity: str,
    path: str,
    id_field: str,
    *fields: FieldSpec,
) -> OperationSpec:
    method = {"get": "GET", "update": "PUT", "delete": "DELETE"}[kind]
    verb = {"get": "Get the details of", "update": "Update", "delete": "Delete"}[kind]
    return OperationSpec(
        name=f"{kind}_{entity}",
        method=method,
        path=f"{path}/{{{id_field}}}",
        kind=kind,
        entity=entity,
        description=f"{verb} {_article(entity)} in PipeRun CRM.",
        fields=(_id(id_field, entity), *fields),
        id_field=id_field,
    )


def _create(entity: str, path: str, *fields: FieldSpec, **extra: Any) -> OperationSpec:
    return OperationSpec(
        name=f"create_{entity}",
        method="POST",
        path=path,
        kind="create",
        entity=entity,
        description=f"Create {_article(entity)} in PipeRun CRM.",
        fields=fields,
        **extra,
    )


def _search(entity: str, plural: str, path: str) -> OperationSpec:
    return OperationSpec(
        name=f"search_{plural}",
        method="GET",
        path=path,
        kind="search",
        entity=entity,
        description=f"Search {plural} in PipeRun CRM by free text.",
        fields=(
            FieldSpec("query", "string", required=True, description="Search text"),
            *PAGINATION,
        ),
    )


def _optional(fields: tuple[FieldSpec, ...]) -> tuple[FieldSpec, ...]:
    """Same fields, all optional (update operations)."""
    return tuple(
        FieldSpec(f.name, f.type, required=False, description=f.description)
        for f in fields
    )


# ── Entity Field Sets ────────────────────────────────────────────────────────

_DEAL_FIELDS = (
    FieldSpec("title", "string", required=True, description="Deal title"),
    FieldSpec("pipeline_id", "integer", required=True, description="Pipeline ID"),
    FieldSpec("stage_id", "integer", required=True, description="Stage ID"),
    FieldSpec("owner_id", "integer", required=True, description="Owner (user) ID"),
    _opt_id("person_id", "person"),
    _opt_id("company_id", "company"),
    FieldSpec("value", "number", description="Optional deal value"),
)
_DEAL_STATUS = FieldSpec("status", "integer", description="Status: 1=open, 2=won, 3=lost")

_PERSON_FIELDS = (
    FieldSpec("name", "string", required=True, description="Person name"),
    FieldSpec("owner_id", "integer", required=True, description="Owner (user) ID"),
    FieldSpec("email", "string", description="Optional email"),
    FieldSpec("phone", "string", description="Optional phone"),
    _opt_id("company_id", "company"),
)

_COMPANY_FIELDS = (
    FieldSpec("name", "string", required=True, description="Company name"),
    FieldSpec("owner_id", "integer", required=True, description="Owner (user) ID"),
    FieldSpec("email", "string", description="Optional main email"),
    FieldSpec("phone", "string", description="Optional main phone"),
)

_ACTIVITY_STATUS = FieldSpec(
    "status", "integer", description="Status: 0=open, 2=completed, 4=no show"
)
_ACTIVITY_FIELDS = (
    FieldSpec("name", "string", required=True, description="Activity name"),
    FieldSpec("type_id", "integer", required=True, description="Activity type ID (see list_activity_types)"),
    FieldSpec("owner_id", "integer", description="Optional owner (user) ID"),
    _opt_id("deal_id", "deal"),
    _opt_id("person_id", "person"),
    _opt_id("company_id", "company"),
    FieldSpec("start_at", "string", description="Optional start (YYYY-MM-DD HH:MM:SS)"),
    FieldSpec("end_at", "string", description="Optional end (YYYY-MM-DD HH:MM:SS)"),
    _ACTIVITY_STATUS,
)


# ── Operation Table ──────────────────────────────────────────────────────────

_TABLE: tuple[OperationSpec, ...] = (
    # Deals
    _list(
        "deal", "deals", "/deals",
        FieldSpec("pipeline_id", "integer", description="Filter by pipeline ID"),
        FieldSpec("stage_id", "integer", description="Filter by stage ID"),
        FieldSpec("person_id", "integer", description="Filter by person ID"),
        FieldSpec("company_id", "integer", description="Filter by company ID"),
        FieldSpec("owner_id", "integer", description="Filter by owner ID"),
        _DEAL_STATUS,
    ),
    _by_id("get", "deal", "/deals", "deal_id"),
    _create("deal", "/deals", *_DEAL_FIELDS),
    _by_id("update", "deal", "/deals", "deal_id", *_optional(_DEAL_FIELDS), _DEAL_STATUS),
    _by_id("delete", "deal", "/deals", "deal_id"),
    _search("deal", "deals", "/deals"),
    _list("deal_source", "deal sources", "/deal-sources"),
    # Persons
    _list(
        "person", "persons", "/persons",
        FieldSpec("owner_id", "integer", description="Filter by owner ID"),
        FieldSpec("company_id", "integer", description="Filter by company ID"),
    ),
    _by_id("get", "person", "/persons", "person_id"),
    _create("person", "/persons", *_PERSON_FIELDS),
    _by_id("update", "person", "/persons", "person_id", *_optional(_PERSON_FIELDS)),
    _by_id("delete", "person", "/persons", "person_id"),
    _search("person", "persons", "/persons"),
    # Companies
    _list("company", "companies", "/companies"),
    _by_id("get", "company", "/companies", "company_id"),
    _create("company", "/companies", *_COMPANY_FIELDS),
    _by_id("update", "company", "/companies", "company_id", *_optional(_COMPANY_FIELDS)),
    _by_id("delete", "company", "/companies", "company_id"),
    # Activities
    _list(
        "activity", "activities", "/activities",
        FieldSpec("deal_id", "integer", description="Filter by deal ID"),
        FieldSpec("person_id", "integer", description="Filter by person ID"),
        FieldSpec("company_id", "integer", description="Filter by company ID"),
        FieldSpec("owner_id", "integer", description="Filter by owner ID"),
        FieldSpec("activity_type_id", "integer", description="Filter by activity type ID"),
        _ACTIVITY_STATUS,
    ),
    _by_id("get", "activity", "/activities", "activity_id"),
    _create("activity", "/activities", *_ACTIVITY_FIELDS),
    _by_id("update", "activity", "/activities", "activity_id", *_optional(_ACTIVITY_FIELDS)),
    _by_id("delete", "activity", "/activities", "activity_id"),
    _list("activity_type", "activity types", "/activity-types"),
    # Notes
    _list(
        "note", "notes", "/notes",
        FieldSpec("deal_id", "integer", description="Filter by deal ID"),
        FieldSpec("person_id", "integer", description="Filter by person ID"),
        FieldSpec("company_id", "integer", description="Filter by company ID"),
    ),
    _create(
        "note", "/notes",
        FieldSpec("content", "string", required=True, description="Note content"),
        _opt_id("deal_id", "deal"),
        _opt_id("person_id", "person"),
        _opt_id("company_id", "company"),
        at_least_one_of=("deal_id", "person_id", "company_id"),
    ),
    _by_id("delete", "note", "/notes", "note_id"),
    # Pipelines and stages
    _list("pipeline", "pipelines", "/pipelines"),
    _list(
        "stage", "stages", "/stages",
        FieldSpec("pipeline_id", "integer", description="Filter stages by pipeline ID"),
    ),
    # Reference lists
    _list("item", "items", "/items"),
    _list("user", "users", "/users"),
    _list("tag", "tags", "/tags"),
    _list("loss_reason", "loss reasons", "/loss-reasons"),
    _list("custom_field", "custom fields", "/custom-fields"),
)

OPERATIONS: Mapping[str, OperationSpec] = MappingProxyType({op.name: op for op in _TABLE})

if len(OPERATIONS) != len(_TABLE):
    raise RuntimeError("Duplicate operation names in the operation table")


# ── Lookup and Descriptor Construction ───────────────────────────────────────


def resolve(name: str) -> OperationSpec:
    """Exact-match lookup of an operation by name.

    Raises:
        UnknownOperation: If no operation has this name.
    """
    spec = OPERATIONS.get(name)
    if spec is None:
        raise UnknownOperation(name)
    return spec


def build_descriptor(
    spec: OperationSpec,
    args: Mapping[str, Any],
    credential: str,
) -> CallDescriptor:
    """Build the upstream call for already-validated arguments.

    The id field is consumed by the path template; search operations send
    their ``query`` as the upstream ``search`` parameter. Remaining arguments
    become query parameters (GET/DELETE) or the JSON body (POST/PUT).
    """
    values = dict(args)
    path = spec.path
    if spec.id_field is not None:
        path = spec.path.format(**{spec.id_field: _path_value(values.pop(spec.id_field))})
    if spec.kind == "search":
        values["search"] = values.pop("query")

    if spec.method in ("GET", "DELETE"):
        return CallDescriptor(
            method=spec.method,
            path=path,
            credential=credential,
            params=values,
            operation=spec.name,
        )
    return CallDescriptor(
        method=spec.method,
        path=path,
        credential=credential,
        body=values,
        operation=spec.name,
    )


def coerce_query(spec: OperationSpec, raw: Mapping[str, str]) -> dict[str, Any]:
    """Convert query-string values to the declared numeric types where possible.

    Values that do not parse are left as strings so the validator rejects
    them with a field-specific message.
    """
    coerced: dict[str, Any] = {}
    for key, value in raw.items():
        field_spec = spec.field(key)
        coerced[key] = _coerce(value, field_spec.type) if field_spec else value
    return coerced


def _coerce(value: str, field_type: FieldType) -> Any:
    try:
        if field_type == "integer":
            return int(value)
        if field_type == "number":
            return float(value)
    except ValueError:
        return value
    return value


def _path_value(value: Any) -> Any:
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value
