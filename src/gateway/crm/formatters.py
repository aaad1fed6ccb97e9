"""Human-readable summaries of upstream payloads for the tool front end.

Formatting is purely presentational and never raises: missing optional
fields degrade to a placeholder, unmapped status codes become "unknown", and
any payload shape the formatter does not recognise falls back to
pretty-printed JSON.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

import structlog

from src.gateway.crm.operations import OPERATIONS, OperationSpec

logger = structlog.get_logger(__name__)

PLACEHOLDER = "N/A"
UNKNOWN_STATUS = "unknown"

DEAL_STATUS_LABELS: dict[int, str] = {1: "open", 2: "won", 3: "lost"}
ACTIVITY_STATUS_LABELS: dict[int, str] = {0: "open", 2: "completed", 4: "no show"}

STATUS_LABELS: dict[str, dict[int, str]] = {
    "deal": DEAL_STATUS_LABELS,
    "activity": ACTIVITY_STATUS_LABELS,
}

_VERBS = {"create": "Created", "update": "Updated", "delete": "Deleted"}


def status_label(entity: str, code: Any) -> str:
    """Map an upstream numeric status to its label for the entity kind."""
    labels = STATUS_LABELS.get(entity, {})
    if isinstance(code, bool) or not isinstance(code, (int, float)):
        return UNKNOWN_STATUS
    return labels.get(int(code), UNKNOWN_STATUS)


def format_response(operation_name: str, payload: Any) -> str:
    """Render an upstream payload as short display text for ``operation_name``."""
    spec = OPERATIONS.get(operation_name)
    if spec is None:
        return to_json_text(payload)
    try:
        return _format(spec, payload)
    except Exception:
        logger.warning("formatter.fallback_to_json", operation=operation_name, exc_info=True)
        return to_json_text(payload)


def to_json_text(payload: Any) -> str:
    """Pretty-printed JSON, the raw response format of the tool front end."""
    return json.dumps(payload, indent=2, ensure_ascii=False, default=str)


def pagination_line(payload: Any) -> str | None:
    """Return the pagination summary, or None when the payload has no meta."""
    if not isinstance(payload, Mapping):
        return None
    meta = payload.get("meta")
    if not isinstance(meta, Mapping):
        return None
    if not any(key in meta for key in ("total", "current_page", "last_page")):
        return None
    return (
        f"Page {_value(meta, 'current_page')} of {_value(meta, 'last_page')} "
        f"({_value(meta, 'total')} total)"
    )


# ── Internals ────────────────────────────────────────────────────────────────


def _format(spec: OperationSpec, payload: Any) -> str:
    data = payload.get("data", payload) if isinstance(payload, Mapping) else payload
    label = spec.entity.replace("_", " ")

    if spec.kind in ("list", "search"):
        if not isinstance(data, list):
            return to_json_text(payload)
        lines = [f"{len(data)} result(s) for {spec.name}:" if data else f"No results for {spec.name}."]
        lines.extend(f"- {summarize(spec.entity, item)}" for item in data)
        page = pagination_line(payload)
        if page:
            lines.append(page)
        return "\n".join(lines)

    if spec.kind == "delete":
        if isinstance(data, Mapping) and data.get("id") is not None:
            return f"Deleted {label} #{data['id']}."
        return f"Deleted {label}."

    if not isinstance(data, Mapping):
        return to_json_text(payload)
    summary = summarize(spec.entity, data)
    verb = _VERBS.get(spec.kind)
    return f"{verb} {label}: {summary}" if verb else summary


def summarize(entity: str, record: Any) -> str:
    """One-line summary of a single upstream record."""
    if not isinstance(record, Mapping):
        return str(record)
    ident = f"#{_value(record, 'id')}"

    if entity == "deal":
        return (
            f"{ident} {_value(record, 'title', 'name')} "
            f"[{status_label('deal', record.get('status'))}] "
            f"value: {_value(record, 'value')}"
        )
    if entity == "person":
        return (
            f"{ident} {_value(record, 'name')} "
            f"email: {_value(record, 'email')} phone: {_value(record, 'phone')}"
        )
    if entity == "company":
        return (
            f"{ident} {_value(record, 'name')} "
            f"email: {_value(record, 'email')} phone: {_value(record, 'phone')}"
        )
    if entity == "activity":
        return (
            f"{ident} {_value(record, 'name', 'title')} "
            f"[{status_label('activity', record.get('status'))}] "
            f"starts: {_value(record, 'start_at')}"
        )
    if entity == "note":
        text = str(_value(record, "content", "text"))
        if len(text) > 80:
            text = text[:77] + "..."
        return f"{ident} {text}"
    if entity == "stage":
        return f"{ident} {_value(record, 'name')} (pipeline {_value(record, 'pipeline_id')})"
    return f"{ident} {_value(record, 'name', 'title', 'description')}"


def _value(record: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = record.get(key)
        if value is not None and value != "":
            return value
    return PLACEHOLDER
