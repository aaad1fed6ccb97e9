"""REST endpoints mirroring the upstream CRM resources.

Every route maps one HTTP verb + path onto one operation from the shared
operation table; the handlers are generated from ROUTES rather than written
out per resource. Successful upstream bodies are passed through unchanged
(201 for creation routes); failures are rendered by the CRMError exception
handler registered in the app factory.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

from fastapi import APIRouter, Body, Depends, Request

from src.gateway.api.deps import get_credential, get_dispatcher
from src.gateway.crm.dispatcher import OperationDispatcher
from src.gateway.crm.operations import OPERATIONS, coerce_query

router = APIRouter(tags=["crm"])

# Query parameters consumed by the gateway itself, never forwarded upstream
RESERVED_QUERY_PARAMS = frozenset({"token"})


@dataclass(frozen=True)
class Route:
    """One REST route bound to an operation name."""

    method: str
    path: str
    operation: str

    @property
    def status_code(self) -> int:
        return 201 if OPERATIONS[self.operation].kind == "create" else 200


def _crud(collection: str, entity: str, *, search: bool = False) -> tuple[Route, ...]:
    routes = [
        Route("GET", f"/{collection}", f"list_{collection}"),
        Route("POST", f"/{collection}", f"create_{entity}"),
        Route("GET", f"/{collection}/{{item_id}}", f"get_{entity}"),
        Route("PUT", f"/{collection}/{{item_id}}", f"update_{entity}"),
        Route("DELETE", f"/{collection}/{{item_id}}", f"delete_{entity}"),
    ]
    if search:
        routes.append(Route("POST", f"/{collection}/search", f"search_{collection}"))
    return tuple(routes)


ROUTES: tuple[Route, ...] = (
    *_crud("deals", "deal", search=True),
    *_crud("persons", "person", search=True),
    *_crud("companies", "company"),
    *_crud("activities", "activity"),
    Route("GET", "/notes", "list_notes"),
    Route("POST", "/notes", "create_note"),
    Route("DELETE", "/notes/{item_id}", "delete_note"),
    Route("GET", "/pipelines", "list_pipelines"),
    Route("GET", "/stages", "list_stages"),
    Route("GET", "/items", "list_items"),
    Route("GET", "/users", "list_users"),
    Route("GET", "/tags", "list_tags"),
    Route("GET", "/loss-reasons", "list_loss_reasons"),
    Route("GET", "/deal-sources", "list_deal_sources"),
    Route("GET", "/activity-types", "list_activity_types"),
    Route("GET", "/custom-fields", "list_custom_fields"),
)


# ── Handler Factories ────────────────────────────────────────────────────────


def _query_args(route: Route, request: Request) -> dict[str, Any]:
    raw = {
        key: value
        for key, value in request.query_params.items()
        if key not in RESERVED_QUERY_PARAMS
    }
    return coerce_query(OPERATIONS[route.operation], raw)


def _collection_handler(route: Route) -> Callable[..., Any]:
    """Handler for routes without an id: list (query args) or create/search (body)."""
    kind = OPERATIONS[route.operation].kind

    if kind == "list":

        async def list_handler(
            request: Request,
            dispatcher: OperationDispatcher = Depends(get_dispatcher),
            credential: str = Depends(get_credential),
        ) -> Any:
            return await dispatcher.dispatch(
                route.operation, _query_args(route, request), credential
            )

        return list_handler

    async def body_handler(
        body: dict[str, Any] | None = Body(default=None),
        dispatcher: OperationDispatcher = Depends(get_dispatcher),
        credential: str = Depends(get_credential),
    ) -> Any:
        return await dispatcher.dispatch(route.operation, body or {}, credential)

    return body_handler


def _item_handler(route: Route) -> Callable[..., Any]:
    """Handler for routes addressing one record by id."""
    spec = OPERATIONS[route.operation]
    id_field = spec.id_field
    label = spec.entity.replace("_", " ").capitalize()

    if spec.kind == "update":

        async def update_handler(
            item_id: int,
            body: dict[str, Any] | None = Body(default=None),
            dispatcher: OperationDispatcher = Depends(get_dispatcher),
            credential: str = Depends(get_credential),
        ) -> Any:
            args = {**(body or {}), id_field: item_id}
            return await dispatcher.dispatch(route.operation, args, credential)

        return update_handler

    if spec.kind == "delete":

        async def delete_handler(
            item_id: int,
            dispatcher: OperationDispatcher = Depends(get_dispatcher),
            credential: str = Depends(get_credential),
        ) -> Any:
            await dispatcher.dispatch(route.operation, {id_field: item_id}, credential)
            return {"success": True, "message": f"{label} {item_id} deleted"}

        return delete_handler

    async def get_handler(
        item_id: int,
        dispatcher: OperationDispatcher = Depends(get_dispatcher),
        credential: str = Depends(get_credential),
    ) -> Any:
        return await dispatcher.dispatch(route.operation, {id_field: item_id}, credential)

    return get_handler


for _route in ROUTES:
    _factory = _item_handler if "{item_id}" in _route.path else _collection_handler
    router.add_api_route(
        _route.path,
        _factory(_route),
        methods=[_route.method],
        status_code=_route.status_code,
        name=_route.operation,
        summary=OPERATIONS[_route.operation].description,
    )
