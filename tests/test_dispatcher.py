"""Tests for the operation dispatcher and credential resolution."""

from __future__ import annotations

import json

import httpx
import pytest

from src.gateway.crm.dispatcher import resolve_credential
from src.gateway.crm.errors import AuthFailure, NotFoundFailure, UnknownOperation, ValidationFailure


class TestResolveCredential:
    """Priority: explicit > header > query > default; blanks are absent."""

    def test_priority_order(self):
        assert resolve_credential("a", "b", "c", "d") == "a"
        assert resolve_credential(None, "b", "c", "d") == "b"
        assert resolve_credential(None, None, "c", "d") == "c"
        assert resolve_credential(None, None, None, "d") == "d"

    def test_blank_values_skipped(self):
        assert resolve_credential("", "  ", None, "d") == "d"

    def test_nothing_configured(self):
        assert resolve_credential() is None
        assert resolve_credential(default="") is None

    def test_value_is_stripped(self):
        assert resolve_credential(header=" tok ") == "tok"


class TestDispatch:
    """Tests for resolve -> validate -> build -> execute."""

    @pytest.mark.asyncio
    async def test_successful_call(self, dispatcher, upstream):
        upstream.script(httpx.Response(200, json={"data": {"id": 7, "title": "Deal"}}))

        result = await dispatcher.dispatch("get_deal", {"deal_id": 7}, "tok")

        assert result == {"data": {"id": 7, "title": "Deal"}}
        request = upstream.requests[0]
        assert request.method == "GET"
        assert request.url.path == "/v1/deals/7"
        assert request.headers["token"] == "tok"

    @pytest.mark.asyncio
    async def test_create_sends_only_declared_fields(self, dispatcher, upstream):
        upstream.script(httpx.Response(201, json={"data": {"id": 1}}))

        await dispatcher.dispatch(
            "create_person", {"name": "Ana", "owner_id": 2, "api_token": "x"}, "tok"
        )

        assert json.loads(upstream.requests[0].content) == {"name": "Ana", "owner_id": 2}

    @pytest.mark.asyncio
    async def test_unknown_operation_makes_no_network_call(self, dispatcher, upstream):
        with pytest.raises(UnknownOperation):
            await dispatcher.dispatch("frobnicate", {}, "tok")

        assert upstream.calls == 0

    @pytest.mark.asyncio
    async def test_invalid_arguments_make_no_network_call(self, dispatcher, upstream):
        with pytest.raises(ValidationFailure):
            await dispatcher.dispatch("update_person", {"person_id": 5}, "tok")

        assert upstream.calls == 0

    @pytest.mark.asyncio
    async def test_missing_credential(self, dispatcher, upstream):
        with pytest.raises(AuthFailure) as exc_info:
            await dispatcher.dispatch("list_deals", {}, None)

        assert exc_info.value.status_code == 401
        assert upstream.calls == 0

    @pytest.mark.asyncio
    async def test_none_arguments_treated_as_empty(self, dispatcher, upstream):
        result = await dispatcher.dispatch("list_pipelines", None, "tok")

        assert result == {"data": []}
        assert upstream.calls == 1

    @pytest.mark.asyncio
    async def test_upstream_failure_propagates(self, dispatcher, upstream):
        upstream.script(httpx.Response(404, json={"message": "not found"}))

        with pytest.raises(NotFoundFailure):
            await dispatcher.dispatch("get_company", {"company_id": 1}, "tok")
