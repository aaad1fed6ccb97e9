"""Unit tests for the operation table and descriptor construction."""

from __future__ import annotations

import pytest

from src.gateway.crm.errors import UnknownOperation
from src.gateway.crm.operations import (
    OPERATIONS,
    build_descriptor,
    coerce_query,
    resolve,
)


class TestOperationTable:
    """Structural checks on the shared operation table."""

    def test_every_resource_has_its_operations(self):
        expected = {
            "list_deals", "get_deal", "create_deal", "update_deal", "delete_deal", "search_deals",
            "list_persons", "get_person", "create_person", "update_person", "delete_person",
            "search_persons",
            "list_companies", "get_company", "create_company", "update_company", "delete_company",
            "list_activities", "get_activity", "create_activity", "update_activity",
            "delete_activity", "list_activity_types",
            "list_notes", "create_note", "delete_note",
            "list_pipelines", "list_stages",
            "list_items", "list_users", "list_tags", "list_loss_reasons",
            "list_deal_sources", "list_custom_fields",
        }
        assert expected <= set(OPERATIONS)

    def test_table_is_read_only(self):
        with pytest.raises(TypeError):
            OPERATIONS["list_deals"] = OPERATIONS["get_deal"]  # type: ignore[index]

    def test_id_operations_have_path_placeholder(self):
        for spec in OPERATIONS.values():
            if spec.kind in ("get", "update", "delete"):
                assert spec.id_field is not None, spec.name
                assert f"{{{spec.id_field}}}" in spec.path, spec.name
                assert spec.id_field in spec.required_fields, spec.name

    def test_update_fields_are_optional_except_id(self):
        spec = OPERATIONS["update_deal"]
        assert spec.required_fields == {"deal_id"}
        assert {"title", "status", "value"} <= spec.optional_fields

    def test_create_deal_requirements(self):
        spec = OPERATIONS["create_deal"]
        assert spec.required_fields == {"title", "pipeline_id", "stage_id", "owner_id"}


class TestResolve:
    """Tests for exact-match lookup."""

    def test_known_operation(self):
        spec = resolve("create_deal")
        assert spec.method == "POST"
        assert spec.path == "/deals"

    def test_unknown_operation(self):
        with pytest.raises(UnknownOperation) as exc_info:
            resolve("frobnicate")
        assert exc_info.value.name == "frobnicate"
        assert "frobnicate" in exc_info.value.message

    def test_lookup_is_case_sensitive(self):
        with pytest.raises(UnknownOperation):
            resolve("List_Deals")


class TestBuildDescriptor:
    """Tests for turning validated arguments into upstream calls."""

    def test_get_by_id_fills_path(self):
        descriptor = build_descriptor(resolve("get_deal"), {"deal_id": 42}, "tok")

        assert descriptor.method == "GET"
        assert descriptor.path == "/deals/42"
        assert dict(descriptor.params) == {}
        assert descriptor.credential == "tok"
        assert descriptor.operation == "get_deal"

    def test_integral_float_id_rendered_as_int(self):
        descriptor = build_descriptor(resolve("delete_person"), {"person_id": 5.0}, "tok")
        assert descriptor.path == "/persons/5"

    def test_update_sends_remaining_fields_as_body(self):
        descriptor = build_descriptor(
            resolve("update_deal"), {"deal_id": 7, "status": 2, "value": 1500.5}, "tok"
        )

        assert descriptor.method == "PUT"
        assert descriptor.path == "/deals/7"
        assert descriptor.body == {"status": 2, "value": 1500.5}

    def test_list_sends_query_params(self):
        descriptor = build_descriptor(resolve("list_stages"), {"pipeline_id": 3}, "tok")

        assert descriptor.path == "/stages"
        assert dict(descriptor.params) == {"pipeline_id": 3}
        assert descriptor.body is None

    def test_search_maps_query_to_search_param(self):
        descriptor = build_descriptor(
            resolve("search_persons"), {"query": "ana", "page": 2}, "tok"
        )

        assert dict(descriptor.params) == {"search": "ana", "page": 2}

    def test_build_does_not_mutate_arguments(self):
        args = {"deal_id": 1, "title": "x"}
        build_descriptor(resolve("update_deal"), args, "tok")
        assert args == {"deal_id": 1, "title": "x"}


class TestCoerceQuery:
    """Tests for query-string type coercion."""

    def test_numeric_fields_converted(self):
        result = coerce_query(resolve("list_deals"), {"page": "2", "pipeline_id": "10"})
        assert result == {"page": 2, "pipeline_id": 10}

    def test_unparseable_values_left_as_strings(self):
        result = coerce_query(resolve("list_deals"), {"page": "two"})
        assert result == {"page": "two"}

    def test_undeclared_keys_passed_through(self):
        result = coerce_query(resolve("list_tags"), {"colour": "red"})
        assert result == {"colour": "red"}
