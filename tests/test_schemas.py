"""Tests for the schema registry."""

from __future__ import annotations

import pytest

from prompt_canopy.core.errors import InvalidInputError, PromptConflictError, SchemaNotFoundError
from prompt_canopy.db.models import Schema
from prompt_canopy.db.store import read_jsonl


class TestSchemaRegistry:
    def test_create_schema(self, schemas):
        schema = schemas.create_schema("agent", required=["identity", " tools "], optional=["tone"])
        assert schema.id.startswith("test-schema-")
        assert schema.required_sections == ["identity", "tools"]
        assert schema.optional_sections == ["tone"]
        assert schemas.get_schema("agent") == schema

    def test_duplicate_name_raises(self, schemas):
        schemas.create_schema("agent")
        with pytest.raises(PromptConflictError):
            schemas.create_schema("agent")

    def test_list_sorted(self, schemas):
        schemas.create_schema("zeta")
        schemas.create_schema("alpha")
        assert [s.name for s in schemas.list_schemas()] == ["alpha", "zeta"]

    def test_add_rule_appends_full_record(self, schemas, workspace):
        schemas.create_schema("agent", required=["identity"])
        schemas.add_rule("agent", "identity", r"^You are", "Identity must start with 'You are'")
        schemas.add_rule("agent", "tools", r"\w+", "Tools must not be blank")

        records = read_jsonl(workspace.schemas_path, Schema)
        assert len(records) == 3
        current = schemas.require("agent")
        assert [r.section for r in current.rules] == ["identity", "tools"]
        assert current.required_sections == ["identity"]

    def test_add_rule_invalid_pattern(self, schemas):
        schemas.create_schema("agent")
        with pytest.raises(InvalidInputError, match="Invalid regex"):
            schemas.add_rule("agent", "identity", "([", "broken")

    def test_add_rule_unknown_schema(self, schemas):
        with pytest.raises(SchemaNotFoundError):
            schemas.add_rule("ghost", "identity", "x", "msg")

    def test_require_unknown(self, schemas):
        assert schemas.get_schema("ghost") is None
        with pytest.raises(SchemaNotFoundError, match="ghost"):
            schemas.require("ghost")
