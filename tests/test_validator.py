"""Tests for schema validation."""

from __future__ import annotations

import pytest

from prompt_canopy.core.validator import validate_prompt
from prompt_canopy.db.models import Schema, ValidationRule


@pytest.fixture
def make_schema():
    def _make(required=(), rules=()) -> Schema:
        return Schema(
            id="s-1",
            name="agent",
            required_sections=list(required),
            rules=[ValidationRule(section=s, pattern=p, message=m) for s, p, m in rules] or None,
            created_at="2026-01-01T00:00:00+00:00",
            updated_at="2026-01-01T00:00:00+00:00",
        )

    return _make


class TestValidatePrompt:
    def test_valid(self, make_prompt, make_schema):
        prompt = make_prompt("a", {"identity": "You are a bot."})
        result = validate_prompt(prompt, make_schema(["identity"]), [prompt])
        assert result.valid
        assert result.to_dict() == {"valid": True, "errors": [], "warnings": []}

    def test_missing_required(self, make_prompt, make_schema):
        prompt = make_prompt("a", {"identity": "x"})
        result = validate_prompt(prompt, make_schema(["identity", "tools"]), [prompt])
        assert not result.valid
        assert [(e.section, e.rule) for e in result.errors] == [("tools", "required")]

    def test_removed_section_counts_as_missing(self, make_prompt, make_schema):
        parent = make_prompt("parent", {"identity": "x", "tools": "y"})
        child = make_prompt("child", {"tools": ""}, extends="parent")
        result = validate_prompt(child, make_schema(["tools"]), [parent, child])
        assert [e.section for e in result.errors] == ["tools"]

    def test_inherited_sections_satisfy_required(self, make_prompt, make_schema):
        parent = make_prompt("parent", {"identity": "x"})
        child = make_prompt("child", {"tone": "calm"}, extends="parent")
        assert validate_prompt(child, make_schema(["identity", "tone"]), [parent, child]).valid

    def test_regex_rule(self, make_prompt, make_schema):
        prompt = make_prompt("a", {"identity": "I am a bot."})
        schema = make_schema(rules=[("identity", r"^You are", "Must start with 'You are'")])
        result = validate_prompt(prompt, schema, [prompt])
        assert [e.message for e in result.errors] == ["Must start with 'You are'"]
        assert result.errors[0].rule == r"^You are"

    def test_rule_for_missing_section_is_skipped(self, make_prompt, make_schema):
        prompt = make_prompt("a", {"identity": "x"})
        schema = make_schema(rules=[("tools", r"\w", "Tools required")])
        assert validate_prompt(prompt, schema, [prompt]).valid

    def test_invalid_pattern_is_a_warning(self, make_prompt, make_schema):
        prompt = make_prompt("a", {"identity": "x"})
        schema = make_schema(rules=[("identity", "([", "broken")])
        result = validate_prompt(prompt, schema, [prompt])
        assert result.valid
        assert "Invalid regex" in result.warnings[0]

    def test_unresolvable_chain_falls_back_to_own_sections(self, make_prompt, make_schema):
        prompt = make_prompt("a", {"identity": "x"}, extends="ghost")
        result = validate_prompt(prompt, make_schema(["identity"]), [prompt])
        assert result.valid
        assert "Could not resolve" in result.warnings[0]
