"""Tests for the cn CLI."""

from __future__ import annotations

import json

import pytest
from click.testing import CliRunner

from prompt_canopy.cli.main import cli


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def invoke(runner, tmp_path):
    def _invoke(*args: str):
        return runner.invoke(cli, ["--root", str(tmp_path), *args])

    return _invoke


@pytest.fixture
def initialized(invoke):
    result = invoke("init", "--project", "cli")
    assert result.exit_code == 0, result.output
    return invoke


def _json(result) -> dict:
    return json.loads(result.stdout)


class TestInit:
    def test_init(self, invoke, tmp_path):
        result = invoke("init")
        assert result.exit_code == 0
        assert "Initialized" in result.output
        assert (tmp_path / ".canopy" / "prompts.jsonl").exists()

    def test_init_twice_fails(self, initialized):
        result = initialized("--json", "init")
        assert result.exit_code == 1

    def test_commands_require_workspace(self, invoke):
        result = invoke("list")
        assert result.exit_code == 1
        assert "cn init" in result.output


class TestPromptCommands:
    def test_create_and_show(self, initialized):
        result = initialized(
            "create", "--name", "reviewer", "--section", "identity=You review code.", "--tag", "code"
        )
        assert result.exit_code == 0, result.output
        assert "Created prompt reviewer" in result.output

        result = initialized("show", "reviewer")
        assert result.exit_code == 0
        assert "## identity" in result.output
        assert "Tags: code" in result.output

    def test_json_create(self, initialized):
        result = initialized("--json", "create", "--name", "reviewer")
        assert result.exit_code == 0
        data = _json(result)
        assert data["success"] is True
        assert data["command"] == "create"
        assert data["id"].startswith("cli-")

    def test_bad_section_syntax(self, initialized):
        result = initialized("create", "--name", "x", "--section", "no-equals-sign")
        assert result.exit_code == 2

    def test_show_missing_json_error(self, initialized):
        result = initialized("--json", "show", "ghost")
        assert result.exit_code == 1
        data = _json(result)
        assert data["success"] is False
        assert "ghost" in data["error"]

    def test_list(self, initialized):
        initialized("create", "--name", "alpha")
        initialized("create", "--name", "beta")
        initialized("archive", "beta")

        result = initialized("list")
        assert result.exit_code == 0
        assert "alpha" in result.output
        assert "beta" not in result.output

        data = _json(initialized("--json", "list", "--all"))
        assert [p["name"] for p in data["prompts"]] == ["alpha", "beta"]

    def test_update_and_history(self, initialized):
        initialized("create", "--name", "doc", "--section", "a=one")
        result = initialized("--json", "update", "doc", "--section", "a=two")
        assert _json(result)["version"] == 2

        data = _json(initialized("--json", "history", "doc"))
        assert [v["version"] for v in data["versions"]] == [2, 1]

    def test_pin_and_unpin(self, initialized):
        initialized("create", "--name", "doc", "--section", "a=one")
        initialized("update", "doc", "--section", "a=two")
        assert initialized("pin", "doc@1").exit_code == 0

        data = _json(initialized("--json", "render", "doc"))
        assert data["sections"] == [{"name": "a", "body": "one"}]
        assert data["version"] == 1

        assert initialized("unpin", "doc").exit_code == 0
        data = _json(initialized("--json", "render", "doc"))
        assert data["sections"] == [{"name": "a", "body": "two"}]

    def test_pin_requires_version(self, initialized):
        initialized("create", "--name", "doc")
        assert initialized("pin", "doc").exit_code == 2

    def test_render_markdown_with_inheritance(self, initialized):
        initialized("create", "--name", "base", "--section", "a=from base", "--section", "b=keep")
        initialized("create", "--name", "child", "--extends", "base", "--section", "a=from child")

        result = initialized("render", "child")
        assert result.exit_code == 0
        assert "Resolved from: base -> child" in result.output
        assert "from child" in result.output
        assert "from base" not in result.output

    def test_render_json_format(self, initialized):
        initialized("create", "--name", "doc", "--section", "a=1")
        data = json.loads(initialized("render", "doc", "--format", "json").stdout)
        assert data["resolvedFrom"] == ["doc"]

    def test_tree(self, initialized):
        initialized("create", "--name", "base")
        initialized("create", "--name", "child", "--extends", "base")
        data = _json(initialized("--json", "tree", "base"))
        assert [c["name"] for c in data["tree"]["children"]] == ["child"]

    def test_diff(self, initialized):
        initialized("create", "--name", "doc", "--section", "a=one")
        initialized("update", "doc", "--section", "b=new")
        result = initialized("diff", "doc")
        assert result.exit_code == 0
        assert "v1 -> v2" in result.output
        assert "+ [b] Added: new" in result.output


class TestEmitCommand:
    def test_emit_single(self, initialized, tmp_path):
        initialized("create", "--name", "doc", "--section", "a=hello")
        result = initialized("emit", "doc")
        assert result.exit_code == 0, result.output
        assert (tmp_path / "agents" / "doc.md").read_text(encoding="utf-8") == "## a\n\nhello\n"

        data = _json(initialized("--json", "emit", "doc"))
        assert data["files"] == [
            {"name": "doc", "path": str(tmp_path / "agents" / "doc.md"), "version": 1, "skipped": True}
        ]

    def test_emit_all_to_out_dir(self, initialized, tmp_path):
        initialized("create", "--name", "one")
        initialized("create", "--name", "two", "--emit-as", "custom.md")
        result = initialized("emit", "--all", "--out-dir", str(tmp_path / "out"))
        assert result.exit_code == 0, result.output
        assert (tmp_path / "out" / "one.md").exists()
        assert (tmp_path / "out" / "custom.md").exists()

    def test_check_exit_code(self, initialized):
        initialized("create", "--name", "doc", "--section", "a=1")
        result = initialized("--json", "emit", "--check")
        assert result.exit_code == 1
        assert _json(result)["stale"] == ["doc"]

        initialized("emit", "--all")
        result = initialized("emit", "--check")
        assert result.exit_code == 0
        assert "up to date" in result.output

    def test_emit_without_target_fails(self, initialized):
        result = initialized("--json", "emit")
        assert result.exit_code == 1
        assert _json(result)["success"] is False


class TestSchemaCommands:
    def test_schema_lifecycle_and_validate(self, initialized):
        result = initialized("schema", "create", "--name", "agent", "--required", "identity, tools")
        assert result.exit_code == 0, result.output
        initialized(
            "schema", "rule-add", "agent",
            "--section", "identity", "--pattern", "^You are", "--message", "Start with 'You are'",
        )

        data = _json(initialized("--json", "schema", "list"))
        (schema,) = data["schemas"]
        assert schema["requiredSections"] == ["identity", "tools"]
        assert len(schema["rules"]) == 1

        initialized("create", "--name", "bot", "--schema", "agent", "--section", "identity=I am a bot")
        result = initialized("--json", "validate", "bot")
        assert result.exit_code == 1
        data = _json(result)
        assert data["valid"] is False
        assert {e["section"] for e in data["errors"]} == {"identity", "tools"}

        initialized("update", "bot", "--section", "identity=You are a bot", "--section", "tools=none")
        result = initialized("validate", "bot")
        assert result.exit_code == 0
        assert "bot: valid" in result.output

    def test_rule_add_bad_pattern(self, initialized):
        initialized("schema", "create", "--name", "agent")
        result = initialized(
            "schema", "rule-add", "agent", "--section", "a", "--pattern", "([", "--message", "m"
        )
        assert result.exit_code == 1

    def test_schema_show_missing(self, initialized):
        assert initialized("schema", "show", "ghost").exit_code == 1
