"""Test fixtures — temporary workspaces, registries and prompt builders."""

from __future__ import annotations

from itertools import count

import pytest

from prompt_canopy.core.registry import PromptRegistry
from prompt_canopy.core.schemas import SchemaRegistry
from prompt_canopy.core.workspace import Workspace, init_workspace
from prompt_canopy.db.models import Prompt, Section, utc_now


@pytest.fixture
def workspace(tmp_path) -> Workspace:
    """Fresh initialized .canopy/ in a temporary working tree."""
    return init_workspace(tmp_path, project="test")


@pytest.fixture
def registry(workspace) -> PromptRegistry:
    return PromptRegistry(workspace, lock_timeout=1.0)


@pytest.fixture
def schemas(workspace) -> SchemaRegistry:
    return SchemaRegistry(workspace, lock_timeout=1.0)


@pytest.fixture
def sample_sections() -> list[Section]:
    return [
        Section(name="identity", body="You are a senior code reviewer."),
        Section(name="skills", body="You excel at Python and security."),
        Section(name="constraints", body="Be concise."),
    ]


@pytest.fixture
def make_prompt():
    """Build in-memory Prompt records: make_prompt("child", {"b": "3"}, extends="parent")."""
    ids = count(1)

    def _make(
        name: str,
        sections: dict[str, str] | None = None,
        extends: str | None = None,
        version: int = 1,
        id: str | None = None,
        **fields,
    ) -> Prompt:
        now = utc_now()
        return Prompt(
            id=id or f"p-{next(ids):04x}",
            name=name,
            version=version,
            sections=[Section(name=k, body=v) for k, v in (sections or {}).items()],
            extends=extends,
            created_at=now,
            updated_at=now,
            **fields,
        )

    return _make
