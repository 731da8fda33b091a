"""Record types stored in the JSONL logs.

Field names are snake_case in Python and camelCase on disk. Optional fields
that are unset are omitted from the serialized line, and unknown keys written
by other tools are preserved on round-trip.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

PromptStatus = Literal["draft", "active", "archived"]

LOCK_STALE_SECONDS = 30.0
LOCK_RETRY_SECONDS = 0.05
LOCK_TIMEOUT_SECONDS = 5.0
MAX_INHERIT_DEPTH = 5


def utc_now() -> str:
    """ISO-8601 timestamp used for createdAt/updatedAt."""
    return datetime.now(timezone.utc).isoformat()


class StoredModel(BaseModel):
    """Base for anything written to a JSONL log."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    def to_line(self) -> str:
        """Serialize to a single JSON line (no trailing newline)."""
        return self.model_dump_json(by_alias=True, exclude_none=True)


class Section(StoredModel):
    """A named unit of prompt content. An empty body marks a removal."""

    name: str = Field(min_length=1)
    body: str = ""
    required: bool | None = None

    @property
    def is_removal(self) -> bool:
        return self.body == ""


class Prompt(StoredModel):
    """One version of a prompt. Every mutation appends a new Prompt line."""

    id: str
    name: str
    version: int = Field(ge=1)
    sections: list[Section] = Field(default_factory=list)
    extends: str | None = None
    description: str | None = None
    tags: list[str] | None = None
    schema_name: str | None = Field(default=None, alias="schema")
    emit_as: str | None = None
    pinned: int | None = None
    status: PromptStatus = "active"
    created_at: str
    updated_at: str

    def section(self, name: str) -> Section | None:
        for section in self.sections:
            if section.name == name:
                return section
        return None

    def next_version(self, **changes: Any) -> Prompt:
        """Copy with version + 1, a fresh updatedAt, and the given field changes.

        A change whose value is None drops the field (e.g. unpinning).
        """
        data = self.model_dump(exclude_none=True)
        data.update(changes)
        data["version"] = self.version + 1
        data["updated_at"] = utc_now()
        return Prompt.model_validate({k: v for k, v in data.items() if v is not None})


class ValidationRule(StoredModel):
    section: str
    pattern: str
    message: str


class Schema(StoredModel):
    """Validation schema. Current state is the last line for an id."""

    id: str
    name: str
    required_sections: list[str] = Field(default_factory=list)
    optional_sections: list[str] | None = None
    rules: list[ValidationRule] | None = None
    created_at: str
    updated_at: str
