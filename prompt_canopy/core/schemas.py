"""Schema Registry — validation schemas stored in schemas.jsonl.

Schemas use the same append-only log as prompts, but carry no version:
the last line written for an id is its current state.
"""

from __future__ import annotations

import re
from pathlib import Path

import structlog

from prompt_canopy.config import load_project_config
from prompt_canopy.core.errors import InvalidInputError, PromptConflictError, SchemaNotFoundError
from prompt_canopy.core.ids import generate_id
from prompt_canopy.core.workspace import Workspace
from prompt_canopy.db.lock import file_lock
from prompt_canopy.db.models import LOCK_TIMEOUT_SECONDS, Schema, ValidationRule, utc_now
from prompt_canopy.db.store import append_jsonl, dedup_by_id_last, read_jsonl

logger = structlog.get_logger()


def _split(names: list[str] | None) -> list[str]:
    return [n.strip() for n in names or [] if n.strip()]


class SchemaRegistry:
    def __init__(self, workspace: Workspace, lock_timeout: float = LOCK_TIMEOUT_SECONDS) -> None:
        self.workspace = workspace
        self.lock_timeout = lock_timeout

    @property
    def path(self) -> Path:
        return self.workspace.schemas_path

    def list_schemas(self) -> list[Schema]:
        current = dedup_by_id_last(read_jsonl(self.path, Schema))
        return sorted(current, key=lambda s: s.name)

    def get_schema(self, name: str) -> Schema | None:
        for schema in reversed(dedup_by_id_last(read_jsonl(self.path, Schema))):
            if schema.name == name:
                return schema
        return None

    def require(self, name: str) -> Schema:
        schema = self.get_schema(name)
        if schema is None:
            raise SchemaNotFoundError(name)
        return schema

    def create_schema(
        self,
        name: str,
        required: list[str] | None = None,
        optional: list[str] | None = None,
    ) -> Schema:
        if not name:
            raise InvalidInputError("Schema name is required")

        config = load_project_config(self.workspace.root)

        with file_lock(self.path, timeout=self.lock_timeout):
            current = dedup_by_id_last(read_jsonl(self.path, Schema))
            if any(s.name == name for s in current):
                raise PromptConflictError(f"Schema '{name}' already exists")

            now = utc_now()
            schema = Schema(
                id=generate_id(f"{config.project}-schema", (s.id for s in current)),
                name=name,
                required_sections=_split(required),
                optional_sections=_split(optional) or None,
                created_at=now,
                updated_at=now,
            )
            append_jsonl(self.path, schema)

        logger.info("schema.created", id=schema.id, name=name)
        return schema

    def add_rule(self, schema_name: str, section: str, pattern: str, message: str) -> Schema:
        """Append the schema with one more regex rule."""
        try:
            re.compile(pattern)
        except re.error as e:
            raise InvalidInputError(f"Invalid regex pattern '{pattern}': {e}") from e

        with file_lock(self.path, timeout=self.lock_timeout):
            current = dedup_by_id_last(read_jsonl(self.path, Schema))
            schema = next((s for s in reversed(current) if s.name == schema_name), None)
            if schema is None:
                raise SchemaNotFoundError(schema_name)

            rule = ValidationRule(section=section, pattern=pattern, message=message)
            updated = schema.model_copy(
                update={"rules": [*(schema.rules or []), rule], "updated_at": utc_now()}
            )
            append_jsonl(self.path, updated)

        logger.info("schema.rule_added", name=schema_name, section=section)
        return updated
