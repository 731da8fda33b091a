"""Prompt Registry — create, read, update, archive, pin and render prompts.

Every mutation takes the lock on prompts.jsonl, reads and deduplicates the
log, and appends a full new record with version + 1. Reads do not lock and
rely on dedup-on-read to tolerate concurrent writers and merge duplicates.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import structlog

from prompt_canopy.config import load_project_config
from prompt_canopy.core.differ import SectionDiffer
from prompt_canopy.core.emitter import (
    DEFAULT_EMIT_DIR,
    EmittedFile,
    emit_filename,
    is_current,
    sections_to_markdown,
    write_markdown,
)
from prompt_canopy.core.errors import (
    InvalidInputError,
    PromptConflictError,
    PromptNotFoundError,
)
from prompt_canopy.core.ids import generate_id
from prompt_canopy.core.resolver import RenderResult, resolve_prompt
from prompt_canopy.core.schemas import SchemaRegistry
from prompt_canopy.core.validator import ValidationResult, validate_prompt
from prompt_canopy.core.workspace import Workspace
from prompt_canopy.db.lock import file_lock
from prompt_canopy.db.models import (
    LOCK_TIMEOUT_SECONDS,
    Prompt,
    Section,
    utc_now,
)
from prompt_canopy.db.store import append_jsonl, dedup_by_id, get_versions, read_jsonl

logger = structlog.get_logger()

STATUSES = ("draft", "active", "archived")


def visible_prompts(current: Iterable[Prompt]) -> list[Prompt]:
    """Current records, minus archived ones whose name is reused by a live prompt."""
    current = list(current)
    live_names = {p.name for p in current if p.status != "archived"}
    return [p for p in current if p.status != "archived" or p.name not in live_names]


def lookup(current: Iterable[Prompt], name: str) -> Prompt | None:
    """The record bearing ``name``, preferring live prompts, then the highest version."""
    candidates = [p for p in current if p.name == name]
    if not candidates:
        return None
    return max(candidates, key=lambda p: (p.status != "archived", p.version))


def _upsert_section(sections: list[Section], name: str, body: str) -> None:
    for i, section in enumerate(sections):
        if section.name == name:
            sections[i] = section.model_copy(update={"body": body})
            return
    sections.append(Section(name=name, body=body))


class PromptRegistry:
    """Manages prompt lifecycle on top of the append-only prompts log."""

    def __init__(self, workspace: Workspace, lock_timeout: float = LOCK_TIMEOUT_SECONDS) -> None:
        self.workspace = workspace
        self.lock_timeout = lock_timeout

    @property
    def path(self) -> Path:
        return self.workspace.prompts_path

    @contextmanager
    def _locked(self) -> Iterator[list[Prompt]]:
        """Hold the prompts lock and yield every record currently in the log."""
        with file_lock(self.path, timeout=self.lock_timeout):
            yield read_jsonl(self.path, Prompt)

    def _require(self, current: list[Prompt], name: str) -> Prompt:
        prompt = lookup(current, name)
        if prompt is None:
            raise PromptNotFoundError(name)
        return prompt

    def all_records(self) -> list[Prompt]:
        return read_jsonl(self.path, Prompt)

    def current(self) -> list[Prompt]:
        return dedup_by_id(self.all_records())

    # --- Lifecycle ---

    def create_prompt(
        self,
        name: str,
        sections: list[Section] | None = None,
        extends: str | None = None,
        description: str | None = None,
        tags: list[str] | None = None,
        schema: str | None = None,
        emit_as: str | None = None,
        status: str = "active",
    ) -> Prompt:
        """Create version 1 of a new prompt."""
        if not name:
            raise InvalidInputError("Prompt name is required")
        if status not in ("draft", "active"):
            raise InvalidInputError(f"Initial status must be draft or active, got '{status}'")

        config = load_project_config(self.workspace.root)

        with self._locked() as records:
            current = dedup_by_id(records)

            if any(p.name == name and p.status != "archived" for p in current):
                raise PromptConflictError(f"Prompt name '{name}' already exists")
            if extends and lookup(current, extends) is None:
                raise PromptNotFoundError(extends)

            now = utc_now()
            prompt = Prompt(
                id=generate_id(config.project, (p.id for p in current)),
                name=name,
                version=1,
                sections=list(sections or []),
                extends=extends or None,
                description=description or None,
                tags=list(tags) if tags else None,
                schema_name=schema or None,
                emit_as=emit_as or None,
                status=status,
                created_at=now,
                updated_at=now,
            )
            append_jsonl(self.path, prompt)

        logger.info("prompt.created", id=prompt.id, name=name, extends=extends)
        return prompt

    def get_prompt(self, name: str) -> Prompt | None:
        """Current state of the prompt bearing ``name``."""
        return lookup(self.current(), name)

    def list_prompts(
        self,
        status: str | None = None,
        tag: str | None = None,
        include_archived: bool = False,
    ) -> list[Prompt]:
        """List current prompts; archived ones only when asked for."""
        results = self.current()
        if status:
            results = [p for p in results if p.status == status]
        elif not include_archived:
            results = [p for p in results if p.status != "archived"]
        if tag:
            results = [p for p in results if tag in (p.tags or [])]
        return sorted(results, key=lambda p: p.name)

    def update_prompt(
        self,
        name: str,
        *,
        sections: dict[str, str] | None = None,
        remove_sections: list[str] | None = None,
        add_tags: list[str] | None = None,
        remove_tags: list[str] | None = None,
        description: str | None = None,
        schema: str | None = None,
        extends: str | None = None,
        emit_as: str | None = None,
        status: str | None = None,
        rename: str | None = None,
    ) -> Prompt:
        """Append a new version with the given changes applied.

        ``sections`` maps names to bodies: existing sections are overridden in
        place, new names are appended. Removed sections get an empty body so
        that inherited sections of the same name are masked too.
        """
        if status is not None and status not in STATUSES:
            raise InvalidInputError(f"Invalid status '{status}'")

        with self._locked() as records:
            current = dedup_by_id(records)
            prompt = self._require(current, name)

            new_sections = list(prompt.sections)
            for section_name, body in (sections or {}).items():
                _upsert_section(new_sections, section_name, body)
            for section_name in remove_sections or []:
                _upsert_section(new_sections, section_name, "")

            changes: dict[str, Any] = {"sections": new_sections}

            if add_tags or remove_tags:
                tags = [t for t in (prompt.tags or []) if t not in (remove_tags or [])]
                tags.extend(t for t in (add_tags or []) if t not in tags)
                changes["tags"] = tags or None
            if description is not None:
                changes["description"] = description
            if schema is not None:
                changes["schema_name"] = schema or None
            if emit_as is not None:
                changes["emit_as"] = emit_as or None
            if status is not None:
                changes["status"] = status
            if rename is not None and rename != prompt.name:
                if any(p.name == rename and p.status != "archived" and p.id != prompt.id for p in current):
                    raise PromptConflictError(f"Prompt name '{rename}' already exists")
                changes["name"] = rename
            if extends is not None:
                changes["extends"] = extends or None

            updated = prompt.next_version(**changes)

            if extends:
                if lookup(current, extends) is None:
                    raise PromptNotFoundError(extends)
                # Reject a parent change that would make the chain unresolvable
                candidate = [p for p in visible_prompts(current) if p.id != prompt.id] + [updated]
                resolve_prompt(updated.name, candidate)

            append_jsonl(self.path, updated)

        logger.info(
            "prompt.updated",
            id=updated.id,
            name=updated.name,
            version=updated.version,
            fields=sorted(k for k in changes if k != "sections"),
        )
        return updated

    def archive_prompt(self, name: str) -> Prompt:
        """Soft-delete a prompt by appending a version with status=archived."""
        with self._locked() as records:
            prompt = self._require(dedup_by_id(records), name)
            if prompt.status == "archived":
                raise PromptConflictError(f"Prompt '{name}' is already archived")
            updated = prompt.next_version(status="archived")
            append_jsonl(self.path, updated)

        logger.info("prompt.archived", id=updated.id, name=name, version=updated.version)
        return updated

    def pin_prompt(self, name: str, version: int) -> Prompt:
        """Pin rendering of ``name`` to an existing historical version."""
        with self._locked() as records:
            prompt = self._require(dedup_by_id(records), name)
            if not any(v.version == version for v in get_versions(records, prompt.id)):
                raise PromptNotFoundError(name, version)
            updated = prompt.next_version(pinned=version)
            append_jsonl(self.path, updated)

        logger.info("prompt.pinned", id=updated.id, name=name, pinned=version)
        return updated

    def unpin_prompt(self, name: str) -> Prompt:
        with self._locked() as records:
            prompt = self._require(dedup_by_id(records), name)
            updated = prompt.next_version(pinned=None)
            append_jsonl(self.path, updated)

        logger.info("prompt.unpinned", id=updated.id, name=name)
        return updated

    # --- History ---

    def history(self, name: str, limit: int | None = None) -> list[Prompt]:
        """All versions of the prompt, newest first."""
        records = self.all_records()
        prompt = self._require(dedup_by_id(records), name)
        versions = list(reversed(get_versions(records, prompt.id)))
        return versions[:limit] if limit is not None else versions

    def get_version(self, name: str, version: int) -> Prompt:
        for record in self.history(name):
            if record.version == version:
                return record
        raise PromptNotFoundError(name, version)

    def diff(
        self,
        name: str,
        from_version: int | None = None,
        to_version: int | None = None,
    ) -> dict[str, Any]:
        """Section diff between two versions (default: previous vs. current)."""
        versions = {v.version: v for v in self.history(name)}
        to_version = to_version if to_version is not None else max(versions)
        from_version = from_version if from_version is not None else to_version - 1
        for v in (from_version, to_version):
            if v not in versions:
                raise PromptNotFoundError(name, v)
        return SectionDiffer().diff_prompts(versions[from_version], versions[to_version])

    # --- Composition ---

    def render(self, name: str, version: int | None = None) -> RenderResult:
        """Resolve the full section list of ``name``.

        Without an explicit version a pinned prompt renders at its pin.
        Ancestors always render at their latest version.
        """
        records = self.all_records()
        current = visible_prompts(dedup_by_id(records))
        return self._render(records, current, self._require(current, name), version)

    def _render(
        self,
        records: list[Prompt],
        current: list[Prompt],
        prompt: Prompt,
        version: int | None = None,
    ) -> RenderResult:
        if version is None:
            version = prompt.pinned
        if version is None or version == prompt.version:
            return resolve_prompt(prompt.name, current, prompt.version)

        historical = [v for v in get_versions(records, prompt.id) if v.version == version]
        if not historical:
            raise PromptNotFoundError(prompt.name, version)
        target = historical[0]
        # The old line may carry a name another prompt holds now
        candidates = [p for p in current if p.id != prompt.id and p.name != target.name]
        return resolve_prompt(target.name, [*candidates, target], version)

    # --- Export ---

    def _emit_dir(self, out_dir: str | Path | None) -> Path:
        if out_dir is not None:
            return Path(out_dir)
        config = load_project_config(self.workspace.root)
        return self.workspace.root / (config.emit_dir or DEFAULT_EMIT_DIR)

    def _emit_targets(
        self, name: str | None, emit_all: bool
    ) -> tuple[list[Prompt], list[Prompt], list[Prompt]]:
        records = self.all_records()
        current = visible_prompts(dedup_by_id(records))
        if emit_all:
            targets = sorted((p for p in current if p.status == "active"), key=lambda p: p.name)
        elif name:
            targets = [self._require(current, name)]
        else:
            raise InvalidInputError("Prompt name or --all required")
        return records, current, targets

    def emit(
        self,
        name: str | None = None,
        *,
        emit_all: bool = False,
        out_dir: str | Path | None = None,
        out: str | Path | None = None,
        force: bool = False,
        dry_run: bool = False,
    ) -> list[EmittedFile]:
        """Write rendered prompts as markdown files.

        Each prompt renders at its pin to ``emitAs`` (or ``<name>.md``) under
        the emit directory. With ``emit_all`` every active prompt is written.
        ``out`` overrides the file path of a single prompt. Files whose content
        is already current are left alone unless ``force`` is set.
        """
        if out is not None and emit_all:
            raise InvalidInputError("--out applies to a single prompt")

        records, current, targets = self._emit_targets(name, emit_all)
        base = self._emit_dir(out_dir)

        emitted: list[EmittedFile] = []
        for prompt in targets:
            path = Path(out) if out is not None else base / emit_filename(prompt)
            if dry_run:
                emitted.append(EmittedFile(prompt.name, path, prompt.pinned or prompt.version))
                continue
            result = self._render(records, current, prompt)
            written = write_markdown(path, sections_to_markdown(result.sections), force=force)
            emitted.append(EmittedFile(prompt.name, path, result.version, skipped=not written))

        logger.info(
            "prompt.emitted",
            count=sum(1 for f in emitted if not f.skipped),
            skipped=sum(1 for f in emitted if f.skipped),
            dry_run=dry_run,
        )
        return emitted

    def check_emitted(self, out_dir: str | Path | None = None) -> list[str]:
        """Names of active prompts whose emitted file is missing or out of date."""
        records, current, targets = self._emit_targets(None, emit_all=True)
        base = self._emit_dir(out_dir)

        stale = []
        for prompt in targets:
            expected = sections_to_markdown(self._render(records, current, prompt).sections)
            if not is_current(base / emit_filename(prompt), expected):
                stale.append(prompt.name)
        return stale

    def tree(self, name: str) -> dict[str, Any]:
        """Ancestors (root first) and the recursive descendants of ``name``."""
        current = visible_prompts(self.current())
        prompt = self._require(current, name)

        ancestors: list[str] = []
        node: Prompt | None = prompt
        while node is not None and node.extends:
            if node.extends in ancestors or node.extends == name:
                break
            ancestors.append(node.extends)
            node = lookup(current, node.extends)
        ancestors.reverse()

        def build(parent: Prompt, seen: frozenset[str]) -> dict[str, Any]:
            children = sorted(
                (p for p in current if p.extends == parent.name and p.name not in seen),
                key=lambda p: p.name,
            )
            return {
                "name": parent.name,
                "version": parent.version,
                "children": [build(c, seen | {c.name}) for c in children],
            }

        return {"ancestors": ancestors, **build(prompt, frozenset({prompt.name}))}

    def validate(self, name: str, schema_name: str | None = None) -> ValidationResult:
        """Validate the current version against its (or the given) schema."""
        current = visible_prompts(self.current())
        prompt = self._require(current, name)
        schema_name = schema_name or prompt.schema_name
        if not schema_name:
            raise InvalidInputError(f"Prompt '{name}' has no schema assigned")
        schema = SchemaRegistry(self.workspace, self.lock_timeout).require(schema_name)
        return validate_prompt(prompt, schema, current)
