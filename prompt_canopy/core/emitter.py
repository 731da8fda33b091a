"""Markdown export of rendered prompts."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog

from prompt_canopy.db.models import Prompt, Section

logger = structlog.get_logger()

DEFAULT_EMIT_DIR = "agents"


@dataclass
class EmittedFile:
    name: str
    path: Path
    version: int
    skipped: bool = False

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name, "path": str(self.path), "version": self.version}
        if self.skipped:
            data["skipped"] = True
        return data


def sections_to_markdown(sections: Sequence[Section]) -> str:
    """One ``## name`` heading per section, blank-line separated."""
    return "\n\n".join(f"## {s.name}\n\n{s.body}" for s in sections) + "\n"


def emit_filename(prompt: Prompt) -> str:
    return prompt.emit_as or f"{prompt.name}.md"


def is_current(path: Path, content: str) -> bool:
    """Whether ``path`` exists and holds exactly ``content``."""
    try:
        return path.read_bytes() == content.encode("utf-8")
    except FileNotFoundError:
        return False


def write_markdown(path: Path, content: str, force: bool = False) -> bool:
    """Write ``content`` to ``path``; return False when it was already current."""
    if not force and is_current(path, content):
        logger.debug("emit.unchanged", path=str(path))
        return False
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content.encode("utf-8"))
    logger.debug("emit.written", path=str(path))
    return True
