"""The .canopy/ directory inside a working tree."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import structlog

from prompt_canopy.config import CANOPY_DIR, ProjectConfig, config_path, save_project_config
from prompt_canopy.core.emitter import DEFAULT_EMIT_DIR
from prompt_canopy.core.errors import WorkspaceError
from prompt_canopy.db.store import write_jsonl

logger = structlog.get_logger()

PROMPTS_FILE = "prompts.jsonl"
SCHEMAS_FILE = "schemas.jsonl"

GITATTRIBUTES_ENTRY = (
    f"{CANOPY_DIR}/{PROMPTS_FILE} merge=union\n{CANOPY_DIR}/{SCHEMAS_FILE} merge=union\n"
)


@dataclass(frozen=True)
class Workspace:
    root: Path

    @property
    def canopy_dir(self) -> Path:
        return self.root / CANOPY_DIR

    @property
    def prompts_path(self) -> Path:
        return self.canopy_dir / PROMPTS_FILE

    @property
    def schemas_path(self) -> Path:
        return self.canopy_dir / SCHEMAS_FILE

    @property
    def config_path(self) -> Path:
        return config_path(self.root)

    def exists(self) -> bool:
        return self.canopy_dir.is_dir()

    def require(self) -> Workspace:
        if not self.exists():
            raise WorkspaceError(f"{self.canopy_dir} not found. Run 'cn init' first.")
        return self


def init_workspace(root: str | Path, project: str = "canopy") -> Workspace:
    """Create .canopy/ with config, empty logs, and union-merge git attributes."""
    ws = Workspace(Path(root))
    if ws.exists():
        raise WorkspaceError(f"{ws.canopy_dir} already exists")

    ws.canopy_dir.mkdir(parents=True)
    save_project_config(ws.root, ProjectConfig(project=project, emit_dir=DEFAULT_EMIT_DIR))
    (ws.canopy_dir / ".gitignore").write_text("*.lock\n", encoding="utf-8")
    write_jsonl(ws.prompts_path, [])
    write_jsonl(ws.schemas_path, [])

    gitattributes = ws.root / ".gitattributes"
    existing = gitattributes.read_text(encoding="utf-8") if gitattributes.exists() else ""
    if f"{CANOPY_DIR}/{PROMPTS_FILE}" not in existing:
        if existing and not existing.endswith("\n"):
            existing += "\n"
        gitattributes.write_text(existing + GITATTRIBUTES_ENTRY, encoding="utf-8")

    logger.info("workspace.initialized", path=str(ws.canopy_dir), project=project)
    return ws
