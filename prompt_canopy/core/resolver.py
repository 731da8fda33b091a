"""Inheritance resolution — composes a prompt's sections from its extends chain.

Resolution is a pure function over an in-memory list of prompts: no I/O, no
locking. Parent sections come first in parent order; a child section with the
same name replaces the body in place, a new name is appended, and an empty
body removes the inherited section.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from prompt_canopy.core.errors import (
    CircularInheritanceError,
    DepthExceededError,
    PromptNotFoundError,
)
from prompt_canopy.db.models import MAX_INHERIT_DEPTH, Prompt, Section


@dataclass
class RenderResult:
    sections: list[Section]
    resolved_from: list[str] = field(default_factory=list)
    version: int = 0

    def to_dict(self) -> dict:
        return {
            "sections": [s.model_dump(exclude_none=True) for s in self.sections],
            "resolvedFrom": list(self.resolved_from),
            "version": self.version,
        }


def find_prompt(prompts: Sequence[Prompt], name: str, version: int | None = None) -> Prompt | None:
    """Exact name@version if ``version`` is given, else the highest version bearing ``name``."""
    if version is not None:
        for prompt in prompts:
            if prompt.name == name and prompt.version == version:
                return prompt
        return None

    best: Prompt | None = None
    for prompt in prompts:
        if prompt.name == name and (best is None or prompt.version > best.version):
            best = prompt
    return best


def merge_sections(parent: Sequence[Section], child: Sequence[Section]) -> list[Section]:
    """Overlay ``child`` sections on ``parent`` (override / append / remove)."""
    result = list(parent)
    for section in child:
        idx = next((i for i, s in enumerate(result) if s.name == section.name), None)
        if section.is_removal:
            if idx is not None:
                del result[idx]
        elif idx is not None:
            result[idx] = section
        else:
            result.append(section)
    return result


def resolve_prompt(
    name: str,
    prompts: Sequence[Prompt],
    version: int | None = None,
    *,
    max_depth: int = MAX_INHERIT_DEPTH,
) -> RenderResult:
    """Resolve ``name`` (optionally at ``version``) to its fully composed sections.

    Ancestors are always resolved at their latest version; ``version`` applies
    to the requested prompt only.

    Raises:
        PromptNotFoundError: the name, or name@version, does not exist.
        CircularInheritanceError: a name reappears while walking the chain.
        DepthExceededError: the chain is longer than ``max_depth`` prompts.
    """
    return _resolve(name, prompts, version, [], max_depth)


def _resolve(
    name: str,
    prompts: Sequence[Prompt],
    version: int | None,
    visited: list[str],
    max_depth: int,
) -> RenderResult:
    if name in visited:
        raise CircularInheritanceError([*visited, name])
    if len(visited) >= max_depth:
        raise DepthExceededError(name, visited, max_depth)

    prompt = find_prompt(prompts, name, version)
    if prompt is None:
        raise PromptNotFoundError(name, version)

    visited.append(name)

    if not prompt.extends:
        return RenderResult(
            sections=[s for s in prompt.sections if not s.is_removal],
            resolved_from=[name],
            version=prompt.version,
        )

    parent = _resolve(prompt.extends, prompts, None, visited, max_depth)
    return RenderResult(
        sections=merge_sections(parent.sections, prompt.sections),
        resolved_from=[*parent.resolved_from, name],
        version=prompt.version,
    )
