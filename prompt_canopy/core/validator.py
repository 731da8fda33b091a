"""Schema validation of a prompt's resolved sections."""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass, field

import structlog

from prompt_canopy.core.errors import InheritanceError, PromptNotFoundError
from prompt_canopy.core.resolver import resolve_prompt
from prompt_canopy.db.models import Prompt, Schema

logger = structlog.get_logger()


@dataclass
class ValidationIssue:
    section: str
    rule: str
    message: str


@dataclass
class ValidationResult:
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "errors": [vars(e) for e in self.errors],
            "warnings": list(self.warnings),
        }


def validate_prompt(prompt: Prompt, schema: Schema, all_prompts: Sequence[Prompt]) -> ValidationResult:
    """Check required sections and regex rules against the resolved prompt.

    If the inheritance chain cannot be resolved, the prompt's own sections are
    validated instead and a warning is recorded.
    """
    result = ValidationResult()

    sections = [s for s in prompt.sections if not s.is_removal]
    try:
        sections = resolve_prompt(prompt.name, all_prompts, prompt.version).sections
    except (InheritanceError, PromptNotFoundError) as e:
        result.warnings.append(f"Could not resolve inheritance, validating own sections: {e}")

    bodies = {s.name: s.body for s in sections}

    for required in schema.required_sections:
        if required not in bodies:
            result.errors.append(
                ValidationIssue(
                    section=required,
                    rule="required",
                    message=f"Required section '{required}' is missing",
                )
            )

    for rule in schema.rules or []:
        body = bodies.get(rule.section)
        if body is None:
            # Missing sections are reported by the required check
            continue
        try:
            matched = re.search(rule.pattern, body)
        except re.error:
            result.warnings.append(
                f"Invalid regex pattern in rule for section '{rule.section}': {rule.pattern}"
            )
            continue
        if not matched:
            result.errors.append(
                ValidationIssue(section=rule.section, rule=rule.pattern, message=rule.message)
            )

    logger.debug(
        "validate.completed",
        prompt=prompt.name,
        schema=schema.name,
        errors=len(result.errors),
        warnings=len(result.warnings),
    )
    return result
