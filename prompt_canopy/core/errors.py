"""Exception hierarchy for prompt-canopy."""

from __future__ import annotations

from pathlib import Path


class CanopyError(Exception):
    """Base class for errors raised by prompt-canopy itself."""


class WorkspaceError(CanopyError):
    """The .canopy/ directory is missing, or already exists on init."""


class LockTimeoutError(CanopyError, TimeoutError):
    """The advisory lock could not be acquired before the deadline."""

    def __init__(self, path: str | Path, timeout: float) -> None:
        self.path = str(path)
        self.timeout = timeout
        super().__init__(f"Timeout acquiring lock on {self.path} after {timeout:g}s")


class PromptNotFoundError(CanopyError, LookupError):
    """No prompt bears the requested name (or name@version)."""

    def __init__(self, name: str, version: int | None = None) -> None:
        self.name = name
        self.version = version
        suffix = f"@{version}" if version is not None else ""
        super().__init__(f"Prompt '{name}{suffix}' not found")


class SchemaNotFoundError(CanopyError, LookupError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Schema '{name}' not found")


class PromptConflictError(CanopyError, ValueError):
    """A mutation conflicts with current state (duplicate name, already archived)."""


class InheritanceError(CanopyError, ValueError):
    """Base for errors found while walking an extends chain."""

    def __init__(self, message: str, chain: list[str]) -> None:
        self.chain = list(chain)
        super().__init__(message)


class CircularInheritanceError(InheritanceError):
    def __init__(self, chain: list[str]) -> None:
        super().__init__(f"Circular inheritance: {' → '.join(chain)}", chain)


class DepthExceededError(InheritanceError):
    def __init__(self, name: str, chain: list[str], limit: int) -> None:
        self.name = name
        self.limit = limit
        super().__init__(
            f"Inheritance depth limit ({limit}) exceeded at '{name}'. "
            f"Chain: {' → '.join(chain)}",
            chain,
        )


class InvalidInputError(CanopyError, ValueError):
    """An argument is outside the accepted values (status, regex pattern, ...)."""
