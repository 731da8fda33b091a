"""prompt-canopy CLI — cn command."""

from __future__ import annotations

import functools
import json
from pathlib import Path
from typing import Any

import click

from prompt_canopy.config import get_settings
from prompt_canopy.core.differ import SectionDiffer
from prompt_canopy.core.errors import CanopyError, PromptNotFoundError
from prompt_canopy.core.registry import PromptRegistry
from prompt_canopy.core.schemas import SchemaRegistry
from prompt_canopy.core.workspace import Workspace, init_workspace
from prompt_canopy.db.models import Prompt, Section
from prompt_canopy.utils.logging import setup_logging


def _format_table(rows: list[dict], columns: list[str]) -> str:
    """Simple table formatter."""
    if not rows:
        return "No results."
    widths = {c: len(c) for c in columns}
    for row in rows:
        for c in columns:
            widths[c] = max(widths[c], len(str(row.get(c, ""))))

    header = "  ".join(c.upper().ljust(widths[c]) for c in columns)
    separator = "  ".join("-" * widths[c] for c in columns)
    lines = [header, separator]
    for row in rows:
        lines.append("  ".join(str(row.get(c, "")).ljust(widths[c]) for c in columns))
    return "\n".join(lines)


def _is_json(ctx: click.Context) -> bool:
    return bool(ctx.find_root().meta.get("json"))


def _emit(command: str, success: bool = True, **data: Any) -> None:
    click.echo(json.dumps({"success": success, "command": command, **data}, indent=2, default=str))


def _prompt_dict(prompt: Prompt) -> dict[str, Any]:
    return prompt.model_dump(by_alias=True, exclude_none=True)


def _parse_sections(values: tuple[str, ...]) -> dict[str, str]:
    sections: dict[str, str] = {}
    for value in values:
        name, sep, body = value.partition("=")
        if not sep or not name:
            raise click.BadParameter(f"expected name=body, got '{value}'", param_hint="--section")
        sections[name] = body
    return sections


def _parse_ref(ref: str) -> tuple[str, int | None]:
    """Split ``name@version``; the version part is optional."""
    name, sep, version = ref.rpartition("@")
    if not sep:
        return ref, None
    try:
        return name, int(version)
    except ValueError:
        raise click.BadParameter(f"version must be an integer, got '{version}'") from None


def handle_errors(command: str):
    """Report CanopyError as a failure message (or JSON object) and exit 1."""

    def decorator(f):
        @functools.wraps(f)
        def wrapper(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except CanopyError as e:
                ctx = click.get_current_context()
                if _is_json(ctx):
                    _emit(command, success=False, error=str(e))
                else:
                    click.secho(f"Error: {e}", fg="red", err=True)
                ctx.exit(1)

        return wrapper

    return decorator


def _workspace(ctx: click.Context) -> Workspace:
    return ctx.find_root().obj.require()


@click.group()
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
@click.option(
    "--root",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Working tree root (default: CANOPY_ROOT or current directory)",
)
@click.pass_context
def cli(ctx: click.Context, json_output: bool, root: Path | None) -> None:
    """Canopy — versioned, composable prompts stored in .canopy/."""
    settings = get_settings()
    setup_logging(settings.log_level)
    ctx.obj = Workspace(root if root is not None else settings.root)
    ctx.meta["json"] = json_output


@cli.command()
@click.option("--project", default="canopy", help="ID prefix for new records")
@click.pass_context
@handle_errors("init")
def init(ctx: click.Context, project: str) -> None:
    """Initialize .canopy/ in the working tree."""
    ws = init_workspace(ctx.obj.root, project=project)
    if _is_json(ctx):
        _emit("init", dir=str(ws.canopy_dir))
    else:
        click.echo(f"Initialized {ws.canopy_dir}")


# --- Prompt commands ---


@cli.command()
@click.option("--name", required=True)
@click.option("--description", default=None)
@click.option("--extends", default=None, help="Inherit from parent prompt")
@click.option("--tag", "tags", multiple=True)
@click.option("--schema", default=None)
@click.option("--emit-as", default=None)
@click.option("--status", type=click.Choice(["draft", "active"]), default="active")
@click.option("--section", "sections", multiple=True, help="name=body (repeatable)")
@click.pass_context
@handle_errors("create")
def create(
    ctx: click.Context,
    name: str,
    description: str | None,
    extends: str | None,
    tags: tuple[str, ...],
    schema: str | None,
    emit_as: str | None,
    status: str,
    sections: tuple[str, ...],
) -> None:
    """Create a prompt."""
    registry = PromptRegistry(_workspace(ctx))
    prompt = registry.create_prompt(
        name=name,
        sections=[Section(name=k, body=v) for k, v in _parse_sections(sections).items()],
        extends=extends,
        description=description,
        tags=list(tags),
        schema=schema,
        emit_as=emit_as,
        status=status,
    )
    if _is_json(ctx):
        _emit("create", id=prompt.id, name=prompt.name)
    else:
        click.echo(f"Created prompt {prompt.name} ({prompt.id})")


@cli.command()
@click.argument("name")
@click.pass_context
@handle_errors("show")
def show(ctx: click.Context, name: str) -> None:
    """Show a prompt's current record."""
    prompt = PromptRegistry(_workspace(ctx)).get_prompt(name)
    if prompt is None:
        raise PromptNotFoundError(name)
    if _is_json(ctx):
        _emit("show", prompt=_prompt_dict(prompt))
        return
    click.echo(f"{prompt.name} (v{prompt.version}, {prompt.status})  id={prompt.id}")
    if prompt.extends:
        click.echo(f"Extends: {prompt.extends}")
    if prompt.pinned is not None:
        click.echo(f"Pinned: v{prompt.pinned}")
    if prompt.tags:
        click.echo(f"Tags: {', '.join(prompt.tags)}")
    if prompt.schema_name:
        click.echo(f"Schema: {prompt.schema_name}")
    for section in prompt.sections:
        click.echo(f"\n## {section.name}")
        click.echo(section.body if section.body else "(removed)")


@cli.command("list")
@click.option("--status", type=click.Choice(["draft", "active", "archived"]), default=None)
@click.option("--tag", default=None)
@click.option("--all", "include_archived", is_flag=True, help="Include archived prompts")
@click.pass_context
@handle_errors("list")
def list_cmd(ctx: click.Context, status: str | None, tag: str | None, include_archived: bool) -> None:
    """List prompts."""
    prompts = PromptRegistry(_workspace(ctx)).list_prompts(
        status=status, tag=tag, include_archived=include_archived
    )
    if _is_json(ctx):
        _emit("list", prompts=[_prompt_dict(p) for p in prompts])
        return
    rows = [
        {
            "name": p.name,
            "version": p.version,
            "status": p.status,
            "extends": p.extends or "",
            "pinned": f"@{p.pinned}" if p.pinned is not None else "",
        }
        for p in prompts
    ]
    click.echo(_format_table(rows, ["name", "version", "status", "extends", "pinned"]))


@cli.command()
@click.argument("name")
@click.option("--section", "sections", multiple=True, help="name=body (repeatable)")
@click.option("--remove-section", "remove_sections", multiple=True)
@click.option("--tag", "add_tags", multiple=True)
@click.option("--untag", "remove_tags", multiple=True)
@click.option("--description", default=None)
@click.option("--schema", default=None)
@click.option("--extends", default=None, help="Change parent ('' to clear)")
@click.option("--emit-as", default=None)
@click.option("--status", type=click.Choice(["draft", "active", "archived"]), default=None)
@click.option("--rename", default=None)
@click.pass_context
@handle_errors("update")
def update(
    ctx: click.Context,
    name: str,
    sections: tuple[str, ...],
    remove_sections: tuple[str, ...],
    add_tags: tuple[str, ...],
    remove_tags: tuple[str, ...],
    description: str | None,
    schema: str | None,
    extends: str | None,
    emit_as: str | None,
    status: str | None,
    rename: str | None,
) -> None:
    """Update a prompt (appends a new version)."""
    prompt = PromptRegistry(_workspace(ctx)).update_prompt(
        name,
        sections=_parse_sections(sections),
        remove_sections=list(remove_sections),
        add_tags=list(add_tags),
        remove_tags=list(remove_tags),
        description=description,
        schema=schema,
        extends=extends,
        emit_as=emit_as,
        status=status,
        rename=rename,
    )
    if _is_json(ctx):
        _emit("update", id=prompt.id, name=prompt.name, version=prompt.version)
    else:
        click.echo(f"Updated {prompt.name} -> v{prompt.version}")


@cli.command()
@click.argument("name")
@click.pass_context
@handle_errors("archive")
def archive(ctx: click.Context, name: str) -> None:
    """Archive a prompt."""
    prompt = PromptRegistry(_workspace(ctx)).archive_prompt(name)
    if _is_json(ctx):
        _emit("archive", id=prompt.id, name=prompt.name)
    else:
        click.echo(f"Archived prompt {prompt.name}")


@cli.command()
@click.argument("ref", metavar="NAME@VERSION")
@click.pass_context
@handle_errors("pin")
def pin(ctx: click.Context, ref: str) -> None:
    """Pin a prompt to a specific version."""
    name, version = _parse_ref(ref)
    if version is None:
        raise click.BadParameter("expected NAME@VERSION", param_hint="NAME@VERSION")
    PromptRegistry(_workspace(ctx)).pin_prompt(name, version)
    if _is_json(ctx):
        _emit("pin", name=name, pinned=version)
    else:
        click.echo(f"Pinned {name} to v{version}")


@cli.command()
@click.argument("name")
@click.pass_context
@handle_errors("unpin")
def unpin(ctx: click.Context, name: str) -> None:
    """Remove a prompt's version pin."""
    PromptRegistry(_workspace(ctx)).unpin_prompt(name)
    if _is_json(ctx):
        _emit("unpin", name=name)
    else:
        click.echo(f"Unpinned {name}")


@cli.command()
@click.argument("name")
@click.option("--limit", type=int, default=20)
@click.pass_context
@handle_errors("history")
def history(ctx: click.Context, name: str, limit: int) -> None:
    """Show version history, newest first."""
    registry = PromptRegistry(_workspace(ctx))
    versions = registry.history(name, limit=limit)
    if _is_json(ctx):
        _emit("history", name=name, versions=[_prompt_dict(v) for v in versions])
        return
    current = registry.get_prompt(name)
    click.echo(f"{name} - version history ({len(versions)} versions)\n")
    for v in versions:
        marker = " <- current" if current is not None and v.version == current.version else ""
        pinned = f" (pinned @{v.pinned})" if v.pinned is not None else ""
        click.echo(f"  v{v.version}{marker}{pinned}  {v.updated_at}")
        click.echo(f"    sections: {', '.join(s.name for s in v.sections) or '(none)'}")


@cli.command()
@click.argument("ref", metavar="NAME[@VERSION]")
@click.option("--format", "output_format", type=click.Choice(["md", "json"]), default="md")
@click.pass_context
@handle_errors("render")
def render(ctx: click.Context, ref: str, output_format: str) -> None:
    """Render the full prompt with inheritance resolved."""
    name, version = _parse_ref(ref)
    result = PromptRegistry(_workspace(ctx)).render(name, version)
    if _is_json(ctx):
        _emit("render", name=name, **result.to_dict())
    elif output_format == "json":
        click.echo(json.dumps({"name": name, **result.to_dict()}, indent=2))
    else:
        click.echo(f"# {name} (v{result.version})")
        click.echo(f"Resolved from: {' -> '.join(result.resolved_from)}\n")
        for section in result.sections:
            click.echo(f"## {section.name}\n")
            click.echo(f"{section.body}\n")


@cli.command()
@click.argument("name")
@click.pass_context
@handle_errors("tree")
def tree(ctx: click.Context, name: str) -> None:
    """Show a prompt's ancestors and descendants."""
    data = PromptRegistry(_workspace(ctx)).tree(name)
    if _is_json(ctx):
        _emit("tree", name=name, tree=data)
        return
    for depth, ancestor in enumerate(data["ancestors"]):
        click.echo(f"{'  ' * depth}{ancestor}")
    base = len(data["ancestors"])
    click.echo(f"{'  ' * base}{click.style(data['name'], bold=True)} (v{data['version']})")

    def walk(node: dict[str, Any], depth: int) -> None:
        for child in node["children"]:
            click.echo(f"{'  ' * depth}├── {child['name']} v{child['version']}")
            walk(child, depth + 1)

    walk(data, base + 1)


@cli.command()
@click.argument("name")
@click.argument("from_version", type=int, required=False)
@click.argument("to_version", type=int, required=False)
@click.pass_context
@handle_errors("diff")
def diff(ctx: click.Context, name: str, from_version: int | None, to_version: int | None) -> None:
    """Section diff between two versions (default: previous vs. current)."""
    result = PromptRegistry(_workspace(ctx)).diff(name, from_version, to_version)
    if _is_json(ctx):
        _emit("diff", **result)
    else:
        click.echo(f"{name}: v{result['from_version']} -> v{result['to_version']}")
        click.echo(SectionDiffer().human_readable(result))


@cli.command()
@click.argument("name")
@click.option("--schema", "schema_name", default=None, help="Override the assigned schema")
@click.pass_context
@handle_errors("validate")
def validate(ctx: click.Context, name: str, schema_name: str | None) -> None:
    """Validate a prompt against its schema."""
    result = PromptRegistry(_workspace(ctx)).validate(name, schema_name)
    if _is_json(ctx):
        _emit("validate", success=result.valid, name=name, **result.to_dict())
    else:
        for warning in result.warnings:
            click.secho(f"Warning: {warning}", fg="yellow", err=True)
        for error in result.errors:
            click.echo(f"  [{error.section}] {error.message}")
        click.echo(f"{name}: {'valid' if result.valid else 'invalid'}")
    if not result.valid:
        ctx.exit(1)


@cli.command()
@click.argument("name", required=False)
@click.option("--all", "emit_all", is_flag=True, help="Emit all active prompts")
@click.option("--check", is_flag=True, help="Check that emitted files are up to date")
@click.option(
    "--out", type=click.Path(dir_okay=False, path_type=Path), default=None, help="Output file (single prompt)"
)
@click.option(
    "--out-dir", type=click.Path(file_okay=False, path_type=Path), default=None, help="Output directory"
)
@click.option("--force", is_flag=True, help="Overwrite even if unchanged")
@click.option("--dry-run", is_flag=True, help="Show what would be emitted")
@click.pass_context
@handle_errors("emit")
def emit(
    ctx: click.Context,
    name: str | None,
    emit_all: bool,
    check: bool,
    out: Path | None,
    out_dir: Path | None,
    force: bool,
    dry_run: bool,
) -> None:
    """Write rendered prompts to markdown files."""
    registry = PromptRegistry(_workspace(ctx))

    if check:
        stale = registry.check_emitted(out_dir)
        if _is_json(ctx):
            _emit("emit", success=not stale, check=True, stale=stale, upToDate=not stale)
        elif stale:
            click.secho(f"{len(stale)} stale file(s):", fg="red")
            for stale_name in stale:
                click.echo(f"  - {stale_name}")
        else:
            click.secho("All emitted files are up to date", fg="green")
        if stale:
            ctx.exit(1)
        return

    files = registry.emit(
        name, emit_all=emit_all, out_dir=out_dir, out=out, force=force, dry_run=dry_run
    )
    if _is_json(ctx):
        _emit("emit", dryRun=dry_run, files=[f.to_dict() for f in files])
        return
    if dry_run:
        click.echo(f"Would emit {len(files)} prompt(s)")
    for f in files:
        status = click.style("(unchanged)", dim=True) if f.skipped else click.style("ok", fg="green")
        click.echo(f"{status} {f.name} -> {f.path}")


# --- Schema commands ---


@cli.group()
def schema() -> None:
    """Manage validation schemas."""


def _csv(value: str) -> list[str]:
    return [v.strip() for v in value.split(",") if v.strip()]


@schema.command("create")
@click.option("--name", required=True)
@click.option("--required", default="", help="Comma-separated required sections")
@click.option("--optional", default="", help="Comma-separated optional sections")
@click.pass_context
@handle_errors("schema create")
def schema_create(ctx: click.Context, name: str, required: str, optional: str) -> None:
    """Create a schema."""
    created = SchemaRegistry(_workspace(ctx)).create_schema(name, _csv(required), _csv(optional))
    if _is_json(ctx):
        _emit("schema create", id=created.id, name=created.name)
    else:
        click.echo(f"Created schema {created.name} ({created.id})")


@schema.command("show")
@click.argument("name")
@click.pass_context
@handle_errors("schema show")
def schema_show(ctx: click.Context, name: str) -> None:
    """Show a schema."""
    found = SchemaRegistry(_workspace(ctx)).require(name)
    click.echo(json.dumps(found.model_dump(by_alias=True, exclude_none=True), indent=2))


@schema.command("list")
@click.pass_context
@handle_errors("schema list")
def schema_list(ctx: click.Context) -> None:
    """List schemas."""
    schemas = SchemaRegistry(_workspace(ctx)).list_schemas()
    if _is_json(ctx):
        _emit("schema list", schemas=[s.model_dump(by_alias=True, exclude_none=True) for s in schemas])
        return
    rows = [
        {"name": s.name, "required": ",".join(s.required_sections), "rules": len(s.rules or [])}
        for s in schemas
    ]
    click.echo(_format_table(rows, ["name", "required", "rules"]))


@schema.command("rule-add")
@click.argument("schema_name")
@click.option("--section", required=True)
@click.option("--pattern", required=True)
@click.option("--message", required=True)
@click.pass_context
@handle_errors("schema rule-add")
def schema_rule_add(ctx: click.Context, schema_name: str, section: str, pattern: str, message: str) -> None:
    """Add a regex rule to a schema."""
    SchemaRegistry(_workspace(ctx)).add_rule(schema_name, section, pattern, message)
    if _is_json(ctx):
        _emit("schema rule-add", schema=schema_name, section=section)
    else:
        click.echo(f"Added rule to {schema_name} for section {section}")


if __name__ == "__main__":
    cli()
