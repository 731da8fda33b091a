"""Append-only JSONL record store.

Every write goes to a fresh temp file in the target's directory and is then
renamed over the target, so readers never observe a partial file. The store
does not lock; callers wrap read-modify-append sequences in
``prompt_canopy.db.lock.file_lock``.
"""

from __future__ import annotations

import os
import tempfile
from collections.abc import Iterable
from pathlib import Path
from typing import TypeVar

import structlog
from pydantic import ValidationError

from prompt_canopy.db.models import StoredModel

logger = structlog.get_logger()

T = TypeVar("T", bound=StoredModel)


def read_jsonl(path: str | Path, model: type[T]) -> list[T]:
    """Parse every well-formed line of ``path`` into ``model``.

    Blank lines are ignored. Lines that are not valid UTF-8, not valid JSON or
    fail validation are skipped. A missing file reads as empty; any other I/O
    error propagates.
    """
    try:
        data = Path(path).read_bytes()
    except FileNotFoundError:
        return []

    records: list[T] = []
    skipped = 0
    for raw in data.split(b"\n"):
        raw = raw.strip()
        if not raw:
            continue
        try:
            records.append(model.model_validate_json(raw.decode("utf-8")))
        except (UnicodeDecodeError, ValidationError):
            skipped += 1

    if skipped:
        logger.debug("store.malformed_lines_skipped", path=str(path), skipped=skipped)
    return records


def _serialize(records: Iterable[StoredModel]) -> bytes:
    return "".join(f"{record.to_line()}\n" for record in records).encode("utf-8")


def _replace_atomically(path: Path, data: bytes) -> None:
    fd, tmp = tempfile.mkstemp(prefix=".jsonl.tmp.", dir=path.parent)
    with os.fdopen(fd, "wb") as f:
        f.write(data)
        f.flush()
        os.fsync(f.fileno())
    # A temp file left behind by a failed rename is not cleaned up here
    os.replace(tmp, path)


def write_jsonl(path: str | Path, records: Iterable[StoredModel]) -> None:
    """Rewrite ``path`` with exactly ``records``, one per line."""
    path = Path(path)
    data = _serialize(records)
    _replace_atomically(path, data)
    logger.debug("store.write", path=str(path), bytes=len(data))


def append_jsonl(path: str | Path, record: StoredModel) -> None:
    """Append one record line, via the same temp-then-rename sequence.

    Existing bytes are carried over untouched, including lines that do not
    decode.
    """
    path = Path(path)
    try:
        existing = path.read_bytes()
    except FileNotFoundError:
        existing = b""

    if existing and not existing.endswith(b"\n"):
        existing += b"\n"
    _replace_atomically(path, existing + _serialize([record]))
    logger.debug("store.append", path=str(path), id=getattr(record, "id", None))


def dedup_by_id(records: Iterable[T]) -> list[T]:
    """Current state: the highest version per id, ties going to the later line."""
    current: dict[str, T] = {}
    for record in records:
        existing = current.get(record.id)
        if existing is None or record.version >= existing.version:
            current[record.id] = record
    return list(current.values())


def dedup_by_id_last(records: Iterable[T]) -> list[T]:
    """Current state for unversioned records: the last line per id wins."""
    current: dict[str, T] = {}
    for record in records:
        current[record.id] = record
    return list(current.values())


def get_versions(records: Iterable[T], id: str) -> list[T]:
    """Every version of ``id``, one per version number, oldest first."""
    seen: dict[int, T] = {}
    for record in records:
        if record.id == id:
            seen[record.version] = record
    return sorted(seen.values(), key=lambda r: r.version)
