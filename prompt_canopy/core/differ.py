"""Section-level diffing between two versions of a prompt."""

from __future__ import annotations

from collections.abc import Sequence
from difflib import SequenceMatcher
from typing import Any

from prompt_canopy.db.models import Prompt, Section

METADATA_FIELDS = ("name", "extends", "status", "pinned", "tags", "schema_name", "emit_as")


class SectionDiffer:
    """Computes per-section changes between two section lists."""

    def diff(
        self,
        old_sections: Sequence[Section],
        new_sections: Sequence[Section],
    ) -> dict[str, Any]:
        """Compare by section name: added, removed, modified, or unchanged.

        Sections are reported in old order, followed by names only present in
        the new list.
        """
        old = {s.name: s.body for s in old_sections}
        new = {s.name: s.body for s in new_sections}

        changes: list[dict[str, Any]] = []
        for name in [*old, *(n for n in new if n not in old)]:
            old_body = old.get(name)
            new_body = new.get(name)
            if old_body is None:
                changes.append({"section": name, "type": "added", "content": new_body})
            elif new_body is None:
                changes.append({"section": name, "type": "removed", "content": old_body})
            elif old_body != new_body:
                similarity = SequenceMatcher(None, old_body, new_body).ratio()
                changes.append({
                    "section": name,
                    "type": "modified",
                    "before": old_body,
                    "after": new_body,
                    "similarity": round(similarity, 2),
                })
            else:
                changes.append({"section": name, "type": "unchanged"})

        counts = {t: sum(1 for c in changes if c["type"] == t) for t in ("added", "removed", "modified")}
        parts = [f"{n} section(s) {t}" for t, n in counts.items() if n]

        return {
            "changes": changes,
            "summary": ", ".join(parts) if parts else "No changes",
        }

    def diff_prompts(self, old: Prompt, new: Prompt) -> dict[str, Any]:
        """Diff two prompt versions, including top-level metadata changes."""
        result = self.diff(old.sections, new.sections)
        metadata = {
            field: {"before": getattr(old, field), "after": getattr(new, field)}
            for field in METADATA_FIELDS
            if getattr(old, field) != getattr(new, field)
        }
        result.update(
            {
                "name": new.name,
                "from_version": old.version,
                "to_version": new.version,
                "metadata": metadata,
            }
        )
        return result

    def human_readable(self, diff_result: dict[str, Any]) -> str:
        """Format a diff result as human-readable text."""
        lines = [f"Summary: {diff_result['summary']}", ""]
        for change in diff_result["changes"]:
            section = change["section"]
            ctype = change["type"]
            if ctype == "added":
                lines.append(f"+ [{section}] Added: {change['content'][:100]}")
            elif ctype == "removed":
                lines.append(f"- [{section}] Removed: {change['content'][:100]}")
            elif ctype == "modified":
                lines.append(f"~ [{section}] Modified (similarity: {change['similarity']})")
                lines.append(f"  Before: {change['before'][:80]}")
                lines.append(f"  After:  {change['after'][:80]}")
        for field, values in diff_result.get("metadata", {}).items():
            lines.append(f"* {field}: {values['before']!r} -> {values['after']!r}")
        return "\n".join(lines)
