"""Tests for section diffing."""

from __future__ import annotations

from prompt_canopy.core.differ import SectionDiffer
from prompt_canopy.db.models import Section


def _sections(**bodies: str) -> list[Section]:
    return [Section(name=k, body=v) for k, v in bodies.items()]


class TestSectionDiffer:
    def setup_method(self):
        self.differ = SectionDiffer()

    def test_no_changes(self):
        result = self.differ.diff(_sections(a="hello"), _sections(a="hello"))
        assert result["summary"] == "No changes"
        assert result["changes"] == [{"section": "a", "type": "unchanged"}]

    def test_added_and_removed(self):
        result = self.differ.diff(_sections(a="x", b="y"), _sections(a="x", c="z"))
        types = [(c["section"], c["type"]) for c in result["changes"]]
        assert types == [("a", "unchanged"), ("b", "removed"), ("c", "added")]
        assert "1 section(s) added" in result["summary"]
        assert "1 section(s) removed" in result["summary"]

    def test_modified_has_similarity(self):
        result = self.differ.diff(_sections(a="hello world"), _sections(a="hello there"))
        (change,) = result["changes"]
        assert change["type"] == "modified"
        assert 0 < change["similarity"] < 1

    def test_diff_prompts_metadata(self, make_prompt):
        old = make_prompt("a", {"s": "1"}, id="p-1")
        new = old.next_version(status="archived", pinned=1)
        result = self.differ.diff_prompts(old, new)
        assert result["metadata"]["status"] == {"before": "active", "after": "archived"}
        assert result["metadata"]["pinned"] == {"before": None, "after": 1}
        assert result["summary"] == "No changes"

    def test_human_readable(self):
        result = self.differ.diff(_sections(a="old text"), _sections(a="new text", b="added"))
        text = self.differ.human_readable(result)
        assert "Summary:" in text
        assert "~ [a] Modified" in text
        assert "+ [b] Added: added" in text
