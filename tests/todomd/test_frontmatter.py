from __future__ import annotations

import pytest

from todomd import frontmatter
from todomd.errors import ValidationFailedError
from todomd.models import Issue


def _full_issue() -> Issue:
    return Issue(
        id="todo-7",
        title='Quote "me" and: colons',
        description="First line.\n\nSecond paragraph with `code`.",
        status="in_progress",
        type="feature",
        priority=1,
        labels=["ui", "needs review"],
        assignee="dev@example.com",
        created_at="2024-03-01T09:00:00Z",
        updated_at="2024-03-02T10:30:00Z",
        depends_on=["todo-1"],
        blocks=["todo-9"],
        children=[],
        parent="todo-0",
    )


class TestParse:
    def test_reads_scalars_lists_and_body(self) -> None:
        content = (
            "---\n"
            "id: todo-1\n"
            "title: Fix login\n"
            "state: in-progress\n"
            "priority: 0\n"
            "labels: [auth, 'urgent']\n"
            "dependsOn:\n"
            "  - todo-2\n"
            "  - todo-3\n"
            "---\n"
            "\n"
            "Users cannot log in.\n"
        )
        issue = frontmatter.parse(content)
        assert issue.id == "todo-1"
        assert issue.status == "in_progress"
        assert issue.priority == 0
        assert issue.labels == ["auth", "urgent"]
        assert issue.depends_on == ["todo-2", "todo-3"]
        assert issue.description == "Users cannot log in."

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("-5", 0), ("10", 4), ("2.7", 2), ("4.9", 4), ("high", 2)],
    )
    def test_priority_is_clamped(self, raw: str, expected: int) -> None:
        issue = frontmatter.parse(f"---\nid: a\npriority: {raw}\n---\n")
        assert issue.priority == expected

    @pytest.mark.parametrize(
        "content",
        [
            '---\nid: ""\ntitle: x\n---\nbody',
            '---\nid: "   "\ntitle: x\n---\nbody',
            "---\ntitle: x\n---\nbody",
            "no frontmatter at all",
        ],
    )
    def test_missing_or_blank_id_is_rejected(self, content: str) -> None:
        with pytest.raises(ValidationFailedError) as excinfo:
            frontmatter.parse(content)
        assert excinfo.value.code == "validation_failed"

    def test_unclosed_block_is_rejected(self) -> None:
        with pytest.raises(ValidationFailedError):
            frontmatter.parse("---\nid: a\ntitle: x\n")

    def test_block_scalar_values(self) -> None:
        metadata, body = frontmatter.split_frontmatter(
            "---\nid: a\nnote: |\n  one\n  two\nfolded: >\n  a\n  b\n---\nrest"
        )
        assert metadata["note"] == "one\ntwo"
        assert metadata["folded"] == "a b"
        assert body == "rest"

    def test_parse_document_keeps_raw_frontmatter(self) -> None:
        parsed = frontmatter.parse_document("---\nid: a\nextra: 3\n---\n\nBody\n")
        assert parsed.frontmatter == {"id": "a", "extra": 3}
        assert parsed.body == "\nBody"
        assert parsed.issue.description == "Body"

    def test_empty_body_gives_no_description(self) -> None:
        assert frontmatter.parse("---\nid: a\n---\n\n  \n").description is None


class TestGenerate:
    def test_field_order_and_quoting(self) -> None:
        text = frontmatter.generate(Issue(id="a", title="T", status="closed"))
        lines = text.splitlines()
        assert lines[:5] == [
            "---",
            'id: "a"',
            'title: "T"',
            "status: closed",
            "type: task",
        ]
        assert "labels: []" in lines
        assert "children: []" in lines
        assert text.endswith("\n")

    def test_related_section_links_issues(self) -> None:
        text = frontmatter.generate(_full_issue())
        assert frontmatter.RELATED_HEADING in text
        assert "**Depends on:**\n- [todo-1](./todo-1.md)" in text
        assert "**Blocks:**\n- [todo-9](./todo-9.md)" in text
        assert "**Children:**" not in text

    def test_round_trip_restores_metadata(self) -> None:
        original = _full_issue()
        restored = frontmatter.parse(frontmatter.generate(original))
        for name in (
            "id",
            "title",
            "status",
            "type",
            "priority",
            "labels",
            "assignee",
            "created_at",
            "updated_at",
            "depends_on",
            "blocks",
            "children",
            "parent",
        ):
            assert getattr(restored, name) == getattr(original, name), name
        assert frontmatter.issue_body_description(restored) == original.description

    def test_generate_is_idempotent(self) -> None:
        once = frontmatter.generate(_full_issue())
        twice = frontmatter.generate(frontmatter.parse(once))
        assert once == twice


class TestIssueBodyDescription:
    def test_keeps_body_without_generated_parts(self) -> None:
        issue = Issue(
            id="a",
            title="T",
            description="# T\n\nKeep me\n\n## Related Issues\n\n**Blocks:**\n- x",
        )
        assert frontmatter.issue_body_description(issue) == "Keep me"

    def test_other_headings_are_kept(self) -> None:
        issue = Issue(id="a", title="T", description="# Other\n\nText")
        assert frontmatter.issue_body_description(issue) == "# Other\n\nText"
