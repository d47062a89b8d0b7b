"""Convert between issue records and Markdown documents with frontmatter.

Example:
    >>> from todomd.models import Issue
    >>> text = generate(Issue(id="todo-1", title="Fix login", priority=1))
    >>> text.splitlines()[:3]
    ['---', 'id: "todo-1"', 'title: "Fix login"']
    >>> parse(text).priority
    1
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass

from pydantic import ValidationError

from .errors import ValidationFailedError
from .models import Issue

FRONTMATTER_DELIMITER = "---"
RELATED_HEADING = "### Related Issues"

_INT_VALUE = re.compile(r"^[-+]?\d+$")
_FLOAT_VALUE = re.compile(r"^[-+]?(?:\d+\.\d*|\.\d+|\d+)(?:[eE][-+]?\d+)?$")
_RELATED_HEADING_LINE = re.compile(r"^#{2,3}\s+Related Issues\s*$")

_KEY_ALIASES = {
    "state": "status",
    "created_at": "createdAt",
    "updated_at": "updatedAt",
    "closed_at": "closedAt",
    "depends_on": "dependsOn",
}

_ISSUE_KEYS = (
    "id",
    "title",
    "status",
    "type",
    "priority",
    "labels",
    "assignee",
    "createdAt",
    "updatedAt",
    "closedAt",
    "parent",
    "source",
    "dependsOn",
    "blocks",
    "children",
)
_LIST_KEYS = frozenset({"labels", "dependsOn", "blocks", "children"})
_BARE_KEYS = frozenset({"status", "type"})

_RELATED_SECTIONS = (
    ("dependsOn", "Depends on"),
    ("blocks", "Blocks"),
    ("children", "Children"),
)


@dataclass(frozen=True)
class ParsedDocument:
    """A parsed Markdown issue document.

    Attributes:
        frontmatter: Raw metadata values keyed as written.
        body: Document text after the metadata block.
        issue: Validated issue built from the metadata and body.
    """

    frontmatter: dict[str, object]
    body: str
    issue: Issue


def _extract_frontmatter(text: str) -> tuple[list[str] | None, str]:
    lines = text.splitlines()
    if not lines or lines[0].lstrip("\ufeff").strip() != FRONTMATTER_DELIMITER:
        return None, text
    for idx in range(1, len(lines)):
        if lines[idx].strip() == FRONTMATTER_DELIMITER:
            return lines[1:idx], "\n".join(lines[idx + 1 :])
    raise ValidationFailedError(
        "unclosed frontmatter block; missing closing '---'",
        recovery_hint="add a '---' line after the metadata",
    )


def _parse_scalar(value: str) -> object:
    if value in {"", "~", "null", "Null", "NULL"}:
        return None
    if value in {"true", "True", "TRUE"}:
        return True
    if value in {"false", "False", "FALSE"}:
        return False
    if _INT_VALUE.match(value):
        return int(value)
    if _FLOAT_VALUE.match(value):
        return float(value)
    if value.startswith('"') and value.endswith('"') and len(value) >= 2:
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value[1:-1]
    if value.startswith("'") and value.endswith("'") and len(value) >= 2:
        return value[1:-1].replace("''", "'")
    if value.startswith("[") and value.endswith("]"):
        return _parse_flow_list(value)
    return value


def _parse_flow_list(value: str) -> list[object]:
    try:
        payload = json.loads(value)
    except json.JSONDecodeError:
        payload = None
    if isinstance(payload, list):
        return payload
    inner = value[1:-1].strip()
    if not inner:
        return []
    return [_parse_scalar(item.strip()) for item in inner.split(",") if item.strip()]


def _normalize_block_lines(block_lines: list[str], style: str) -> str:
    if style.startswith(">"):
        paragraphs: list[str] = []
        current: list[str] = []
        for line in block_lines:
            stripped = line.strip()
            if not stripped:
                if current:
                    paragraphs.append(" ".join(current))
                    current = []
                continue
            current.append(stripped)
        if current:
            paragraphs.append(" ".join(current))
        return "\n".join(paragraphs).strip()
    return "\n".join(block_lines).strip()


def _is_indented(line: str) -> bool:
    return line.startswith(" ") or line.startswith("\t")


def parse_metadata(lines: list[str]) -> dict[str, object]:
    """Parse frontmatter lines into a dict.

    Handles ``key: value`` scalars, ``[a, b]`` flow lists, indented
    ``- item`` block lists, and ``|`` / ``>`` block scalars.

    Example:
        >>> parse_metadata(["id: a", "labels:", "  - x", "  - 'y'", "priority: 3"])
        {'id': 'a', 'labels': ['x', 'y'], 'priority': 3}
    """
    data: dict[str, object] = {}
    idx = 0
    while idx < len(lines):
        raw = lines[idx]
        if not raw.strip() or raw.lstrip().startswith("#") or _is_indented(raw):
            idx += 1
            continue
        if ":" not in raw:
            idx += 1
            continue
        key, value = raw.split(":", 1)
        key = key.strip()
        value = value.strip()
        if not key:
            idx += 1
            continue
        if value and value[0] in {"|", ">"}:
            block_lines: list[str] = []
            inner = idx + 1
            while inner < len(lines):
                line = lines[inner]
                if not line.strip():
                    block_lines.append("")
                elif _is_indented(line):
                    block_lines.append(line.lstrip(" \t"))
                else:
                    break
                inner += 1
            data[key] = _normalize_block_lines(block_lines, value)
            idx = inner
            continue
        if not value:
            items: list[object] = []
            inner = idx + 1
            while inner < len(lines):
                line = lines[inner].strip()
                if not line.startswith("-") or not _is_indented(lines[inner]):
                    break
                items.append(_parse_scalar(line[1:].strip()))
                inner += 1
            data[key] = items if inner > idx + 1 else None
            idx = inner
            continue
        data[key] = _parse_scalar(value)
        idx += 1
    return data


def split_frontmatter(content: str) -> tuple[dict[str, object], str]:
    """Split ``content`` into parsed metadata and the remaining body.

    A document without a leading ``---`` line has empty metadata.

    Raises:
        ValidationFailedError: When the metadata block is never closed.
    """
    lines, body = _extract_frontmatter(content)
    if lines is None:
        return {}, body
    return parse_metadata(lines), body


def _issue_payload(metadata: dict[str, object]) -> dict[str, object]:
    payload: dict[str, object] = {}
    for key, value in metadata.items():
        target = _KEY_ALIASES.get(key, key)
        if target == "status" and "status" in metadata and key != "status":
            continue
        payload[target] = value
    return payload


def parse_document(content: str) -> ParsedDocument:
    """Parse a Markdown issue document.

    Raises:
        ValidationFailedError: When the id is missing or blank, the metadata
            block is unclosed, or a field fails validation.
    """
    metadata, body = split_frontmatter(content)
    payload = _issue_payload(metadata)
    if not isinstance(payload.get("id"), (str, int)) or not str(payload["id"]).strip():
        raise ValidationFailedError(
            "issue document is missing a non-empty 'id'",
            recovery_hint="add an 'id:' line to the frontmatter",
        )
    description = body.strip()
    payload["description"] = description or None
    try:
        issue = Issue.model_validate(payload)
    except ValidationError as exc:
        raise ValidationFailedError(f"invalid issue document: {exc}") from exc
    return ParsedDocument(frontmatter=metadata, body=body, issue=issue)


def parse(content: str) -> Issue:
    """Parse a Markdown issue document into an ``Issue``.

    Example:
        >>> parse('---\\nid: x-1\\nstate: done\\npriority: 2.7\\n---\\nBody').status
        'closed'
    """
    return parse_document(content).issue


def issue_body_description(issue: Issue) -> str:
    """Return the description without the generated title and related sections.

    Example:
        >>> text = "# T\\n\\nBody\\n\\n### Related Issues\\n- x"
        >>> issue_body_description(Issue(id="a", title="T", description=text))
        'Body'
    """
    text = (issue.description or "").strip()
    if not text:
        return ""
    lines = text.splitlines()
    if lines and lines[0].strip() == f"# {issue.title}".strip():
        lines = lines[1:]
    for index, line in enumerate(lines):
        if _RELATED_HEADING_LINE.match(line.strip()):
            lines = lines[:index]
            break
    return "\n".join(lines).strip()


def _format_value(key: str, value: object) -> str:
    if key in _LIST_KEYS:
        items = value if isinstance(value, list) else []
        quoted = (json.dumps(str(item), ensure_ascii=False) for item in items)
        return "[" + ", ".join(quoted) + "]"
    if key in _BARE_KEYS or isinstance(value, (int, float)):
        return str(value)
    return json.dumps(str(value), ensure_ascii=False)


def _related_section(issue: Issue) -> list[str]:
    groups = [
        (label, getattr(issue, _field_name(key)) or [])
        for key, label in _RELATED_SECTIONS
    ]
    if not any(ids for _label, ids in groups):
        return []
    lines = [RELATED_HEADING, ""]
    for label, ids in groups:
        if not ids:
            continue
        lines.append(f"**{label}:**")
        lines.extend(f"- [{ref}](./{ref}.md)" for ref in ids)
        lines.append("")
    return lines


def _field_name(key: str) -> str:
    return {
        "createdAt": "created_at",
        "updatedAt": "updated_at",
        "closedAt": "closed_at",
        "dependsOn": "depends_on",
    }.get(key, key)


def generate(issue: Issue) -> str:
    """Render ``issue`` as a Markdown document with a frontmatter block.

    Sequences are always written, as ``[]`` when empty. Strings are JSON
    quoted so ``parse(generate(issue))`` restores every metadata field.
    """
    lines = [FRONTMATTER_DELIMITER]
    for key in _ISSUE_KEYS:
        value = getattr(issue, _field_name(key))
        if value is None and key not in _LIST_KEYS:
            continue
        lines.append(f"{key}: {_format_value(key, value)}")
    lines.extend([FRONTMATTER_DELIMITER, "", f"# {issue.title}", ""])
    description = issue_body_description(issue)
    if description:
        lines.extend([description, ""])
    lines.extend(_related_section(issue))
    while lines and lines[-1] == "":
        lines.pop()
    return "\n".join(lines) + "\n"
