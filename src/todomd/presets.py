"""Built-in templates for issue files and the TODO rollup."""

from __future__ import annotations

from .errors import UnknownPresetError
from .models import TemplateKind

MINIMAL_PRESET = """---
$pattern: "[id]-[title].md"
---
# {issue.title}

{issue.description}
"""

DETAILED_PRESET = """---
$pattern: "[id]-[title].md"
id: {issue.id}
title: {issue.title}
state: {issue.status}
priority: {issue.priority}
type: {issue.type}
labels: {issue.labels}
assignee: {issue.assignee}
createdAt: {issue.createdAt}
updatedAt: {issue.updatedAt}
closedAt: {issue.closedAt}
parent: {issue.parent}
dependsOn: {issue.dependsOn}
blocks: {issue.blocks}
children: {issue.children}
---
# {issue.title}

{issue.description}

## Metadata

- **ID:** {issue.id}
- **Status:** {issue.status}
- **Priority:** {issue.priority}
- **Type:** {issue.type}
- **Assignee:** {issue.assignee}
- **Labels:** {issue.labels}

## Timeline

- **Created:** {issue.createdAt}
- **Updated:** {issue.updatedAt}
- **Closed:** {issue.closedAt}

## Related Issues

**Depends on:**
{issue.dependsOn}

**Blocks:**
{issue.blocks}

**Children:**
{issue.children}
"""

GITHUB_PRESET = """---
$pattern: "[id]-[title].md"
---
# {issue.title}

{issue.description}

---

## Labels

{issue.labels}

## Metadata

- **Status:** `{issue.status}`
- **Priority:** `{issue.priority}`
- **Type:** `{issue.type}`
- **Assignee:** @{issue.assignee}

## Related Issues

**Depends on:** {issue.dependsOn}
**Blocks:** {issue.blocks}

---

## Comments

<!-- Discussion and activity go here -->
"""

LINEAR_PRESET = """---
$pattern: "[id]-[title].md"
---
# {issue.title}

{issue.description}

## Details

- **Status:** {issue.status}
- **Priority:** {issue.priority}
- **Type:** {issue.type}
- **Assignee:** {issue.assignee}
- **Labels:** {issue.labels}

## Timeline

- **Created:** {issue.createdAt}
- **Updated:** {issue.updatedAt}
- **Closed:** {issue.closedAt}

## Related

**Depends on:** {issue.dependsOn}
**Blocks:** {issue.blocks}
**Parent:** {issue.parent}
**Children:** {issue.children}
"""

TODO_TEMPLATE = """# {todo.title}

{todo.sections}
"""

TODO_DETAILED_TEMPLATE = """# {todo.title}

Generated: {todo.generated}

## Summary

- Total Issues: {todo.count}
- Open: {todo.open}
- In Progress: {todo.in_progress}
- Closed: {todo.closed}

{todo.sections}
"""

_ISSUE_PRESETS: dict[str, str] = {
    "minimal": MINIMAL_PRESET,
    "detailed": DETAILED_PRESET,
    "github": GITHUB_PRESET,
    "linear": LINEAR_PRESET,
}
_TODO_PRESETS: dict[str, str] = {
    "minimal": TODO_TEMPLATE,
    "detailed": TODO_DETAILED_TEMPLATE,
    "github": TODO_DETAILED_TEMPLATE,
    "linear": TODO_TEMPLATE,
}
DEFAULT_PRESET = "minimal"


def preset_names() -> tuple[str, ...]:
    """Return the built-in preset names.

    Example:
        >>> preset_names()
        ('minimal', 'detailed', 'github', 'linear')
    """
    return tuple(_ISSUE_PRESETS)


def get_builtin_preset(name: str, kind: TemplateKind = "issue") -> str:
    """Return the built-in template named ``name`` for ``kind``.

    Raises:
        UnknownPresetError: When ``name`` is blank or not a built-in preset.

    Example:
        >>> get_builtin_preset(" GitHub ").startswith("---")
        True
        >>> get_builtin_preset("linear", "todo") == TODO_TEMPLATE
        True
    """
    key = (name or "").strip().lower()
    table = _TODO_PRESETS if kind == "todo" else _ISSUE_PRESETS
    template = table.get(key)
    if template is None:
        raise UnknownPresetError(name, available=preset_names())
    return template


def builtin_template(kind: TemplateKind) -> str:
    """Return the compiled-in fallback template for ``kind``."""
    return get_builtin_preset(DEFAULT_PRESET, kind)
