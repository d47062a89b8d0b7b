"""Slot templates: render issues to Markdown and extract edits back.

A template is Markdown containing ``{dotted.path}`` slots. ``{{text}}`` is an
escaped literal that renders as ``{text}``. A leading frontmatter block may
carry ``$``-prefixed directives such as ``$pattern``; they are removed before
rendering or extraction.

Example:
    >>> template = "# {issue.title}\\n\\nPriority: {issue.priority}\\n"
    >>> text = render(template, {"issue": {"title": "Ship it", "priority": 1}})
    >>> text
    '# Ship it\\n\\nPriority: 1\\n'
    >>> extract(template, text).data
    {'issue': {'title': 'Ship it', 'priority': '1'}}
"""

from __future__ import annotations

import copy
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path

from pydantic import BaseModel

from . import log, paths, presets
from .frontmatter import FRONTMATTER_DELIMITER, parse_metadata
from .models import Issue, TemplateKind

_SLOT = re.compile(r"\{\{(?P<escaped>[^{}]*)\}\}|\{(?P<path>[A-Za-z_]\w*(?:\.\w+)*)\}")
_WHITESPACE_SPLIT = re.compile(r"(\s+)")


@dataclass(frozen=True)
class Segment:
    """A literal run or slot inside a template."""

    literal: str | None = None
    path: str | None = None

    @property
    def is_slot(self) -> bool:
        return self.path is not None


@dataclass(frozen=True)
class ExtractResult:
    """Best-effort extraction of slot values from an edited document.

    Attributes:
        data: Nested record of captured values keyed by slot path.
        confidence: Share of slots recovered with a non-empty value.
        unmatched: Slot paths that could not be recovered.
        ai_assisted: Always ``False``; extraction is purely structural.
    """

    data: dict[str, object]
    confidence: float
    unmatched: tuple[str, ...]
    ai_assisted: bool = False


@dataclass(frozen=True)
class DiffResult:
    """Leaf-level differences between two nested records."""

    added: dict[str, object] = field(default_factory=dict)
    modified: dict[str, dict[str, object]] = field(default_factory=dict)
    removed: dict[str, object] = field(default_factory=dict)

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.modified or self.removed)


@dataclass(frozen=True)
class TemplateConfig:
    """Where templates are looked up.

    Attributes:
        template_dir: Directory holding custom templates and ``presets/``.
        preset: Optional preset name tried after the custom template.
    """

    template_dir: Path = Path(paths.TEMPLATE_DIRNAME)
    preset: str | None = None


@dataclass(frozen=True)
class TemplateResolution:
    """Template text plus the source that supplied it.

    Attributes:
        text: Template content, directives included.
        source: Identifier of the winning lookup.
        attempts: Ordered diagnostics for every lookup tried.
    """

    text: str
    source: str
    attempts: tuple[str, ...]


def parse_template(template: str) -> tuple[Segment, ...]:
    """Split ``template`` into literal and slot segments.

    Example:
        >>> [s.path or s.literal for s in parse_template("a {x.y} {{z}}")]
        ['a ', 'x.y', ' {z}']
    """
    segments: list[Segment] = []
    literal: list[str] = []
    position = 0
    for match in _SLOT.finditer(template):
        literal.append(template[position : match.start()])
        position = match.end()
        if match.group("path") is None:
            literal.append("{" + match.group("escaped") + "}")
            continue
        if "".join(literal):
            segments.append(Segment(literal="".join(literal)))
        literal = []
        segments.append(Segment(path=match.group("path")))
    literal.append(template[position:])
    if "".join(literal):
        segments.append(Segment(literal="".join(literal)))
    return tuple(segments)


def _lookup(value: object, key: str) -> object:
    if value is None:
        return None
    if isinstance(value, Mapping):
        return value.get(key)
    if isinstance(value, BaseModel):
        for name, info in type(value).model_fields.items():
            if key in (name, info.alias):
                return getattr(value, name)
        return None
    if isinstance(value, (list, tuple)):
        if key.isdigit() and int(key) < len(value):
            return value[int(key)]
        return None
    return getattr(value, key, None)


def resolve_path(context: object, path: str) -> object:
    """Walk ``context`` along a dotted path; missing steps yield ``None``."""
    value = context
    for part in path.split("."):
        value = _lookup(value, part)
        if value is None:
            return None
    return value


def stringify(value: object) -> str:
    """Format a slot value: ``None`` is empty and sequences join with ``, ``."""
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return ", ".join(stringify(item) for item in value)
    return str(value)


def render(template: str, context: object) -> str:
    """Fill every slot in ``template`` from ``context``."""
    body = strip_directives(template)

    def replace(match: re.Match[str]) -> str:
        if match.group("path") is None:
            return "{" + match.group("escaped") + "}"
        return stringify(resolve_path(context, match.group("path")))

    return _SLOT.sub(replace, body)


def _anchor(literal: str) -> re.Pattern[str]:
    pieces = [piece for piece in _WHITESPACE_SPLIT.split(literal) if piece]
    parts: list[str] = []
    for index, piece in enumerate(pieces):
        if not piece.isspace():
            parts.append(re.escape(piece))
        elif "\n" in piece:
            parts.append(r"\s*\n\s*")
        elif 0 < index < len(pieces) - 1 or len(pieces) == 1:
            parts.append(r"[ \t]+")
        else:
            parts.append(r"[ \t]*")
    return re.compile("".join(parts))


def _assign(data: dict[str, object], path: str, value: str) -> None:
    keys = path.split(".")
    cursor = data
    for key in keys[:-1]:
        child = cursor.get(key)
        if not isinstance(child, dict):
            child = {}
            cursor[key] = child
        cursor = child
    cursor.setdefault(keys[-1], value)


def extract(template: str, document: str) -> ExtractResult:
    """Recover slot values from ``document`` using ``template`` as a guide.

    Literal runs act as anchors located in order with whitespace-tolerant
    matching. A missing anchor marks the slots on either side unmatched and
    matching resumes from the last known position.
    """
    segments = list(parse_template(strip_directives(template)))
    if segments and not segments[-1].is_slot and not segments[-1].literal.strip():
        segments.pop()
    slot_total = sum(1 for segment in segments if segment.is_slot)
    if slot_total == 0:
        return ExtractResult(data={}, confidence=1.0, unmatched=())

    data: dict[str, object] = {}
    unmatched: list[str] = []
    matched = 0
    position = 0
    position_known = True
    pending: str | None = None
    pending_start: int | None = None

    def settle(end: int | None) -> None:
        nonlocal matched
        if pending is None:
            return
        if pending_start is None or end is None:
            unmatched.append(pending)
            return
        captured = document[pending_start:end].strip()
        if not captured:
            unmatched.append(pending)
            return
        matched += 1
        _assign(data, pending, captured)

    for segment in segments:
        if segment.is_slot:
            if pending is not None:
                settle(None)
            pending = segment.path
            pending_start = position if position_known else None
            continue
        found = _anchor(segment.literal or "").search(document, position)
        if found is None:
            settle(None)
            pending = None
            position_known = False
            continue
        settle(found.start())
        pending = None
        position = found.end()
        position_known = True
    settle(len(document))

    confidence = max(0.0, min(1.0, matched / slot_total))
    return ExtractResult(data=data, confidence=confidence, unmatched=tuple(unmatched))


def _to_plain(value: object) -> object:
    if isinstance(value, BaseModel):
        return value.model_dump(by_alias=True)
    return value


def _deep_plain(value: object) -> object:
    value = _to_plain(value)
    if isinstance(value, Mapping):
        return {key: _deep_plain(child) for key, child in value.items()}
    return copy.deepcopy(value)


def _flatten(value: object, prefix: str, out: dict[str, object]) -> None:
    value = _to_plain(value)
    if isinstance(value, Mapping) and value:
        for key, child in value.items():
            _flatten(child, f"{prefix}.{key}" if prefix else str(key), out)
        return
    if prefix:
        out[prefix] = value


def flatten(value: object) -> dict[str, object]:
    """Flatten nested mappings into dotted-path leaves; lists stay leaves.

    Example:
        >>> flatten({"issue": {"title": "x", "labels": ["a"]}})
        {'issue.title': 'x', 'issue.labels': ['a']}
    """
    out: dict[str, object] = {}
    _flatten(value, "", out)
    return out


def diff(before: object, after: object) -> DiffResult:
    """Compare two nested records leaf by leaf.

    Example:
        >>> result = diff({"a": {"b": 1, "c": 2}}, {"a": {"b": 1, "c": 3, "d": 4}})
        >>> result.added, result.modified, result.removed, result.has_changes
        ({'a.d': 4}, {'a.c': {'from': 2, 'to': 3}}, {}, True)
    """
    old = flatten(before)
    new = flatten(after)
    added = {path: value for path, value in new.items() if path not in old}
    removed = {path: value for path, value in old.items() if path not in new}
    modified = {
        path: {"from": old[path], "to": new[path]}
        for path in old
        if path in new and old[path] != new[path]
    }
    return DiffResult(added=added, modified=modified, removed=removed)


def _merge(target: dict[str, object], updates: Mapping[str, object]) -> None:
    for key, value in updates.items():
        value = _deep_plain(value)
        current = target.get(key)
        if isinstance(value, dict) and isinstance(current, dict):
            _merge(current, value)
        else:
            target[key] = value


def apply_extract(
    original: object, extracted: Mapping[str, object]
) -> dict[str, object]:
    """Deep-merge ``extracted`` onto a copy of ``original``.

    Paths missing from ``extracted`` keep their original values.

    Example:
        >>> original = {"issue": {"id": "a", "title": "old"}}
        >>> apply_extract(original, {"issue": {"title": "new"}})
        {'issue': {'id': 'a', 'title': 'new'}}
    """
    base = _deep_plain(original)
    merged: dict[str, object] = base if isinstance(base, dict) else {}
    _merge(merged, extracted)
    return merged


def _split_template_frontmatter(text: str) -> tuple[list[str], list[str], str] | None:
    lines = text.splitlines(keepends=True)
    if not lines or lines[0].strip() != FRONTMATTER_DELIMITER:
        return None
    for index in range(1, len(lines)):
        if lines[index].strip() == FRONTMATTER_DELIMITER:
            inner = lines[1:index]
            directives = [line for line in inner if line.lstrip().startswith("$")]
            kept = [line for line in inner if not line.lstrip().startswith("$")]
            return directives, kept, "".join(lines[index + 1 :])
    return None


def template_directives(text: str) -> dict[str, object]:
    """Return the ``$`` directives of a template, keyed without the ``$``.

    Example:
        >>> template_directives('---\\n$pattern: "[id].md"\\n---\\n# {issue.title}\\n')
        {'pattern': '[id].md'}
    """
    split = _split_template_frontmatter(text)
    if split is None:
        return {}
    directives, _kept, _body = split
    parsed = parse_metadata([line.strip() for line in directives])
    return {key.lstrip("$"): value for key, value in parsed.items()}


def template_pattern(text: str) -> str | None:
    value = template_directives(text).get("pattern")
    return value if isinstance(value, str) and value.strip() else None


def strip_directives(text: str) -> str:
    """Remove ``$`` directives; drop the frontmatter block if nothing remains."""
    split = _split_template_frontmatter(text)
    if split is None:
        return text
    directives, kept, body = split
    if not directives:
        return text
    if not any(line.strip() for line in kept):
        return body
    delimiter = FRONTMATTER_DELIMITER + "\n"
    return delimiter + "".join(kept) + delimiter + body


LookupResult = tuple[str | None, str, str]


def _read_candidate(path: Path, source: str) -> LookupResult:
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None, source, f"{source}:{path}: missing"
    except OSError as exc:
        return None, source, f"{source}:{path}: {exc}"
    return text, source, f"{source}:{path}: found"


def _custom_candidate(kind: TemplateKind, config: TemplateConfig) -> LookupResult:
    return _read_candidate(paths.template_path(config.template_dir, kind), "custom")


def _preset_file_candidate(kind: TemplateKind, config: TemplateConfig) -> LookupResult:
    if not config.preset:
        return None, "preset_file", "preset_file: no preset configured"
    path = paths.preset_path(config.template_dir, config.preset)
    return _read_candidate(path, "preset_file")


def _builtin_candidate(
    kind: TemplateKind, config: TemplateConfig
) -> tuple[str, str, str]:
    name = (config.preset or "").strip().lower()
    if name in presets.preset_names():
        text = presets.get_builtin_preset(name, kind)
        return text, "builtin_preset", f"builtin_preset:{kind}:{name}: found"
    if name:
        log.debug(f"unknown preset {name!r}; using the minimal template")
    return presets.builtin_template(kind), "builtin", f"builtin:{kind}: found"


_FILE_CANDIDATES: tuple[Callable[[TemplateKind, TemplateConfig], LookupResult], ...] = (
    _custom_candidate,
    _preset_file_candidate,
)


def resolve_template_result(
    kind: TemplateKind, config: TemplateConfig | None = None
) -> TemplateResolution:
    """Resolve the template for ``kind`` and report every lookup tried.

    Order: custom file, named preset file, built-in preset, built-in minimal.
    Filesystem errors count as misses; the built-ins always resolve.
    """
    active = config or TemplateConfig()
    attempts: list[str] = []
    for candidate in _FILE_CANDIDATES:
        text, source, attempt = candidate(kind, active)
        attempts.append(attempt)
        if text is not None:
            return TemplateResolution(
                text=text, source=source, attempts=tuple(attempts)
            )
        log.debug(f"template lookup missed: {attempt}")
    text, source, attempt = _builtin_candidate(kind, active)
    attempts.append(attempt)
    return TemplateResolution(text=text, source=source, attempts=tuple(attempts))


def resolve_template(kind: TemplateKind, config: TemplateConfig | None = None) -> str:
    """Return the template text for ``kind``; never raises for missing files."""
    return resolve_template_result(kind, config).text


def render_issue(template: str, issue: Issue) -> str:
    return render(template, {"issue": issue})


def extract_issue(
    template: str, document: str, base: Issue
) -> tuple[Issue, ExtractResult]:
    """Rebuild ``base`` with values extracted from an edited ``document``.

    Returns:
        The merged issue and the raw extraction result.
    """
    result = extract(template, document)
    merged = apply_extract({"issue": base}, result.data)
    issue = Issue.model_validate(merged["issue"])
    return issue, result
