"""Filename patterns: tokenize, render issue paths, and recover ids.

A pattern such as ``[id]-[title].md`` or ``[type]/[id].md`` is a sequence of
literal runs and ``[name]`` variables. Rendering fills the variables from an
issue; matching walks a filename back through the same tokens to find the id.

Example:
    >>> from todomd.models import Issue
    >>> apply_pattern("[id]-[title].md", Issue(id="todo-abc", title="Add User Auth"))
    'todo-abc-add-user-auth.md'
    >>> extract_id_from_filename("todo-abc-add-user-auth.md", "[id]-[title].md")
    'todo-abc'
"""

from __future__ import annotations

import datetime as dt
import re
import unicodedata
from collections.abc import Collection
from dataclasses import dataclass
from typing import Literal

from .errors import PatternSyntaxError
from .models import Issue

TokenKind = Literal["literal", "variable"]
Transform = Literal["preserve", "slugify", "capitalize"]

DEFAULT_PATTERN = "[id]-[title].md"
MAX_FILENAME_LENGTH = 100

_DELIMITERS = ("-", " ", "_", "/")
_DATE_PREFIX = re.compile(r"^\d{4}-\d{2}-\d{2}")
_NON_ALNUM_RUN = re.compile(r"[\W_]+")
_UNSAFE_TITLE_CHARS = re.compile(r"[^\w\s.-]")
_WHITESPACE_RUN = re.compile(r"\s+")
_DOT_RUN = re.compile(r"\.{2,}")

_STRICT_ID = re.compile(r"[A-Za-z0-9_]+-[A-Za-z0-9]{3,8}(?:\.\d+)*")
_LIBERAL_VALUE = re.compile(r"[\w.-]+")
_TITLE_VALUE = re.compile(r"[^/]+")
_DATE_VALUE = re.compile(r"\d{4}-\d{2}-\d{2}")


@dataclass(frozen=True)
class PatternToken:
    """One literal run or variable in a filename pattern.

    Attributes:
        kind: ``literal`` or ``variable``.
        value: Literal text, or the lowercased variable name.
        transform: How a variable's value is shaped for a filename.
    """

    kind: TokenKind
    value: str
    transform: Transform = "preserve"


def parse_pattern(pattern: str) -> tuple[PatternToken, ...]:
    """Tokenize a filename pattern.

    Args:
        pattern: Pattern text like ``[id]-[title].md``.

    Returns:
        Ordered literal and variable tokens.

    Raises:
        PatternSyntaxError: When a ``[`` has no closing ``]`` or a variable is
            empty.

    Example:
        >>> [(t.kind, t.value) for t in parse_pattern("[id]-[title].md")][:3]
        [('variable', 'id'), ('literal', '-'), ('variable', 'title')]
        >>> parse_pattern("[id]-[title].md")[2].transform
        'slugify'
        >>> parse_pattern("[Title].md")[0].transform
        'capitalize'
    """
    tokens: list[PatternToken] = []
    literal: list[str] = []
    index = 0
    while index < len(pattern):
        char = pattern[index]
        if char != "[":
            literal.append(char)
            index += 1
            continue
        close = pattern.find("]", index)
        if close == -1:
            raise PatternSyntaxError(
                f"unclosed '[' at position {index} in pattern {pattern!r}",
                pattern=pattern,
            )
        name = pattern[index + 1 : close]
        if not name.strip():
            raise PatternSyntaxError(
                f"empty variable at position {index} in pattern {pattern!r}",
                pattern=pattern,
            )
        if literal:
            tokens.append(PatternToken("literal", "".join(literal)))
            literal = []
        transform = _transform_for(pattern, index, name)
        tokens.append(PatternToken("variable", name.strip().lower(), transform))
        index = close + 1
    if literal:
        tokens.append(PatternToken("literal", "".join(literal)))
    return tuple(tokens)


def _transform_for(pattern: str, index: int, name: str) -> Transform:
    first = name.strip()[:1]
    if first.isalpha() and first.isupper():
        return "capitalize"
    if index > 0 and pattern[index - 1] == "-":
        return "slugify"
    return "preserve"


def _strip_diacritics(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(char for char in decomposed if not unicodedata.combining(char))


def slugify(text: str) -> str:
    """Lowercase ``text`` and join its alphanumeric runs with dashes.

    Example:
        >>> slugify("Crème Brûlée / v2!")
        'creme-brulee-v2'
    """
    lowered = _strip_diacritics(text).lower()
    return _NON_ALNUM_RUN.sub("-", lowered).strip("-")


def preserve(text: str) -> str:
    """Keep word spacing while dropping separators and reserved characters.

    Example:
        >>> preserve("Fix: a/b  <now>")
        'Fix ab now'
    """
    cleaned = _UNSAFE_TITLE_CHARS.sub("", _strip_diacritics(text))
    cleaned = _DOT_RUN.sub(".", cleaned)
    return _WHITESPACE_RUN.sub(" ", cleaned).strip(" .")


def capitalize(text: str) -> str:
    """Title-case each word, then clean like :func:`preserve`.

    Example:
        >>> capitalize("add user AUTH")
        'Add User Auth'
    """
    words = [word[:1].upper() + word[1:].lower() for word in text.split()]
    return preserve(" ".join(words))


_TRANSFORMS = {
    "preserve": preserve,
    "slugify": slugify,
    "capitalize": capitalize,
}


def _format_date(created_at: str | None) -> str:
    if created_at:
        match = _DATE_PREFIX.match(created_at.strip())
        if match:
            return match.group(0)
        try:
            return dt.datetime.fromisoformat(created_at.strip()).date().isoformat()
        except ValueError:
            pass
    return dt.date.today().isoformat()


def _username(assignee: str | None) -> str:
    if not assignee:
        return ""
    local, sep, _domain = assignee.partition("@")
    if sep and local:
        return local
    return assignee


def _resolve_variable(token: PatternToken, issue: Issue) -> str:
    name = token.value
    if name == "id":
        return issue.id
    if name == "title":
        return _TRANSFORMS[token.transform](issue.title or "")
    if name == "type":
        return issue.type
    if name == "priority":
        return str(issue.priority)
    if name == "assignee":
        return _username(issue.assignee)
    if name == "yyyy-mm-dd":
        return _format_date(issue.created_at)
    return ""


def _render(tokens: tuple[PatternToken, ...], issue: Issue, title: str | None) -> str:
    parts: list[str] = []
    strip_next_delimiter = False
    previous: PatternToken | None = None
    for token in tokens:
        if token.kind == "literal":
            text = token.value
            if strip_next_delimiter and text[:1] in _DELIMITERS:
                text = text[1:]
            strip_next_delimiter = False
            parts.append(text)
            previous = token
            continue
        if token.value == "title" and title is not None:
            value = title
        else:
            value = _resolve_variable(token, issue)
        if not value:
            rendered = "".join(parts)
            after_literal = previous is not None and previous.kind == "literal"
            if after_literal and rendered[-1:] in _DELIMITERS:
                parts = [rendered[:-1]]
            elif not rendered:
                strip_next_delimiter = True
            previous = token
            continue
        parts.append(value)
        strip_next_delimiter = False
        previous = token
    return "".join(parts)


def _truncate_words(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    if limit <= 0:
        return ""
    cut = text[:limit]
    boundary = max(cut.rfind(" "), cut.rfind("-"))
    if boundary > limit // 2:
        cut = cut[:boundary]
    return cut.rstrip("- ")


def _split_extension(name: str) -> tuple[str, str]:
    head, sep, last = name.rpartition("/")
    dot = last.rfind(".")
    if dot > 0:
        return f"{head}{sep}{last[:dot]}", last[dot:]
    return name, ""


def resolve_collision(name: str, existing_names: Collection[str]) -> str:
    """Append ``-1``, ``-2``, ... before the extension until ``name`` is unused.

    Example:
        >>> resolve_collision("a.md", {"a.md", "a-1.md"})
        'a-2.md'
    """
    if name not in existing_names:
        return name
    base, extension = _split_extension(name)
    counter = 1
    while True:
        candidate = f"{base}-{counter}{extension}"
        if candidate not in existing_names:
            return candidate
        counter += 1


def apply_pattern(
    pattern: str,
    issue: Issue,
    existing_names: Collection[str] | None = None,
) -> str:
    """Render the filename for ``issue``.

    Empty variables are dropped together with one neighbouring delimiter.
    When the name would exceed ``MAX_FILENAME_LENGTH`` the title is cut at a
    word boundary; a clash with ``existing_names`` gets a numeric suffix.

    Args:
        pattern: Filename pattern.
        issue: Issue supplying the variable values.
        existing_names: Names (relative to the same root) already in use.

    Returns:
        Relative filename, possibly containing ``/`` from the pattern.
    """
    tokens = parse_pattern(pattern)
    name = _render(tokens, issue, None)
    title_token = next(
        (t for t in tokens if t.kind == "variable" and t.value == "title"), None
    )
    if len(name) > MAX_FILENAME_LENGTH and title_token is not None:
        full_title = _resolve_variable(title_token, issue)
        overflow = len(name) - MAX_FILENAME_LENGTH
        shortened = _truncate_words(full_title, len(full_title) - overflow)
        name = _render(tokens, issue, shortened)
    if existing_names:
        name = resolve_collision(name, existing_names)
    return name


def _validator_for(
    tokens: tuple[PatternToken, ...], index: int, *, strict_id: bool
) -> re.Pattern[str]:
    name = tokens[index].value
    if name == "id":
        title_follows = any(
            t.kind == "variable" and t.value == "title" for t in tokens[index + 1 :]
        )
        return _STRICT_ID if strict_id and title_follows else _LIBERAL_VALUE
    if name == "title":
        return _TITLE_VALUE
    if name == "yyyy-mm-dd":
        return _DATE_VALUE
    return _LIBERAL_VALUE


def _match_tokens(
    tokens: tuple[PatternToken, ...],
    index: int,
    text: str,
    pos: int,
    captures: dict[str, str],
    *,
    strict_id: bool,
) -> dict[str, str] | None:
    if index == len(tokens):
        return captures if pos == len(text) else None
    token = tokens[index]
    last = index == len(tokens) - 1
    if token.kind == "literal":
        if last:
            if text[pos:].casefold() != token.value.casefold():
                return None
            return captures
        if not text.startswith(token.value, pos):
            return None
        end = pos + len(token.value)
        return _match_tokens(
            tokens, index + 1, text, end, captures, strict_id=strict_id
        )

    validator = _validator_for(tokens, index, strict_id=strict_id)
    if last:
        candidate = text[pos:]
        if candidate and validator.fullmatch(candidate):
            return {**captures, token.value: candidate}
        return None
    for end in range(pos + 1, len(text) + 1):
        following = tokens[index + 1]
        if following.kind == "literal":
            anchor_last = index + 1 == len(tokens) - 1
            if anchor_last:
                if text[end:].casefold() != following.value.casefold():
                    continue
            elif not text.startswith(following.value, end):
                continue
        candidate = text[pos:end]
        if not validator.fullmatch(candidate):
            continue
        matched = _match_tokens(
            tokens,
            index + 1,
            text,
            end,
            {**captures, token.value: candidate},
            strict_id=strict_id,
        )
        if matched is not None:
            return matched
    return None


def extract_id_from_filename(filename: str, pattern: str) -> str | None:
    """Recover the issue id encoded in ``filename`` by ``pattern``.

    Returns ``None`` when the pattern has no ``[id]`` variable or the name
    does not fit the pattern. The trailing literal (usually the extension)
    is compared case-insensitively.

    Example:
        >>> extract_id_from_filename("bug/todo-1.MD", "[type]/[id].md")
        'todo-1'
        >>> extract_id_from_filename("notes.txt", "[id].md") is None
        True
    """
    tokens = parse_pattern(pattern)
    if not any(t.kind == "variable" and t.value == "id" for t in tokens):
        return None
    for strict_id in (True, False):
        captures = _match_tokens(tokens, 0, filename, 0, {}, strict_id=strict_id)
        if captures is not None and captures.get("id"):
            return captures["id"]
    return None
