"""Placeholder substitution for prompt template text.

Templates use ``{name}`` or ``{name.nested.path}`` placeholders. The scanner
walks the text once, copying literal spans and resolving brace spans that
form a dotted path. Anything else inside braces (for example a JSON sample
embedded in a prompt) is copied through untouched.
"""

from __future__ import annotations

import json

from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Sequence, Tuple

STATE_KEY = "state"

_MISSING = object()


@dataclass(frozen=True)
class RenderResult:
    text: str
    unresolved: Tuple[str, ...] = field(default_factory=tuple)


def render(text: str, variables: Mapping[str, Any]) -> str:
    """Render ``text`` against ``variables``; unresolved spans stay literal."""

    return render_template(text, variables).text


def render_template(
    text: Optional[str], variables: Mapping[str, Any]
) -> RenderResult:
    """Render ``text`` and report the placeholders that did not resolve."""

    if not text:
        return RenderResult(text="")
    parts: List[str] = []
    unresolved: List[str] = []
    pos = 0
    length = len(text)
    while pos < length:
        start = text.find("{", pos)
        if start == -1:
            parts.append(text[pos:])
            break
        parts.append(text[pos:start])
        end = text.find("}", start + 1)
        if end == -1:
            parts.append(text[start:])
            break
        inner = text[start + 1 : end]
        segments = parse_path(inner)
        if segments is None:
            # Not a placeholder: emit the brace and rescan after it so a
            # nested span such as "{{name}}" still resolves its inner part.
            parts.append("{")
            pos = start + 1
            continue
        value = resolve_path(variables, segments)
        if value is _MISSING:
            unresolved.append(inner)
            parts.append(text[start : end + 1])
        else:
            parts.append(format_value(value))
        pos = end + 1
    return RenderResult(text="".join(parts), unresolved=tuple(unresolved))


def parse_path(inner: str) -> Optional[List[str]]:
    """Split ``a.b.0`` into segments, or None when it is not a path."""

    if not inner:
        return None
    segments = inner.split(".")
    for segment in segments:
        if not segment or not segment.isascii():
            return None
        if segment.isdigit():
            continue
        if not (segment[0].isalpha() or segment[0] == "_"):
            return None
        if not all(ch.isalnum() or ch == "_" for ch in segment):
            return None
    return segments


def resolve_path(variables: Mapping[str, Any], segments: Sequence[str]) -> Any:
    value = _walk(variables, segments)
    if value is _MISSING and len(segments) > 1 and segments[0] == STATE_KEY:
        # "state.foo" falls back to a flat "foo" for callers that do not
        # namespace their variables.
        value = _walk(variables, segments[1:])
    return value


def _walk(root: Any, segments: Sequence[str]) -> Any:
    current = root
    for segment in segments:
        current = _step(current, segment)
        if current is _MISSING:
            return _MISSING
    return current


def _step(current: Any, segment: str) -> Any:
    if isinstance(current, Mapping):
        return current.get(segment, _MISSING)
    if isinstance(current, Sequence) and not isinstance(current, (str, bytes)):
        if not segment.isdigit():
            return _MISSING
        index = int(segment)
        if index >= len(current):
            return _MISSING
        return current[index]
    if current is None or segment.startswith("_"):
        return _MISSING
    return getattr(current, segment, _MISSING)


def format_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    if value is None or isinstance(value, bool):
        return json.dumps(value)
    if isinstance(value, (Mapping, list, tuple)):
        return json.dumps(value, indent=2, ensure_ascii=False, default=str)
    return str(value)
