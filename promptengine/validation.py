"""Parsing and validation of provider replies against response formats."""

from __future__ import annotations

import json
import logging
import re

from typing import Any, Mapping, Optional, Tuple

from promptengine.exceptions import SchemaValidationError
from promptengine.types import ResponseFormat, is_structured_format

_LOGGER = logging.getLogger(__name__)

_FENCE_RE = re.compile(
    r"```(?:[A-Za-z0-9_-]+(?=\s))?\s*(?P<body>.*?)\s*```", re.DOTALL
)

_KIND_CHECKS = {
    "string": lambda v: isinstance(v, str),
    "number": lambda v: isinstance(v, (int, float))
    and not isinstance(v, bool),
    "integer": lambda v: isinstance(v, int) and not isinstance(v, bool),
    "boolean": lambda v: isinstance(v, bool),
    "array": lambda v: isinstance(v, list),
    "object": lambda v: isinstance(v, dict),
    "any": lambda v: True,
}

_KIND_ALIASES = {
    "str": "string",
    "text": "string",
    "float": "number",
    "int": "integer",
    "bool": "boolean",
    "list": "array",
    "dict": "object",
}


def strip_code_fences(content: str) -> str:
    """Return the body of the first Markdown code fence, if there is one.

    The fence may sit on a single line or follow introductory prose.
    """

    match = _FENCE_RE.search(content)
    if match:
        return match.group("body")
    return content.strip()


def json_kind(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def _split_kind(kind: str) -> Tuple[str, bool]:
    normalized = kind.strip()
    optional = normalized.endswith("?")
    if optional:
        normalized = normalized[:-1].strip()
    lowered = normalized.lower()
    return _KIND_ALIASES.get(lowered, lowered), optional


class ResponseValidator:
    """Turns extracted reply content into the result a template declares."""

    def parse(self, content: Optional[str], response_format: ResponseFormat):
        """Parse ``content`` according to ``response_format``.

        Raw text formats return the content unchanged. Structured formats
        are decoded as a JSON object and validated field by field.
        """

        text = content or ""
        if not is_structured_format(response_format):
            return text
        body = strip_code_fences(text)
        try:
            parsed = json.loads(body)
        except json.JSONDecodeError as exc:
            raise SchemaValidationError(
                f"Invalid JSON response: {exc.msg}",
                expected="object",
                actual="text",
                content=text,
            ) from exc
        if not isinstance(parsed, dict):
            raise SchemaValidationError(
                "Response must be a JSON object",
                expected="object",
                actual=json_kind(parsed),
                content=text,
            )
        self.validate(parsed, response_format)
        return parsed

    def validate(
        self, data: Mapping[str, Any], schema: Mapping[str, Any], path: str = ""
    ) -> None:
        for key, kind in schema.items():
            field_path = f"{path}.{key}" if path else str(key)
            optional = False
            if isinstance(kind, str):
                _, optional = _split_kind(kind)
            if key not in data:
                if optional:
                    continue
                raise SchemaValidationError(
                    f"Missing required field '{field_path}'",
                    field=field_path,
                    expected=_describe(kind),
                    actual="missing",
                    content=data,
                )
            self._check(data[key], kind, field_path)

    def _check(self, value: Any, kind: Any, field_path: str) -> None:
        if isinstance(kind, Mapping):
            if not isinstance(value, dict):
                self._mismatch(field_path, "object", value)
            self.validate(value, kind, field_path)
            return
        if isinstance(kind, list):
            if not isinstance(value, list):
                self._mismatch(field_path, "array", value)
            if len(kind) == 1:
                for index, item in enumerate(value):
                    self._check(item, kind[0], f"{field_path}[{index}]")
            return
        if not isinstance(kind, str):
            return
        name, optional = _split_kind(kind)
        if value is None and optional:
            return
        check = _KIND_CHECKS.get(name)
        if check is None:
            # Descriptive text rather than a kind: presence is enough.
            _LOGGER.debug(
                "Field '%s' declares free-form kind %r; skipping type check",
                field_path,
                kind,
            )
            return
        if not check(value):
            self._mismatch(field_path, name, value)

    @staticmethod
    def _mismatch(field_path: str, expected: str, value: Any) -> None:
        actual = json_kind(value)
        raise SchemaValidationError(
            f"Field '{field_path}' expected {expected}, got {actual}",
            field=field_path,
            expected=expected,
            actual=actual,
            content=value,
        )


def _describe(kind: Any) -> str:
    if isinstance(kind, Mapping):
        return "object"
    if isinstance(kind, list):
        return "array"
    if isinstance(kind, str):
        return _split_kind(kind)[0]
    return str(kind)
