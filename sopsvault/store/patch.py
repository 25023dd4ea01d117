"""
Patch compiler — turn a secret value into field-level sops operations.

Updating an existing secret never decrypts and re-encrypts the whole file.
Instead the value is flattened into an ordered list of PathOperation, each of
which maps to one ``sops set FILE PATH VALUE`` or ``sops unset FILE PATH``
call. Fields the value does not mention are left alone.

Accepted values:

    {"stringData": {"password": "hunter2"}}   # mappings / lists, walked
    ".stringData.password: hunter2"           # path syntax, one field
    ".stringData.password: null"              # path syntax, remove a field
    "user: admin\\npassword: hunter2"          # multi-line YAML text
    "postgresql://u:p@db:5432/app"            # anything else: one plain value

Plain values (and bare scalars) are stored under the ``value`` key.
"""

from __future__ import annotations

import copy
import json
import math
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

import yaml  # type: ignore[import-untyped]

from sopsvault.errors import InvalidInputError

DEFAULT_KEY = "value"
TAB_WIDTH = 2

# Right-hand sides of path syntax that mean "delete this field"
REMOVE_LITERALS = frozenset({"null", "$null"})


class _Remove:
    """Marker for a field deletion. Use the REMOVE singleton."""

    _instance: _Remove | None = None

    def __new__(cls) -> _Remove:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "REMOVE"

    def __copy__(self) -> _Remove:
        return self

    def __deepcopy__(self, memo: dict) -> _Remove:
        return self


REMOVE = _Remove()

Scalar = str | bool | int | float
Segment = str | int


class TextMode(StrEnum):
    PATH_SYNTAX = "path-syntax"
    STRUCTURED = "structured text"
    PLAIN = "plain value"


@dataclass(frozen=True)
class PathOperation:
    """Set one field to a scalar, or remove it."""

    segments: tuple[Segment, ...]
    value: Scalar | _Remove

    @property
    def path(self) -> str:
        return format_path(self.segments)

    @property
    def is_remove(self) -> bool:
        return self.value is REMOVE

    @property
    def rendered(self) -> str | None:
        """Value literal for ``sops set`` (None for removals)."""
        if self.is_remove:
            return None
        return format_value(self.value)  # type: ignore[arg-type]

    def __str__(self) -> str:
        return f"unset {self.path}" if self.is_remove else f"set {self.path}"


# ── Bracket paths ──────────────────────────────────────────────────────


def format_path(segments: Sequence[Segment]) -> str:
    """``("data", 0, "a b")`` → ``["data"][0]["a b"]``."""
    parts = []
    for seg in segments:
        if isinstance(seg, int) and not isinstance(seg, bool):
            parts.append(f"[{seg}]")
        else:
            parts.append(f"[{json.dumps(str(seg), ensure_ascii=False)}]")
    return "".join(parts)


_BRACKET_RE = re.compile(
    r"""\[\s*(?:"(?P<dq>(?:[^"\\]|\\.)*)"|'(?P<sq>[^']*)'|(?P<idx>\d+))\s*\]"""
)


def _bracket_segment(m: re.Match[str]) -> Segment:
    if m.group("idx") is not None:
        return int(m.group("idx"))
    if m.group("dq") is not None:
        try:
            return str(json.loads(f'"{m.group("dq")}"'))
        except json.JSONDecodeError as e:
            raise InvalidInputError("path", f"bad escape in {m.group(0)}: {e}") from e
    return m.group("sq")


def parse_path(path: str) -> tuple[Segment, ...]:
    """Inverse of format_path."""
    segments: list[Segment] = []
    pos = 0
    while pos < len(path):
        m = _BRACKET_RE.match(path, pos)
        if not m:
            raise InvalidInputError("path", f"cannot parse {path!r} at offset {pos}")
        segments.append(_bracket_segment(m))
        pos = m.end()
    if not segments:
        raise InvalidInputError("path", "empty path")
    return tuple(segments)


# ── Value rendering ────────────────────────────────────────────────────


def format_value(value: Scalar) -> str:
    """Render a scalar as the JSON literal ``sops set`` expects."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise InvalidInputError("value", f"{value!r} has no JSON representation")
        return repr(value)
    if isinstance(value, str):
        return json.dumps(value, ensure_ascii=False)
    raise InvalidInputError("value", f"cannot render {type(value).__name__}")


def _leaf(value: Any) -> Scalar | _Remove:
    if value is None or value is REMOVE:
        return REMOVE
    if isinstance(value, float) and not math.isfinite(value):
        raise InvalidInputError("value", f"{value!r} has no JSON representation")
    if isinstance(value, (str, bool, int, float)):
        return value
    raise InvalidInputError("value", f"unsupported value type {type(value).__name__}")


def _key(key: Any) -> str:
    if isinstance(key, bool):
        return "true" if key else "false"
    if key is None:
        return "null"
    return str(key)


# ── String modes ───────────────────────────────────────────────────────

# Something that starts like ".field" or ".[" and has a key/value colon
_PATH_CANDIDATE_RE = re.compile(r"""^\.[\w\["'-][^\n]*:(?:\s|$)""")
_PLAIN_SEGMENT_RE = re.compile(r"[^.\[\]:\s\"']+")
_KEY_LINE_RE = re.compile(r"""^[ \t]*(?:-[ \t]+)?[\w"'][^:\n]*:(?:[ \t]|$)""", re.MULTILINE)


def _parse_address(text: str) -> tuple[tuple[Segment, ...], int]:
    """Parse ``.a.b["c"][0]`` starting at text[0]; return segments and end offset."""
    segments: list[Segment] = []
    pos = 0
    while pos < len(text):
        ch = text[pos]
        if ch == "[":
            m = _BRACKET_RE.match(text, pos)
            if not m:
                raise InvalidInputError(
                    TextMode.PATH_SYNTAX, f"unterminated or invalid bracket at offset {pos}"
                )
            segments.append(_bracket_segment(m))
            pos = m.end()
        elif ch == ".":
            if pos + 1 < len(text) and text[pos + 1] == "[":
                pos += 1
                continue
            m = _PLAIN_SEGMENT_RE.match(text, pos + 1)
            if not m:
                raise InvalidInputError(TextMode.PATH_SYNTAX, f"empty field name at offset {pos}")
            segments.append(m.group(0))
            pos = m.end()
        else:
            break
    return tuple(segments), pos


def _is_path_candidate(text: str) -> bool:
    return "\n" not in text.rstrip("\r\n") and _PATH_CANDIDATE_RE.match(text) is not None


def match_path_syntax(text: str) -> tuple[tuple[Segment, ...], Scalar | _Remove] | None:
    """Parse ``.a.b: value``. None if text is not in path syntax at all.

    Text that clearly aims at path syntax but is malformed raises
    InvalidInputError rather than silently becoming a plain value.
    """
    if not _is_path_candidate(text):
        return None
    return _parse_path_syntax(text)


def _parse_path_syntax(text: str) -> tuple[tuple[Segment, ...], Scalar | _Remove]:
    segments, end = _parse_address(text)
    rest = text[end:]
    if not segments or not rest.startswith(":"):
        raise InvalidInputError(
            TextMode.PATH_SYNTAX,
            f"expected ': <value>' after the field address, got {rest[:20]!r}",
        )
    tail = rest[1:]
    if tail and not tail[0].isspace():
        raise InvalidInputError(TextMode.PATH_SYNTAX, "missing space after ':'")

    raw = tail.strip()
    if raw in REMOVE_LITERALS:
        return segments, REMOVE
    return segments, raw


def looks_structured(text: str) -> bool:
    """Multi-line text with at least one ``key:`` line."""
    return "\n" in text and _KEY_LINE_RE.search(text) is not None


def classify_text(text: str) -> TextMode:
    """Pick the string mode. Order matters: path syntax is also valid YAML."""
    if _is_path_candidate(text):
        return TextMode.PATH_SYNTAX
    if looks_structured(text):
        return TextMode.STRUCTURED
    return TextMode.PLAIN


class _SecretLoader(yaml.SafeLoader):
    """SafeLoader that leaves timestamps as the text the user wrote."""


_SecretLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag != "tag:yaml.org,2002:timestamp"]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


def load_yaml(text: str) -> Any:
    """``yaml.safe_load`` without timestamp conversion."""
    return yaml.load(text, Loader=_SecretLoader)


def parse_structured(text: str) -> Any:
    """Parse YAML text, retrying once with tabs converted to spaces."""
    try:
        return load_yaml(text)
    except yaml.YAMLError as e:
        if "\t" not in text:
            raise InvalidInputError(TextMode.STRUCTURED, _yaml_reason(e)) from e

    normalized = text.replace("\t", " " * TAB_WIDTH)
    try:
        return load_yaml(normalized)
    except yaml.YAMLError as e:
        raise InvalidInputError(
            TextMode.STRUCTURED,
            f"{_yaml_reason(e)} (retried after replacing tabs with {TAB_WIDTH} spaces)",
        ) from e


def _yaml_reason(e: yaml.YAMLError) -> str:
    mark = getattr(e, "problem_mark", None)
    problem = getattr(e, "problem", None) or str(e)
    if mark is not None:
        return f"{problem} at line {mark.line + 1}, column {mark.column + 1}"
    return str(problem)


# ── Compilation ────────────────────────────────────────────────────────


def _walk(value: Any, prefix: tuple[Segment, ...], out: list[PathOperation]) -> None:
    if isinstance(value, Mapping):
        for key, child in value.items():
            _walk(child, (*prefix, _key(key)), out)
    elif isinstance(value, (list, tuple)):
        for i, child in enumerate(value):
            _walk(child, (*prefix, i), out)
    else:
        out.append(PathOperation(prefix, _leaf(value)))


def _compile_structure(value: Any) -> list[PathOperation]:
    if isinstance(value, (Mapping, list, tuple)):
        ops: list[PathOperation] = []
        _walk(value, (), ops)
        return ops
    return [PathOperation((DEFAULT_KEY,), _leaf(value))]


def compile_patch(value: Any) -> list[PathOperation]:
    """Compile a secret value into ordered field operations.

    Raises:
        InvalidInputError: malformed path syntax, unparseable structured text,
            or a leaf value with no JSON representation.
    """
    if not isinstance(value, str):
        return _compile_structure(value)

    mode = classify_text(value)
    if mode == TextMode.PATH_SYNTAX:
        segments, leaf = _parse_path_syntax(value)
        return [PathOperation(segments, leaf)]
    if mode == TextMode.STRUCTURED:
        return _compile_structure(parse_structured(value))
    return [PathOperation((DEFAULT_KEY,), value)]


# ── Applying operations ────────────────────────────────────────────────


def _child_container(next_seg: Segment) -> Any:
    return [] if isinstance(next_seg, int) else {}


def _set(doc: Any, segments: tuple[Segment, ...], value: Scalar) -> None:
    node = doc
    for i, seg in enumerate(segments):
        last = i == len(segments) - 1
        if isinstance(seg, int):
            if not isinstance(node, list):
                where = format_path(segments[: i + 1])
                raise InvalidInputError("path", f"{where} indexes a non-list")
            while len(node) <= seg:
                node.append(None)
            if last:
                node[seg] = value
            else:
                if not isinstance(node[seg], (dict, list)):
                    node[seg] = _child_container(segments[i + 1])
                node = node[seg]
        else:
            if not isinstance(node, dict):
                where = format_path(segments[: i + 1])
                raise InvalidInputError("path", f"{where} keys a non-mapping")
            if last:
                node[seg] = value
            else:
                if not isinstance(node.get(seg), (dict, list)):
                    node[seg] = _child_container(segments[i + 1])
                node = node[seg]


def _unset(doc: Any, segments: tuple[Segment, ...]) -> None:
    node = doc
    for seg in segments[:-1]:
        if isinstance(seg, int):
            if not isinstance(node, list) or seg >= len(node):
                return
        elif not isinstance(node, dict) or seg not in node:
            return
        node = node[seg]
    last = segments[-1]
    if isinstance(last, int):
        if isinstance(node, list) and last < len(node):
            del node[last]
    elif isinstance(node, dict):
        node.pop(last, None)


def apply_operations(document: Any, operations: Sequence[PathOperation]) -> Any:
    """Apply operations to a copy of a plaintext document, as sops would."""
    doc = copy.deepcopy(document)
    for op in operations:
        if op.is_remove:
            _unset(doc, op.segments)
        else:
            _set(doc, op.segments, op.value)  # type: ignore[arg-type]
    return doc


def build_document(operations: Sequence[PathOperation]) -> dict:
    """Materialize operations into a fresh top-level mapping."""
    for op in operations:
        if op.segments and isinstance(op.segments[0], int):
            raise InvalidInputError(
                "value", "a secret document must be a mapping at the top level"
            )
    return apply_operations({}, [op for op in operations if not op.is_remove])
