"""Extraction of a JSON document from LLM output that may be fenced, truncated or malformed."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator

from trail_import.text_utils import generate_slug

logger = logging.getLogger(__name__)

CODE_FENCE = re.compile(r"```(?:json|JSON)?\s*(.*?)(?:```|$)", re.DOTALL)
TRAILS_ARRAY = re.compile(r'"trails"\s*:\s*\[')
MODULES_ARRAY = re.compile(r'"modules"\s*:\s*\[')
TITLE_FIELD = re.compile(r'"title"\s*:\s*"((?:[^"\\]|\\.)*)"')
SLUG_FIELD = re.compile(r'"slug"\s*:\s*"((?:[^"\\]|\\.)*)"')
SCALAR = re.compile(r"-?\d+(?:\.\d+)?(?:[eE][+-]?\d+)?|true|false|null")
TRUNCATION_SLACK = 10


@dataclass(frozen=True)
class JsonRecovery:
    data: Any | None
    strategy: str | None
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.data is not None


def strip_code_fences(text: str) -> str:
    text = text or ""
    match = CODE_FENCE.search(text)
    brace = text.find("{")
    # Fences inside JSON string values are content, not wrapping.
    if match is None or (0 <= brace < match.start()):
        return text
    return match.group(1)


def extract_json_candidate(text: str) -> str | None:
    body = strip_code_fences(text)
    start = body.find("{")
    if start < 0:
        return None
    return body[start:].strip()


def _iter_structural(text: str, start: int = 0) -> Iterator[tuple[int, str]]:
    """Yield (index, char) for every character outside string literals."""

    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
            continue
        yield index, char


def _next_significant(text: str, index: int) -> str:
    for cursor in range(index, len(text)):
        if not text[cursor].isspace():
            return text[cursor]
    return ""


def find_last_valid_position(text: str) -> int:
    """Offset just past the last `}` that closes a module (followed by a comma) or a trail."""

    depth = 0
    last_module_end = -1
    last_trail_end = -1
    for index, char in _iter_structural(text):
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if _next_significant(text, index + 1) == ",":
                last_module_end = index + 1
            if depth == 1:
                last_trail_end = index + 1
    return max(last_module_end, last_trail_end)


def _unterminated_string_start(text: str) -> int:
    in_string = False
    escaped = False
    start = -1
    for index, char in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
            start = index
    return start if in_string else -1


def close_open_string(text: str) -> str:
    """Cut an unterminated trailing string back to the last comma or opening bracket before it."""

    start = _unterminated_string_start(text)
    if start < 0:
        return text
    before = text[:start]
    safe = max(before.rfind(","), before.rfind("["), before.rfind("{"))
    if safe <= 0:
        return text + '"'
    return before[:safe] if before[safe] == "," else before[: safe + 1]


def strip_trailing_commas(text: str) -> str:
    drop: set[int] = set()
    pending_comma = -1
    for index, char in _iter_structural(text):
        if char.isspace():
            continue
        if char in "]}" and pending_comma >= 0:
            drop.add(pending_comma)
        pending_comma = index if char == "," else -1
    if pending_comma >= 0:
        drop.add(pending_comma)
    return "".join(char for index, char in enumerate(text) if index not in drop)


def _scan_string(text: str, index: int) -> int:
    """Index just past the string literal opening at index, or -1 when it never closes."""

    escaped = False
    for cursor in range(index + 1, len(text)):
        char = text[cursor]
        if escaped:
            escaped = False
        elif char == "\\":
            escaped = True
        elif char == '"':
            return cursor + 1
    return -1


def complete_structure(text: str) -> str:
    """Trim to the last point where the document can be closed, then append the closing tokens."""

    stack: list[str] = []
    state = "value"
    safe_end, safe_stack = 0, []
    index = 0

    def value_done() -> str:
        return "done" if not stack else "comma_or_close"

    while index < len(text):
        char = text[index]
        if char.isspace():
            index += 1
            continue

        expecting_value = state in {"value", "value_or_close"}
        if char in "{[" and expecting_value:
            stack.append(char)
            state = "key_or_close" if char == "{" else "value_or_close"
            index += 1
            safe_end, safe_stack = index, list(stack)
            continue
        if char == '"' and (expecting_value or state in {"key", "key_or_close"}):
            end = _scan_string(text, index)
            if end < 0:
                break
            index = end
            if state in {"key", "key_or_close"}:
                state = "colon"
                continue
            state = value_done()
            safe_end, safe_stack = index, list(stack)
            continue
        if char == ":" and state == "colon":
            state = "value"
            index += 1
            continue
        if char == "," and state == "comma_or_close":
            state = "key" if stack[-1] == "{" else "value"
            index += 1
            continue
        if char in "}]" and stack:
            opener = "{" if char == "}" else "["
            closable = {"key_or_close", "comma_or_close"} if opener == "{" else {"value_or_close", "comma_or_close"}
            if stack[-1] != opener or state not in closable:
                break
            stack.pop()
            index += 1
            state = value_done()
            safe_end, safe_stack = index, list(stack)
            continue
        if expecting_value:
            scalar = SCALAR.match(text, index)
            if scalar is None:
                break
            index = scalar.end()
            state = value_done()
            safe_end, safe_stack = index, list(stack)
            continue
        break

    closers = "".join("}" if opener == "{" else "]" for opener in reversed(safe_stack))
    return text[:safe_end] + closers


def repair_json(text: str) -> str | None:
    """Return a parseable JSON object string rebuilt from a damaged one, or None."""

    candidate = extract_json_candidate(text)
    if not candidate:
        return None

    repaired = candidate
    cut = find_last_valid_position(repaired)
    if 0 < cut < len(repaired) - TRUNCATION_SLACK:
        logger.debug("JSON truncated at %s of %s; tail dropped", cut, len(repaired))
        repaired = repaired[:cut]
    repaired = strip_trailing_commas(close_open_string(repaired))
    repaired = complete_structure(repaired)

    try:
        parsed = json.loads(repaired)
    except ValueError as exc:
        logger.debug("JSON repair failed: %s", exc)
        return None
    return repaired if isinstance(parsed, dict) else None


def _object_spans(text: str, start: int) -> tuple[list[tuple[int, int]], int]:
    """Spans of the top-level objects in the array opening before start, and the start of an unclosed one."""

    spans: list[tuple[int, int]] = []
    depth = 0
    object_start = -1
    for index, char in _iter_structural(text, start):
        if char in "{[":
            if depth == 0 and char == "{":
                object_start = index
            depth += 1
        elif char in "}]":
            if depth == 0:
                break
            depth -= 1
            if depth == 0 and object_start >= 0:
                spans.append((object_start, index + 1))
                object_start = -1
    return spans, object_start


def _loads_dict(fragment: str) -> dict | None:
    try:
        value = json.loads(fragment)
    except ValueError:
        return None
    return value if isinstance(value, dict) else None


def extract_partial_json(text: str) -> dict | None:
    """Collect the self-closed trail objects that precede a truncation."""

    match = TRAILS_ARRAY.search(text or "")
    if match is None:
        return None
    spans, _open_start = _object_spans(text, match.end())
    trails = [trail for trail in (_loads_dict(text[begin:end]) for begin, end in spans) if trail is not None]
    return {"trails": trails} if trails else None


def _unescape(value: str) -> str:
    try:
        return json.loads(f'"{value}"')
    except ValueError:
        return value


def extract_partial_trail(trail_json: str) -> dict | None:
    """Keep only the title, slug and completed modules of a damaged trail object."""

    title = TITLE_FIELD.search(trail_json)
    if title is None:
        return None
    slug = SLUG_FIELD.search(trail_json)
    trail: dict[str, Any] = {
        "title": _unescape(title.group(1)),
        "slug": _unescape(slug.group(1)) if slug else generate_slug(_unescape(title.group(1)), fallback="trail"),
        "modules": [],
    }

    modules = MODULES_ARRAY.search(trail_json)
    if modules is not None:
        spans, _open_start = _object_spans(trail_json, modules.end())
        for begin, end in spans:
            module = _loads_dict(trail_json[begin:end])
            if module is not None and module.get("title"):
                trail["modules"].append(module)
    return trail if trail["modules"] else None


def recover_completed_trails(text: str) -> list[dict]:
    match = TRAILS_ARRAY.search(text or "")
    if match is None:
        return []

    spans, open_start = _object_spans(text, match.end())
    trails: list[dict] = []
    for begin, end in spans:
        fragment = text[begin:end]
        trail = _loads_dict(fragment)
        if trail is not None and (trail.get("title") or trail.get("modules")):
            trails.append(trail)
            continue
        partial = extract_partial_trail(fragment)
        if partial is not None:
            trails.append(partial)
    if open_start >= 0:
        partial = extract_partial_trail(text[open_start:])
        if partial is not None:
            trails.append(partial)
    return trails


def _direct(text: str) -> Any | None:
    candidate = extract_json_candidate(text)
    if candidate is None:
        return None
    try:
        value, _end = json.JSONDecoder().raw_decode(candidate)
    except ValueError:
        return None
    return value if isinstance(value, dict) else None


def _repaired(text: str) -> Any | None:
    repaired = repair_json(text)
    return json.loads(repaired) if repaired is not None else None


def _completed_trails(text: str) -> Any | None:
    trails = recover_completed_trails(text)
    return {"trails": trails} if trails else None


RECOVERY_STRATEGIES: tuple[tuple[str, Callable[[str], Any | None]], ...] = (
    ("direct", _direct),
    ("repair", _repaired),
    ("partial", extract_partial_json),
    ("completed_trails", _completed_trails),
)

RECOVERY_WARNINGS = {
    "repair": "The AI response was truncated or malformed; the JSON was repaired automatically.",
    "partial": "The AI response was truncated; only complete trails were kept.",
    "completed_trails": "The AI response was damaged; trails were rebuilt from their completed modules.",
}


def recover_json(text: str, accept: Callable[[Any], bool] | None = None) -> JsonRecovery:
    """Run the recovery strategies in order and stop at the first whose result is accepted."""

    for name, attempt in RECOVERY_STRATEGIES:
        try:
            data = attempt(text)
        except (ValueError, RecursionError) as exc:
            logger.debug("JSON recovery strategy %s failed: %s", name, exc)
            continue
        if data is None or (accept is not None and not accept(data)):
            continue
        warnings = [RECOVERY_WARNINGS[name]] if name in RECOVERY_WARNINGS else []
        return JsonRecovery(data=data, strategy=name, warnings=warnings)
    return JsonRecovery(data=None, strategy=None)
