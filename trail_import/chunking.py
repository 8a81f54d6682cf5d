from __future__ import annotations

import re
from typing import Callable

SENTENCE_END = re.compile(r"(?<=[.!?…])\s+")


def _markdown_header(line: str) -> bool:
    return re.match(r"^#{1,6}\s+\S", line) is not None


def _numbered_header(line: str) -> bool:
    return re.match(r"^\d+[.)]\s+[A-ZА-ЯЁ]", line) is not None and len(line) < 120


def _keyword_header(line: str) -> bool:
    return (
        re.match(r"^(?:модуль|module|урок|lesson|занятие|глава|chapter|тема|topic|раздел|section)\b", line, re.IGNORECASE)
        is not None
        and len(line) < 120
    )


def _caps_short_line(line: str) -> bool:
    return 3 < len(line) < 80 and line == line.upper() and any(char.isalpha() for char in line)


SECTION_BOUNDARIES: tuple[tuple[str, Callable[[str], bool]], ...] = (
    ("markdown_header", _markdown_header),
    ("numbered_header", _numbered_header),
    ("keyword_header", _keyword_header),
    ("caps_short_line", _caps_short_line),
)


def is_section_boundary(line: str) -> bool:
    stripped = line.strip()
    return bool(stripped) and any(predicate(stripped) for _name, predicate in SECTION_BOUNDARIES)


def _paragraph_units(text: str, offset: int = 0) -> list[dict]:
    units: list[dict] = []

    start = 0
    for match in re.finditer(r"\n\s*\n+", text):
        end = match.start()
        chunk_text = text[start:end]
        if chunk_text.strip():
            units.append({"start": offset + start, "end": offset + end, "text": chunk_text})
        start = match.end()

    tail = text[start:]
    if tail.strip():
        units.append({"start": offset + start, "end": offset + len(text), "text": tail})

    return units


def _section_units(text: str) -> list[dict]:
    """Split text at heading-like lines; each unit records whether it opens a section."""

    starts = [0]
    position = 0
    for line in text.splitlines(keepends=True):
        if position and is_section_boundary(line):
            starts.append(position)
        position += len(line)
    starts.append(len(text))

    units: list[dict] = []
    for index, (start, end) in enumerate(zip(starts, starts[1:])):
        if text[start:end].strip():
            units.append({"start": start, "end": end, "boundary": index > 0})
    return units


def _sentence_units(text: str, offset: int) -> list[dict]:
    units: list[dict] = []
    start = 0
    for match in SENTENCE_END.finditer(text):
        units.append({"start": offset + start, "end": offset + match.start()})
        start = match.end()
    if start < len(text):
        units.append({"start": offset + start, "end": offset + len(text)})
    return units


def _split_oversized(text: str, unit: dict, max_chars: int) -> list[dict]:
    """Break a unit longer than max_chars on paragraphs, then sentences, then hard cuts."""

    pieces: list[dict] = []
    for paragraph in _paragraph_units(text[unit["start"] : unit["end"]], unit["start"]):
        if paragraph["end"] - paragraph["start"] <= max_chars:
            pieces.append({"start": paragraph["start"], "end": paragraph["end"]})
            continue
        for sentence in _sentence_units(paragraph["text"], paragraph["start"]):
            start = sentence["start"]
            while sentence["end"] - start > max_chars:
                pieces.append({"start": start, "end": start + max_chars})
                start += max_chars
            if sentence["end"] > start:
                pieces.append({"start": start, "end": sentence["end"]})

    for position, piece in enumerate(pieces):
        piece["boundary"] = unit["boundary"] and position == 0
    return pieces


def chunk_for_ai(text: str, min_chars: int = 2000, max_chars: int = 8000) -> list[dict]:
    """Return [{index, start, end, text}] spans of at most max_chars, cut at section boundaries when possible."""

    if not text.strip():
        return []
    max_chars = max(max_chars, 1)
    min_chars = min(min_chars, max_chars)

    units: list[dict] = []
    for unit in _section_units(text):
        if unit["end"] - unit["start"] > max_chars:
            units.extend(_split_oversized(text, unit, max_chars))
        else:
            units.append(unit)

    spans: list[list[int]] = []
    for unit in units:
        if not spans:
            spans.append([unit["start"], unit["end"]])
            continue
        current = spans[-1]
        too_long = unit["end"] - current[0] > max_chars
        section_break = unit["boundary"] and current[1] - current[0] >= min_chars
        if too_long or section_break:
            spans.append([unit["start"], unit["end"]])
        else:
            current[1] = unit["end"]

    if len(spans) > 1 and spans[-1][1] - spans[-1][0] < min_chars // 2 and spans[-1][1] - spans[-2][0] <= max_chars:
        spans[-2][1] = spans.pop()[1]

    return [
        {"index": index, "start": start, "end": end, "text": text[start:end].strip()}
        for index, (start, end) in enumerate(spans)
    ]
