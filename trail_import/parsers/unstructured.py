from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Callable

from trail_import.questions import (
    AnswerLine,
    build_question,
    extract_answer,
    extract_question_text,
    preprocess_inline_questions,
    split_explicit_type,
)
from trail_import.schema_models import ParsedModule, ParsedQuestion, ParsedTrail
from trail_import.structure_analysis import BLOCK_MARKER
from trail_import.text_utils import (
    default_duration,
    default_level,
    default_points,
    detect_color,
    detect_icon,
    detect_module_type,
    detect_requires_submission,
    first_meaningful_line,
    generate_slug,
)

DEFAULT_MODULE_TITLE = "Основной материал"
QUIZ_MODULE_TITLE = "Тест"
DEFAULT_TRAIL_TITLE = "Импортированный курс"

ORDINALS_M = r"(?:первый|второй|третий|четв[её]ртый|пятый|шестой|\d+|один|два|три|четыре|пять|one|two|three|four|five|six)"
ORDINALS_F = r"(?:первая|вторая|третья|четв[её]ртая|пятая|\d+|one|two|three|four|five)"


@dataclass(frozen=True)
class HeadingRule:
    """A named heading detector. level 1 opens a trail, level 2 opens a module."""

    name: str
    level: int
    extract: Callable[[str, int], str | None]


def regex_rule(name: str, level: int, pattern: str, *, whole_line_fallback: bool = False) -> HeadingRule:
    compiled = re.compile(pattern, flags=re.IGNORECASE)

    def extract(line: str, _index: int) -> str | None:
        match = compiled.match(line)
        if not match:
            return None
        title = (match.group(1) or "").strip() if match.groups() else ""
        if title:
            return title
        return line.strip() if whole_line_fallback else None

    return HeadingRule(name=name, level=level, extract=extract)


MODULE_HEADING_RULES: tuple[HeadingRule, ...] = (
    regex_rule("markdown_h2_h3", 2, r"^#{2,3}\s+(.+)$"),
    regex_rule("module_ordinal", 2, rf"^(?:модуль|module)\s*{ORDINALS_M}(?:[:.\s]+(.+))?$", whole_line_fallback=True),
    regex_rule(
        "lesson_number",
        2,
        rf"^(?:урок|lesson|занятие)\s*(?:{ORDINALS_M}|№\s*\d+)(?:[:.\s]+(.*))?$",
        whole_line_fallback=True,
    ),
    regex_rule("chapter", 2, rf"^(?:глава|chapter)\s*{ORDINALS_F}(?:[:.\s]+(.*))?$", whole_line_fallback=True),
    regex_rule("topic", 2, rf"^(?:тема|topic)\s*{ORDINALS_F}(?:[:.\s]+(.*))?$", whole_line_fallback=True),
    regex_rule("part", 2, rf"^(?:часть|part)\s*{ORDINALS_F}(?:[:.\s]+(.*))?$", whole_line_fallback=True),
    regex_rule("section", 2, rf"^(?:раздел|section)\s*{ORDINALS_M}(?:[:.\s]+(.*))?$", whole_line_fallback=True),
    regex_rule(
        "theory_block",
        2,
        r"^(?:теоретический материал|theoretical material)\s*:?\s*(.*)$",
        whole_line_fallback=True,
    ),
)

NUMBERED_HEADING = regex_rule("numbered_heading", 2, r"^\d+[.)]\s+([A-ZА-ЯЁ].{3,})$")

META_LINE = re.compile(r"^(?:подзаголовок|subtitle|описание|description)[:\s]", re.IGNORECASE)
SUBTITLE_LINE = re.compile(r"^(?:подзаголовок|subtitle)[:\s]+(.+)$", re.IGNORECASE)


def is_module_line(line: str) -> bool:
    return any(rule.extract(line, 0) for rule in (*MODULE_HEADING_RULES, NUMBERED_HEADING))


def is_question_line(line: str) -> bool:
    return extract_question_text(line) is not None or line.rstrip().endswith("?")


def _first_short_line(line: str, index: int) -> str | None:
    if index >= 3 or not 3 < len(line) < 100:
        return None
    if is_module_line(line) or is_question_line(line) or META_LINE.match(line):
        return None
    if extract_answer(line) is not None:
        return None
    return line.strip()


TEXT_TRAIL_RULES: tuple[HeadingRule, ...] = (
    regex_rule("markdown_h1", 1, r"^#\s+(.+)$"),
    regex_rule("course_keyword", 1, r"^(?:курс|course|trail|трейл|дисциплина|предмет)[:\s]+(.+)$"),
    HeadingRule("first_short_line", 1, _first_short_line),
)


@dataclass
class _PendingQuestion:
    text: str
    explicit_type: str | None
    answers: list[AnswerLine] = field(default_factory=list)


@dataclass
class _TrailDraft:
    title: str = ""
    subtitle: str = ""
    start: int = 0
    modules: list[ParsedModule] = field(default_factory=list)


def build_heuristic_module(title: str, content_lines: list[str], questions: list[ParsedQuestion]) -> ParsedModule:
    content = "\n".join(content_lines).strip()
    cleaned_title = re.sub(r"^\d+[.)]\s*", "", title).strip() or title
    module_type = "PRACTICE" if questions else detect_module_type(cleaned_title, content)
    return ParsedModule(
        title=cleaned_title,
        slug=generate_slug(cleaned_title, fallback="module"),
        type=module_type,
        points=default_points(module_type),
        description=first_meaningful_line(content),
        content=content,
        questions=questions,
        level=default_level(module_type),
        duration=default_duration(module_type),
        requires_submission=detect_requires_submission(module_type, cleaned_title, content),
    )


def _finish_trail(draft: _TrailDraft) -> ParsedTrail | None:
    if not draft.title and not draft.modules:
        return None
    title = draft.title or (draft.modules[0].title if draft.modules else DEFAULT_TRAIL_TITLE)
    return ParsedTrail(
        title=title,
        slug=generate_slug(title, fallback="trail"),
        subtitle=draft.subtitle or f"Курс: {title}",
        description=draft.subtitle or (draft.modules[0].description if draft.modules else ""),
        icon=detect_icon(title),
        color=detect_color(title),
        modules=draft.modules,
    )


def parse_unstructured(
    text: str,
    *,
    trail_rules: tuple[HeadingRule, ...] = TEXT_TRAIL_RULES,
    module_rules: tuple[HeadingRule, ...] = MODULE_HEADING_RULES,
    warnings: list[str] | None = None,
) -> list[ParsedTrail]:
    """Infer trails, modules and questions from text without explicit markers."""

    processed = preprocess_inline_questions(text)
    lines = processed.split("\n")

    trails: list[ParsedTrail] = []
    draft = _TrailDraft()
    module_title = ""
    content: list[str] = []
    questions: list[ParsedQuestion] = []
    pending: _PendingQuestion | None = None

    def flush_question() -> None:
        nonlocal pending
        if pending is not None and pending.answers:
            question = build_question(pending.text, pending.answers, pending.explicit_type, warnings)
            if question is not None:
                questions.append(question)
        pending = None

    def flush_module() -> None:
        nonlocal module_title, content, questions
        flush_question()
        if module_title:
            draft.modules.append(build_heuristic_module(module_title, content, questions))
        elif any(line.strip() for line in content) or questions:
            title = DEFAULT_MODULE_TITLE if any(line.strip() for line in content) else QUIZ_MODULE_TITLE
            draft.modules.append(build_heuristic_module(title, content, questions))
        module_title = ""
        content = []
        questions = []

    def close_trail(end: int) -> None:
        finished = _finish_trail(draft)
        if finished is None:
            return
        if not finished.modules:
            own_text = "\n".join(lines[draft.start:end]).strip() or finished.title
            finished.modules.append(build_heuristic_module(DEFAULT_MODULE_TITLE, own_text.splitlines(), []))
        trails.append(finished)

    def match_rules(rules: tuple[HeadingRule, ...], line: str, index: int) -> str | None:
        for rule in rules:
            title = rule.extract(line, index)
            if title:
                return title
        return None

    for index, line in enumerate(lines):
        trimmed = line.strip()
        if not trimmed:
            if pending is not None and pending.answers:
                flush_question()
            if content:
                content.append("")
            continue

        if BLOCK_MARKER.match(trimmed):
            continue

        if pending is not None:
            answer = extract_answer(trimmed)
            if answer is not None:
                pending.answers.append(answer)
                continue

        trail_title = match_rules(trail_rules, trimmed, index)
        if trail_title:
            if not draft.title and not draft.modules and not module_title:
                draft.title = trail_title
                draft.start = index + 1
                continue
            if draft.modules or module_title:
                flush_module()
                close_trail(index)
                draft = _TrailDraft(title=trail_title, start=index + 1)
                continue

        if draft.title and not draft.subtitle and not draft.modules and not module_title and not content:
            explicit = SUBTITLE_LINE.match(trimmed)
            if explicit:
                draft.subtitle = explicit.group(1).strip()
                continue
            if (
                index < 10
                and 5 < len(trimmed) < 200
                and not trimmed.startswith(("#", "-", "*", "•"))
                and not is_module_line(trimmed)
                and not is_question_line(trimmed)
            ):
                draft.subtitle = trimmed
                continue

        heading = match_rules(module_rules, trimmed, index)
        if heading is None and pending is None:
            heading = NUMBERED_HEADING.extract(trimmed, index)
        if heading:
            flush_module()
            module_title = heading
            continue

        question_text = extract_question_text(trimmed)
        if question_text:
            flush_question()
            text_only, explicit_type = split_explicit_type(question_text)
            pending = _PendingQuestion(text=text_only, explicit_type=explicit_type)
            continue

        if pending is not None:
            flush_question()
        content.append(line.rstrip())

    flush_module()
    close_trail(len(lines))

    if not trails and text.strip():
        module = build_heuristic_module(DEFAULT_MODULE_TITLE, text.strip().splitlines(), [])
        trails.append(_finish_trail(_TrailDraft(modules=[module])))
    return trails
