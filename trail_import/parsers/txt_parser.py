from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from trail_import.config import ImportThresholds, load_import_thresholds
from trail_import.questions import AnswerLine, build_question, extract_answer, extract_question_text, split_explicit_type
from trail_import.schema_models import (
    DEFAULT_TRAIL_ICON,
    ParsedModule,
    ParsedQuestion,
    ParsedTrail,
    ParseResult,
)
from trail_import.structure_analysis import DEFAULT_PATTERNS, analyze_structure, has_explicit_markers
from trail_import.parsers.unstructured import parse_unstructured
from trail_import.text_utils import (
    TRUTHY,
    default_points,
    detect_requires_submission,
    normalize_module_type,
    parse_int,
    resolve_slug,
)
from trail_import.validation import coerce_color

logger = logging.getLogger(__name__)

QUESTIONS_MARKER = re.compile(r"^={3,}\s*(QUESTIONS?|ВОПРОС[ЫА]?)\s*={3,}$", re.IGNORECASE)
PLACEHOLDER_OPTION = re.compile(r"^\[.+\]$")
NEW_QUESTION_LINE = re.compile(r"^(?:\d+[.)]\s*.+\?$|[QqВ][:.]|(?:[Вв]опрос|[Qq]uestion)\s*\d*\s*[:.])")
SMART_PARSE_WARNING = "Smart parsing was used for unstructured text; review the result."

TRAIL_KEYS = {
    "title": "title",
    "название": "title",
    "slug": "slug",
    "слаг": "slug",
    "subtitle": "subtitle",
    "подзаголовок": "subtitle",
    "description": "description",
    "описание": "description",
    "icon": "icon",
    "иконка": "icon",
    "color": "color",
    "цвет": "color",
}

MODULE_KEYS = {
    "title": "title",
    "название": "title",
    "slug": "slug",
    "слаг": "slug",
    "type": "type",
    "тип": "type",
    "points": "points",
    "очки": "points",
    "баллы": "points",
    "description": "description",
    "описание": "description",
    "level": "level",
    "уровень": "level",
    "duration": "duration",
    "длительность": "duration",
    "requires_submission": "requires_submission",
    "requiressubmission": "requires_submission",
    "требует_сдачу": "requires_submission",
    "требуетсдачу": "requires_submission",
}


@dataclass
class _QuestionDraft:
    text: str
    explicit_type: str | None
    answers: list[AnswerLine] = field(default_factory=list)


@dataclass
class _ModuleDraft:
    fields: dict[str, str] = field(default_factory=dict)
    content_lines: list[str] = field(default_factory=list)
    questions: list[_QuestionDraft] = field(default_factory=list)


@dataclass
class _TrailDraft:
    fields: dict[str, str] = field(default_factory=dict)
    modules: list[_ModuleDraft] = field(default_factory=list)


def _is_marker(line: str, patterns) -> bool:
    return any(pattern.search(line) for pattern in patterns)


def _content_text(lines: list[str]) -> str:
    while lines and not lines[-1].strip():
        lines = lines[:-1]
    if lines and lines[-1].strip() == "---":
        lines = lines[:-1]
    return "\n".join(lines).strip()


def _build_module(draft: _ModuleDraft, trail_title: str, warnings: list[str]) -> ParsedModule:
    title = draft.fields.get("title", "").strip()
    if not title:
        title = "Без названия"
        warnings.append(f'Module without title in trail "{trail_title}".')

    module_type = normalize_module_type(draft.fields.get("type"), default="THEORY")
    content = _content_text(draft.content_lines)

    questions: list[ParsedQuestion] = []
    for question_draft in draft.questions:
        question = build_question(question_draft.text, question_draft.answers, question_draft.explicit_type, warnings)
        if question is not None:
            questions.append(question)

    requires = draft.fields.get("requires_submission")
    return ParsedModule(
        title=title,
        slug=resolve_slug(draft.fields.get("slug"), title, fallback="module"),
        type=module_type,
        points=parse_int(draft.fields.get("points"), default_points(module_type)),
        description=draft.fields.get("description", ""),
        content=content,
        questions=questions,
        level=draft.fields.get("level") or None,
        duration=draft.fields.get("duration") or None,
        requires_submission=(
            requires.strip().lower() in TRUTHY
            if requires is not None
            else detect_requires_submission(module_type, title, content)
        ),
    )


def _build_trail(draft: _TrailDraft, warnings: list[str]) -> ParsedTrail:
    title = draft.fields.get("title", "").strip()
    slug = draft.fields.get("slug", "").strip()
    if not title:
        warnings.append(f"Trail without title; slug used instead: {slug or '(none)'}.")
        title = slug or "Без названия"

    return ParsedTrail(
        title=title,
        slug=resolve_slug(slug, title, fallback="trail"),
        subtitle=draft.fields.get("subtitle", ""),
        description=draft.fields.get("description", ""),
        icon=draft.fields.get("icon") or DEFAULT_TRAIL_ICON,
        color=coerce_color(draft.fields.get("color")),
        modules=[_build_module(module, title, warnings) for module in draft.modules],
    )


def parse_structured_format(text: str, warnings: list[str]) -> list[ParsedTrail]:
    """State machine over === TRAIL === / === MODULE === / === QUESTIONS === blocks."""

    trails: list[_TrailDraft] = []
    trail: _TrailDraft | None = None
    module: _ModuleDraft | None = None
    section: str | None = None
    in_content = False

    for line in text.split("\n"):
        trimmed = line.strip()

        if _is_marker(trimmed, DEFAULT_PATTERNS.trail_markers):
            trail = _TrailDraft()
            trails.append(trail)
            module = None
            section = "trail"
            in_content = False
            continue

        if _is_marker(trimmed, DEFAULT_PATTERNS.module_markers):
            if trail is None:
                trail = _TrailDraft()
                trails.append(trail)
                warnings.append("Module found before any trail marker; an implicit trail was created.")
            module = _ModuleDraft()
            trail.modules.append(module)
            section = "module"
            in_content = False
            continue

        if QUESTIONS_MARKER.match(trimmed):
            section = "questions"
            in_content = False
            continue

        if trimmed == "---" and section == "module" and not in_content:
            in_content = True
            continue

        if in_content and module is not None:
            module.content_lines.append(line.rstrip())
            continue

        if not trimmed:
            continue

        if section in {"trail", "module"} and ":" in trimmed:
            key, _, value = trimmed.partition(":")
            normalized_key = key.strip().lower()
            if section == "trail" and trail is not None and normalized_key in TRAIL_KEYS:
                trail.fields[TRAIL_KEYS[normalized_key]] = value.strip()
            elif section == "module" and module is not None and normalized_key in MODULE_KEYS:
                module.fields[MODULE_KEYS[normalized_key]] = value.strip()
            continue

        if section == "questions" and module is not None:
            question_text = extract_question_text(trimmed)
            starts_question = NEW_QUESTION_LINE.match(trimmed) is not None
            answer = extract_answer(trimmed) if module.questions and not starts_question else None
            if answer is not None:
                if PLACEHOLDER_OPTION.match(answer.raw):
                    continue
                module.questions[-1].answers.append(answer)
            elif question_text:
                text_only, explicit_type = split_explicit_type(question_text)
                module.questions.append(_QuestionDraft(text=text_only, explicit_type=explicit_type))

    return [_build_trail(draft, warnings) for draft in trails]


def parse_txt(text: str, thresholds: ImportThresholds | None = None) -> ParseResult:
    thresholds = thresholds or load_import_thresholds()
    warnings: list[str] = []

    if not (text or "").strip():
        return ParseResult(success=False, errors=["File is empty; nothing to import."])

    analysis = analyze_structure(text)
    if (
        analysis.has_structured_format
        and has_explicit_markers(analysis)
        and analysis.confidence > thresholds.structured_parse_confidence
    ):
        try:
            trails = parse_structured_format(text, warnings)
        except Exception as exc:
            logger.warning("Structured TXT parsing failed: %s", exc)
            warnings.append(f"Structured parsing failed ({exc}); falling back to smart parsing.")
        else:
            if trails:
                return ParseResult(
                    success=True,
                    trails=trails,
                    warnings=warnings,
                    parse_method="code",
                    confidence_details=analysis.confidence_details,
                )
            warnings.append("Structured markers produced no trails; falling back to smart parsing.")

    trails = parse_unstructured(text, warnings=warnings)
    if not trails:
        return ParseResult(
            success=False,
            warnings=warnings,
            errors=["Could not extract any content from the file."],
            confidence_details=analysis.confidence_details,
        )
    return ParseResult(
        success=True,
        trails=trails,
        warnings=[*warnings, SMART_PARSE_WARNING],
        parse_method="code",
        confidence_details=analysis.confidence_details,
    )
