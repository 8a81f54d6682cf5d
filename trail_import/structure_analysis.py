from __future__ import annotations

import re
from dataclasses import dataclass, field

from trail_import.schema_models import ConfidenceCriterion, ConfidenceDetails


def _compile(*patterns: str) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(pattern, flags=re.IGNORECASE) for pattern in patterns)


@dataclass(frozen=True)
class ContentPatterns:
    trail_markers: tuple[re.Pattern[str], ...]
    module_markers: tuple[re.Pattern[str], ...]
    question_markers: tuple[re.Pattern[str], ...]
    answer_markers: tuple[re.Pattern[str], ...]
    correct_markers: tuple[re.Pattern[str], ...]


DEFAULT_PATTERNS = ContentPatterns(
    trail_markers=_compile(
        r"^={3,}\s*(TRAIL|ТРЕЙЛ|КУРС|COURSE|ДИСЦИПЛИНА)\s*={3,}$",
        r"^#{1,2}\s*(Trail|Трейл|Курс|Course|Дисциплина)",
        r"^\*{3,}\s*(Trail|Трейл|Курс)\s*\*{3,}$",
    ),
    module_markers=_compile(
        r"^={3,}\s*(MODULE|МОДУЛЬ|УРОК|LESSON|ТЕМА|TOPIC)\s*={3,}$",
        r"^#{1,3}\s*(Module|Модуль|Урок|Lesson|Тема)",
        r"^\*{3,}\s*(Module|Модуль|Урок)\s*\*{3,}$",
        r"^---\s*(Модуль|Module|Урок|Lesson)",
    ),
    question_markers=_compile(
        r"^={3,}\s*(QUESTIONS?|ВОПРОС[ЫА]?|QUIZ|ТЕСТ)\s*={3,}$",
        r"^#{1,3}\s*(Questions?|Вопрос[ыа]?|Quiz|Тест)",
        r"^[QВ][:\.]\s*",
        r"^\d+[\.\)]\s*[QВ][:\.]",
        r"^Вопрос\s*\d*[:\.]",
        r"^Question\s*\d*[:\.]",
    ),
    answer_markers=_compile(
        r"^[-•●○◦▪▸►]\s*",
        r"^[a-dа-г][\.\)]\s*",
        r"^\d+[\.\)]\s*(?![QВ]:)",
        r"^\[[ x]\]\s*",
    ),
    correct_markers=_compile(
        r"\s*\*\s*$",
        r"\(correct\)",
        r"\(правильн[оы]й?\)",
        r"✓",
        r"✔",
        r"^\[x\]",
    ),
)

BLOCK_MARKER = re.compile(r"^={3,}\s*[^=]+?\s*={3,}$")

METADATA_LINE = re.compile(
    r"^(title|slug|subtitle|description|icon|color|type|points|level|duration|requires_submission|"
    r"название|слаг|подзаголовок|описание|иконка|цвет|тип|очки|баллы|уровень|длительность)\s*:",
    flags=re.IGNORECASE,
)


@dataclass(frozen=True)
class FreeFormHeuristic:
    name: str
    pattern: re.Pattern[str]
    kind: str
    weight: int


FREE_FORM_HEURISTICS: tuple[FreeFormHeuristic, ...] = (
    FreeFormHeuristic(
        "module_ordinal",
        re.compile(
            r"\b(?:модуль\s*(?:первый|второй|третий|четв[её]ртый|пятый|\d+|один|два|три)"
            r"|module\s*(?:one|two|three|four|five|\d+))\b",
            re.IGNORECASE,
        ),
        "module",
        10,
    ),
    FreeFormHeuristic(
        "lesson_number",
        re.compile(
            r"\b(?:урок\s*(?:первый|второй|третий|четв[её]ртый|пятый|\d+|один|два|три|№\s*\d+)"
            r"|lesson\s*(?:one|two|three|\d+|no\.?\s*\d+|№\s*\d+))",
            re.IGNORECASE,
        ),
        "module",
        10,
    ),
    FreeFormHeuristic(
        "chapter",
        re.compile(r"\b(?:глава\s*(?:первая|вторая|третья|\d+)|chapter\s*\d+)", re.IGNORECASE),
        "module",
        10,
    ),
    FreeFormHeuristic("topic", re.compile(r"\bтема\s*(?:первая|вторая|третья|\d+)", re.IGNORECASE), "module", 10),
    FreeFormHeuristic("part", re.compile(r"\bчасть\s*(?:первая|вторая|третья|\d+)", re.IGNORECASE), "module", 10),
    FreeFormHeuristic(
        "section",
        re.compile(r"\bраздел\s*(?:первый|второй|третий|\d+)", re.IGNORECASE),
        "module",
        10,
    ),
    FreeFormHeuristic(
        "theory_block",
        re.compile(r"\b(?:теоретический материал|theoretical material)\b", re.IGNORECASE),
        "module",
        10,
    ),
    FreeFormHeuristic(
        "inline_question_label",
        re.compile(r"\b(?:вопрос|question)[:\s]+.+\s+\d+[\.:\s)]", re.IGNORECASE),
        "question",
        5,
    ),
    FreeFormHeuristic("question_numbered_answers", re.compile(r"\?\s*\d+[\.:\s)]"), "question", 5),
)


@dataclass(frozen=True)
class FreeFormScan:
    modules: int = 0
    questions: int = 0
    confidence: int = 0
    matched: tuple[str, ...] = ()


@dataclass(frozen=True)
class StructureAnalysis:
    has_structured_format: bool
    has_trail_markers: bool
    has_module_markers: bool
    has_question_markers: bool
    detected_trails: int
    detected_modules: int
    detected_questions: int
    confidence: float
    confidence_details: ConfidenceDetails
    detected_answers: int = 0
    detected_correct_answers: int = 0
    free_form: FreeFormScan = field(default_factory=FreeFormScan)


def _matches_any(line: str, patterns: tuple[re.Pattern[str], ...]) -> bool:
    return any(pattern.search(line) for pattern in patterns)


def scan_free_form(text: str, heuristics: tuple[FreeFormHeuristic, ...] = FREE_FORM_HEURISTICS) -> FreeFormScan:
    modules = 0
    questions = 0
    confidence = 0
    matched: list[str] = []
    for heuristic in heuristics:
        hits = len(heuristic.pattern.findall(text))
        if not hits:
            continue
        matched.append(heuristic.name)
        confidence += heuristic.weight
        if heuristic.kind == "module":
            modules += hits
        else:
            questions += hits
    return FreeFormScan(modules=modules, questions=questions, confidence=confidence, matched=tuple(matched))


def _criterion(name: str, description: str, score: float, max_score: float) -> ConfidenceCriterion:
    return ConfidenceCriterion(name=name, description=description, score=score, max_score=max_score, met=score > 0)


def analyze_structure(text: str, patterns: ContentPatterns = DEFAULT_PATTERNS) -> StructureAnalysis:
    trail_count = 0
    module_count = 0
    question_count = 0
    answer_count = 0
    correct_count = 0
    structured_lines = 0
    nonempty_lines = 0
    in_module_block = False
    in_content_block = False

    for raw_line in (text or "").splitlines():
        line = raw_line.strip()
        if not line:
            continue
        # Lesson bodies between "---" and the next block marker are free text.
        if BLOCK_MARKER.match(line):
            in_content_block = False
            in_module_block = _matches_any(line, patterns.module_markers)
        elif in_content_block:
            continue
        elif in_module_block and line == "---":
            in_content_block = True
            continue
        nonempty_lines += 1
        structured = False

        if _matches_any(line, patterns.trail_markers):
            trail_count += 1
            structured = True
        if _matches_any(line, patterns.module_markers):
            module_count += 1
            structured = True
        if _matches_any(line, patterns.question_markers):
            question_count += 1
            structured = True
        elif _matches_any(line, patterns.answer_markers):
            answer_count += 1
            structured = True
            if _matches_any(line, patterns.correct_markers):
                correct_count += 1
        if METADATA_LINE.match(line):
            structured = True

        if structured:
            structured_lines += 1

    free_form = scan_free_form(text or "")
    marker_elements = trail_count + module_count + question_count
    total_modules = module_count + free_form.modules
    total_questions = question_count + free_form.questions
    density = structured_lines / nonempty_lines if nonempty_lines and marker_elements else 0.0

    criteria = [
        _criterion("trail_markers", "Explicit course/trail markers found", 20 if trail_count else 0, 20),
        _criterion(
            "module_structure",
            "Module or lesson markers found",
            min(25, 10 + 5 * total_modules) if total_modules else 0,
            25,
        ),
        _criterion("questions", "Quiz question markers found", min(20, 5 * total_questions), 20),
        _criterion(
            "structured_elements",
            "Share of lines carrying markers, metadata or answer options",
            min(20, round(80 * density)),
            20,
        ),
        _criterion("free_form", "Natural-language section cues", min(15, free_form.confidence), 15),
    ]

    total_score = min(100.0, float(sum(item.score for item in criteria)))
    max_possible = float(sum(item.max_score for item in criteria))
    details = ConfidenceDetails(
        total_score=total_score,
        max_possible_score=max_possible,
        percentage=round(total_score / max_possible * 100, 1) if max_possible else 0.0,
        criteria=criteria,
    )

    return StructureAnalysis(
        has_structured_format=marker_elements > 0 or free_form.modules > 0,
        has_trail_markers=trail_count > 0,
        has_module_markers=total_modules > 0,
        has_question_markers=total_questions > 0,
        detected_trails=max(trail_count, 1),
        detected_modules=total_modules,
        detected_questions=total_questions,
        confidence=total_score,
        confidence_details=details,
        detected_answers=answer_count,
        detected_correct_answers=correct_count,
        free_form=free_form,
    )


def has_explicit_markers(analysis: StructureAnalysis) -> bool:
    return analysis.has_trail_markers or analysis.has_module_markers
