from __future__ import annotations

import re
from typing import Any, Mapping

from pydantic import BaseModel, ValidationError

from trail_import import aliases
from trail_import.aliases import first_alias, first_alias_text
from trail_import.schema_models import (
    DEFAULT_TRAIL_COLOR,
    DEFAULT_TRAIL_ICON,
    QUESTION_TYPES,
    CaseAnalysisData,
    CaseOption,
    ChoiceItem,
    MatchingData,
    OrderingData,
    ParsedModule,
    ParsedQuestion,
    ParsedTrail,
)
from trail_import.text_utils import (
    default_points,
    detect_module_type,
    detect_requires_submission,
    normalize_module_type,
    parse_bool,
    parse_int,
    resolve_slug,
)

HEX_COLOR = re.compile(r"^#[0-9A-Fa-f]{6}$")
UNTITLED_TRAIL = "Без названия"
DEFAULT_MATCHING_LABELS = ("Термин", "Определение")
DEFAULT_CASE_LABEL = "Кейс для анализа"

QUESTION_TYPE_ALIASES = {
    "single": "SINGLE_CHOICE",
    "single_choice": "SINGLE_CHOICE",
    "choice": "SINGLE_CHOICE",
    "matching": "MATCHING",
    "match": "MATCHING",
    "ordering": "ORDERING",
    "order": "ORDERING",
    "sequence": "ORDERING",
    "case": "CASE_ANALYSIS",
    "case_analysis": "CASE_ANALYSIS",
}


def default_matching_data() -> MatchingData:
    return MatchingData(
        left_label=DEFAULT_MATCHING_LABELS[0],
        right_label=DEFAULT_MATCHING_LABELS[1],
        left_items=[ChoiceItem(id=f"l{n}", text=f"Элемент {n}") for n in range(1, 4)],
        right_items=[ChoiceItem(id=f"r{n}", text=f"Описание {n}") for n in range(1, 4)],
        correct_pairs={f"l{n}": f"r{n}" for n in range(1, 4)},
    )


def default_ordering_data() -> OrderingData:
    items = [ChoiceItem(id=f"s{n}", text=f"Шаг {n}") for n in range(1, 5)]
    return OrderingData(items=items, correct_order=[item.id for item in items])


def default_case_analysis_data() -> CaseAnalysisData:
    return CaseAnalysisData(
        case_content="",
        case_label=DEFAULT_CASE_LABEL,
        options=[CaseOption(id=f"o{n}", text=f"Вариант {n}", is_correct=False, explanation="") for n in range(1, 4)],
        min_correct_required=1,
    )


DEFAULT_PAYLOADS = {
    "MATCHING": default_matching_data,
    "ORDERING": default_ordering_data,
    "CASE_ANALYSIS": default_case_analysis_data,
}


def _as_mapping(value: Any) -> Mapping[str, Any] | None:
    if isinstance(value, BaseModel):
        return value.model_dump(by_alias=True)
    return value if isinstance(value, Mapping) else None


def _text(value: Any) -> str | None:
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


def _choice_items(raw_items: Any) -> list[ChoiceItem]:
    items: list[ChoiceItem] = []
    seen: set[str] = set()
    if not isinstance(raw_items, list):
        return items
    for raw in raw_items:
        mapping = _as_mapping(raw)
        if mapping is None:
            continue
        item_id = _text(mapping.get("id"))
        text = _text(mapping.get("text"))
        if not item_id or not text or item_id in seen:
            continue
        seen.add(item_id)
        items.append(ChoiceItem(id=item_id, text=text))
    return items


def coerce_matching_data(data: Any, warnings: list[str]) -> MatchingData:
    mapping = _as_mapping(data)
    if mapping is None:
        return default_matching_data()

    left_items = _choice_items(first_alias(mapping, ("leftItems", "left_items", "left")))
    right_items = _choice_items(first_alias(mapping, ("rightItems", "right_items", "right")))
    if len(left_items) < 2 or len(right_items) < 2:
        warnings.append("MATCHING question has too few items; default payload used.")
        return default_matching_data()

    left_ids = {item.id for item in left_items}
    right_ids = {item.id for item in right_items}
    raw_pairs = first_alias(mapping, ("correctPairs", "correct_pairs", "pairs"))
    pairs: dict[str, str] = {}
    if isinstance(raw_pairs, Mapping):
        for left_id, right_id in raw_pairs.items():
            left_key = _text(left_id)
            right_value = _text(right_id)
            if left_key in left_ids and right_value in right_ids:
                pairs[left_key] = right_value

    if not pairs:
        warnings.append("MATCHING question has no valid pairs; items paired by position.")
        pairs = {
            item.id: right_items[min(index, len(right_items) - 1)].id for index, item in enumerate(left_items)
        }

    return MatchingData(
        left_label=first_alias_text(mapping, ("leftLabel", "left_label")) or DEFAULT_MATCHING_LABELS[0],
        right_label=first_alias_text(mapping, ("rightLabel", "right_label")) or DEFAULT_MATCHING_LABELS[1],
        left_items=left_items,
        right_items=right_items,
        correct_pairs=pairs,
    )


def repair_order(order: Any, item_ids: list[str]) -> list[str]:
    """Return a permutation of item_ids that keeps the valid prefix of order."""

    known = set(item_ids)
    repaired: list[str] = []
    if isinstance(order, list):
        for value in order:
            item_id = _text(value)
            if item_id in known and item_id not in repaired:
                repaired.append(item_id)
    repaired.extend(item_id for item_id in item_ids if item_id not in repaired)
    return repaired


def coerce_ordering_data(data: Any, warnings: list[str]) -> OrderingData:
    mapping = _as_mapping(data)
    if mapping is None:
        return default_ordering_data()

    items = _choice_items(first_alias(mapping, ("items", "steps")))
    if len(items) < 2:
        warnings.append("ORDERING question has too few items; default payload used.")
        return default_ordering_data()

    item_ids = [item.id for item in items]
    raw_order = first_alias(mapping, ("correctOrder", "correct_order", "order"))
    correct_order = repair_order(raw_order, item_ids)
    if isinstance(raw_order, list) and [_text(value) for value in raw_order] != correct_order:
        warnings.append("ORDERING correctOrder was not a permutation of item ids and has been repaired.")
    return OrderingData(items=items, correct_order=correct_order)


def coerce_case_analysis_data(data: Any, warnings: list[str]) -> CaseAnalysisData:
    mapping = _as_mapping(data)
    if mapping is None:
        return default_case_analysis_data()

    options: list[CaseOption] = []
    seen: set[str] = set()
    raw_options = first_alias(mapping, ("options", "варианты"))
    for index, raw in enumerate(raw_options if isinstance(raw_options, list) else []):
        option = _as_mapping(raw)
        if option is None:
            continue
        text = _text(option.get("text"))
        if text is None:
            continue
        option_id = _text(option.get("id")) or f"o{index + 1}"
        if option_id in seen:
            option_id = f"o{index + 1}"
        seen.add(option_id)
        options.append(
            CaseOption(
                id=option_id,
                text=text,
                is_correct=parse_bool(first_alias(option, ("isCorrect", "is_correct", "correct"), False)),
                explanation=_text(option.get("explanation")) or "",
            )
        )

    if len(options) < 2:
        warnings.append("CASE_ANALYSIS question has too few options; default payload used.")
        return default_case_analysis_data()

    correct_count = sum(1 for option in options if option.is_correct)
    min_correct = parse_int(first_alias(mapping, ("minCorrectRequired", "min_correct_required")), 0)
    if min_correct < 1:
        min_correct = max(1, correct_count)
    min_correct = min(min_correct, len(options))

    return CaseAnalysisData(
        case_content=first_alias_text(mapping, ("caseContent", "case_content", "case")),
        case_label=first_alias_text(mapping, ("caseLabel", "case_label")) or DEFAULT_CASE_LABEL,
        options=options,
        min_correct_required=min_correct,
    )


DATA_COERCERS = {
    "MATCHING": coerce_matching_data,
    "ORDERING": coerce_ordering_data,
    "CASE_ANALYSIS": coerce_case_analysis_data,
}


INLINE_DATA_KEYS = ("leftItems", "rightItems", "items", "correctOrder", "caseContent")


def normalize_question_type(value: Any) -> str:
    if not isinstance(value, str):
        return "SINGLE_CHOICE"
    cleaned = value.strip()
    if cleaned.upper() in QUESTION_TYPES:
        return cleaned.upper()
    return QUESTION_TYPE_ALIASES.get(cleaned.lower().replace("-", "_").replace(" ", "_"), "SINGLE_CHOICE")


def _option_texts(raw_options: Any) -> list[str]:
    texts: list[str] = []
    if not isinstance(raw_options, list):
        return texts
    for raw in raw_options:
        if isinstance(raw, Mapping):
            raw = raw.get("text")
        text = _text(raw)
        if text:
            texts.append(text)
    return texts


def _correct_index(raw: Any, options: list[str]) -> int:
    if isinstance(raw, bool) or raw is None:
        return 0
    if isinstance(raw, str) and not raw.strip().lstrip("-").isdigit():
        lowered = raw.strip().lower()
        for index, option in enumerate(options):
            if option.lower() == lowered:
                return index
        return 0
    index = parse_int(raw, 0)
    return max(0, min(index, len(options) - 1))


def coerce_question(raw: Any, warnings: list[str]) -> ParsedQuestion | None:
    if isinstance(raw, ParsedQuestion):
        raw = raw.model_dump(by_alias=True)
    if not isinstance(raw, Mapping):
        warnings.append("Question entry is not an object and was skipped.")
        return None

    text = first_alias_text(raw, aliases.QUESTION_TEXT)
    if not text:
        warnings.append("Question without text was skipped.")
        return None

    question_type = normalize_question_type(first_alias(raw, aliases.QUESTION_TYPE))
    explanation = first_alias_text(raw, aliases.EXPLANATION) or None

    if question_type in DATA_COERCERS:
        payload = first_alias(raw, aliases.QUESTION_DATA)
        if payload is None and any(key in raw for key in INLINE_DATA_KEYS):
            payload = raw
        data = DATA_COERCERS[question_type](payload, warnings)
        return ParsedQuestion(question=text, type=question_type, options=[], correct_answer=0, data=data, explanation=explanation)

    options = _option_texts(first_alias(raw, aliases.OPTIONS))
    if len(options) < 2:
        warnings.append(f'Question "{text[:30]}..." has fewer than two options and was skipped.')
        return None

    return ParsedQuestion(
        question=text,
        type="SINGLE_CHOICE",
        options=options,
        correct_answer=_correct_index(first_alias(raw, aliases.CORRECT_ANSWER), options),
        explanation=explanation,
    )


def coerce_questions(raw_questions: Any, warnings: list[str]) -> list[ParsedQuestion]:
    if not isinstance(raw_questions, list):
        return []
    questions: list[ParsedQuestion] = []
    for raw in raw_questions:
        try:
            question = coerce_question(raw, warnings)
        except ValidationError as exc:
            warnings.append(f"Question skipped after validation error: {exc.error_count()} issue(s).")
            continue
        if question is not None:
            questions.append(question)
    return questions


def coerce_module(raw: Any, index: int, warnings: list[str], *, infer_type: bool = False) -> ParsedModule | None:
    """Normalize one module mapping. With infer_type, a missing type is guessed from questions and text."""

    if isinstance(raw, ParsedModule):
        raw = raw.model_dump(by_alias=True)
    if not isinstance(raw, Mapping):
        warnings.append(f"Module {index + 1} is not an object and was skipped.")
        return None

    title = first_alias_text(raw, aliases.MODULE_TITLE)
    if not title:
        title = f"Модуль {index + 1}"
        warnings.append(f"Module {index + 1} has no title; '{title}' used.")

    questions = coerce_questions(first_alias(raw, aliases.QUESTION_COLLECTION), warnings)
    raw_type = first_alias(raw, aliases.MODULE_TYPE)
    content = first_alias_text(raw, aliases.CONTENT)
    if infer_type and normalize_module_type(raw_type, default="") == "":
        module_type = "PRACTICE" if questions else detect_module_type(title, content)
    else:
        module_type = normalize_module_type(raw_type)
    requires_submission = first_alias(raw, aliases.REQUIRES_SUBMISSION)

    return ParsedModule(
        title=title,
        slug=resolve_slug(first_alias_text(raw, aliases.SLUG), title, fallback=f"module-{index + 1}"),
        type=module_type,
        points=parse_int(first_alias(raw, aliases.POINTS), default_points(module_type)),
        description=first_alias_text(raw, aliases.DESCRIPTION),
        content=content,
        questions=questions,
        level=first_alias_text(raw, aliases.LEVEL) or None,
        duration=first_alias_text(raw, aliases.DURATION) or None,
        requires_submission=(
            parse_bool(requires_submission)
            if requires_submission is not None
            else detect_requires_submission(module_type, title, content)
        ),
    )


def coerce_modules(raw_modules: Any, warnings: list[str], *, infer_type: bool = False) -> list[ParsedModule]:
    modules: list[ParsedModule] = []
    for module_index, raw_module in enumerate(raw_modules if isinstance(raw_modules, list) else []):
        try:
            module = coerce_module(raw_module, module_index, warnings, infer_type=infer_type)
        except ValidationError as exc:
            warnings.append(f"Module {module_index + 1} skipped after validation error: {exc.error_count()} issue(s).")
            continue
        if module is not None:
            modules.append(module)
    return modules


def coerce_color(value: Any, fallback: str = DEFAULT_TRAIL_COLOR) -> str:
    text = _text(value)
    return text if text and HEX_COLOR.match(text) else fallback


def coerce_trail(
    raw: Any,
    index: int,
    warnings: list[str],
    *,
    require_title: bool = False,
    infer_type: bool = False,
) -> ParsedTrail | None:
    if isinstance(raw, ParsedTrail):
        raw = raw.model_dump(by_alias=True)
    if not isinstance(raw, Mapping):
        warnings.append(f"Trail {index + 1} is not an object and was skipped.")
        return None

    title = first_alias_text(raw, aliases.TRAIL_TITLE)
    if not title:
        if require_title:
            warnings.append(f"Trail {index + 1} has no title and was skipped.")
            return None
        title = UNTITLED_TRAIL

    modules = coerce_modules(first_alias(raw, aliases.MODULE_COLLECTION), warnings, infer_type=infer_type)

    return ParsedTrail(
        title=title,
        slug=resolve_slug(first_alias_text(raw, aliases.SLUG), title, fallback=f"trail-{index + 1}"),
        subtitle=first_alias_text(raw, aliases.SUBTITLE),
        description=first_alias_text(raw, aliases.DESCRIPTION),
        icon=first_alias_text(raw, aliases.ICON) or DEFAULT_TRAIL_ICON,
        color=coerce_color(first_alias(raw, aliases.COLOR)),
        modules=modules,
    )


def coerce_trails(
    raw_trails: Any,
    warnings: list[str],
    *,
    require_title: bool = False,
    infer_type: bool = False,
) -> list[ParsedTrail]:
    if isinstance(raw_trails, Mapping):
        raw_trails = [raw_trails]
    if not isinstance(raw_trails, list):
        return []
    trails: list[ParsedTrail] = []
    for index, raw in enumerate(raw_trails):
        trail = coerce_trail(raw, index, warnings, require_title=require_title, infer_type=infer_type)
        if trail is not None:
            trails.append(trail)
    return trails
