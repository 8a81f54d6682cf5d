from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable

from trail_import.schema_models import (
    CaseAnalysisData,
    CaseOption,
    ChoiceItem,
    MatchingData,
    OrderingData,
    ParsedModule,
    ParsedQuestion,
)
from trail_import.text_utils import default_points
from trail_import.validation import DEFAULT_PAYLOADS

CORRECT_SUFFIXES: tuple[re.Pattern[str], ...] = (
    re.compile(r"(?<!\*)\s*\*\s*$"),
    re.compile(r"\s*\(correct\)\s*$", re.IGNORECASE),
    re.compile(r"\s*\(правильн[оы]й?\)\s*$", re.IGNORECASE),
    re.compile(r"\s*\(верн[оы]й?\)\s*$", re.IGNORECASE),
    re.compile(r"\s*[✓✔]\s*$"),
    re.compile(r"\s+\+\s*$"),
)
CORRECT_PREFIXES: tuple[re.Pattern[str], ...] = (re.compile(r"^[✓✔]\s*"),)

CHECKBOX_ANSWER = re.compile(r"^\[([ xX✓])\]\s*(.+)$")
ANSWER_PREFIXES: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("bullet", re.compile(r"^[-•●○◦▪▸►](?!-)\s*(.+)$")),
    ("letter", re.compile(r"^[a-dа-г][.)]\s*(.+)$", re.IGNORECASE)),
    ("number", re.compile(r"^\d+[.)](?!\s*[QВ][:.])\s*(.+)$")),
)

ARROW = re.compile(r"\s*(?:->|→|=>|⇒|—>)\s*")
ORDER_PREFIX = re.compile(r"^(\d+)[.):]\s*(.+)$")
CASE_CONTENT_PREFIX = re.compile(r"^(?:case|кейс|ситуация)\s*:\s*(.+)$", re.IGNORECASE | re.DOTALL)
EXPLANATION_SEPARATOR = " | "
EXPLICIT_TYPE = re.compile(r"\s*\[(MATCHING|ORDERING|CASE_ANALYSIS|SINGLE_CHOICE)\]\s*$", re.IGNORECASE)

QUESTION_TYPE_KEYWORDS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("MATCHING", re.compile(r"сопостав|соотнес|соедини|\bmatch", re.IGNORECASE)),
    ("ORDERING", re.compile(r"порядк|последовательност|упорядоч|расстав|\border\b|\bsequence\b|\barrange", re.IGNORECASE)),
    ("CASE_ANALYSIS", re.compile(r"кейс|ситуаци|проанализир|\bcase\b|\banaly[sz]e", re.IGNORECASE)),
)


@dataclass(frozen=True)
class AnswerLine:
    text: str
    raw: str
    is_correct: bool


def split_correct_marker(text: str) -> tuple[str, bool]:
    cleaned = text.strip()
    for pattern in CORRECT_SUFFIXES:
        if pattern.search(cleaned):
            return pattern.sub("", cleaned).strip(), True
    for pattern in CORRECT_PREFIXES:
        if pattern.search(cleaned):
            return pattern.sub("", cleaned).strip(), True
    return cleaned, False


def extract_answer(line: str) -> AnswerLine | None:
    stripped = line.strip()
    if not stripped or re.fullmatch(r"-{3,}", stripped):
        return None

    checkbox = CHECKBOX_ANSWER.match(stripped)
    if checkbox:
        text, marked = split_correct_marker(checkbox.group(2))
        return AnswerLine(text=text, raw=checkbox.group(2).strip(), is_correct=marked or checkbox.group(1) != " ")

    for _name, pattern in ANSWER_PREFIXES:
        match = pattern.match(stripped)
        if match:
            raw = match.group(1).strip()
            text, is_correct = split_correct_marker(raw)
            if not text:
                return None
            return AnswerLine(text=text, raw=raw, is_correct=is_correct)
    return None


def _q_prefix(line: str) -> str | None:
    match = re.match(r"^[QqВ][:.]\s*(.+)$", line)
    return match.group(1) if match else None


def _numbered_q_prefix(line: str) -> str | None:
    match = re.match(r"^\d+[.)]\s*[QВ][:.]\s*(.+)$", line)
    return match.group(1) if match else None


def _labelled_question(line: str) -> str | None:
    match = re.match(r"^(?:вопрос|question)\s*\d*\s*[:.]\s*(.+)$", line, flags=re.IGNORECASE)
    return match.group(1) if match else None


def _trailing_question_mark(line: str) -> str | None:
    if not line.endswith("?") or len(line) <= 10 or line[0] in "-•●○◦▪▸►[":
        return None
    return re.sub(r"^\d+[.)]\s+", "", line)


QUESTION_EXTRACTORS: tuple[tuple[str, Callable[[str], str | None]], ...] = (
    ("q_prefix", _q_prefix),
    ("numbered_q_prefix", _numbered_q_prefix),
    ("labelled", _labelled_question),
    ("trailing_question_mark", _trailing_question_mark),
)


def extract_question_text(line: str) -> str | None:
    stripped = line.strip()
    if not stripped:
        return None
    for _name, extractor in QUESTION_EXTRACTORS:
        text = extractor(stripped)
        if text and text.strip():
            return text.strip()
    return None


def split_explicit_type(question: str) -> tuple[str, str | None]:
    match = EXPLICIT_TYPE.search(question)
    if not match:
        return question.strip(), None
    return question[: match.start()].strip(), match.group(1).upper()


def detect_question_type(question: str, options: list[str] | None = None) -> str:
    if options and sum(1 for option in options if ARROW.search(option)) >= 2:
        return "MATCHING"
    for question_type, pattern in QUESTION_TYPE_KEYWORDS:
        if pattern.search(question or ""):
            return question_type
    return "SINGLE_CHOICE"


def parse_matching_options(options: list[str]) -> MatchingData | None:
    left_items: list[ChoiceItem] = []
    right_items: list[ChoiceItem] = []
    right_by_text: dict[str, str] = {}
    pairs: dict[str, str] = {}

    for option in options:
        parts = ARROW.split(option.strip(), maxsplit=1)
        if len(parts) != 2:
            continue
        left_text, right_text = split_correct_marker(parts[0])[0], split_correct_marker(parts[1])[0]
        if not left_text or not right_text:
            continue

        right_key = right_text.casefold()
        right_id = right_by_text.get(right_key)
        if right_id is None:
            right_id = f"r{len(right_items) + 1}"
            right_by_text[right_key] = right_id
            right_items.append(ChoiceItem(id=right_id, text=right_text))

        left_id = f"l{len(left_items) + 1}"
        left_items.append(ChoiceItem(id=left_id, text=left_text))
        pairs[left_id] = right_id

    if len(left_items) < 2 or len(right_items) < 2:
        return None
    return MatchingData(left_items=left_items, right_items=right_items, correct_pairs=pairs)


def parse_ordering_options(options: list[str]) -> OrderingData | None:
    items: list[ChoiceItem] = []
    positions: list[int | None] = []
    for option in options:
        text = split_correct_marker(option)[0]
        match = ORDER_PREFIX.match(text)
        if match:
            positions.append(int(match.group(1)))
            text = match.group(2).strip()
        else:
            positions.append(None)
        if text:
            items.append(ChoiceItem(id=f"s{len(items) + 1}", text=text))
        else:
            positions.pop()

    if len(items) < 2:
        return None

    numbered = [position for position in positions if position is not None]
    if len(numbered) == len(items) and len(set(numbered)) == len(numbered):
        ranked = sorted(zip(positions, items), key=lambda pair: pair[0])
        correct_order = [item.id for _position, item in ranked]
    else:
        correct_order = [item.id for item in items]
    return OrderingData(items=items, correct_order=correct_order)


def parse_case_analysis_options(question: str, options: list[str]) -> CaseAnalysisData | None:
    case_content = ""
    case_options: list[CaseOption] = []

    for option in options:
        case_match = CASE_CONTENT_PREFIX.match(option.strip())
        if case_match:
            case_content = case_match.group(1).strip()
            continue
        body, _, explanation = option.partition(EXPLANATION_SEPARATOR)
        text, is_correct = split_correct_marker(body)
        if not text:
            continue
        case_options.append(
            CaseOption(
                id=f"o{len(case_options) + 1}",
                text=text,
                is_correct=is_correct,
                explanation=explanation.strip(),
            )
        )

    if not case_content and ":" in question:
        case_content = question.split(":", 1)[1].strip()

    if len(case_options) < 2:
        return None
    correct = sum(1 for option in case_options if option.is_correct)
    return CaseAnalysisData(case_content=case_content, options=case_options, min_correct_required=max(1, correct))


def build_question(
    text: str,
    answers: list[AnswerLine],
    explicit_type: str | None = None,
    warnings: list[str] | None = None,
) -> ParsedQuestion | None:
    """Turn a question line and its answer lines into a ParsedQuestion.

    Typed questions fall back to the default payload of their type when the
    answers do not describe enough items.
    """

    raw_options = [answer.raw for answer in answers]
    question_type = explicit_type or detect_question_type(text, raw_options)

    if question_type == "SINGLE_CHOICE":
        options = [answer.text for answer in answers if answer.text]
        if len(options) < 2:
            if warnings is not None:
                warnings.append(f'Question "{text[:30]}" has fewer than two options and was skipped.')
            return None
        correct = next((index for index, answer in enumerate(answers) if answer.is_correct), 0)
        return ParsedQuestion(question=text, type="SINGLE_CHOICE", options=options, correct_answer=correct)

    if question_type == "MATCHING":
        data = parse_matching_options(raw_options)
    elif question_type == "ORDERING":
        data = parse_ordering_options(raw_options)
    else:
        data = parse_case_analysis_options(text, raw_options)

    if data is None:
        if warnings is not None:
            warnings.append(f'{question_type} question "{text[:30]}" has too few items; default payload used.')
        data = DEFAULT_PAYLOADS[question_type]()
    return ParsedQuestion(question=text, type=question_type, options=[], correct_answer=0, data=data)


def preprocess_inline_questions(text: str) -> str:
    """Rewrite 'Question ... 1 a 2 b 3 c' one-liners into question and answer lines."""

    def _format(question: str, answers: list[str | None]) -> str:
        lines = [f"\nВ: {question.strip()}"]
        lines.extend(f"- {answer.strip()}" for answer in answers if answer)
        return "\n".join(lines) + "\n"

    inline = re.compile(
        r"(?:вопрос|question)[:\s]*(.+?)\s+(\d)\s+(.+?)\s+(\d)\s+(.+?)(?:\s+(\d)\s+(.+?))?(?:\s+(\d)\s+(.+?))?$",
        flags=re.IGNORECASE | re.MULTILINE,
    )
    result = inline.sub(
        lambda match: _format(match.group(1), [match.group(3), match.group(5), match.group(7), match.group(9)]),
        text,
    )

    block = re.compile(
        r"(?:вопрос|question)[:\s]*([^\n\d]+?)[\s\n]+1[.:\s)]+([^\n\d]+?)[\s\n]+2[.:\s)]+([^\n\d]+?)"
        r"(?:[\s\n]+3[.:\s)]+([^\n\d]+?))?(?:[\s\n]+4[.:\s)]+([^\n\d]+?))?$",
        flags=re.IGNORECASE | re.MULTILINE,
    )
    return block.sub(
        lambda match: _format(match.group(1), [match.group(2), match.group(3), match.group(4), match.group(5)]),
        result,
    )


def extract_embedded_questions(content: str, warnings: list[str] | None = None) -> list[ParsedQuestion]:
    questions: list[ParsedQuestion] = []
    lines = content.splitlines()
    index = 0

    while index < len(lines):
        question_text = extract_question_text(lines[index])
        if question_text is None:
            index += 1
            continue

        question_text, explicit_type = split_explicit_type(question_text)
        answers: list[AnswerLine] = []
        cursor = index + 1
        while cursor < len(lines):
            line = lines[cursor].strip()
            if not line:
                if answers:
                    break
                cursor += 1
                continue
            answer = extract_answer(line)
            if answer is None:
                break
            answers.append(answer)
            cursor += 1

        if len(answers) >= 2:
            question = build_question(question_text, answers, explicit_type, warnings)
            if question is not None:
                questions.append(question)
            index = cursor
        else:
            index += 1

    return questions


QUESTION_SECTION_TITLE = re.compile(r"вопрос|question|quiz|тест", re.IGNORECASE)
BLOCK_QUESTION = re.compile(r"^(?:[QqВ][:.]|\d+[.)]|(?:вопрос|question)\s*\d*\s*[:.])\s*(.+)$", re.IGNORECASE)
BLOCK_ANSWER = re.compile(r"^(?:[-•●○◦▪▸►]|\[[ xX]\]|[a-dа-г][.)])", re.IGNORECASE)


def parse_question_block(text: str, warnings: list[str] | None = None) -> list[ParsedQuestion]:
    """Parse a dedicated quiz section where every numbered line opens a question."""

    questions: list[ParsedQuestion] = []
    pending: tuple[str, str | None] | None = None
    answers: list[AnswerLine] = []

    def flush() -> None:
        if pending is not None and answers:
            question = build_question(pending[0], list(answers), pending[1], warnings)
            if question is not None:
                questions.append(question)

    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line:
            continue
        if BLOCK_ANSWER.match(line) and pending is not None:
            answer = extract_answer(line)
            if answer is not None:
                answers.append(answer)
            continue
        match = BLOCK_QUESTION.match(line)
        question_text = match.group(1) if match else (line if line.endswith("?") else None)
        if question_text:
            flush()
            pending = split_explicit_type(question_text.strip())
            answers = []

    flush()
    return questions


def apply_question_pass(module: ParsedModule, warnings: list[str] | None = None) -> ParsedModule:
    found = extract_embedded_questions(module.content, warnings)
    if not found:
        return module

    module.questions.extend(found)
    if module.type == "THEORY":
        keep_points = module.points != default_points("THEORY")
        module.type = "PRACTICE"
        if not keep_points:
            module.points = default_points("PRACTICE")
    return module
