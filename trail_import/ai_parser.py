from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping

from trail_import import aliases
from trail_import.aliases import first_alias, first_alias_text
from trail_import.chunking import chunk_for_ai
from trail_import.config import AILimits, AIParserConfig, load_ai_limits
from trail_import.json_repair import recover_json
from trail_import.llm_provider import LlmJsonResult, generate_text_with_anthropic
from trail_import.observer import ImportObserver, get_observer
from trail_import.schema_models import ParsedModule, ParsedTrail, ParseResult, failed_result
from trail_import.text_utils import first_meaningful_line, unique_slug
from trail_import.validation import coerce_modules, coerce_trail, coerce_trails

logger = logging.getLogger(__name__)

NOT_CONFIGURED = "AI API is not configured."
FALLBACK_TRAIL_TITLE = "Импортированный курс"
AVAILABILITY_PROMPT = "test"
AVAILABILITY_MAX_TOKENS = 10
METADATA_MAX_TOKENS = 1_000
RESPONSE_EXCERPT_CHARS = 300

SYSTEM_PROMPT_RU = (
    "Ты - AI-ассистент для парсинга образовательного контента.\n"
    "Твоя задача - преобразовать текст в структурированный JSON.\n"
    "\n"
    "Используй ТОЛЬКО текст из исходного материала, ничего не дополняй от себя.\n"
    "Поля content и description должны быть краткими.\n"
    "Вопросы создавай только если они явно есть в тексте.\n"
    "\n"
    "## ТИПЫ ВОПРОСОВ\n"
    "1. SINGLE_CHOICE - один правильный ответ:\n"
    '{"question": "Какой тег используется для заголовка?", "type": "SINGLE_CHOICE", '
    '"options": ["<header>", "<h1>", "<title>"], "correctAnswer": 1, "explanation": "..."}\n'
    "2. MATCHING - сопоставление элементов двух колонок:\n"
    '{"question": "Сопоставьте термины", "type": "MATCHING", "options": [], "correctAnswer": 0, '
    '"data": {"leftLabel": "Термин", "rightLabel": "Определение", '
    '"leftItems": [{"id": "l1", "text": "HTML"}, {"id": "l2", "text": "CSS"}], '
    '"rightItems": [{"id": "r1", "text": "Язык разметки"}, {"id": "r2", "text": "Язык стилей"}], '
    '"correctPairs": {"l1": "r1", "l2": "r2"}}}\n'
    "3. ORDERING - правильный порядок элементов:\n"
    '{"question": "Расположите этапы по порядку", "type": "ORDERING", "options": [], "correctAnswer": 0, '
    '"data": {"items": [{"id": "s1", "text": "Анализ"}, {"id": "s2", "text": "Разработка"}], '
    '"correctOrder": ["s1", "s2"]}}\n'
    "4. CASE_ANALYSIS - анализ кейса с несколькими верными ответами:\n"
    '{"question": "Найдите ошибки в коде", "type": "CASE_ANALYSIS", "options": [], "correctAnswer": 0, '
    '"data": {"caseContent": "function sum(a, b) { return a - b; }", "caseLabel": "Код для анализа", '
    '"options": [{"id": "o1", "text": "Минус вместо плюса", "isCorrect": true, "explanation": "..."}, '
    '{"id": "o2", "text": "Неправильное имя функции", "isCorrect": false}], "minCorrectRequired": 1}}\n'
    "\n"
    "## ФОРМАТ ВЫВОДА\n"
    '{"trails": [{"title": "...", "slug": "...", "subtitle": "...", "description": "...", '
    '"icon": "📚", "color": "#6366f1", "modules": [{"title": "...", "slug": "...", '
    '"type": "THEORY | PRACTICE | PROJECT", "points": 50, "description": "...", "content": "...", '
    '"level": "Beginner | Middle | Advanced", "duration": "15 мин", "requiresSubmission": false, '
    '"questions": []}]}]}\n'
    "\n"
    "## ПРАВИЛА\n"
    "1. Заголовки верхнего уровня - trail, подзаголовки - module.\n"
    "2. Типы модулей: THEORY (50), PRACTICE (75), PROJECT (100).\n"
    "3. Slug: транслитерация кириллицы, нижний регистр, дефисы.\n"
    "4. Иконка: один emoji по теме. Цвет: hex по тематике.\n"
    "5. Верни ТОЛЬКО валидный JSON без markdown-обёртки.\n"
)

USER_PROMPT_RU = (
    "Преобразуй контент в JSON-структуру курса.\n"
    "Не дополняй текст, используй только исходник.\n"
    "---\n"
    "{content}\n"
    "---\n"
    "Верни ТОЛЬКО JSON."
)

CHUNK_PROMPT_RU = (
    "Это фрагмент {index} из {total} большого документа.\n"
    "Извлеки из него модули курса. Метаданные курса не нужны.\n"
    'Верни ТОЛЬКО JSON вида {"modules": [...]} в формате модулей из инструкции.\n'
    "---\n"
    "{content}\n"
    "---"
)

METADATA_PROMPT_RU = (
    "Ниже начало учебного документа.\n"
    'Верни ТОЛЬКО JSON вида {"title": "...", "slug": "...", "subtitle": "...", '
    '"description": "...", "icon": "📚", "color": "#6366f1"} с метаданными курса.\n'
    "---\n"
    "{content}\n"
    "---"
)

ProgressCallback = Callable[[int, int], Any]


@dataclass(frozen=True)
class AvailabilityResult:
    available: bool
    error: str | None = None
    model: str | None = None


def _fill(template: str, **values: Any) -> str:
    # str.format would trip over the JSON braces in the templates.
    for key, value in values.items():
        template = template.replace("{" + key + "}", str(value))
    return template


def _trail_payload(data: Any) -> list[Any]:
    if not isinstance(data, Mapping):
        return []
    trails = first_alias(data, aliases.TRAIL_COLLECTION)
    if isinstance(trails, list):
        return trails
    if first_alias_text(data, aliases.TRAIL_TITLE) or first_alias(data, aliases.MODULE_COLLECTION):
        return [data]
    return []


def _module_payload(data: Any) -> list[Any]:
    if not isinstance(data, Mapping):
        return []
    modules = first_alias(data, aliases.MODULE_COLLECTION)
    if isinstance(modules, list):
        return modules
    collected: list[Any] = []
    for trail in _trail_payload(data):
        if isinstance(trail, Mapping):
            nested = first_alias(trail, aliases.MODULE_COLLECTION)
            collected.extend(nested if isinstance(nested, list) else [])
    return collected


def _request_error(response: LlmJsonResult, timeout_seconds: float, setting: str = "AI_PARSE_TIMEOUT_MS") -> str:
    if response.error_kind == "timeout":
        return f"AI API did not respond within {timeout_seconds:.0f} seconds. Try a smaller file or raise {setting}."
    return response.warnings[0] if response.warnings else "AI request failed."


async def _ask(
    config: AIParserConfig,
    system_prompt: str | None,
    user_prompt: str,
    max_output_tokens: int,
    timeout_seconds: float,
) -> LlmJsonResult:
    return await generate_text_with_anthropic(
        api_key=config.api_key or "",
        model=config.model,
        system_prompt=system_prompt,
        user_prompt=user_prompt,
        max_output_tokens=max_output_tokens,
        endpoint=config.api_endpoint,
        timeout_seconds=timeout_seconds,
    )


async def check_ai_availability(config: AIParserConfig, *, limits: AILimits | None = None) -> AvailabilityResult:
    if not config.is_ready:
        return AvailabilityResult(available=False, error=NOT_CONFIGURED)

    limits = limits or load_ai_limits()
    response = await _ask(
        config,
        None,
        AVAILABILITY_PROMPT,
        AVAILABILITY_MAX_TOKENS,
        limits.check_timeout_seconds,
    )
    # A reachable API that answered without text still counts as available.
    if response.status == "success" or response.error_kind == "empty":
        return AvailabilityResult(available=True, model=response.model or config.model)
    return AvailabilityResult(available=False, error=_request_error(response, limits.check_timeout_seconds, "AI_CHECK_TIMEOUT_MS"))


def interpret_ai_response(
    response: LlmJsonResult,
    warnings: list[str],
    observer: ImportObserver,
    timeout_seconds: float,
) -> ParseResult:
    """Turn a raw model reply into a validated ParseResult."""

    if response.status != "success" or not response.raw_response:
        error = _request_error(response, timeout_seconds)
        observer.event("ai_request_failed", kind=response.error_kind, error=error)
        return ParseResult(success=False, warnings=warnings, errors=[error], parse_method="ai")

    if response.truncated:
        warnings.append("The AI response hit the output token limit; attempting to recover the data.")

    recovery = recover_json(response.raw_response, accept=lambda data: bool(_trail_payload(data)))
    if not recovery.ok:
        observer.event("ai_invalid_json", chars=len(response.raw_response))
        warnings.append(f"AI response: {response.raw_response[:RESPONSE_EXCERPT_CHARS]}...")
        return ParseResult(success=False, warnings=warnings, errors=["AI returned invalid JSON."], parse_method="ai")

    if recovery.strategy != "direct":
        observer.event("json_recovered", strategy=recovery.strategy)
    warnings.extend(recovery.warnings)

    trails = coerce_trails(_trail_payload(recovery.data), warnings)
    return ParseResult(
        success=bool(trails),
        trails=trails,
        warnings=warnings,
        errors=[] if trails else ["AI returned no usable trails."],
        parse_method="ai",
    )


async def parse_with_ai(
    content: str,
    config: AIParserConfig,
    *,
    limits: AILimits | None = None,
    observer: ImportObserver | None = None,
) -> ParseResult:
    observer = get_observer(observer)
    if not config.is_ready:
        return failed_result(NOT_CONFIGURED, parse_method="ai")

    limits = limits or load_ai_limits()
    warnings: list[str] = []
    processed = content
    if len(content) > limits.max_content_chars:
        processed = content[: limits.max_content_chars]
        warnings.append(
            f"Content was truncated from {len(content)} to {limits.max_content_chars} characters (API limit)."
        )
        observer.event("content_truncated", original_chars=len(content), limit=limits.max_content_chars)

    observer.event("ai_request_started", chars=len(processed), model=config.model)
    response = await _ask(
        config,
        SYSTEM_PROMPT_RU,
        _fill(USER_PROMPT_RU, content=processed),
        limits.max_output_tokens,
        limits.parse_timeout_seconds,
    )
    observer.event(
        "ai_response_received",
        status=response.status,
        stop_reason=response.stop_reason,
        output_tokens=response.usage.get("output_tokens"),
    )
    return interpret_ai_response(response, warnings, observer, limits.parse_timeout_seconds)


async def _parse_chunk(
    chunk: dict,
    total: int,
    config: AIParserConfig,
    limits: AILimits,
) -> tuple[list[ParsedModule] | None, list[str]]:
    number = chunk["index"] + 1
    response = await _ask(
        config,
        SYSTEM_PROMPT_RU,
        _fill(CHUNK_PROMPT_RU, index=number, total=total, content=chunk["text"]),
        limits.max_output_tokens,
        limits.parse_timeout_seconds,
    )
    if response.status != "success" or not response.raw_response:
        return None, [f"Chunk {number}: {_request_error(response, limits.parse_timeout_seconds)}"]

    recovery = recover_json(response.raw_response, accept=lambda data: bool(_module_payload(data)))
    if not recovery.ok:
        return None, [f"Chunk {number}: AI returned invalid JSON."]

    warnings = [f"Chunk {number}: {warning}" for warning in recovery.warnings]
    if response.truncated:
        warnings.append(f"Chunk {number}: the AI response hit the output token limit.")

    module_warnings: list[str] = []
    modules = coerce_modules(_module_payload(recovery.data), module_warnings)
    warnings.extend(f"Chunk {number}: {warning}" for warning in module_warnings)
    return modules, warnings


async def _request_metadata(sample: str, config: AIParserConfig, limits: AILimits) -> dict | None:
    response = await _ask(
        config,
        None,
        _fill(METADATA_PROMPT_RU, content=sample),
        METADATA_MAX_TOKENS,
        limits.parse_timeout_seconds,
    )
    if response.status != "success" or not response.raw_response:
        return None
    recovery = recover_json(
        response.raw_response,
        accept=lambda data: isinstance(data, Mapping) and bool(first_alias_text(data, aliases.TRAIL_TITLE)),
    )
    return recovery.data if recovery.ok else None


async def _report_progress(on_progress: ProgressCallback | None, done: int, total: int) -> None:
    if on_progress is None:
        return
    outcome = on_progress(done, total)
    if inspect.isawaitable(outcome):
        await outcome


def _metadata_trail(metadata: dict | None, content: str, warnings: list[str]) -> ParsedTrail:
    if metadata is None:
        warnings.append("Course metadata could not be extracted by AI; the title was taken from the text.")
        metadata = {"title": first_meaningful_line(content, min_length=3, max_length=100) or FALLBACK_TRAIL_TITLE}
    header = {key: value for key, value in metadata.items() if key not in aliases.MODULE_COLLECTION}
    return coerce_trail(header, 0, warnings) or ParsedTrail(title=FALLBACK_TRAIL_TITLE, slug="imported-course")


async def parse_with_ai_chunked(
    content: str,
    config: AIParserConfig,
    on_progress: ProgressCallback | Callable[[int, int], Awaitable[None]] | None = None,
    *,
    limits: AILimits | None = None,
    observer: ImportObserver | None = None,
) -> ParseResult:
    """Parse a large document chunk by chunk, merging modules in chunk order under one trail."""

    observer = get_observer(observer)
    if not config.is_ready:
        return failed_result(NOT_CONFIGURED, parse_method="ai")

    limits = limits or load_ai_limits()
    chunks = chunk_for_ai(content, min_chars=limits.min_chunk_chars, max_chars=limits.max_chunk_chars)
    if len(chunks) <= 1:
        return await parse_with_ai(content, config, limits=limits, observer=observer)

    total = len(chunks)
    observer.event("chunked_parse_started", chunks=total, batch_size=limits.batch_size)
    warnings: list[str] = []
    modules_by_chunk: dict[int, list[ParsedModule]] = {}

    metadata_task = asyncio.ensure_future(
        _request_metadata(content[: limits.metadata_sample_chars], config, limits)
    )
    try:
        for batch_start in range(0, total, limits.batch_size):
            batch = chunks[batch_start : batch_start + limits.batch_size]
            outcomes = await asyncio.gather(
                *(_parse_chunk(chunk, total, config, limits) for chunk in batch),
                return_exceptions=True,
            )
            for chunk, outcome in zip(batch, outcomes):
                number = chunk["index"] + 1
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                if isinstance(outcome, Exception):
                    logger.warning("Chunk %s raised %s", number, outcome)
                    warnings.append(f"Chunk {number} failed: {outcome}")
                    observer.event("chunk_failed", chunk=number, error=str(outcome))
                    continue
                modules, chunk_warnings = outcome
                warnings.extend(chunk_warnings)
                if modules is None:
                    observer.event("chunk_failed", chunk=number, error=chunk_warnings[0] if chunk_warnings else None)
                    continue
                modules_by_chunk[chunk["index"]] = modules
                observer.event("chunk_parsed", chunk=number, modules=len(modules))
            await _report_progress(on_progress, min(batch_start + len(batch), total), total)

        try:
            metadata = await metadata_task
        except Exception as exc:
            logger.warning("Metadata request raised %s", exc)
            metadata = None
    finally:
        if not metadata_task.done():
            metadata_task.cancel()

    taken: set[str] = set()
    merged: list[ParsedModule] = []
    for index in sorted(modules_by_chunk):
        for module in modules_by_chunk[index]:
            merged.append(module.model_copy(update={"slug": unique_slug(module.slug, taken)}))

    if not merged:
        return ParseResult(
            success=False,
            warnings=warnings,
            errors=["AI did not extract any modules from the document chunks."],
            parse_method="ai",
        )

    trail = _metadata_trail(metadata, content, warnings).model_copy(update={"modules": merged})
    observer.event("chunked_parse_finished", chunks=total, modules=len(merged), failed=total - len(modules_by_chunk))
    return ParseResult(success=True, trails=[trail], warnings=warnings, parse_method="ai")
