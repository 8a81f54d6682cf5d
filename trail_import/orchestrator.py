from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

from trail_import.ai_parser import ProgressCallback, parse_with_ai, parse_with_ai_chunked
from trail_import.config import (
    AILimits,
    AIParserConfig,
    ImportThresholds,
    get_ai_config,
    load_ai_limits,
    load_import_thresholds,
)
from trail_import.containers import extract_named_entry, is_ole_compound, is_zip
from trail_import.format_detection import detect_format, requires_ai_parser
from trail_import.observer import ImportObserver, get_observer
from trail_import.parsers.doc_parser import RTF_PREFIX, extract_readable_text, extract_text_from_ole, parse_doc, rtf_to_text
from trail_import.parsers.docx_parser import DOCUMENT_ENTRY, extract_paragraphs, paragraphs_to_markdown, parse_docx
from trail_import.parsers.html_parser import clean_html, html_to_markdown, parse_html
from trail_import.parsers.json_parser import parse_json
from trail_import.parsers.md_parser import parse_md
from trail_import.parsers.txt_parser import parse_txt
from trail_import.parsers.xml_parser import parse_xml
from trail_import.schema_models import ImportResult, ParsedTrail, ParseResult, failed_result
from trail_import.structure_analysis import StructureAnalysis, analyze_structure
from trail_import.text_utils import unique_slug

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 10 * 1024 * 1024

TEXT_PARSERS: dict[str, Callable[[str], ParseResult]] = {
    "json": parse_json,
    "xml": parse_xml,
    "md": parse_md,
    "html": parse_html,
}
BINARY_PARSERS: dict[str, Callable[[bytes | str], ParseResult]] = {
    "docx": parse_docx,
    "doc": parse_doc,
}


@dataclass(frozen=True)
class SmartImportOptions:
    use_ai: bool = False
    ai_config: AIParserConfig | None = None
    preferred_format: str | None = None
    thresholds: ImportThresholds | None = None
    limits: AILimits | None = None
    observer: ImportObserver | None = None
    on_progress: ProgressCallback | None = None


def decode_text(content: str | bytes | None) -> str:
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    return content.decode("utf-8-sig", errors="replace")


def extract_text(content: str | bytes, fmt: str) -> str:
    """Plain text of an upload, used for structure analysis and as AI input."""

    if isinstance(content, bytes):
        if fmt == "docx" and is_zip(content):
            document_xml = extract_named_entry(content, DOCUMENT_ENTRY)
            if document_xml is not None:
                try:
                    return paragraphs_to_markdown(extract_paragraphs(document_xml))
                except Exception as exc:
                    logger.debug("Could not read DOCX text: %s", exc)
            return ""
        if fmt == "doc" and is_ole_compound(content):
            return extract_text_from_ole(content)
        if fmt == "pdf":
            return extract_readable_text(content.decode("latin-1"))

    text = decode_text(content)
    if fmt in {"doc", "rtf"} and text.startswith(RTF_PREFIX):
        return rtf_to_text(text)
    if fmt == "html":
        return html_to_markdown(clean_html(text))
    return text


def parse_with_code(
    content: str | bytes,
    fmt: str,
    thresholds: ImportThresholds | None = None,
) -> ParseResult:
    """Run the deterministic parser for fmt; formats without one go through the TXT parser."""

    try:
        if fmt in BINARY_PARSERS:
            return BINARY_PARSERS[fmt](content)
        text = decode_text(content)
        parser = TEXT_PARSERS.get(fmt)
        if parser is None:
            return parse_txt(text, thresholds)
        return parser(text)
    except Exception as exc:
        logger.exception("Code parser for %s failed", fmt)
        return failed_result(f"{fmt.upper()} parser failed: {exc}")


def needs_ai_parser(filename: str | None, fmt: str) -> bool:
    if requires_ai_parser(filename):
        return True
    return fmt != "txt" and fmt not in TEXT_PARSERS and fmt not in BINARY_PARSERS


def check_upload(content: str | bytes | None, fmt: str, ai_ready: bool) -> str | None:
    """Return the reason an upload cannot be imported, or None."""

    if content is None or len(content) == 0 or (isinstance(content, str) and not content.strip()):
        return "File is empty; nothing to import."
    size = len(content) if isinstance(content, bytes) else len(content.encode("utf-8"))
    if size > MAX_UPLOAD_BYTES:
        return f"File is too large ({size / 1024 / 1024:.1f} MB); the limit is {MAX_UPLOAD_BYTES // 1024 // 1024} MB."
    if fmt == "pdf" and not ai_ready:
        return "PDF files can only be imported with the AI parser; set AI_PARSER_ENABLED=true and AI_API_KEY."
    return None


def merge_trails(code_trails: list[ParsedTrail], ai_trails: list[ParsedTrail]) -> list[ParsedTrail]:
    """Code trails first, then AI trails whose slug is not taken yet."""

    merged = list(code_trails)
    taken = {trail.slug for trail in code_trails}
    for trail in ai_trails:
        if trail.slug not in taken:
            merged.append(trail)
            taken.add(trail.slug)
    return ensure_unique_slugs(merged)


def ensure_unique_slugs(trails: list[ParsedTrail]) -> list[ParsedTrail]:
    """Suffix repeated trail slugs, and module slugs across the whole batch, with -2, -3, ..."""

    trail_slugs: set[str] = set()
    module_slugs: set[str] = set()
    unique: list[ParsedTrail] = []
    for trail in trails:
        modules = [
            module.model_copy(update={"slug": unique_slug(module.slug, module_slugs)}) for module in trail.modules
        ]
        unique.append(trail.model_copy(update={"slug": unique_slug(trail.slug, trail_slugs), "modules": modules}))
    return unique


def _import_result(result: ParseResult, fmt: str, analysis: StructureAnalysis | None, **overrides: Any) -> ImportResult:
    fields = {name: getattr(result, name) for name in ParseResult.model_fields}
    fields["detected_format"] = fmt
    fields["structure_confidence"] = analysis.confidence if analysis is not None else 0
    if fields["confidence_details"] is None and analysis is not None:
        fields["confidence_details"] = analysis.confidence_details
    fields.update(overrides)
    fields["trails"] = ensure_unique_slugs(fields["trails"])
    return ImportResult(**fields)


async def _run_ai(
    text: str,
    config: AIParserConfig,
    limits: AILimits,
    observer: ImportObserver,
    on_progress: ProgressCallback | None = None,
) -> ParseResult:
    try:
        if len(text) > limits.chunk_threshold_chars:
            observer.event("chunked_routing", chars=len(text), threshold=limits.chunk_threshold_chars)
            return await parse_with_ai_chunked(text, config, on_progress, limits=limits, observer=observer)
        return await parse_with_ai(text, config, limits=limits, observer=observer)
    except Exception as exc:
        logger.exception("AI parser raised")
        observer.event("ai_request_failed", kind="exception", error=str(exc))
        return failed_result(f"AI parsing failed: {exc}", parse_method="ai")


def _ai_failure(result: ParseResult) -> str:
    return "; ".join(result.errors) or "no trails returned"


async def _import_ai_only_format(
    text: str,
    fmt: str,
    analysis: StructureAnalysis,
    config: AIParserConfig,
    thresholds: ImportThresholds,
    limits: AILimits,
    observer: ImportObserver,
    on_progress: ProgressCallback | None,
) -> ImportResult:
    warnings: list[str] = []
    if config.is_ready:
        ai_result = await _run_ai(text, config, limits, observer, on_progress)
        if ai_result.success:
            return _import_result(ai_result, fmt, analysis, parse_method="ai")
        warnings.extend(ai_result.warnings)
        warnings.append(f"AI parser failed for {fmt} ({_ai_failure(ai_result)}); the text parser was used.")
        observer.event("ai_fallback", format=fmt, reason=_ai_failure(ai_result))
    else:
        warnings.append(f"Format {fmt} needs the AI parser, which is not available; the text parser was used.")

    result = parse_txt(text, thresholds)
    return _import_result(result, fmt, analysis, warnings=[*result.warnings, *warnings])


async def smart_import(
    content: str | bytes,
    filename: str | None,
    options: SmartImportOptions | None = None,
) -> ImportResult:
    """Pick a parser from the detected format and structure confidence, using AI as primary or fallback."""

    options = options or SmartImportOptions()
    observer = get_observer(options.observer)
    config = options.ai_config or get_ai_config()
    thresholds = options.thresholds or load_import_thresholds()
    limits = options.limits or load_ai_limits()

    fmt = options.preferred_format or detect_format(filename, content)
    rejection = check_upload(content, fmt, config.is_ready)
    if rejection:
        observer.event("import_rejected", filename=filename, format=fmt, reason=rejection)
        return _import_result(failed_result(rejection), fmt, None)

    text = extract_text(content, fmt)
    analysis = analyze_structure(text)
    observer.event("import_started", filename=filename, format=fmt, confidence=analysis.confidence, mode="smart")

    if needs_ai_parser(filename, fmt):
        return await _import_ai_only_format(
            text, fmt, analysis, config, thresholds, limits, observer, options.on_progress
        )

    ai_enabled = options.use_ai and config.is_ready
    fallback_warning: str | None = None
    if ai_enabled and analysis.confidence < thresholds.ai_trigger_confidence:
        ai_result = await _run_ai(text, config, limits, observer, options.on_progress)
        if ai_result.success:
            return _import_result(ai_result, fmt, analysis, parse_method="ai")
        fallback_warning = f"AI parser failed ({_ai_failure(ai_result)}); the code parser was used."
        observer.event("ai_fallback", format=fmt, reason=_ai_failure(ai_result))

    result = parse_with_code(content, fmt, thresholds)
    if fallback_warning:
        result.warnings.append(fallback_warning)

    if not result.success and ai_enabled:
        ai_result = await _run_ai(text, config, limits, observer, options.on_progress)
        if ai_result.success:
            observer.event("ai_retry_succeeded", format=fmt)
            return _import_result(
                ai_result,
                fmt,
                analysis,
                warnings=[*result.warnings, *ai_result.warnings, "The code parser failed; the AI parser was used."],
            )

    observer.event("import_finished", format=fmt, success=result.success, trails=len(result.trails))
    return _import_result(result, fmt, analysis)


async def hybrid_import(
    content: str | bytes,
    filename: str | None,
    ai_config: AIParserConfig | None = None,
    *,
    thresholds: ImportThresholds | None = None,
    limits: AILimits | None = None,
    observer: ImportObserver | None = None,
    on_progress: ProgressCallback | None = None,
) -> ImportResult:
    """Code parser first; AI only when the code result is weak, keeping whichever result is richer."""

    observer = get_observer(observer)
    config = ai_config or get_ai_config()
    thresholds = thresholds or load_import_thresholds()
    limits = limits or load_ai_limits()

    fmt = detect_format(filename, content)
    rejection = check_upload(content, fmt, config.is_ready)
    if rejection:
        observer.event("import_rejected", filename=filename, format=fmt, reason=rejection)
        return _import_result(failed_result(rejection), fmt, None)

    text = extract_text(content, fmt)
    analysis = analyze_structure(text)
    observer.event("import_started", filename=filename, format=fmt, confidence=analysis.confidence, mode="hybrid")

    if needs_ai_parser(filename, fmt):
        return await _import_ai_only_format(
            text, fmt, analysis, config, thresholds, limits, observer, on_progress
        )

    code_result = parse_with_code(content, fmt, thresholds)
    if code_result.success and analysis.confidence > thresholds.hybrid_accept_confidence:
        observer.event("import_finished", format=fmt, success=True, trails=len(code_result.trails), method="code")
        return _import_result(code_result, fmt, analysis, parse_method="code")

    if config.is_ready:
        ai_result = await _run_ai(text, config, limits, observer, on_progress)
        if ai_result.success:
            warnings = [*code_result.warnings, *ai_result.warnings]
            if not code_result.success or len(ai_result.trails) > len(code_result.trails):
                return _import_result(ai_result, fmt, analysis, parse_method="hybrid", warnings=warnings)
            merged = merge_trails(code_result.trails, ai_result.trails)
            observer.event("trails_merged", code=len(code_result.trails), ai=len(ai_result.trails), merged=len(merged))
            return _import_result(
                code_result,
                fmt,
                analysis,
                success=True,
                trails=merged,
                warnings=warnings,
                errors=[],
                parse_method="hybrid",
            )
        code_result.warnings.append(f"AI parser failed ({_ai_failure(ai_result)}); the code parser result was kept.")
        observer.event("ai_fallback", format=fmt, reason=_ai_failure(ai_result))

    observer.event("import_finished", format=fmt, success=code_result.success, trails=len(code_result.trails))
    return _import_result(code_result, fmt, analysis)
