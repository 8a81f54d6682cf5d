from __future__ import annotations

import html
import logging
import re

from trail_import.questions import apply_question_pass
from trail_import.schema_models import ParsedTrail, ParseResult
from trail_import.parsers.md_parser import build_section_tree, sections_to_trails
from trail_import.parsers.unstructured import DEFAULT_MODULE_TITLE, build_heuristic_module
from trail_import.text_utils import detect_color, detect_icon, generate_slug

logger = logging.getLogger(__name__)

IMPORTED_HTML_TITLE = "Импортированный HTML"
IMPORTED_TRAIL_TITLE = "Импортированный курс"

STRIPPED_BLOCKS = (
    re.compile(r"<script\b[^>]*>.*?</script>", re.IGNORECASE | re.DOTALL),
    re.compile(r"<style\b[^>]*>.*?</style>", re.IGNORECASE | re.DOTALL),
    re.compile(r"<noscript\b[^>]*>.*?</noscript>", re.IGNORECASE | re.DOTALL),
    re.compile(r"<!--.*?-->", re.DOTALL),
)
PAGE_TITLE = re.compile(r"<title[^>]*>(.*?)</title>", re.IGNORECASE | re.DOTALL)
BODY = re.compile(r"<body[^>]*>(.*)</body>", re.IGNORECASE | re.DOTALL)


def _rule(pattern: str, replacement: str) -> tuple[re.Pattern[str], str]:
    return re.compile(pattern, re.IGNORECASE | re.DOTALL), replacement


# Applied in order; headings and inline formatting before the catch-all tag strip.
MARKDOWN_REWRITES: tuple[tuple[re.Pattern[str], str], ...] = (
    _rule(r"\r\n", "\n"),
    _rule(r"<pre\b[^>]*>(.*?)</pre>", "\n```\n\\1\n```\n"),
    *(_rule(rf"<h{level}\b[^>]*>(.*?)</h{level}>", f"\n\n{'#' * level} \\1\n\n") for level in range(1, 7)),
    _rule(r"<p\b[^>]*>", "\n\n"),
    _rule(r"</p>", "\n"),
    _rule(r"</?(?:ul|ol)\b[^>]*>", "\n"),
    _rule(r"<li\b[^>]*>", "- "),
    _rule(r"</li>", "\n"),
    _rule(r"<(?:strong|b)(?:\s[^>]*)?>(.*?)</(?:strong|b)>", "**\\1**"),
    _rule(r"<(?:em|i)(?:\s[^>]*)?>(.*?)</(?:em|i)>", "*\\1*"),
    _rule(r"<code\b[^>]*>(.*?)</code>", "`\\1`"),
    _rule(r"<a\b[^>]*href=\"([^\"]*)\"[^>]*>(.*?)</a>", "[\\2](\\1)"),
    _rule(r"<img\b[^>]*alt=\"([^\"]*)\"[^>]*>", "![\\1]"),
    _rule(r"<br\s*/?>", "\n"),
    _rule(r"<hr\s*/?>", "\n---\n"),
    _rule(r"</?(?:div|section|article|main|header|footer|table|tr)\b[^>]*>", "\n"),
    _rule(r"</t[dh]>", " | "),
    _rule(r"<[^>]+>", ""),
)


def clean_html(markup: str) -> str:
    for pattern in STRIPPED_BLOCKS:
        markup = pattern.sub("", markup)
    return markup


def html_to_markdown(markup: str) -> str:
    text = markup
    for pattern, replacement in MARKDOWN_REWRITES:
        text = pattern.sub(replacement, text)
    text = html.unescape(text)
    text = re.sub(r"[ \t]+\n", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def page_title(markup: str) -> str:
    match = PAGE_TITLE.search(markup)
    if not match:
        return ""
    return html.unescape(re.sub(r"<[^>]+>", "", match.group(1))).strip()


def _single_module_trail(title: str, text: str, warnings: list[str]) -> ParsedTrail:
    module = build_heuristic_module(DEFAULT_MODULE_TITLE, text.splitlines(), [])
    apply_question_pass(module, warnings)
    return ParsedTrail(
        title=title,
        slug=generate_slug(title, fallback="imported-html"),
        description=text[:200],
        icon=detect_icon(title),
        color=detect_color(title),
        modules=[module],
    )


def parse_html_structure(markup: str, warnings: list[str]) -> list[ParsedTrail]:
    cleaned = clean_html(markup)
    title = page_title(cleaned)
    body_match = BODY.search(cleaned)
    text = html_to_markdown(body_match.group(1) if body_match else cleaned)
    if not text:
        return []

    _preamble, roots = build_section_tree(text)
    if roots:
        trails = sections_to_trails(roots, warnings, default_title=title or IMPORTED_TRAIL_TITLE)
        trails = [trail for trail in trails if trail.modules]
        if trails:
            return trails

    warnings.append("No headings found in HTML; the page text was imported as one module.")
    return [_single_module_trail(title or IMPORTED_HTML_TITLE, text, warnings)]


def parse_html(markup: str) -> ParseResult:
    warnings: list[str] = []
    try:
        trails = parse_html_structure(markup or "", warnings)
    except Exception as exc:
        logger.warning("HTML parsing failed: %s", exc)
        return ParseResult(success=False, warnings=warnings, errors=[f"HTML parse error: {exc}"])

    if not trails:
        return ParseResult(
            success=False,
            warnings=warnings,
            errors=["Could not extract a course structure from HTML."],
        )
    return ParseResult(success=True, trails=trails, warnings=warnings, parse_method="code")
