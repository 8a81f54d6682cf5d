from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from xml.etree import ElementTree as ET

from trail_import.containers import extract_named_entry, is_zip
from trail_import.questions import apply_question_pass
from trail_import.schema_models import ParsedTrail, ParseResult
from trail_import.parsers.md_parser import build_section_tree, sections_to_trails
from trail_import.parsers.unstructured import DEFAULT_MODULE_TITLE, build_heuristic_module, parse_unstructured
from trail_import.text_utils import detect_color, detect_icon, generate_slug

logger = logging.getLogger(__name__)

DOCUMENT_ENTRY = "word/document.xml"
IMPORTED_DOCUMENT_TITLE = "Импортированный документ"
WORD_NAMESPACE = "http://schemas.openxmlformats.org/wordprocessingml/2006/main"
NS = {"w": WORD_NAMESPACE}
VAL = f"{{{WORD_NAMESPACE}}}val"

HEADING_STYLE = re.compile(r"^(?:(?:heading|заголовок)\s*)?([1-9])$", re.IGNORECASE)
TITLE_STYLE = re.compile(r"^(?:title|название)$", re.IGNORECASE)
FALSE_VALUES = {"0", "false", "off", "none"}


@dataclass(frozen=True)
class DocxParagraph:
    text: str
    style: str | None = None
    outline_level: int | None = None
    is_bold: bool = False
    is_italic: bool = False
    is_list: bool = False

    @property
    def heading_level(self) -> int | None:
        if self.style:
            match = HEADING_STYLE.match(self.style.replace("-", " ").strip())
            if match:
                return int(match.group(1))
            if TITLE_STYLE.match(self.style.strip()):
                return 1
        if self.outline_level is not None and self.outline_level < 9:
            return self.outline_level + 1
        return None


def _toggle_on(element: ET.Element | None) -> bool:
    if element is None:
        return False
    return element.get(VAL, "true").strip().lower() not in FALSE_VALUES


def extract_paragraphs(document_xml: bytes) -> list[DocxParagraph]:
    root = ET.fromstring(document_xml)
    paragraphs: list[DocxParagraph] = []

    for paragraph in root.iter(f"{{{WORD_NAMESPACE}}}p"):
        runs = paragraph.findall(".//w:r", NS)
        text_runs = [run for run in runs if "".join(node.text or "" for node in run.findall("w:t", NS)).strip()]
        text = "".join(node.text or "" for node in paragraph.findall(".//w:t", NS)).strip()
        if not text:
            continue

        style = paragraph.find("w:pPr/w:pStyle", NS)
        outline = paragraph.find("w:pPr/w:outlineLvl", NS)
        outline_value = outline.get(VAL) if outline is not None else None

        paragraphs.append(
            DocxParagraph(
                text=text,
                style=style.get(VAL) if style is not None else None,
                outline_level=int(outline_value) if outline_value and outline_value.isdigit() else None,
                is_bold=bool(text_runs) and all(_toggle_on(run.find("w:rPr/w:b", NS)) for run in text_runs),
                is_italic=bool(text_runs) and all(_toggle_on(run.find("w:rPr/w:i", NS)) for run in text_runs),
                is_list=paragraph.find("w:pPr/w:numPr", NS) is not None,
            )
        )
    return paragraphs


def paragraphs_to_markdown(paragraphs: list[DocxParagraph]) -> str:
    lines: list[str] = []
    for paragraph in paragraphs:
        level = paragraph.heading_level
        if level is not None:
            # H2 and H3 both open modules; deeper levels stay inside the module.
            markdown_level = 1 if level == 1 else 2 if level <= 3 else 3
            lines.extend(["", f"{'#' * markdown_level} {paragraph.text}", ""])
            continue

        text = paragraph.text
        if paragraph.is_bold:
            text = f"**{text}**"
        if paragraph.is_italic:
            text = f"*{text}*"
        if paragraph.is_list:
            text = f"- {text}"
        lines.append(text)
    return "\n".join(lines).strip()


def _fallback_trail(paragraphs: list[DocxParagraph], warnings: list[str]) -> ParsedTrail:
    body = "\n".join(paragraph.text for paragraph in paragraphs)
    title = paragraphs[0].text[:100] if paragraphs else IMPORTED_DOCUMENT_TITLE
    module = build_heuristic_module(DEFAULT_MODULE_TITLE, body.splitlines(), [])
    apply_question_pass(module, warnings)
    return ParsedTrail(
        title=title,
        slug=generate_slug(title, fallback="imported-document"),
        description=body[:200],
        icon=detect_icon(title),
        color=detect_color(title),
        modules=[module],
    )


def docx_trails(paragraphs: list[DocxParagraph], warnings: list[str]) -> list[ParsedTrail]:
    if not paragraphs:
        return []

    _preamble, roots = build_section_tree(paragraphs_to_markdown(paragraphs))
    if roots:
        first_title = next((p.text for p in paragraphs if p.heading_level is None), IMPORTED_DOCUMENT_TITLE)
        trails = [trail for trail in sections_to_trails(roots, warnings, default_title=first_title[:100]) if trail.modules]
        if trails:
            return trails

    warnings.append("No heading styles found in the document; it was imported as one module.")
    return [_fallback_trail(paragraphs, warnings)]


def parse_docx_markup(markup: str | bytes) -> ParseResult:
    """Parse word/document.xml content that is already extracted."""

    warnings: list[str] = []
    if isinstance(markup, str):
        markup = markup.encode("utf-8")
    try:
        paragraphs = extract_paragraphs(markup)
    except ET.ParseError as exc:
        return ParseResult(success=False, errors=[f"Could not read document XML: {exc}"])

    trails = docx_trails(paragraphs, warnings)
    if not trails:
        return ParseResult(success=False, warnings=warnings, errors=["The document contains no text."])
    return ParseResult(success=True, trails=trails, warnings=warnings, parse_method="code")


def parse_docx(content: bytes | str) -> ParseResult:
    if isinstance(content, str):
        if "<w:document" in content or "<w:body" in content:
            return parse_docx_markup(content)
        if content.startswith("PK"):
            content = content.encode("latin-1", errors="ignore")
        else:
            warnings = ["DOCX payload arrived as plain text; smart parsing was used."]
            trails = parse_unstructured(content, warnings=warnings) if content.strip() else []
            if not trails:
                return ParseResult(success=False, warnings=warnings, errors=["The document contains no text."])
            return ParseResult(success=True, trails=trails, warnings=warnings, parse_method="code")

    if not is_zip(content):
        return ParseResult(success=False, errors=["Invalid DOCX file: ZIP signature not found."])

    try:
        document_xml = extract_named_entry(content, DOCUMENT_ENTRY)
        if document_xml is None:
            return ParseResult(success=False, errors=[f"Invalid DOCX file: {DOCUMENT_ENTRY} is missing."])
        return parse_docx_markup(document_xml)
    except Exception as exc:
        logger.warning("DOCX parsing failed: %s", exc)
        return ParseResult(success=False, errors=[f"DOCX parse error: {exc}"])
