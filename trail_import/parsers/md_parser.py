from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from trail_import.questions import QUESTION_SECTION_TITLE, apply_question_pass, parse_question_block
from trail_import.schema_models import ParsedModule, ParsedTrail, ParseResult
from trail_import.parsers.unstructured import parse_unstructured
from trail_import.text_utils import (
    default_points,
    detect_color,
    detect_icon,
    detect_module_type,
    detect_requires_submission,
    extract_key_value_pairs,
    generate_slug,
    normalize_module_type,
    parse_bool,
    parse_int,
    resolve_slug,
)
from trail_import.validation import coerce_color

logger = logging.getLogger(__name__)

HEADING = re.compile(r"^(#{1,6})\s+(.+?)\s*#*\s*$")
FENCE = re.compile(r"^\s*(```|~~~)")
FRONTMATTER = re.compile(r"^\s*---\s*\n(.*?)\n---\s*(?:\n|$)", re.DOTALL)
COMMENT_BLOCK = re.compile(r"^\s*<!--\s*(.*?)\s*-->\s*", re.DOTALL)
META_PAIR = re.compile(r"^\s*([\wа-яА-ЯёЁ]+)\s*:\s*(.+?)\s*$")
INTRO_TITLE = "Введение"


@dataclass
class MarkdownSection:
    level: int
    title: str
    content: list[str] = field(default_factory=list)
    children: list["MarkdownSection"] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "\n".join(self.content).strip()


def build_section_tree(text: str) -> tuple[list[str], list[MarkdownSection]]:
    """Return (lines before the first heading, top-level sections)."""

    preamble: list[str] = []
    roots: list[MarkdownSection] = []
    stack: list[MarkdownSection] = []
    in_fence = False

    for line in text.split("\n"):
        if FENCE.match(line):
            in_fence = not in_fence
        match = None if in_fence else HEADING.match(line)
        if match is None:
            (stack[-1].content if stack else preamble).append(line)
            continue

        section = MarkdownSection(level=len(match.group(1)), title=match.group(2).strip())
        while stack and stack[-1].level >= section.level:
            stack.pop()
        (stack[-1].children if stack else roots).append(section)
        stack.append(section)

    return preamble, roots


def extract_metadata(lines: list[str]) -> tuple[dict[str, object], list[str]]:
    """Read YAML frontmatter or a leading HTML comment; return (metadata, remaining lines)."""

    text = "\n".join(lines)
    metadata: dict[str, object] = {}

    block = FRONTMATTER.match(text)
    if block is None:
        block = COMMENT_BLOCK.match(text)
        if block is not None and not META_PAIR.search(block.group(1).splitlines()[0] if block.group(1) else ""):
            block = None
    if block is None:
        return metadata, lines

    for key, raw_value in extract_key_value_pairs(block.group(1)).items():
        value: object = int(raw_value) if raw_value.isdigit() else raw_value
        if key == "type":
            value = normalize_module_type(raw_value)
        metadata[key] = value

    remaining = text[block.end():]
    return metadata, remaining.split("\n")


def _meta(metadata: dict[str, object], key: str) -> object | None:
    value = metadata.get(key)
    return None if value in ("", None) else value


def _first_paragraph(lines: list[str]) -> str:
    for paragraph in re.split(r"\n\s*\n", "\n".join(lines)):
        stripped = paragraph.strip()
        if stripped and not stripped.startswith(("#", "-", "*", "<!--", "```")):
            return stripped[:200]
    return ""


def _subtitle(lines: list[str]) -> str:
    for line in lines:
        stripped = line.strip()
        if stripped and not stripped.startswith(("#", "-", "*", "<!--")):
            return stripped if len(stripped) < 150 else ""
    return ""


def _flatten(section: MarkdownSection) -> str:
    parts = [f"{'#' * section.level} {section.title}", *section.content]
    body = "\n".join(parts).strip()
    for child in section.children:
        body += "\n\n" + _flatten(child)
    return body


def section_to_module(section: MarkdownSection, warnings: list[str]) -> ParsedModule:
    metadata, body_lines = extract_metadata(section.content)
    content = "\n".join(body_lines).strip()
    questions = []

    for child in section.children:
        if QUESTION_SECTION_TITLE.search(child.title):
            found = parse_question_block(_flatten(child), warnings)
            if found:
                questions.extend(found)
                continue
        content = f"{content}\n\n{_flatten(child)}".strip()

    title = re.sub(r"^\d+[.)]\s*", "", section.title).strip() or section.title
    explicit_type = _meta(metadata, "type")
    detected = detect_module_type(title, content)
    module_type = str(explicit_type) if explicit_type else ("PRACTICE" if questions else detected)
    requires = _meta(metadata, "requires_submission")

    module = ParsedModule(
        title=title,
        slug=resolve_slug(_meta(metadata, "slug"), title, fallback="module"),
        type=module_type,
        points=parse_int(_meta(metadata, "points"), default_points(module_type)),
        description=str(_meta(metadata, "description") or _first_paragraph(body_lines)),
        content=content,
        questions=questions,
        level=str(_meta(metadata, "level") or "") or None,
        duration=str(_meta(metadata, "duration") or "") or None,
        requires_submission=(
            parse_bool(requires) if requires is not None else detect_requires_submission(module_type, title, content)
        ),
    )
    if not explicit_type:
        apply_question_pass(module, warnings)
    return module


def _trail_from_section(section: MarkdownSection, warnings: list[str], metadata: dict[str, object]) -> ParsedTrail:
    own_metadata, body_lines = extract_metadata(section.content)
    merged = {**metadata, **own_metadata}
    title = str(_meta(merged, "title") or section.title)

    modules = [section_to_module(child, warnings) for child in section.children]
    if not modules and any(line.strip() for line in body_lines):
        warnings.append(f'Trail "{title}" has no subsections; a single intro module was created.')
        intro = MarkdownSection(level=section.level + 1, title=INTRO_TITLE, content=body_lines)
        module = section_to_module(intro, warnings)
        module.slug = generate_slug(f"{title}-intro", fallback="intro")
        modules.append(module)

    return ParsedTrail(
        title=title,
        slug=resolve_slug(_meta(merged, "slug"), title, fallback="trail"),
        subtitle=str(_meta(merged, "subtitle") or _subtitle(body_lines)),
        description=str(_meta(merged, "description") or _first_paragraph(body_lines)),
        icon=str(_meta(merged, "icon") or detect_icon(title)),
        color=coerce_color(_meta(merged, "color"), fallback=detect_color(title)),
        modules=modules,
    )


def sections_to_trails(
    roots: list[MarkdownSection],
    warnings: list[str],
    *,
    default_title: str | None = None,
    metadata: dict[str, object] | None = None,
) -> list[ParsedTrail]:
    metadata = metadata or {}
    trails: list[ParsedTrail] = []
    orphans: list[MarkdownSection] = []

    for section in roots:
        if section.level == 1:
            trails.append(_trail_from_section(section, warnings, metadata if not trails else {}))
        else:
            orphans.append(section)

    if not orphans:
        return trails

    if default_title and not trails:
        container = MarkdownSection(level=1, title=default_title, children=orphans)
        trails.append(_trail_from_section(container, warnings, metadata))
        return trails

    for section in orphans:
        if trails:
            trails[-1].modules.append(section_to_module(section, warnings))
            continue
        warnings.append(f'No H1 heading; trail built from section "{section.title}".')
        modules: list[ParsedModule] = []
        if any(line.strip() for line in section.content) or not section.children:
            modules.append(section_to_module(MarkdownSection(section.level, section.title, section.content), warnings))
        modules.extend(section_to_module(child, warnings) for child in section.children)
        trails.append(
            ParsedTrail(
                title=section.title,
                slug=generate_slug(section.title, fallback="trail"),
                subtitle=_subtitle(section.content),
                description=_first_paragraph(section.content),
                icon=detect_icon(section.title),
                color=detect_color(section.title),
                modules=modules,
            )
        )
    return trails


def parse_md(text: str) -> ParseResult:
    warnings: list[str] = []
    if not (text or "").strip():
        return ParseResult(success=False, errors=["Markdown document is empty."])

    try:
        preamble, roots = build_section_tree(text)
        metadata, _rest = extract_metadata(preamble)
        if not roots:
            warnings.append("No Markdown headings found; smart parsing was used.")
            trails = parse_unstructured(text, warnings=warnings)
        else:
            trails = sections_to_trails(roots, warnings, metadata=metadata)
    except Exception as exc:
        logger.warning("Markdown parsing failed: %s", exc)
        return ParseResult(success=False, warnings=warnings, errors=[f"Markdown parse error: {exc}"])

    if not trails:
        return ParseResult(success=False, warnings=warnings, errors=["No trails found in Markdown document."])
    return ParseResult(success=True, trails=trails, warnings=warnings, parse_method="code")
