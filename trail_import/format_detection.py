from __future__ import annotations

import json
import re
from dataclasses import dataclass
from pathlib import PurePath
from typing import Callable

from trail_import.containers import OLE_SIGNATURE, ZIP_SIGNATURE

FILE_FORMATS: tuple[str, ...] = (
    "txt", "md", "json", "xml", "docx", "doc", "html", "yml", "csv",
    "rtf", "odt", "pdf", "rst", "tex", "org", "adoc", "unknown",
)

EXTENSION_MAP = {
    "txt": "txt",
    "text": "txt",
    "md": "md",
    "markdown": "md",
    "json": "json",
    "xml": "xml",
    "docx": "docx",
    "doc": "doc",
    "html": "html",
    "htm": "html",
    "yml": "yml",
    "yaml": "yml",
    "csv": "csv",
    "rtf": "rtf",
    "odt": "odt",
    "pdf": "pdf",
    "rst": "rst",
    "tex": "tex",
    "latex": "tex",
    "org": "org",
    "adoc": "adoc",
    "asciidoc": "adoc",
}

NATIVE_PARSER_FORMATS: tuple[str, ...] = ("txt", "md", "markdown", "json", "xml", "html", "htm", "doc", "docx")
AI_ONLY_FORMATS: tuple[str, ...] = (
    "yml", "yaml", "kdl", "csv", "rtf", "odt", "pdf", "rst", "tex", "org", "adoc", "asciidoc",
)


@dataclass(frozen=True)
class FormatInfo:
    extension: str
    name: str
    mime_type: str
    parser: str

    def to_dict(self) -> dict:
        return {"extension": self.extension, "name": self.name, "mimeType": self.mime_type, "parser": self.parser}


SUPPORTED_FORMATS: tuple[FormatInfo, ...] = (
    FormatInfo("txt", "Plain text", "text/plain", "code"),
    FormatInfo("md", "Markdown", "text/markdown", "code"),
    FormatInfo("json", "JSON", "application/json", "code"),
    FormatInfo("xml", "XML", "application/xml", "code"),
    FormatInfo("html", "HTML", "text/html", "code"),
    FormatInfo("docx", "Word (OOXML)", "application/vnd.openxmlformats-officedocument.wordprocessingml.document", "code"),
    FormatInfo("doc", "Word 97-2003", "application/msword", "code"),
    FormatInfo("yml", "YAML", "application/yaml", "ai"),
    FormatInfo("kdl", "KDL", "text/plain", "ai"),
    FormatInfo("csv", "CSV", "text/csv", "ai"),
    FormatInfo("rtf", "Rich Text", "application/rtf", "ai"),
    FormatInfo("odt", "OpenDocument Text", "application/vnd.oasis.opendocument.text", "ai"),
    FormatInfo("pdf", "PDF", "application/pdf", "ai"),
    FormatInfo("rst", "reStructuredText", "text/x-rst", "ai"),
    FormatInfo("tex", "LaTeX", "application/x-tex", "ai"),
    FormatInfo("org", "Org-mode", "text/org", "ai"),
    FormatInfo("adoc", "AsciiDoc", "text/asciidoc", "ai"),
)

BINARY_SIGNATURES: tuple[tuple[bytes, str], ...] = (
    (ZIP_SIGNATURE, "docx"),
    (OLE_SIGNATURE, "doc"),
    (b"%PDF", "pdf"),
    (b"{\\rtf", "rtf"),
)


def file_extension(filename: str | None) -> str:
    if not filename:
        return ""
    return PurePath(filename).suffix.lower().lstrip(".")


def requires_ai_parser(filename: str | None) -> bool:
    return file_extension(filename) in AI_ONLY_FORMATS


def has_native_parser(filename: str | None) -> bool:
    return file_extension(filename) in NATIVE_PARSER_FORMATS


def _looks_like_json(text: str) -> bool:
    stripped = text.strip()
    if not stripped or stripped[0] not in "{[":
        return False
    try:
        parsed = json.loads(stripped)
    except (json.JSONDecodeError, ValueError):
        return False
    return isinstance(parsed, (dict, list))


def _looks_like_xml(text: str) -> bool:
    head = text.lstrip()[:2000].lower()
    return head.startswith("<?xml") or "<trail" in head or "<module" in head


def _looks_like_yaml(text: str) -> bool:
    lines = [line for line in text.splitlines() if line.strip()]
    if not lines or lines[0].strip() != "---":
        return False
    key_lines = sum(1 for line in lines[1:40] if re.match(r"^\s*[\w\-]+\s*:(\s|$)", line))
    has_markdown_body = any(line.lstrip().startswith("#") for line in lines[1:])
    return key_lines >= 2 and not has_markdown_body


def _looks_like_html(text: str) -> bool:
    head = text.lstrip()[:2000].lower()
    if head.startswith("<!doctype html") or "<html" in head:
        return True
    tags = re.findall(r"</?(?:p|div|h[1-6]|ul|ol|li|body|span|table|br)\b", text[:20000], flags=re.IGNORECASE)
    return len(tags) >= 5


def _looks_like_markdown(text: str) -> bool:
    if re.search(r"^```", text, flags=re.MULTILINE):
        return True
    return re.search(r"^#{1,6}\s+\S", text, flags=re.MULTILINE) is not None


def _looks_like_rst(text: str) -> bool:
    lines = text.splitlines()
    for index in range(1, len(lines)):
        rule = lines[index].rstrip()
        title = lines[index - 1].strip()
        if title and re.fullmatch(r"(={3,}|-{3,}|~{3,})", rule) and len(rule) >= len(title):
            return True
    return False


def _looks_like_latex(text: str) -> bool:
    return "\\documentclass" in text or "\\begin{" in text


def _looks_like_org(text: str) -> bool:
    headlines = re.search(r"^\*+\s+\S", text, flags=re.MULTILINE)
    directives = re.search(r"^#\+\w+", text, flags=re.MULTILINE)
    return headlines is not None and directives is not None


TEXT_SNIFFERS: tuple[tuple[str, Callable[[str], bool]], ...] = (
    ("json", _looks_like_json),
    ("xml", _looks_like_xml),
    ("yml", _looks_like_yaml),
    ("html", _looks_like_html),
    ("md", _looks_like_markdown),
    ("rst", _looks_like_rst),
    ("tex", _looks_like_latex),
    ("org", _looks_like_org),
)


def _is_probably_binary(content: bytes) -> bool:
    sample = content[:4096]
    if not sample:
        return False
    if b"\x00" in sample:
        return True
    try:
        sample.decode("utf-8")
    except UnicodeDecodeError as exc:
        # a multi-byte sequence cut at the sample boundary is still text
        return exc.start < len(sample) - 4
    return False


def sniff_text_format(text: str) -> str:
    for format_name, predicate in TEXT_SNIFFERS:
        if predicate(text):
            return format_name
    return "txt"


def detect_format(filename: str | None, content: str | bytes | None) -> str:
    """Classify an upload into one of FILE_FORMATS. Never raises."""

    try:
        return _detect_format(filename, content)
    except Exception:
        return "unknown"


def _detect_format(filename: str | None, content: str | bytes | None) -> str:
    extension = file_extension(filename)
    mapped = EXTENSION_MAP.get(extension)

    if mapped == "json":
        text = content.decode("utf-8", errors="replace") if isinstance(content, bytes) else (content or "")
        return "json" if _looks_like_json(text) else "txt"
    if mapped:
        return mapped

    if isinstance(content, bytes):
        for signature, format_name in BINARY_SIGNATURES:
            if content.startswith(signature):
                return format_name
        if _is_probably_binary(content):
            return "unknown"
        text = content.decode("utf-8", errors="replace")
    else:
        text = content or ""
        for signature, format_name in BINARY_SIGNATURES:
            if text.startswith(signature.decode("latin-1")):
                return format_name

    return sniff_text_format(text)
