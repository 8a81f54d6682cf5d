from __future__ import annotations

import logging
import re

from trail_import.containers import is_ole_compound
from trail_import.schema_models import ParseResult
from trail_import.parsers.unstructured import HeadingRule, regex_rule, parse_unstructured

logger = logging.getLogger(__name__)

RTF_PREFIX = "{\\rtf"
UTF16_RUN = re.compile(r"[\t\n\r\x20-\x7e\u00c0-\u024f\u0400-\u04ff\u2000-\u206f]{4,}")
CP1251_RUN = re.compile(rb"[\t\n\r\x20-\x7e\xa8\xb8\xc0-\xff]{11,}")
CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")
CYRILLIC = re.compile(r"[а-яА-ЯёЁ]")
WORDLIKE = re.compile(r"[a-zA-Zа-яА-ЯёЁ]{2,}")
UNICODE_TEXT_MIN = 100

RTF_TOKEN = re.compile(
    r"\\'([0-9a-fA-F]{2})"
    r"|\\u(-?\d+) ?"
    r"|\\([a-zA-Z]+)(-?\d+)? ?"
    r"|\\([\\{}])"
    r"|(\\\*)"
    r"|([{}])"
    r"|[\r\n]+"
    r"|([^\\{}\r\n]+)"
    r"|\\."
)
RTF_SKIPPED_DESTINATIONS = {"fonttbl", "colortbl", "stylesheet", "info", "pict", "header", "footer", "listtable"}


def _is_noise(chunk: str) -> bool:
    lowered = chunk.lower()
    if "microsoft" in lowered and len(chunk) < 50:
        return True
    if "normal.dot" in lowered:
        return True
    if re.fullmatch(r"[a-z]{1,3}", chunk, flags=re.IGNORECASE):
        return True
    return len(chunk) <= 5 and not CYRILLIC.search(chunk)


def extract_utf16_text(data: bytes) -> str:
    decoded = data[: len(data) - len(data) % 2].decode("utf-16-le", errors="replace")
    chunks = [match.group(0).strip() for match in UTF16_RUN.finditer(decoded)]
    return "\n\n".join(chunk for chunk in chunks if chunk and not _is_noise(chunk))


def extract_cp1251_text(data: bytes) -> str:
    chunks = [match.group(0).decode("cp1251").strip() for match in CP1251_RUN.finditer(data)]
    return "\n\n".join(chunk for chunk in chunks if len(chunk) > 20)


def extract_text_from_ole(data: bytes) -> str:
    """Best-effort text from a Word 97-2003 compound file without reading its directory."""

    unicode_text = extract_utf16_text(data)
    if len(unicode_text) > UNICODE_TEXT_MIN:
        return unicode_text
    ascii_text = extract_cp1251_text(data)
    return ascii_text if len(ascii_text) > len(unicode_text) else unicode_text


def extract_readable_text(content: str) -> str:
    """Keep runs of four or more word-like tokens from binary content read as a string."""

    chunks: list[str] = []
    current: list[str] = []
    for word in CONTROL_CHARS.sub(" ", content).split():
        if WORDLIKE.search(word):
            current.append(word)
            continue
        if len(current) > 3:
            chunks.append(" ".join(current))
        current = []
    if len(current) > 3:
        chunks.append(" ".join(current))
    return "\n\n".join(chunks)


def rtf_to_text(rtf: str) -> str:
    output: list[str] = []
    group_stack: list[tuple[bool, int]] = []
    skipping = False
    fallback_chars = 1
    pending_fallback = 0

    for match in RTF_TOKEN.finditer(rtf):
        hex_byte, unicode_point, word, argument, escaped, star, brace, plain = match.groups()
        if brace == "{":
            group_stack.append((skipping, fallback_chars))
            pending_fallback = 0
            continue
        if brace == "}":
            skipping, fallback_chars = group_stack.pop() if group_stack else (False, 1)
            pending_fallback = 0
            continue
        if star or word in RTF_SKIPPED_DESTINATIONS:
            skipping = True
            continue
        if skipping:
            continue

        # \uN is followed by \ucN fallback characters.
        if pending_fallback and not unicode_point:
            if plain:
                dropped = min(len(plain), pending_fallback)
                plain = plain[dropped:]
                pending_fallback -= dropped
                if not plain:
                    continue
            elif hex_byte or escaped or word:
                pending_fallback -= 1
                continue

        if word == "uc":
            fallback_chars = int(argument) if argument else 1
        elif hex_byte:
            output.append(bytes([int(hex_byte, 16)]).decode("cp1251", errors="replace"))
        elif unicode_point:
            output.append(chr(int(unicode_point) % 0x10000))
            pending_fallback = fallback_chars
        elif word in {"par", "line"}:
            output.append("\n")
        elif word == "tab":
            output.append("\t")
        elif escaped:
            output.append(escaped)
        elif plain:
            output.append(plain)

    lines = [re.sub(r"[ \t]+", " ", line).strip() for line in "".join(output).split("\n")]
    return re.sub(r"\n{3,}", "\n\n", "\n".join(lines)).strip()


def _caps_near_top(line: str, index: int) -> str | None:
    if index < 5 and 10 < len(line) <= 100 and line == line.upper() and any(ch.isalpha() for ch in line):
        return line
    return None


DOC_TRAIL_RULES: tuple[HeadingRule, ...] = (
    regex_rule("markdown_h1", 1, r"^#\s+(.+)$"),
    HeadingRule("caps_near_top", 1, _caps_near_top),
    regex_rule(
        "course_label",
        1,
        r"^(?:курс|course|глава|chapter|раздел|section)\s*[:\d](?:.{3,99})$",
        whole_line_fallback=True,
    ),
)

DOC_MODULE_RULES: tuple[HeadingRule, ...] = (
    regex_rule("markdown_h2", 2, r"^##\s+(.+)$"),
    regex_rule(
        "module_label",
        2,
        r"^(?:модуль|module|урок|lesson|тема|topic)\s*[:\d](?:.{1,79})$",
        whole_line_fallback=True,
    ),
    regex_rule("numbered", 2, r"^\d+[.)]\s+([A-ZА-ЯЁ].{1,76})$"),
)


def parse_doc_text(text: str, warnings: list[str]) -> ParseResult:
    if not text.strip():
        return ParseResult(success=False, warnings=warnings, errors=["Document text is empty."])

    trails = parse_unstructured(
        text,
        trail_rules=DOC_TRAIL_RULES,
        module_rules=DOC_MODULE_RULES,
        warnings=warnings,
    )
    if not trails:
        return ParseResult(success=False, warnings=warnings, errors=["Could not extract any content from the document."])
    return ParseResult(success=True, trails=trails, warnings=warnings, parse_method="code")


def parse_doc_from_text(content: str) -> ParseResult:
    """Handle a .doc that reached us already decoded to a string."""

    warnings: list[str] = []
    if content.startswith(RTF_PREFIX):
        return parse_doc_text(rtf_to_text(content), warnings)
    if content[:1] == "\xd0" or "\x00" in content:
        warnings.append("DOC file was received as text; some content may be lost.")
        cleaned = extract_readable_text(content)
        if cleaned.strip():
            return parse_doc_text(cleaned, warnings)
    return parse_doc_text(content, warnings)


def parse_doc(content: bytes | str) -> ParseResult:
    if isinstance(content, str):
        return parse_doc_from_text(content)

    warnings: list[str] = []
    try:
        if not is_ole_compound(content):
            head = content[:5].decode("latin-1")
            if head == RTF_PREFIX:
                warnings.append("File is RTF; it was processed as text.")
                return parse_doc_text(rtf_to_text(content.decode("latin-1")), warnings)
            return ParseResult(success=False, errors=["Not a valid DOC file: OLE signature not found."])

        text = extract_text_from_ole(content)
        if not text.strip():
            return ParseResult(success=False, errors=["Could not extract text from the DOC file."])
        return parse_doc_text(text, warnings)
    except Exception as exc:
        logger.warning("DOC parsing failed: %s", exc)
        return ParseResult(success=False, warnings=warnings, errors=[f"DOC parse error: {exc}"])
