from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from xml.etree import ElementTree as ET

from trail_import import aliases
from trail_import.schema_models import DEFAULT_TRAIL_COLOR, DEFAULT_TRAIL_ICON, ParsedTrail, ParseResult
from trail_import.validation import coerce_module, coerce_trail
from trail_import.text_utils import TRUTHY, detect_color, detect_icon, generate_slug

logger = logging.getLogger(__name__)

IMPORTED_TRAIL_TITLE = "Импортированный курс"

XML_DECLARATION = re.compile(r"<\?xml[^?]*\?>")
XML_COMMENT = re.compile(r"<!--.*?-->", re.DOTALL)
XML_TAG = re.compile(r"<(/?)([A-Za-zА-Яа-яЁё_][\w\-.:А-Яа-яЁё]*)(\s[^>]*?)?(/?)>")
XML_ATTRIBUTE = re.compile(r"([A-Za-zА-Яа-яЁё_][\w\-.:А-Яа-яЁё]*)\s*=\s*[\"']([^\"']*)[\"']")
CDATA = re.compile(r"<!\[CDATA\[(.*?)\]\]>", re.DOTALL)


@dataclass
class XmlNode:
    tag: str
    attributes: dict[str, str] = field(default_factory=dict)
    children: list["XmlNode"] = field(default_factory=list)
    text: str = ""

    def find_children(self, tags: tuple[str, ...]) -> list["XmlNode"]:
        return [child for child in self.children if child.tag in tags]

    def child_text(self, tags: tuple[str, ...]) -> str:
        for tag in tags:
            for child in self.children:
                if child.tag == tag and child.text.strip():
                    return child.text.strip()
        return ""

    def value(self, tags: tuple[str, ...]) -> str:
        """Child element text first, then an attribute with one of the names."""

        text = self.child_text(tags)
        if text:
            return text
        lowered = {key.lower(): value for key, value in self.attributes.items()}
        for tag in tags:
            if lowered.get(tag.lower(), "").strip():
                return lowered[tag.lower()].strip()
        return ""

    def iter(self):
        yield self
        for child in self.children:
            yield from child.iter()


def _local_name(tag: str) -> str:
    return tag.split("}")[-1].lower()


def _from_element(element: ET.Element) -> XmlNode:
    return XmlNode(
        tag=_local_name(element.tag),
        attributes={_local_name(key): value for key, value in element.attrib.items()},
        children=[_from_element(child) for child in element],
        text=(element.text or "").strip(),
    )


def parse_xml_lenient(text: str) -> XmlNode:
    """Tag-stack reader for markup ElementTree rejects (unclosed or mismatched tags)."""

    cleaned = XML_COMMENT.sub("", XML_DECLARATION.sub("", text))
    cleaned = CDATA.sub(lambda match: match.group(1).replace("<", "&lt;").replace(">", "&gt;"), cleaned).strip()

    root = XmlNode(tag="root")
    stack = [root]
    last_index = 0

    for match in XML_TAG.finditer(cleaned):
        between = cleaned[last_index : match.start()].strip()
        if between:
            stack[-1].text += between.replace("&lt;", "<").replace("&gt;", ">").replace("&amp;", "&")
        last_index = match.end()

        closing, tag, attribute_text, self_closing = match.groups()
        if closing:
            if len(stack) > 1:
                stack.pop()
            continue

        node = XmlNode(
            tag=tag.lower(),
            attributes={key: value for key, value in XML_ATTRIBUTE.findall(attribute_text or "")},
        )
        stack[-1].children.append(node)
        if not self_closing:
            stack.append(node)

    return root


def parse_xml_tree(text: str, warnings: list[str]) -> XmlNode:
    try:
        element = ET.fromstring(text.strip())
    except ET.ParseError as exc:
        warnings.append(f"XML is not well-formed ({exc}); lenient parsing was used.")
        return parse_xml_lenient(text)
    return XmlNode(tag="root", children=[_from_element(element)])


def _is_correct(node: XmlNode) -> bool:
    lowered = {key.lower(): value for key, value in node.attributes.items()}
    return any(lowered.get(name, "").strip().lower() in TRUTHY for name in aliases.XML_CORRECT_ATTRIBUTES)


def question_to_mapping(node: XmlNode) -> dict:
    container = next(iter(node.find_children(aliases.XML_OPTION_CONTAINERS)), None)
    option_nodes = container.children if container is not None else node.find_children(aliases.XML_OPTION_TAGS)

    options: list[str] = []
    correct = 0
    for option in option_nodes:
        text = option.text.strip() or option.attributes.get("text", "").strip()
        if not text:
            continue
        if _is_correct(option):
            correct = len(options)
        options.append(text)

    explicit = node.value(("correct", "правильный", "correctanswer", "correctAnswer"))
    if explicit.isdigit():
        correct = int(explicit)

    return {
        "question": node.value(("text", "текст", "question", "вопрос")) or node.text.strip(),
        "type": node.value(aliases.QUESTION_TYPE) or None,
        "options": options,
        "correctAnswer": correct,
        "explanation": node.value(aliases.EXPLANATION) or None,
    }


def module_to_mapping(node: XmlNode) -> dict:
    question_nodes = node.find_children(aliases.XML_QUESTION_TAGS)
    for container in node.find_children(aliases.XML_QUESTION_CONTAINERS):
        question_nodes.extend(container.find_children(aliases.XML_QUESTION_TAGS))

    mapping: dict = {
        "title": node.value(aliases.MODULE_TITLE),
        "slug": node.value(aliases.SLUG),
        "type": node.value(aliases.MODULE_TYPE),
        "points": node.value(aliases.POINTS),
        "description": node.value(aliases.DESCRIPTION),
        "content": node.child_text(aliases.CONTENT),
        "level": node.value(aliases.LEVEL),
        "duration": node.value(aliases.DURATION),
        "questions": [question_to_mapping(question) for question in question_nodes],
    }
    requires = node.value(("requiressubmission", "requires_submission"))
    if requires:
        mapping["requiresSubmission"] = requires
    return mapping


def _module_nodes(node: XmlNode) -> list[XmlNode]:
    modules = node.find_children(aliases.XML_MODULE_TAGS)
    for container in node.find_children(aliases.XML_MODULE_CONTAINERS):
        modules.extend(container.find_children(aliases.XML_MODULE_TAGS))
    return modules


def trail_to_mapping(node: XmlNode) -> dict:
    return {
        "title": node.value(aliases.TRAIL_TITLE),
        "slug": node.value(aliases.SLUG),
        "subtitle": node.value(aliases.SUBTITLE),
        "description": node.value(aliases.DESCRIPTION),
        "icon": node.value(aliases.ICON),
        "color": node.value(aliases.COLOR),
        "modules": [module_to_mapping(module) for module in _module_nodes(node)],
    }


def convert_xml_to_trails(root: XmlNode, warnings: list[str]) -> list[ParsedTrail]:
    trails: list[ParsedTrail] = []
    trail_nodes = [node for node in root.iter() if node.tag in aliases.XML_TRAIL_TAGS]
    for index, node in enumerate(trail_nodes):
        trail = coerce_trail(trail_to_mapping(node), index, warnings, require_title=True, infer_type=True)
        if trail is None:
            continue
        if not node.value(aliases.ICON):
            trail.icon = detect_icon(trail.title)
        if not node.value(aliases.COLOR):
            trail.color = detect_color(trail.title)
        trails.append(trail)
    if trails:
        return trails

    module_nodes = [node for node in root.iter() if node.tag in aliases.XML_MODULE_TAGS]
    if not module_nodes:
        return []

    warnings.append("No trail elements found; a trail was created from the module elements.")
    modules = []
    for index, node in enumerate(module_nodes):
        module = coerce_module(module_to_mapping(node), index, warnings, infer_type=True)
        if module is not None:
            modules.append(module)
    if not modules:
        return []

    document = root.children[0] if len(root.children) == 1 else root
    title = document.value(aliases.TRAIL_TITLE) or IMPORTED_TRAIL_TITLE
    return [
        ParsedTrail(
            title=title,
            slug=document.value(aliases.SLUG) or generate_slug(title, fallback="imported-course"),
            subtitle=document.value(aliases.SUBTITLE),
            description=document.value(aliases.DESCRIPTION),
            icon=document.value(aliases.ICON) or DEFAULT_TRAIL_ICON,
            color=document.value(aliases.COLOR) or DEFAULT_TRAIL_COLOR,
            modules=modules,
        )
    ]


def parse_xml(text: str) -> ParseResult:
    warnings: list[str] = []
    if not (text or "").strip():
        return ParseResult(success=False, errors=["XML document is empty."])

    try:
        root = parse_xml_tree(text, warnings)
        trails = convert_xml_to_trails(root, warnings)
    except Exception as exc:
        logger.warning("XML parsing failed: %s", exc)
        return ParseResult(success=False, warnings=warnings, errors=[f"XML parse error: {exc}"])

    if not trails:
        return ParseResult(
            success=False,
            warnings=warnings,
            errors=["No trail or module elements found in XML document."],
        )
    return ParseResult(success=True, trails=trails, warnings=warnings, parse_method="code")
