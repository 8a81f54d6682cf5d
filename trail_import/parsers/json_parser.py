from __future__ import annotations

import json
import logging
from typing import Any, Mapping

from trail_import import aliases
from trail_import.aliases import first_alias, first_alias_text, has_any_alias
from trail_import.schema_models import DEFAULT_TRAIL_COLOR, DEFAULT_TRAIL_ICON, ParsedTrail, ParseResult
from trail_import.validation import coerce_module, coerce_trails
from trail_import.text_utils import generate_slug

logger = logging.getLogger(__name__)

IMPORTED_TRAIL_TITLE = "Импортированный курс"
UNRECOGNIZED_WARNING = "JSON structure was not recognized."


def _orphan_trail(data: Mapping[str, Any], modules_raw: list[Any], warnings: list[str]) -> list[ParsedTrail]:
    warnings.append("JSON was interpreted as a list of modules; a synthetic trail was created.")
    modules = []
    for index, raw in enumerate(modules_raw):
        module = coerce_module(raw, index, warnings, infer_type=True)
        if module is not None:
            modules.append(module)
    if not modules:
        return []

    title = first_alias_text(data, aliases.TRAIL_TITLE) or IMPORTED_TRAIL_TITLE
    return [
        ParsedTrail(
            title=title,
            slug=first_alias_text(data, aliases.SLUG) or generate_slug(title, fallback="imported"),
            subtitle=first_alias_text(data, aliases.SUBTITLE),
            description=first_alias_text(data, aliases.DESCRIPTION),
            icon=first_alias_text(data, aliases.ICON) or DEFAULT_TRAIL_ICON,
            color=first_alias_text(data, aliases.COLOR) or DEFAULT_TRAIL_COLOR,
            modules=modules,
        )
    ]


def convert_json_to_trails(data: Any, warnings: list[str]) -> list[ParsedTrail]:
    """Interpret decoded JSON: trail array, trails collection, single trail, then orphan modules."""

    if isinstance(data, list):
        return coerce_trails(data, warnings, require_title=True, infer_type=True)

    if not isinstance(data, Mapping):
        warnings.append(UNRECOGNIZED_WARNING)
        return []

    collection = first_alias(data, aliases.TRAIL_COLLECTION)
    if isinstance(collection, list):
        return coerce_trails(collection, warnings, require_title=True, infer_type=True)

    if has_any_alias(data, aliases.TRAIL_TITLE):
        return coerce_trails(data, warnings, require_title=True, infer_type=True)

    orphans = first_alias(data, aliases.ORPHAN_MODULES)
    if isinstance(orphans, list):
        return _orphan_trail(data, orphans, warnings)

    warnings.append(UNRECOGNIZED_WARNING)
    return []


def parse_json(text: str) -> ParseResult:
    warnings: list[str] = []
    try:
        data = json.loads(text)
    except (TypeError, ValueError) as exc:
        return ParseResult(success=False, errors=[f"JSON parse error: {exc}"])

    try:
        trails = convert_json_to_trails(data, warnings)
    except Exception as exc:
        logger.warning("JSON conversion failed: %s", exc)
        return ParseResult(success=False, warnings=warnings, errors=[f"JSON conversion error: {exc}"])

    return ParseResult(success=bool(trails), trails=trails, warnings=warnings, parse_method="code")
