from __future__ import annotations

from typing import Any, Mapping

TRAIL_COLLECTION = ("trails", "courses", "курсы", "трейлы")
TRAIL_TITLE = ("title", "name", "название", "заголовок")
SLUG = ("slug", "слаг")
SUBTITLE = ("subtitle", "подзаголовок")
DESCRIPTION = ("description", "описание")
ICON = ("icon", "иконка")
COLOR = ("color", "цвет")
MODULE_COLLECTION = ("modules", "модули", "lessons", "уроки")

MODULE_TITLE = ("title", "name", "название", "заголовок")
CONTENT = ("content", "контент", "содержимое", "text", "текст")
MODULE_TYPE = ("type", "тип")
POINTS = ("points", "очки", "баллы")
LEVEL = ("level", "уровень")
DURATION = ("duration", "длительность", "время")
REQUIRES_SUBMISSION = ("requiresSubmission", "requires_submission", "требуетОтправки")
QUESTION_COLLECTION = ("questions", "вопросы", "quiz", "тест")

QUESTION_TEXT = ("question", "вопрос", "text", "текст")
QUESTION_TYPE = ("type", "тип")
OPTIONS = ("options", "варианты", "ответы", "answers")
CORRECT_ANSWER = ("correctAnswer", "correct_answer", "correct", "правильный", "правильныйОтвет")
EXPLANATION = ("explanation", "объяснение", "пояснение")
QUESTION_DATA = ("data", "данные")

ORPHAN_MODULES = ("modules", "модули", "lessons", "уроки", "content")

XML_TRAIL_TAGS = ("trail", "трейл", "course", "курс")
XML_MODULE_TAGS = ("module", "модуль", "lesson", "урок")
XML_MODULE_CONTAINERS = ("modules", "модули", "lessons", "уроки")
XML_QUESTION_CONTAINERS = ("questions", "вопросы", "quiz", "тест")
XML_QUESTION_TAGS = ("question", "вопрос", "q")
XML_OPTION_CONTAINERS = ("options", "варианты", "answers", "ответы")
XML_OPTION_TAGS = ("option", "вариант", "answer", "ответ", "a")
XML_CORRECT_ATTRIBUTES = ("correct", "правильный", "верный")


def first_alias(mapping: Mapping[str, Any] | None, aliases: tuple[str, ...], default: Any = None) -> Any:
    """Return the first non-empty value found under any alias, in alias order."""

    if not isinstance(mapping, Mapping):
        return default
    lowered = {str(key).lower(): key for key in mapping}
    for alias in aliases:
        key = alias if alias in mapping else lowered.get(alias.lower())
        if key is None:
            continue
        value = mapping[key]
        if value is None or (isinstance(value, str) and not value.strip()):
            continue
        return value
    return default


def first_alias_text(mapping: Mapping[str, Any] | None, aliases: tuple[str, ...], default: str = "") -> str:
    value = first_alias(mapping, aliases)
    if value is None or isinstance(value, (dict, list)):
        return default
    return str(value).strip()


def has_any_alias(mapping: Mapping[str, Any] | None, aliases: tuple[str, ...]) -> bool:
    return first_alias(mapping, aliases) is not None
