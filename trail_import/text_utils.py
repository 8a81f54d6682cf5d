from __future__ import annotations

import re

from trail_import.schema_models import DEFAULT_TRAIL_COLOR, DEFAULT_TRAIL_ICON

TRANSLIT = {
    "а": "a", "б": "b", "в": "v", "г": "g", "д": "d", "е": "e", "ё": "yo",
    "ж": "zh", "з": "z", "и": "i", "й": "y", "к": "k", "л": "l", "м": "m",
    "н": "n", "о": "o", "п": "p", "р": "r", "с": "s", "т": "t", "у": "u",
    "ф": "f", "х": "h", "ц": "c", "ч": "ch", "ш": "sh", "щ": "sch", "ъ": "",
    "ы": "y", "ь": "", "э": "e", "ю": "yu", "я": "ya",
}

SLUG_MAX_LENGTH = 50

MODULE_TYPE_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("PROJECT", ("проект", "project", "создай", "разработай", "построй", "build", "create", "develop")),
    ("PRACTICE", ("тест", "quiz", "практика", "practice", "упражнен", "exercise", "задан", "task")),
)

DEFAULT_POINTS = {"THEORY": 50, "PRACTICE": 75, "PROJECT": 100}

COLOR_KEYWORDS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("code", "coding", "программ", "vibe"), "#6366f1"),
    (("design", "дизайн", "ui", "ux"), "#ec4899"),
    (("data", "данн", "аналитик", "analytics"), "#10b981"),
    (("ai", "ml", "нейро", "искусствен"), "#8b5cf6"),
    (("market", "маркет", "продвиж"), "#f59e0b"),
    (("manage", "менедж", "управлен"), "#3b82f6"),
)

ICON_KEYWORDS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("code", "coding", "программ", "vibe"), "💻"),
    (("design", "дизайн", "ui"), "🎨"),
    (("data", "данн", "аналитик"), "📊"),
    (("ai", "ml"), "🤖"),
    (("нейро",), "🧠"),
    (("market", "маркет"), "📈"),
    (("web", "веб"), "🌐"),
    (("mobile", "мобил"), "📱"),
    (("game", "игр"), "🎮"),
    (("security", "безопас"), "🔒"),
    (("cloud", "облак"), "☁️"),
)

EMOJI_PATTERN = re.compile("[\U0001F300-\U0001F9FF☀-⛿✀-➿]")

SUBMISSION_KEYWORDS = (
    "отправ", "загрузи", "прикрепи", "сдай", "сдать", "submit", "upload", "attach", "github", "repository", "репозитор",
)

KEY_ALIASES = {
    "название": "title",
    "заголовок": "title",
    "name": "title",
    "слаг": "slug",
    "подзаголовок": "subtitle",
    "описание": "description",
    "иконка": "icon",
    "цвет": "color",
    "тип": "type",
    "очки": "points",
    "баллы": "points",
    "уровень": "level",
    "длительность": "duration",
    "время": "duration",
    "контент": "content",
    "содержимое": "content",
    "requires_submission": "requires_submission",
    "requiressubmission": "requires_submission",
    "требует_отправки": "requires_submission",
    "нужна_отправка": "requires_submission",
}

MODULE_TYPE_ALIASES = {
    "lesson": "THEORY",
    "theory": "THEORY",
    "урок": "THEORY",
    "теория": "THEORY",
    "quiz": "PRACTICE",
    "practice": "PRACTICE",
    "тест": "PRACTICE",
    "практика": "PRACTICE",
    "project": "PROJECT",
    "проект": "PROJECT",
}

TRUTHY = {"да", "yes", "true", "1", "y", "+"}

KEY_VALUE_PATTERN = re.compile(r"^([\w\-а-яА-ЯёЁ ]{1,40}?)\s*:\s*(.+)$")


def generate_slug(text: str, fallback: str = "") -> str:
    lowered = (text or "").lower()
    transliterated = "".join(TRANSLIT.get(char, char) for char in lowered)
    slug = re.sub(r"[^a-z0-9]+", "-", transliterated).strip("-")
    slug = slug[:SLUG_MAX_LENGTH].rstrip("-")
    return slug or fallback


def resolve_slug(given: object, title: str, fallback: str = "") -> str:
    """Keep a supplied slug as written; derive one from the title only when none is given."""

    text = str(given).strip() if given is not None else ""
    return text or generate_slug(title, fallback=fallback)


def _contains_any(text: str, keywords: tuple[str, ...]) -> bool:
    return any(keyword in text for keyword in keywords)


def _contains_word(text: str, keyword: str) -> bool:
    if len(keyword) > 2:
        return keyword in text
    return re.search(rf"(?<![a-zа-яё]){re.escape(keyword)}(?![a-zа-яё])", text) is not None


def detect_module_type(*parts: str) -> str:
    haystack = " ".join(part for part in parts if part).lower()
    for module_type, keywords in MODULE_TYPE_KEYWORDS:
        if _contains_any(haystack, keywords):
            return module_type
    return "THEORY"


def normalize_module_type(value: object, default: str = "THEORY") -> str:
    if not isinstance(value, str):
        return default
    cleaned = value.strip()
    if cleaned.upper() in DEFAULT_POINTS:
        return cleaned.upper()
    return MODULE_TYPE_ALIASES.get(cleaned.lower(), default)


def default_points(module_type: str) -> int:
    return DEFAULT_POINTS.get(module_type, DEFAULT_POINTS["THEORY"])


def default_level(module_type: str) -> str:
    return "Middle" if module_type == "PROJECT" else "Beginner"


def default_duration(module_type: str) -> str:
    return "1-2 дня" if module_type == "PROJECT" else "20 мин"


def detect_color(*parts: str) -> str:
    haystack = " ".join(part for part in parts if part).lower()
    for keywords, color in COLOR_KEYWORDS:
        if any(_contains_word(haystack, keyword) for keyword in keywords):
            return color
    return DEFAULT_TRAIL_COLOR


def detect_icon(*parts: str) -> str:
    joined = " ".join(part for part in parts if part)
    emoji = EMOJI_PATTERN.search(joined)
    if emoji:
        return emoji.group(0)

    haystack = joined.lower()
    for keywords, icon in ICON_KEYWORDS:
        if any(_contains_word(haystack, keyword) for keyword in keywords):
            return icon
    return DEFAULT_TRAIL_ICON


def detect_requires_submission(module_type: str, title: str = "", content: str = "") -> bool:
    if module_type == "PROJECT":
        return True
    haystack = f"{title} {content}".lower()
    return _contains_any(haystack, SUBMISSION_KEYWORDS) and module_type != "THEORY"


def parse_bool(value: object) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    return str(value).strip().lower() in TRUTHY


def parse_int(value: object, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    match = re.search(r"-?\d+", str(value or ""))
    return int(match.group(0)) if match else default


def normalize_key(key: str) -> str:
    cleaned = key.strip().lower().replace(" ", "_")
    return KEY_ALIASES.get(cleaned, cleaned)


def extract_key_value_pairs(text: str) -> dict[str, str]:
    pairs: dict[str, str] = {}
    for raw_line in text.splitlines():
        match = KEY_VALUE_PATTERN.match(raw_line.strip())
        if not match:
            continue
        key = normalize_key(match.group(1))
        value = match.group(2).strip().strip("\"'")
        if value:
            pairs[key] = value
    return pairs


def first_meaningful_line(text: str, min_length: int = 20, max_length: int = 200) -> str:
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if len(line) > min_length and not line.startswith("#"):
            return line[:max_length]
    return ""


def unique_slug(slug: str, taken: set[str]) -> str:
    if slug not in taken:
        taken.add(slug)
        return slug
    counter = 2
    while f"{slug}-{counter}" in taken:
        counter += 1
    candidate = f"{slug}-{counter}"
    taken.add(candidate)
    return candidate
