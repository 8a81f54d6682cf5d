from __future__ import annotations

import os
from dataclasses import asdict, dataclass

DEFAULT_AI_ENDPOINT = "https://api.anthropic.com/v1/messages"
DEFAULT_AI_MODEL = "claude-sonnet-4-5-20241022"
ANTHROPIC_VERSION = "2023-06-01"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        return default
    return value if value > 0 else default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw.strip())
    except ValueError:
        return default
    return value if value >= 0 else default


@dataclass(frozen=True)
class AIParserConfig:
    enabled: bool
    api_endpoint: str = DEFAULT_AI_ENDPOINT
    api_key: str | None = None
    model: str = DEFAULT_AI_MODEL

    @property
    def is_ready(self) -> bool:
        return self.enabled and bool(self.api_key)

    def to_dict(self) -> dict:
        payload = asdict(self)
        payload["api_key"] = "***" if self.api_key else None
        return payload


def get_ai_config() -> AIParserConfig:
    api_key = (os.getenv("AI_API_KEY") or os.getenv("ANTHROPIC_API_KEY") or "").strip()
    return AIParserConfig(
        enabled=(os.getenv("AI_PARSER_ENABLED") or "").strip().lower() == "true",
        api_endpoint=(os.getenv("AI_API_ENDPOINT") or DEFAULT_AI_ENDPOINT).strip(),
        api_key=api_key or None,
        model=(os.getenv("AI_MODEL") or DEFAULT_AI_MODEL).strip(),
    )


@dataclass(frozen=True)
class AILimits:
    check_timeout_ms: int = 15_000
    parse_timeout_ms: int = 900_000
    max_content_chars: int = 100_000
    max_output_tokens: int = 64_000
    chunk_threshold_chars: int = 12_000
    min_chunk_chars: int = 2_000
    max_chunk_chars: int = 8_000
    batch_size: int = 3
    metadata_sample_chars: int = 500

    @property
    def check_timeout_seconds(self) -> float:
        return self.check_timeout_ms / 1000

    @property
    def parse_timeout_seconds(self) -> float:
        return self.parse_timeout_ms / 1000


def load_ai_limits() -> AILimits:
    defaults = AILimits()
    return AILimits(
        check_timeout_ms=_env_int("AI_CHECK_TIMEOUT_MS", defaults.check_timeout_ms),
        parse_timeout_ms=_env_int("AI_PARSE_TIMEOUT_MS", defaults.parse_timeout_ms),
        max_content_chars=_env_int("AI_MAX_CONTENT_CHARS", defaults.max_content_chars),
        max_output_tokens=_env_int("AI_MAX_OUTPUT_TOKENS", defaults.max_output_tokens),
        chunk_threshold_chars=_env_int("AI_CHUNK_THRESHOLD_CHARS", defaults.chunk_threshold_chars),
        min_chunk_chars=_env_int("AI_MIN_CHUNK_CHARS", defaults.min_chunk_chars),
        max_chunk_chars=_env_int("AI_MAX_CHUNK_CHARS", defaults.max_chunk_chars),
        batch_size=_env_int("AI_CHUNK_BATCH_SIZE", defaults.batch_size),
        metadata_sample_chars=defaults.metadata_sample_chars,
    )


@dataclass(frozen=True)
class ImportThresholds:
    """Confidence cut-offs (0-100) used when choosing between parsers."""

    ai_trigger_confidence: float = 60
    hybrid_accept_confidence: float = 70
    structured_parse_confidence: float = 50


def load_import_thresholds() -> ImportThresholds:
    defaults = ImportThresholds()
    return ImportThresholds(
        ai_trigger_confidence=_env_float("IMPORT_AI_TRIGGER_CONFIDENCE", defaults.ai_trigger_confidence),
        hybrid_accept_confidence=_env_float("IMPORT_HYBRID_ACCEPT_CONFIDENCE", defaults.hybrid_accept_confidence),
        structured_parse_confidence=_env_float(
            "IMPORT_STRUCTURED_CONFIDENCE", defaults.structured_parse_confidence
        ),
    )
