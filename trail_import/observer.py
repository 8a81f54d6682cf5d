from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

logger = logging.getLogger("trail_import")

WARNING_EVENTS = {"ai_fallback", "ai_request_failed", "chunk_failed", "json_recovered", "content_truncated"}


class ImportObserver(Protocol):
    def event(self, name: str, **fields: Any) -> None:
        ...


class LoggingObserver:
    def __init__(self, target: logging.Logger | None = None) -> None:
        self._logger = target or logger

    def event(self, name: str, **fields: Any) -> None:
        level = logging.WARNING if name in WARNING_EVENTS else logging.INFO
        rendered = " ".join(f"{key}={value!r}" for key, value in sorted(fields.items()))
        self._logger.log(level, "%s %s", name, rendered)


@dataclass
class CollectingObserver:
    events: list[tuple[str, dict[str, Any]]] = field(default_factory=list)

    def event(self, name: str, **fields: Any) -> None:
        self.events.append((name, dict(fields)))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]


def get_observer(observer: ImportObserver | None = None) -> ImportObserver:
    return observer if observer is not None else LoggingObserver()
