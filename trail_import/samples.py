from __future__ import annotations

import json

from trail_import.schema_models import TrailImportError

SAMPLE_JSON = {
    "trails": [
        {
            "title": "Vibe Coding",
            "slug": "vibe-coding",
            "subtitle": "Научись кодить с AI",
            "description": "Полный курс по Vibe Coding",
            "icon": "💻",
            "color": "#6366f1",
            "modules": [
                {
                    "title": "Введение в Vibe Coding",
                    "slug": "intro-vibe-coding",
                    "type": "THEORY",
                    "points": 50,
                    "description": "Основы работы с AI-ассистентами",
                    "content": "# Добро пожаловать!\n\nVibe Coding - это современный подход...",
                    "questions": [
                        {
                            "question": "Что такое Vibe Coding?",
                            "options": [
                                "Программирование без компьютера",
                                "Программирование с помощью AI",
                                "Визуальное программирование",
                                "Игра",
                            ],
                            "correctAnswer": 1,
                        }
                    ],
                }
            ],
        }
    ]
}

SAMPLE_XML = """<?xml version="1.0" encoding="UTF-8"?>
<trails>
  <trail slug="vibe-coding">
    <title>Vibe Coding</title>
    <subtitle>Научись кодить с AI</subtitle>
    <description>Полный курс по Vibe Coding</description>
    <icon>💻</icon>
    <color>#6366f1</color>
    <modules>
      <module slug="intro-vibe-coding">
        <title>Введение в Vibe Coding</title>
        <type>THEORY</type>
        <points>50</points>
        <description>Основы работы с AI-ассистентами</description>
        <content><![CDATA[
# Добро пожаловать!

Vibe Coding - это современный подход...
        ]]></content>
        <questions>
          <question>
            <text>Что такое Vibe Coding?</text>
            <options>
              <option>Программирование без компьютера</option>
              <option correct="true">Программирование с помощью AI</option>
              <option>Визуальное программирование</option>
              <option>Игра</option>
            </options>
          </question>
        </questions>
      </module>
    </modules>
  </trail>
</trails>"""

SAMPLE_MD = """# Vibe Coding

Научись кодить с AI

## Введение в Vibe Coding

Основы работы с AI-ассистентами

### Добро пожаловать!

Vibe Coding - это современный подход к программированию с использованием AI.

### Вопросы

В: Что такое Vibe Coding?
- Программирование без компьютера
- Программирование с помощью AI *
- Визуальное программирование
- Игра"""

SAMPLE_TXT = """=== TRAIL ===
название: Vibe Coding
slug: vibe-coding
подзаголовок: Научись кодить с AI
описание: Полный курс по Vibe Coding
иконка: 💻
цвет: #6366f1

=== MODULE ===
название: Введение в Vibe Coding
slug: intro-vibe-coding
тип: урок
очки: 50
описание: Основы работы с AI-ассистентами
---
# Добро пожаловать в Vibe Coding!

Vibe Coding - это современный подход к программированию...

## Что такое AI-ассистент?

Здесь пишется контент модуля в формате Markdown.
---

=== ВОПРОСЫ ===
В: Что такое Vibe Coding?
- Программирование без компьютера
- Программирование с помощью AI *
- Визуальное программирование
- Игра"""

SAMPLE_FORMATS = ("json", "xml", "md", "txt")


def generate_sample_format(fmt: str) -> str:
    """Canonical example document for one of SAMPLE_FORMATS."""

    normalized = (fmt or "").strip().lower().lstrip(".")
    if normalized == "json":
        return json.dumps(SAMPLE_JSON, ensure_ascii=False, indent=2)
    if normalized == "xml":
        return SAMPLE_XML
    if normalized in {"md", "markdown"}:
        return SAMPLE_MD
    if normalized in {"txt", "text"}:
        return SAMPLE_TXT
    raise TrailImportError(f"No sample available for format {fmt!r}; expected one of {', '.join(SAMPLE_FORMATS)}.")
