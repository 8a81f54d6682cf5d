from __future__ import annotations

from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

QuestionType = Literal["SINGLE_CHOICE", "MATCHING", "ORDERING", "CASE_ANALYSIS"]
ModuleType = Literal["THEORY", "PRACTICE", "PROJECT"]
ParseMethod = Literal["code", "ai", "hybrid"]

QUESTION_TYPES: tuple[str, ...] = ("SINGLE_CHOICE", "MATCHING", "ORDERING", "CASE_ANALYSIS")
MODULE_TYPES: tuple[str, ...] = ("THEORY", "PRACTICE", "PROJECT")

DEFAULT_TRAIL_ICON = "📚"
DEFAULT_TRAIL_COLOR = "#6366f1"


class CamelModel(BaseModel):
    """Snake_case attributes, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class ChoiceItem(CamelModel):
    id: str
    text: str


class MatchingData(CamelModel):
    left_label: str | None = None
    right_label: str | None = None
    left_items: list[ChoiceItem]
    right_items: list[ChoiceItem]
    correct_pairs: dict[str, str]


class OrderingData(CamelModel):
    items: list[ChoiceItem]
    correct_order: list[str]


class CaseOption(CamelModel):
    id: str
    text: str
    is_correct: bool = False
    explanation: str | None = None


class CaseAnalysisData(CamelModel):
    case_content: str = ""
    case_label: str | None = None
    options: list[CaseOption]
    min_correct_required: int = Field(default=1, ge=1)


QuestionData = Union[MatchingData, OrderingData, CaseAnalysisData]


class ParsedQuestion(CamelModel):
    question: str
    type: QuestionType = "SINGLE_CHOICE"
    options: list[str] = Field(default_factory=list)
    correct_answer: int = 0
    data: QuestionData | None = None
    explanation: str | None = None


class ParsedModule(CamelModel):
    title: str
    slug: str
    type: ModuleType = "THEORY"
    points: int = 50
    description: str = ""
    content: str = ""
    questions: list[ParsedQuestion] = Field(default_factory=list)
    level: str | None = None
    duration: str | None = None
    requires_submission: bool | None = None


class ParsedTrail(CamelModel):
    title: str
    slug: str
    subtitle: str = ""
    description: str = ""
    icon: str = DEFAULT_TRAIL_ICON
    color: str = DEFAULT_TRAIL_COLOR
    modules: list[ParsedModule] = Field(default_factory=list)


class ConfidenceCriterion(CamelModel):
    name: str
    description: str
    score: float
    max_score: float
    met: bool


class ConfidenceDetails(CamelModel):
    total_score: float
    max_possible_score: float
    percentage: float
    criteria: list[ConfidenceCriterion] = Field(default_factory=list)


class ParseResult(CamelModel):
    success: bool
    trails: list[ParsedTrail] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    parse_method: ParseMethod = "code"
    confidence_details: ConfidenceDetails | None = None

    def module_count(self) -> int:
        return sum(len(trail.modules) for trail in self.trails)


class ImportResult(ParseResult):
    detected_format: str | None = None
    structure_confidence: float | None = None


class TrailImportError(Exception):
    """Raised for caller mistakes such as an unknown sample format."""


def failed_result(error: str, *, parse_method: ParseMethod = "code", warnings: list[str] | None = None) -> ParseResult:
    return ParseResult(success=False, errors=[error], warnings=list(warnings or []), parse_method=parse_method)


def validate_parse_result_payload(payload: dict[str, Any]) -> dict[str, Any]:
    """Validate a wire-shaped result payload and return it normalized."""

    return ParseResult.model_validate(payload).to_dict()


def parse_result_json_schema() -> dict[str, Any]:
    """Expose JSON schema for tests and tooling."""

    return ParseResult.model_json_schema(by_alias=True)
