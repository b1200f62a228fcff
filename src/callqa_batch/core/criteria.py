"""Evaluation criteria and insight category configuration.

A ``CriteriaConfig`` is passed explicitly into the evaluation stage so each
batch run scores against a known, immutable rule set. Insight categories
declare their output fields with a small type vocabulary
(``string|number|boolean|enum|tags``) and model output is coerced against it.
"""

from __future__ import annotations

from enum import Enum
import math
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from callqa_batch.core.types import InsightValue


class ScoringStandard(BaseModel):
    """Points awarded for each outcome of a criterion."""

    model_config = ConfigDict(frozen=True)

    passed: float = Field(ge=0, description="Points when the criterion is met.")
    failed: float = Field(default=0, ge=0)
    partial: float | None = Field(default=None, ge=0)


class EvaluationCriterion(BaseModel):
    """A single quality rule a call is scored against."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: int = Field(ge=1)
    type: Literal["Must Do", "Must Not Do"] = "Must Do"
    name: str = Field(min_length=1)
    definition: str = ""
    evaluation_criteria: str = Field(default="", alias="evaluationCriteria")
    scoring_standard: ScoringStandard = Field(alias="scoringStandard")
    examples: tuple[str, ...] = ()

    @property
    def max_points(self) -> float:
        return self.scoring_standard.passed


class InsightFieldType(str, Enum):
    """Declared value type of an insight output field."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ENUM = "enum"
    TAGS = "tags"


class InsightField(BaseModel):
    """One typed output field of an insight category."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    type: InsightFieldType = InsightFieldType.STRING
    description: str = ""
    options: tuple[str, ...] = ()

    @model_validator(mode="after")
    def _enum_needs_options(self) -> InsightField:
        if self.type is InsightFieldType.ENUM and not self.options:
            raise ValueError(f"enum field '{self.name}' requires options")
        return self


class InsightCategory(BaseModel):
    """A configurable block of structured insights produced during evaluation."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(min_length=1)
    name: str
    description: str = ""
    output_fields: tuple[InsightField, ...] = Field(min_length=1, alias="fields")


class CriteriaConfig(BaseModel):
    """The complete rule set handed to the evaluation stage."""

    model_config = ConfigDict(frozen=True)

    criteria: tuple[EvaluationCriterion, ...] = ()
    insight_categories: tuple[InsightCategory, ...] = ()

    @field_validator("criteria")
    @classmethod
    def _unique_ids(
        cls, v: tuple[EvaluationCriterion, ...]
    ) -> tuple[EvaluationCriterion, ...]:
        ids = [c.id for c in v]
        if len(ids) != len(set(ids)):
            raise ValueError("criterion ids must be unique")
        return v

    @property
    def max_score(self) -> float:
        return sum(c.max_points for c in self.criteria)

    @property
    def criterion_ids(self) -> frozenset[int]:
        return frozenset(c.id for c in self.criteria)

    def get(self, criterion_id: int) -> EvaluationCriterion | None:
        return next((c for c in self.criteria if c.id == criterion_id), None)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CriteriaConfig:
        """Build a config from a JSON-style mapping.

        Accepts ``criteria`` (or ``evaluationRules``) and
        ``insightCategories`` (or ``insight_categories``).
        """
        criteria = data.get("criteria", data.get("evaluationRules", ()))
        categories = data.get(
            "insight_categories", data.get("insightCategories", ())
        )
        return cls.model_validate(
            {"criteria": criteria, "insight_categories": categories}
        )

    @classmethod
    def default(cls) -> CriteriaConfig:
        """Debt-collection rule set used when the caller supplies none."""
        return cls.from_dict({"criteria": _DEFAULT_CRITERIA})


def coerce_insight_value(field: InsightField, value: Any) -> InsightValue:
    """Validate and normalize a model-produced value against its declared type.

    Raises:
        ValueError: If the value cannot represent the declared type.
    """
    match field.type:
        case InsightFieldType.STRING:
            if not isinstance(value, str):
                raise ValueError(f"'{field.name}' must be a string")
            return value
        case InsightFieldType.NUMBER:
            if isinstance(value, bool) or not isinstance(value, int | float):
                raise ValueError(f"'{field.name}' must be a number")
            if not math.isfinite(value):
                raise ValueError(f"'{field.name}' must be finite")
            return float(value)
        case InsightFieldType.BOOLEAN:
            if not isinstance(value, bool):
                raise ValueError(f"'{field.name}' must be true or false")
            return value
        case InsightFieldType.ENUM:
            if not isinstance(value, str):
                raise ValueError(f"'{field.name}' must be one of {list(field.options)}")
            for option in field.options:
                if option.lower() == value.strip().lower():
                    return option
            raise ValueError(f"'{field.name}' must be one of {list(field.options)}")
        case InsightFieldType.TAGS:
            if not isinstance(value, list | tuple) or not all(
                isinstance(v, str) for v in value
            ):
                raise ValueError(f"'{field.name}' must be a list of strings")
            return tuple(v.strip() for v in value if v.strip())
    raise ValueError(f"unsupported field type {field.type!r}")  # pragma: no cover


_DEFAULT_CRITERIA: list[dict[str, Any]] = [
    {
        "id": 1,
        "type": "Must Do",
        "name": "Proper Opening",
        "definition": "Agent must properly identify themselves and the company within the first 30 seconds",
        "evaluationCriteria": "Agent states name, company name, and purpose of call clearly",
        "scoringStandard": {"passed": 10, "failed": 0, "partial": 5},
        "examples": ["Hi, this is John from ABC Collections calling about your account"],
    },
    {
        "id": 2,
        "type": "Must Do",
        "name": "Mini-Miranda Disclosure",
        "definition": "Agent must provide the Mini-Miranda warning on every call",
        "evaluationCriteria": "Agent states this is an attempt to collect a debt and information will be used for that purpose",
        "scoringStandard": {"passed": 10, "failed": 0},
        "examples": [
            "This is an attempt to collect a debt and any information obtained will be used for that purpose"
        ],
    },
    {
        "id": 3,
        "type": "Must Do",
        "name": "Identity Verification",
        "definition": "Agent must verify they are speaking with the right party before discussing account details",
        "evaluationCriteria": "Agent verifies at least 2 pieces of identifying information",
        "scoringStandard": {"passed": 10, "failed": 0, "partial": 5},
        "examples": ["Can you please verify your date of birth and last four of your SSN?"],
    },
    {
        "id": 4,
        "type": "Must Do",
        "name": "Payment Options",
        "definition": "Agent must offer payment options or solutions",
        "evaluationCriteria": "Agent presents at least one way for the customer to resolve the debt",
        "scoringStandard": {"passed": 10, "failed": 0, "partial": 5},
        "examples": ["You can pay in full today, or we can set up a payment arrangement"],
    },
    {
        "id": 5,
        "type": "Must Not Do",
        "name": "No Harassment",
        "definition": "Agent must not use threatening, harassing, or abusive language",
        "evaluationCriteria": "No threats, profanity, or intimidating statements",
        "scoringStandard": {"passed": 10, "failed": 0},
        "examples": ['Avoid: "We will garnish your wages" or using raised voice'],
    },
]
