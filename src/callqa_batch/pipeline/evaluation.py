"""Evaluation stage of the pipeline.

Scores a transcript against an explicit ``CriteriaConfig``. The model response
is validated at the invoker boundary: result shape through pydantic, then
criterion ids and insight values against the config. Rejected responses are
retried with a corrective instruction.
"""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field

from callqa_batch.core.criteria import CriteriaConfig, coerce_insight_value
from callqa_batch.core.exceptions import (
    BusinessRuleError,
    CallQAError,
    ConfigurationError,
)
from callqa_batch.core.types import (
    CriterionResult,
    Evaluation,
    Failure,
    InsightValue,
    Result,
    Success,
    WorkItem,
    clamp,
    round_half_up,
)
from callqa_batch.pipeline.base import BaseAsyncStage
from callqa_batch.pipeline.prompts import build_evaluation_messages, evaluation_shape

if TYPE_CHECKING:
    from collections.abc import Mapping

    from callqa_batch.pipeline.invoker import ResilientInvoker, RetryContext
    from callqa_batch.services import CompletionService

logger = logging.getLogger(__name__)

DEFAULT_FEEDBACK = "Evaluation completed."


class RawCriterionResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    criterion_id: int = Field(alias="criterionId")
    score: float = Field(allow_inf_nan=False)
    passed: bool | None = None
    evidence: str = ""
    reasoning: str = ""


class EvaluationResponse(BaseModel):
    """Evaluation response as returned by the model."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    results: list[RawCriterionResult] = Field(min_length=1)
    overall_feedback: str | None = Field(default=None, alias="overallFeedback")
    insights: dict[str, dict[str, Any]] = Field(default_factory=dict)


def check_response(config: CriteriaConfig, response: EvaluationResponse) -> list[str]:
    """Return the reasons ``response`` cannot be scored against ``config``."""
    issues: list[str] = []
    seen: set[int] = set()
    for result in response.results:
        if result.criterion_id not in config.criterion_ids:
            issues.append(f"results: unknown criterionId {result.criterion_id}")
        elif result.criterion_id in seen:
            issues.append(f"results: duplicate criterionId {result.criterion_id}")
        seen.add(result.criterion_id)

    for category in config.insight_categories:
        values = response.insights.get(category.id)
        if values is None:
            issues.append(f"insights.{category.id}: missing")
            continue
        for field in category.output_fields:
            if field.name not in values:
                issues.append(f"insights.{category.id}.{field.name}: missing")
                continue
            try:
                coerce_insight_value(field, values[field.name])
            except ValueError as e:
                issues.append(f"insights.{category.id}.{field.name}: {e}")
    return issues


def score_response(
    call_id: str, config: CriteriaConfig, response: EvaluationResponse
) -> Evaluation:
    """Turn a checked response into an ``Evaluation``.

    Scores are clamped to ``[0, criterion max]`` and ``passed`` means the
    clamped score reached the criterion's full points.
    """
    missing = config.criterion_ids - {r.criterion_id for r in response.results}
    if missing:
        logger.warning(
            "Evaluation of call %s has no result for criteria %s",
            call_id,
            sorted(missing),
        )

    results = []
    for raw in response.results:
        criterion = config.get(raw.criterion_id)
        if criterion is None:
            continue
        score = clamp(raw.score, 0.0, criterion.max_points)
        results.append(
            CriterionResult(
                criterion_id=raw.criterion_id,
                score=score,
                passed=score >= criterion.max_points,
                evidence=raw.evidence,
                reasoning=raw.reasoning,
            )
        )

    total = sum(r.score for r in results)
    max_score = config.max_score
    percentage = round_half_up(100 * total / max_score) if max_score > 0 else 0

    insights: dict[str, Mapping[str, InsightValue]] = {}
    for category in config.insight_categories:
        values = response.insights.get(category.id, {})
        insights[category.id] = MappingProxyType(
            {
                f.name: coerce_insight_value(f, values[f.name])
                for f in category.output_fields
                if f.name in values
            }
        )

    return Evaluation(
        call_id=call_id,
        total_score=total,
        max_score=max_score,
        percentage=percentage,
        results=tuple(results),
        overall_feedback=(response.overall_feedback or "").strip() or DEFAULT_FEEDBACK,
        insights=MappingProxyType(insights),
    )


class EvaluationStage(BaseAsyncStage[Evaluation, CallQAError]):
    """Scores a call transcript against the configured quality criteria."""

    name = "evaluation"

    def __init__(
        self,
        completion: CompletionService,
        invoker: ResilientInvoker,
        criteria: CriteriaConfig | None = None,
        *,
        max_retries: int | None = None,
    ) -> None:
        self._completion = completion
        self._invoker = invoker
        self.criteria = criteria if criteria is not None else CriteriaConfig.default()
        self._max_retries = max_retries

    async def handle(self, item: WorkItem) -> Result[Evaluation, CallQAError]:
        transcript = item.results.transcript
        if transcript is None or not transcript.strip():
            return Failure(
                BusinessRuleError(f"Call {item.id}: transcript is empty or invalid")
            )
        if not self.criteria.criteria:
            return Failure(ConfigurationError("No evaluation criteria configured"))

        config = self.criteria
        try:
            response = await self._invoker.call_model(
                self._request,
                EvaluationResponse,
                check=lambda r: check_response(config, r),
                messages=build_evaluation_messages(transcript, item.metadata, config),
                max_retries=self._max_retries,
                shape_hint=evaluation_shape(config),
                label=f"evaluate[{item.id}]",
            )
        except CallQAError as e:
            return Failure(e)

        evaluation = score_response(item.id, config, response)
        logger.info(
            "Evaluated call %s: %d%% (%g/%g points)",
            item.id,
            evaluation.percentage,
            evaluation.total_score,
            evaluation.max_score,
        )
        return Success(evaluation)

    async def _request(self, context: RetryContext) -> str:
        return await self._completion.complete(context.messages, expect_json=True)
