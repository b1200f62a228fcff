"""Concurrent multi-stage call recording pipeline."""

import importlib.metadata
import logging

from callqa_batch.config import FrozenConfig, resolve_config
from callqa_batch.core.criteria import (
    CriteriaConfig,
    EvaluationCriterion,
    InsightCategory,
    InsightField,
    InsightFieldType,
)
from callqa_batch.core.exceptions import (
    BusinessRuleError,
    CallQAError,
    ConfigurationError,
    InvalidTransitionError,
    RetryExhaustedError,
    TransportError,
    ValidationError,
)
from callqa_batch.core.lifecycle import CallLifecycle, CallState
from callqa_batch.core.types import (
    ChatMessage,
    Evaluation,
    Failure,
    ItemOutcome,
    ItemSnapshot,
    Result,
    SentimentLabel,
    SentimentResult,
    StageResults,
    Success,
    TranscriptionOptions,
    TranscriptionResult,
    TranscriptPhrase,
    WorkItem,
)
from callqa_batch.frontdoor import build_executor, run_batch
from callqa_batch.pipeline.executor import StageExecutor
from callqa_batch.pipeline.invoker import ResilientInvoker
from callqa_batch.pipeline.progress import (
    LoggingProgressReporter,
    ProgressReporter,
    RecordingProgressReporter,
)
from callqa_batch.pipeline.scheduler import BatchScheduler
from callqa_batch.services import CompletionService, TranscribeService
from callqa_batch.telemetry import TelemetryContext, TelemetryReporter

# Version handling
try:
    __version__ = importlib.metadata.version("callqa-batch")
except importlib.metadata.PackageNotFoundError:
    __version__ = "development"

# Set up a null handler for the library's root logger.
logging.getLogger(__name__).addHandler(logging.NullHandler())

# Public API
__all__ = [  # noqa: RUF022
    # Entry points
    "run_batch",
    "build_executor",
    "BatchScheduler",
    "StageExecutor",
    "ResilientInvoker",
    # Configuration
    "FrozenConfig",
    "resolve_config",
    "CriteriaConfig",
    "EvaluationCriterion",
    "InsightCategory",
    "InsightField",
    "InsightFieldType",
    # Services
    "TranscribeService",
    "CompletionService",
    # Progress and telemetry
    "ProgressReporter",
    "LoggingProgressReporter",
    "RecordingProgressReporter",
    "TelemetryContext",
    "TelemetryReporter",
    # Core types
    "CallLifecycle",
    "CallState",
    "ChatMessage",
    "Evaluation",
    "ItemOutcome",
    "ItemSnapshot",
    "SentimentLabel",
    "SentimentResult",
    "StageResults",
    "TranscriptPhrase",
    "TranscriptionOptions",
    "TranscriptionResult",
    "WorkItem",
    "Result",
    "Success",
    "Failure",
    # Exceptions
    "CallQAError",
    "TransportError",
    "ValidationError",
    "ConfigurationError",
    "BusinessRuleError",
    "RetryExhaustedError",
    "InvalidTransitionError",
]
