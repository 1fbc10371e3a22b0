"""Validation, quality and pipeline envelope records."""

from dataclasses import dataclass
from typing import Generic, TypeVar

from .documents import ContextualResult, OCRResult
from .structured import StructuredData

T = TypeVar("T")


@dataclass(frozen=True)
class ValidationResult:
    """Self-assessment returned by an extraction strategy."""

    is_valid: bool
    confidence: float
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    suggestions: tuple[str, ...] = ()


@dataclass(frozen=True)
class Check:
    """Outcome of a single named quality check."""

    name: str
    passed: bool
    confidence: float
    message: str
    suggestion: str | None = None


@dataclass(frozen=True)
class QualityMetrics:
    """Cross-stage quality assessment of a pipeline run."""

    ocr_quality: float
    completeness: float
    consistency: float
    confidence: float
    warnings: tuple[str, ...] = ()
    suggestions: tuple[str, ...] = ()
    checks: tuple[Check, ...] = ()


@dataclass(frozen=True)
class StageOutcome(Generic[T]):
    """Value produced by a stage, flagged when a fallback path produced it."""

    value: T
    fallback_used: bool = False
    error: str | None = None


@dataclass(frozen=True)
class ProcessingMetadata:
    processing_time_ms: float
    image_hash: str
    timestamp: str
    processing_stages: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    degraded_stages: tuple[str, ...] = ()


@dataclass(frozen=True)
class HybridProcessingResult:
    """Final envelope handed to callers; produced even when processing fails."""

    ocr_result: OCRResult
    contextual_result: ContextualResult
    structured_data: StructuredData
    quality_metrics: QualityMetrics
    metadata: ProcessingMetadata
    validation: ValidationResult | None = None

    @property
    def failed(self) -> bool:
        return self.metadata.image_hash == "error"


@dataclass(frozen=True)
class MultiExtractionResult:
    """Primary extraction plus up to two alternatives and a recommendation."""

    primary_result: StructuredData
    primary_validation: ValidationResult
    alternative_results: tuple[tuple[str, StructuredData, ValidationResult], ...] = ()
    recommendation: str = ""
    switch_recommended: bool = False
    recommended_extractor: str | None = None
