"""Pydantic response schemas for the FastAPI endpoints."""

from dataclasses import asdict
from datetime import date
from typing import Any

from pydantic import BaseModel

from docpipe.models import HybridProcessingResult, StructuredData


def _jsonable(value: Any) -> Any:
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return value


def structured_to_dict(data: StructuredData) -> dict[str, Any]:
    """Plain JSON-compatible form of a structured record, ``kind`` included."""
    return _jsonable(asdict(data))


class CheckResponse(BaseModel):
    """Outcome of one quality check."""

    name: str
    passed: bool
    confidence: float
    message: str
    suggestion: str | None = None


class QualityResponse(BaseModel):
    """Composite quality scores for a processed document."""

    ocr_quality: float
    completeness: float
    consistency: float
    confidence: float
    warnings: list[str]
    suggestions: list[str]
    checks: list[CheckResponse]


class ValidationResponse(BaseModel):
    """Extractor self-validation."""

    is_valid: bool
    confidence: float
    errors: list[str]
    warnings: list[str]
    suggestions: list[str]


class MetadataResponse(BaseModel):
    processing_time_ms: float
    image_hash: str
    timestamp: str
    processing_stages: list[str]
    warnings: list[str]
    degraded_stages: list[str]


class ProcessResponse(BaseModel):
    """Response schema for a document processing request."""

    success: bool
    document_type: str
    classification_confidence: float
    raw_text: str
    ocr_confidence: float
    entity_count: int
    structured_data: dict[str, Any]
    validation: ValidationResponse | None = None
    quality: QualityResponse
    metadata: MetadataResponse

    @classmethod
    def from_result(cls, result: HybridProcessingResult) -> "ProcessResponse":
        metrics = result.quality_metrics
        validation = result.validation
        return cls(
            success=not result.failed,
            document_type=str(result.contextual_result.document_type),
            classification_confidence=result.contextual_result.confidence,
            raw_text=result.ocr_result.text,
            ocr_confidence=result.ocr_result.confidence,
            entity_count=len(result.contextual_result.context.entities),
            structured_data=structured_to_dict(result.structured_data),
            validation=(
                ValidationResponse(**_jsonable(asdict(validation)))
                if validation is not None
                else None
            ),
            quality=QualityResponse(
                ocr_quality=metrics.ocr_quality,
                completeness=metrics.completeness,
                consistency=metrics.consistency,
                confidence=metrics.confidence,
                warnings=list(metrics.warnings),
                suggestions=list(metrics.suggestions),
                checks=[CheckResponse(**asdict(check)) for check in metrics.checks],
            ),
            metadata=MetadataResponse(**_jsonable(asdict(result.metadata))),
        )


class DocumentTypeInfo(BaseModel):
    """A document type and the strategy that handles it."""

    document_type: str
    extractor: str


class DocumentTypesResponse(BaseModel):
    document_types: list[DocumentTypeInfo]


class HealthResponse(BaseModel):
    """Response schema for the health check endpoint."""

    status: str
    version: str
    tesseract_available: bool
    gpu_available: bool
    issues: list[str] = []
