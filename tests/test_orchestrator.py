"""Tests for the hybrid document processing pipeline."""

from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from docpipe.errors import InitializationError, PipelineStageError, PreprocessingError
from docpipe.models import DocumentType
from docpipe.ocr import TesseractProvider
from docpipe.pipeline import HybridDocumentProcessor, build_processor
from docpipe.pipeline.orchestrator import basic_classify, error_message
from docpipe.preprocessing import ImagePreprocessor
from docpipe.utils.config import AppConfig, ProcessingOptions

from conftest import (
    INVOICE_TEXT,
    RECEIPT_TEXT,
    STORE_RECEIPT_TEXT,
    FailingOCR,
    StaticOCR,
    make_ocr,
)


def _processor(text: str = RECEIPT_TEXT, **kwargs: object) -> HybridDocumentProcessor:
    return HybridDocumentProcessor(StaticOCR(make_ocr(text)), **kwargs)


class TestProcessDocument:
    """Tests for the end-to-end pipeline with a fixed OCR result."""

    def test_receipt(self) -> None:
        result = _processor(STORE_RECEIPT_TEXT).process_document(b"image")
        assert result.failed is False
        assert result.contextual_result.document_type == DocumentType.RECEIPT
        assert result.structured_data.kind == "receipt"
        assert result.structured_data.totals.total == 10.55
        assert result.validation is not None
        assert result.validation.is_valid is True
        assert result.metadata.degraded_stages == ()

    def test_invoice(self) -> None:
        result = _processor(INVOICE_TEXT).process_document(b"image")
        assert result.contextual_result.document_type == DocumentType.INVOICE
        assert result.structured_data.invoice_number == "INV-2024-001"

    def test_stages_recorded_in_order(self) -> None:
        stages = _processor().process_document(b"image").metadata.processing_stages
        assert stages[0] == "Starting OCR extraction"
        assert stages[1] == "OCR completed with 0.90 confidence"
        assert "Starting context understanding" in stages
        assert "Structured data extraction completed" in stages
        assert stages[-1].startswith("Total processing time:")

    def test_unknown_document(self) -> None:
        result = _processor("xyz abc 123").process_document(b"image")
        assert result.contextual_result.document_type == DocumentType.UNKNOWN
        assert result.contextual_result.confidence == 0.3
        assert result.structured_data.kind == "generic"

    def test_initializes_lazily(self) -> None:
        processor = _processor()
        assert processor.initialized is False
        processor.process_document(b"image")
        assert processor.initialized is True
        assert processor.registry.initialized is True

    def test_low_ocr_confidence_warning(self) -> None:
        processor = HybridDocumentProcessor(StaticOCR(make_ocr(RECEIPT_TEXT, 0.4)))
        result = processor.process_document(b"image")
        assert "Low OCR confidence: 0.40" in result.metadata.warnings

    def test_time_limit_warning(self) -> None:
        options = ProcessingOptions(max_processing_time_ms=0)
        result = _processor().process_document(b"image", options)
        assert any(
            w.startswith("Processing exceeded time limit")
            for w in result.metadata.warnings
        )

    def test_quality_metrics_attached(self) -> None:
        metrics = _processor(STORE_RECEIPT_TEXT).process_document(b"image").quality_metrics
        assert 0.0 < metrics.confidence <= 1.0
        assert len(metrics.checks) == 14


class TestOptionalStages:
    """Tests for disabling context understanding and extraction."""

    def test_context_disabled_uses_basic_detection(self) -> None:
        options = ProcessingOptions(enable_context_understanding=False)
        result = _processor().process_document(b"image", options)
        assert result.contextual_result.backend == "basic"
        assert result.contextual_result.document_type == DocumentType.RECEIPT
        assert result.contextual_result.confidence == 0.6
        assert "Used basic document type detection" in result.metadata.processing_stages

    def test_extraction_disabled_uses_generic_record(self) -> None:
        options = ProcessingOptions(enable_structured_extraction=False)
        result = _processor().process_document(b"image", options)
        assert result.structured_data.kind == "generic"
        assert result.structured_data.title == "receipt"
        assert result.validation is None
        assert "Used generic data structure" in result.metadata.processing_stages


class TestDegradation:
    """Tests for stage fallbacks and the error envelope."""

    def test_ocr_failure_returns_error_envelope(self) -> None:
        result = HybridDocumentProcessor(FailingOCR()).process_document(b"image")
        assert result.failed is True
        assert result.metadata.image_hash == "error"
        assert result.quality_metrics.confidence == 0.0
        assert result.quality_metrics.warnings == ("Processing error: OCR crashed",)
        assert result.structured_data.title == "Processing Failed"
        assert result.structured_data.metadata == {"error": "OCR crashed"}
        assert result.metadata.processing_stages[-1] == "Error: OCR crashed"

    def test_extract_text_wraps_provider_errors(self) -> None:
        processor = HybridDocumentProcessor(FailingOCR())
        with pytest.raises(PipelineStageError) as excinfo:
            processor.extract_text(b"image")
        assert excinfo.value.stage == "ocr"
        assert excinfo.value.message == "OCR crashed"

    def test_ocr_initialization_failure(self) -> None:
        processor = HybridDocumentProcessor(FailingOCR(fail_initialize=True))
        with pytest.raises(InitializationError, match="engine missing"):
            processor.initialize()
        assert processor.process_document(b"image").failed is True

    def test_context_failure_degrades(self) -> None:
        processor = _processor()
        with patch.object(
            processor.context_engine, "analyze", side_effect=RuntimeError("ctx down")
        ):
            result = processor.process_document(b"image")
        assert result.failed is False
        assert result.metadata.degraded_stages == ("context",)
        assert result.contextual_result.backend == "basic"

    def test_extraction_failure_degrades(self) -> None:
        processor = _processor()
        with patch.object(
            processor, "select_extractor", side_effect=RuntimeError("no strategy")
        ):
            result = processor.process_document(b"image")
        assert result.metadata.degraded_stages == ("extraction",)
        assert result.structured_data.kind == "generic"
        assert result.validation is None

    def test_preprocessing_failure_degrades(self) -> None:
        preprocessor = MagicMock(spec=ImagePreprocessor)
        preprocessor.preprocess_image.side_effect = PreprocessingError("bad image")
        processor = _processor(preprocessor=preprocessor)
        result = processor.process_document(b"image")
        assert result.failed is False
        assert result.metadata.image_hash == "unknown"
        assert result.metadata.degraded_stages == ("preprocessing",)

    def test_preprocessing_supplies_hash(self, sample_color_image: np.ndarray) -> None:
        processor = _processor(preprocessor=ImagePreprocessor())
        first = processor.process_document(sample_color_image)
        second = processor.process_document(sample_color_image)
        assert len(first.metadata.image_hash) == 64
        assert first.metadata.image_hash == second.metadata.image_hash
        assert processor.preprocessor.cache_size() == 1
        processor.clear_cache()
        assert processor.preprocessor.cache_size() == 0


class TestProcessOCRResult:
    """Tests for re-running the post-OCR stages."""

    def test_idempotent(self) -> None:
        processor = _processor()
        ocr = make_ocr(STORE_RECEIPT_TEXT)
        first = processor.process_ocr_result(ocr)
        second = processor.process_ocr_result(ocr)
        assert first.contextual_result == second.contextual_result
        assert first.structured_data == second.structured_data
        assert first.quality_metrics == second.quality_metrics

    def test_does_not_call_ocr(self) -> None:
        provider = StaticOCR(make_ocr(RECEIPT_TEXT))
        processor = HybridDocumentProcessor(provider)
        result = processor.process_ocr_result(make_ocr(INVOICE_TEXT))
        assert provider.calls == 0
        assert result.metadata.processing_stages[0] == "Using provided OCR result"
        assert result.structured_data.kind == "invoice"


class TestProcessorIntrospection:
    """Tests for stats, configuration validation and extractor comparison."""

    def test_validate_configuration(self) -> None:
        processor = _processor()
        report = processor.validate_configuration()
        assert report["is_valid"] is False
        assert "Processor not initialized" in report["issues"]

        processor.initialize()
        assert processor.validate_configuration() == {"is_valid": True, "issues": []}

    def test_invalid_options_reported(self) -> None:
        processor = _processor(options=ProcessingOptions(max_processing_time_ms=0))
        processor.initialize()
        issues = processor.validate_configuration()["issues"]
        assert issues == ["Maximum processing time must be positive"]

    def test_processing_stats(self) -> None:
        processor = _processor()
        processor.initialize()
        stats = processor.processing_stats()
        assert stats["initialized"] is True
        assert stats["ocr_engines"] == ["static"]
        assert stats["context_backend"] == "rules"
        assert "receipt" in stats["supported_document_types"]
        assert stats["preprocessing_cache"] == 0

    def test_compare_extractors(self) -> None:
        processor = _processor()
        context = processor.understand_context(make_ocr(INVOICE_TEXT))
        comparison = processor.compare_extractors(context)
        assert comparison.primary_result.kind == "invoice"
        assert comparison.switch_recommended is False


class TestHelpers:
    """Tests for module-level helpers."""

    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("Your total is 5", (DocumentType.RECEIPT, 0.6)),
            ("Bill To: Globex", (DocumentType.INVOICE, 0.6)),
            ("Nationality: Utopian", (DocumentType.PASSPORT, 0.7)),
            ("Driver License", (DocumentType.DRIVERS_LICENSE, 0.7)),
            ("Driver only", (DocumentType.UNKNOWN, 0.5)),
        ],
    )
    def test_basic_classify(
        self, text: str, expected: tuple[DocumentType, float]
    ) -> None:
        assert basic_classify(text) == expected

    def test_error_message(self) -> None:
        assert error_message(PreprocessingError("bad", {"a": 1})) == "bad"
        assert error_message(ValueError()) == "ValueError"

    def test_build_processor(self) -> None:
        processor = build_processor(AppConfig())
        assert isinstance(processor.ocr_provider, TesseractProvider)
        assert isinstance(processor.preprocessor, ImagePreprocessor)
        assert processor.context_engine.backend is None
        assert processor.initialized is False
