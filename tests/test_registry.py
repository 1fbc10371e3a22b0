"""Tests for the extractor registry and extractor re-selection."""

from dataclasses import replace
from unittest.mock import patch

from docpipe.context import ContextEngine
from docpipe.extraction import (
    ExtractorRegistry,
    GenericExtractor,
    IDDocumentExtractor,
    InvoiceExtractor,
    ReceiptExtractor,
    estimate_fit,
)
from docpipe.models import ContextualResult, DocumentType, ValidationResult

from conftest import STORE_RECEIPT_TEXT, make_ocr

INVOICE_CUES = "Invoice\nBill To: Globex\nDue Date: 01/02/2024"


def _context(
    text: str, document_type: DocumentType, confidence: float
) -> ContextualResult:
    result = ContextEngine().understand_context(make_ocr(text))
    return replace(result, document_type=document_type, confidence=confidence)


class TestRegistration:
    """Tests for registry setup and lookup."""

    def setup_method(self) -> None:
        self.registry = ExtractorRegistry()
        self.registry.initialize()

    def test_uninitialized_registry_uses_generic(self) -> None:
        registry = ExtractorRegistry()
        assert registry.supported_types() == []
        assert registry.get_extractor(DocumentType.RECEIPT) is registry.generic

    def test_registered_types(self) -> None:
        supported = self.registry.supported_types()
        assert len(supported) == 13
        assert DocumentType.UNKNOWN not in supported
        assert self.registry.has_extractor(DocumentType.CONTRACT)

    def test_strategy_lookup(self) -> None:
        get = self.registry.get_extractor
        assert isinstance(get(DocumentType.RECEIPT), ReceiptExtractor)
        assert isinstance(get(DocumentType.INVOICE), InvoiceExtractor)
        assert isinstance(
            self.registry.get_extractor(DocumentType.ID_CARD), IDDocumentExtractor
        )

    def test_license_shares_id_extractor(self) -> None:
        assert self.registry.get_extractor(
            DocumentType.DRIVERS_LICENSE
        ) is self.registry.get_extractor(DocumentType.ID_CARD)

    def test_unknown_falls_back_to_generic(self) -> None:
        assert isinstance(
            self.registry.get_extractor(DocumentType.UNKNOWN), GenericExtractor
        )

    def test_initialize_is_idempotent(self) -> None:
        receipt = self.registry.get_extractor(DocumentType.RECEIPT)
        self.registry.initialize()
        assert self.registry.get_extractor(DocumentType.RECEIPT) is receipt
        assert receipt.initialized is True

    def test_stats(self) -> None:
        stats = self.registry.extraction_stats()
        assert stats["total_extractors"] == 13
        assert stats["initialized"] is True
        assert stats["strategies"] == [
            "generic",
            "id_document",
            "invoice",
            "passport",
            "receipt",
        ]

    def test_validate_extractors(self) -> None:
        report = self.registry.validate_extractors()
        assert report["failing"] == []
        assert len(report["working"]) == 13

        self.registry.register(DocumentType.CONTRACT, ReceiptExtractor())
        report = self.registry.validate_extractors()
        assert report["failing"] == ["contract"]
        assert report["details"]["contract"] == "Cannot handle document type"


class TestReselection:
    """Tests for get_best_extractor."""

    def setup_method(self) -> None:
        self.registry = ExtractorRegistry()
        self.registry.initialize()

    def test_estimate_fit(self) -> None:
        context = _context(INVOICE_CUES, DocumentType.UNKNOWN, 0.3)
        assert estimate_fit(context, DocumentType.INVOICE) >= 0.7
        assert estimate_fit(context, DocumentType.UNKNOWN) == 0.0

    def test_confident_classification_is_kept(self) -> None:
        context = _context(INVOICE_CUES, DocumentType.INVOICE, 0.9)
        extractor, confidence = self.registry.get_best_extractor(context)
        assert isinstance(extractor, InvoiceExtractor)
        assert confidence == 0.9

    def test_low_confidence_reselects(self) -> None:
        context = _context(INVOICE_CUES, DocumentType.UNKNOWN, 0.3)
        extractor, confidence = self.registry.get_best_extractor(context)
        assert isinstance(extractor, InvoiceExtractor)
        assert confidence >= 0.7

    def test_no_better_candidate(self) -> None:
        context = _context("xyz abc", DocumentType.UNKNOWN, 0.3)
        extractor, confidence = self.registry.get_best_extractor(context)
        assert extractor is self.registry.generic
        assert confidence == 0.3


class TestMultipleExtractors:
    """Tests for extract_with_multiple_extractors."""

    def setup_method(self) -> None:
        self.registry = ExtractorRegistry()
        self.registry.initialize()

    def test_confident_primary_has_no_alternatives(self) -> None:
        context = _context(INVOICE_CUES, DocumentType.INVOICE, 0.9)
        result = self.registry.extract_with_multiple_extractors(context)
        assert result.primary_result.kind == "invoice"
        assert result.alternative_results == ()
        assert result.switch_recommended is False
        assert result.recommendation == "Primary extractor is suitable"

    def test_recommends_switch(self) -> None:
        context = _context(STORE_RECEIPT_TEXT, DocumentType.UNKNOWN, 0.3)
        weak = ValidationResult(is_valid=True, confidence=0.2)
        with patch.object(self.registry.generic, "validate", return_value=weak):
            result = self.registry.extract_with_multiple_extractors(context)

        assert result.primary_result.kind == "generic"
        assert [name for name, _, _ in result.alternative_results] == [
            "receipt",
            "invoice",
        ]
        assert result.switch_recommended is True
        assert result.recommended_extractor == "receipt"
        assert result.recommendation.startswith("Alternative extractor (receipt)")

    def test_failing_alternative_is_skipped(self) -> None:
        context = _context(STORE_RECEIPT_TEXT, DocumentType.UNKNOWN, 0.3)
        invoice = self.registry.get_extractor(DocumentType.INVOICE)
        with patch.object(invoice, "extract", side_effect=RuntimeError("boom")):
            result = self.registry.extract_with_multiple_extractors(context)
        assert [name for name, _, _ in result.alternative_results] == ["receipt"]
