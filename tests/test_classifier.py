"""Tests for keyword-pattern document classification."""

import pytest

from docpipe.context import classify_document
from docpipe.context.classifier import confidence_for_score, score_document_types
from docpipe.models import DocumentType

from conftest import INVOICE_TEXT, RECEIPT_TEXT


class TestClassifyDocument:
    """Tests for classify_document."""

    def test_receipt(self) -> None:
        document_type, confidence = classify_document(RECEIPT_TEXT)
        assert document_type == DocumentType.RECEIPT
        assert confidence >= 0.6

    def test_invoice(self) -> None:
        document_type, _ = classify_document(INVOICE_TEXT)
        assert document_type == DocumentType.INVOICE

    def test_no_keywords_is_unknown(self) -> None:
        assert classify_document("xyz abc 123") == (DocumentType.UNKNOWN, 0.3)

    def test_empty_text_is_unknown(self) -> None:
        assert classify_document("") == (DocumentType.UNKNOWN, 0.3)

    def test_tie_goes_to_first_declared_type(self) -> None:
        # "date of birth" scores one point for both passport and ID card.
        document_type, confidence = classify_document("Date of Birth")
        assert document_type == DocumentType.PASSPORT
        assert confidence == pytest.approx(0.6)

    def test_case_insensitive(self) -> None:
        document_type, _ = classify_document("PASSPORT NATIONALITY")
        assert document_type == DocumentType.PASSPORT

    def test_drivers_license(self) -> None:
        text = "Driver's License\nClass C\nRestrictions: none"
        document_type, _ = classify_document(text)
        assert document_type == DocumentType.DRIVERS_LICENSE


class TestScoring:
    """Tests for score counting and the confidence scale."""

    def test_counts_every_match(self) -> None:
        scores = score_document_types("receipt receipt receipt")
        assert scores[DocumentType.RECEIPT] == 3

    def test_zero_scores_omitted(self) -> None:
        assert score_document_types("nothing here") == {}

    @pytest.mark.parametrize(
        ("score", "expected"),
        [(0, 0.3), (1, 0.6), (3, 0.8), (4, 0.9), (12, 0.9)],
    )
    def test_confidence_for_score(self, score: int, expected: float) -> None:
        assert confidence_for_score(score) == pytest.approx(expected)
