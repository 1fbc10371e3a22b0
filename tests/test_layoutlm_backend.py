"""Tests for the LayoutLM context backend (model loading mocked)."""

from unittest.mock import MagicMock, patch

import pytest

from docpipe.context.engine import ModelOutput
from docpipe.context.layoutlm_backend import LayoutLMBackend, normalize_boxes
from docpipe.models import BoundingBox, OCRResult, TextBlock


def _make_blocks() -> tuple[TextBlock, ...]:
    return (
        TextBlock("Coffee Shop", 0.9, BoundingBox(0, 0, 100, 50)),
        TextBlock("Total 5.00", 0.8, BoundingBox(100, 150, 100, 50)),
    )


class TestNormalizeBoxes:
    """Tests for word splitting and box scaling."""

    def test_scaled_to_page(self) -> None:
        words = normalize_boxes(_make_blocks())
        assert [w for w, _ in words] == ["Coffee", "Shop", "Total", "5.00"]
        assert words[0][1] == (0, 0, 500, 250)
        assert words[2][1] == (500, 750, 1000, 1000)

    def test_no_blocks(self) -> None:
        assert normalize_boxes(()) == []


class TestLayoutLMBackend:
    """Tests for LayoutLMBackend without downloading a model."""

    def test_explicit_device(self) -> None:
        backend = LayoutLMBackend(device="cpu")
        assert backend.device == "cpu"
        assert backend.name == "layoutlm"

    @patch("docpipe.context.layoutlm_backend.AutoTokenizer")
    def test_predict_without_blocks(self, mock_tokenizer: MagicMock) -> None:
        output = LayoutLMBackend(device="cpu").predict(OCRResult(text="plain text"))
        assert output == ModelOutput(document_type="unknown", confidence=0.3)
        mock_tokenizer.from_pretrained.assert_not_called()

    def test_aggregate_fields(self) -> None:
        tagged = [
            ("Coffee", 3, 0.9),
            ("Shop", 4, 0.7),
            ("on", 0, 0.99),
            ("Total", 5, 0.8),
            ("stray", 2, 0.5),
            ("5.00", 5, 0.6),
        ]
        fields = LayoutLMBackend._aggregate_fields(tagged)
        assert fields[0] == ("VENDOR", "Coffee Shop", pytest.approx(0.8))
        assert fields[1] == ("TOTAL", "Total", 0.8)
        assert fields[2] == ("TOTAL", "5.00", 0.6)

    def test_build_output_receipt(self) -> None:
        output = LayoutLMBackend._build_output(
            [("VENDOR", "Coffee Shop", 0.8), ("TOTAL", "5.00", 0.6)]
        )
        assert output.document_type == "receipt"
        assert output.confidence == pytest.approx(0.7)
        assert [(e.type, e.value) for e in output.entities] == [
            ("organization", "Coffee Shop"),
            ("total", "5.00"),
        ]

    def test_build_output_empty(self) -> None:
        output = LayoutLMBackend._build_output([])
        assert output.document_type == "unknown"
        assert output.confidence == 0.3
        assert output.entities == []
