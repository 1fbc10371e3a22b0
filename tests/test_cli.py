"""Tests for the command-line interface and CSV export."""

import csv
import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from docpipe.api.app import app
from docpipe.cli import (
    _find_documents,
    _write_csv,
    extract_single,
    main,
    process_folder,
    quality_report,
)
from docpipe.pipeline import HybridDocumentProcessor
from docpipe.preprocessing import ImagePreprocessor

from conftest import STORE_RECEIPT_TEXT, FailingOCR, StaticOCR, make_ocr, png_bytes


def _make_test_image(path: Path) -> None:
    """Write a minimal test PNG image at the given path."""
    path.write_bytes(png_bytes())


def _make_processor(text: str = STORE_RECEIPT_TEXT) -> HybridDocumentProcessor:
    processor = HybridDocumentProcessor(
        StaticOCR(make_ocr(text)), preprocessor=ImagePreprocessor()
    )
    processor.initialize()
    return processor


def _read_csv(path: Path) -> list[dict[str, str]]:
    with open(path, newline="") as f:
        return list(csv.DictReader(f))


class TestFindDocuments:
    """Tests for discovering input images."""

    def test_supported_extensions(self, tmp_path: Path) -> None:
        for name in ("b.png", "a.jpg", "c.tiff", "notes.txt"):
            (tmp_path / name).write_bytes(b"x")
        found = [path.name for path in _find_documents(tmp_path)]
        assert found == ["a.jpg", "b.png", "c.tiff"]

    def test_empty_directory(self, tmp_path: Path) -> None:
        assert _find_documents(tmp_path) == []


class TestExtractSingle:
    """Tests for single-image extraction."""

    def test_json_ready_result(self, tmp_path: Path) -> None:
        image = tmp_path / "receipt.png"
        _make_test_image(image)
        result = extract_single(_make_processor(), image)

        assert result["filename"] == "receipt.png"
        assert result["document_type"] == "receipt"
        assert result["structured_data"]["kind"] == "receipt"
        json.dumps(result)

    def test_extraction_disabled(self, tmp_path: Path) -> None:
        image = tmp_path / "receipt.png"
        _make_test_image(image)
        result = extract_single(_make_processor(), image, use_extraction=False)
        assert result["structured_data"]["kind"] == "generic"


class TestProcessFolder:
    """Tests for batch processing to CSV."""

    def test_writes_one_row_per_image(self, tmp_path: Path) -> None:
        for name in ("one.png", "two.png"):
            _make_test_image(tmp_path / name)
        (tmp_path / "skip.txt").write_text("not an image")
        output = tmp_path / "out" / "results.csv"

        summary = process_folder(_make_processor(), tmp_path, output)

        assert summary == {"total": 2, "successful": 2, "failed": 0}
        rows = _read_csv(output)
        assert [row["filename"] for row in rows] == ["one.png", "two.png"]
        assert rows[0]["status"] == "success"
        assert rows[0]["document_type"] == "receipt"
        assert rows[0]["is_valid"] == "True"

    def test_failed_documents_recorded(self, tmp_path: Path) -> None:
        _make_test_image(tmp_path / "bad.png")
        output = tmp_path / "results.csv"
        summary = process_folder(HybridDocumentProcessor(FailingOCR()), tmp_path, output)

        assert summary["failed"] == 1
        row = _read_csv(output)[0]
        assert row["status"] == "failed"
        assert row["error"] == "OCR crashed"

    def test_empty_folder(self, tmp_path: Path) -> None:
        output = tmp_path / "results.csv"
        summary = process_folder(_make_processor(), tmp_path, output)
        assert summary == {"total": 0, "successful": 0, "failed": 0}
        assert not output.exists()

    def test_verbose_progress(self, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        _make_test_image(tmp_path / "one.png")
        process_folder(_make_processor(), tmp_path, tmp_path / "r.csv", verbose=True)
        out = capsys.readouterr().out
        assert "Processing [1/1]: one.png" in out
        assert "Batch Processing Complete" in out

    def test_write_csv_ignores_extra_fields(self, tmp_path: Path) -> None:
        output = tmp_path / "results.csv"
        _write_csv([{"filename": "a.png", "status": "success", "extra": 1}], output)
        rows = _read_csv(output)
        assert rows[0]["filename"] == "a.png"
        assert "extra" not in rows[0]


class TestQualityReport:
    """Tests for the report subcommand helper."""

    def test_report_with_recommendation(self, tmp_path: Path) -> None:
        image = tmp_path / "receipt.png"
        _make_test_image(image)
        report = quality_report(_make_processor(), image)
        assert "=== DOCUMENT PROCESSING QUALITY REPORT ===" in report
        assert "=== EXTRACTOR RECOMMENDATION ===" in report
        assert "Primary extractor is suitable" in report

    def test_failed_report_has_no_recommendation(self, tmp_path: Path) -> None:
        image = tmp_path / "receipt.png"
        _make_test_image(image)
        report = quality_report(HybridDocumentProcessor(FailingOCR()), image)
        assert "=== EXTRACTOR RECOMMENDATION ===" not in report
        assert "Processing error: OCR crashed" in report


class TestMain:
    """Tests for argument parsing and dispatch."""

    def test_no_command_prints_help(self) -> None:
        with pytest.raises(SystemExit) as excinfo:
            main([])
        assert excinfo.value.code == 0

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(SystemExit) as excinfo:
            main(["extract", str(tmp_path / "missing.png")])
        assert excinfo.value.code == 1

    def test_batch_requires_directory(self, tmp_path: Path) -> None:
        with pytest.raises(SystemExit) as excinfo:
            main(["batch", str(tmp_path / "nowhere")])
        assert excinfo.value.code == 1

    @patch("docpipe.cli._create_processor")
    def test_extract_prints_json(
        self, mock_create: MagicMock, tmp_path: Path, capsys: pytest.CaptureFixture
    ) -> None:
        mock_create.return_value = _make_processor()
        image = tmp_path / "receipt.png"
        _make_test_image(image)

        main(["extract", str(image)])

        data = json.loads(capsys.readouterr().out)
        assert data["filename"] == "receipt.png"
        assert data["document_type"] == "receipt"

    @patch("docpipe.cli._create_processor")
    def test_extract_to_file(self, mock_create: MagicMock, tmp_path: Path) -> None:
        mock_create.return_value = _make_processor()
        image = tmp_path / "receipt.png"
        _make_test_image(image)
        output = tmp_path / "out" / "result.json"

        main(["extract", str(image), "-o", str(output), "--no-context"])

        data = json.loads(output.read_text())
        assert data["classification_confidence"] == 0.6

    @patch("docpipe.cli._create_processor")
    def test_batch(self, mock_create: MagicMock, tmp_path: Path) -> None:
        mock_create.return_value = _make_processor()
        _make_test_image(tmp_path / "one.png")
        output = tmp_path / "results.csv"

        main(["batch", str(tmp_path), "-o", str(output)])

        assert len(_read_csv(output)) == 1

    @patch("docpipe.cli._create_processor")
    def test_report(
        self, mock_create: MagicMock, tmp_path: Path, capsys: pytest.CaptureFixture
    ) -> None:
        mock_create.return_value = _make_processor()
        image = tmp_path / "receipt.png"
        _make_test_image(image)

        main(["report", str(image)])

        assert "Overall Confidence:" in capsys.readouterr().out

    @patch("uvicorn.run")
    def test_serve(self, mock_run: MagicMock) -> None:
        main(["serve", "--host", "127.0.0.1", "--port", "9000"])
        mock_run.assert_called_once_with(app, host="127.0.0.1", port=9000)
