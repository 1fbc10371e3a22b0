"""Shared test fixtures for the document processing test suite."""

import io
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from docpipe.context import ContextEngine
from docpipe.models import BoundingBox, OCRResult, TextBlock

RECEIPT_TEXT = "RECEIPT\nTotal: $12.50\nTax: $1.00\nCash"

STORE_RECEIPT_TEXT = """CORNER CAFE
123 Main Street
03/15/2024
Coffee 3.50
Bagel 2.25
Orange Juice 4.00
Subtotal: $9.75
Tax: $0.80
Total: $10.55
Paid by Visa
Thank you for visiting"""

INVOICE_TEXT = """ACME Corporation
Invoice Number: INV-2024-001
Invoice Date: 01/15/2024
Due Date: 02/14/2024

Bill To:
Globex Industries
42 Market Street
Springfield, IL 62701

Description    Qty    Price    Amount
Web Development    5    $100.00    $500.00
Hosting    1    $50.00    $50.00
Subtotal: $550.00
Tax: $44.00
Total: $594.00
Payment Terms: Net 30 days"""

ID_CARD_TEXT = """STATE IDENTIFICATION CARD
Name: John Michael Smith
ID Number: D1234567
Date of Birth: 05/12/1985
Sex: M
Issued: 01/10/2020
Expires: 01/10/2099
Hologram
Address: 123 Main Street
Springfield, IL 62701"""

MRZ_LINE1 = "P<UTOERIKSSON<<ANNA<MARIA<<<<<<<<<<<<<<<<<<<"
MRZ_LINE2 = "L898902C36UTO7408122F1204159ZE184226B<<<<<10"


def make_block(
    text: str,
    x: int = 10,
    y: int = 10,
    width: int = 200,
    height: int = 20,
    confidence: float = 0.9,
) -> TextBlock:
    """Create a test TextBlock with defaults."""
    return TextBlock(
        text=text,
        confidence=confidence,
        bounding_box=BoundingBox(x=x, y=y, width=width, height=height),
    )


def make_ocr(
    text: str,
    confidence: float = 0.9,
    with_blocks: bool = True,
) -> OCRResult:
    """Create an OCRResult with one block per non-empty line, stacked vertically."""
    blocks: tuple[TextBlock, ...] = ()
    if with_blocks:
        lines = [line for line in text.split("\n") if line.strip()]
        blocks = tuple(
            make_block(line, y=10 + i * 30, confidence=confidence)
            for i, line in enumerate(lines)
        )
    return OCRResult(
        text=text,
        blocks=blocks,
        confidence=confidence,
        processing_time_ms=12.0,
        engine="test",
    )


@pytest.fixture
def engine() -> ContextEngine:
    """Rule-based context engine."""
    return ContextEngine()


@pytest.fixture
def sample_image() -> np.ndarray:
    """Create a simple synthetic grayscale test image."""
    image = np.zeros((200, 300), dtype=np.uint8)
    image[50:150, 50:250] = 255
    return image


@pytest.fixture
def sample_color_image() -> np.ndarray:
    """Create a simple synthetic RGB test image."""
    image = np.zeros((200, 300, 3), dtype=np.uint8)
    image[50:150, 50:250] = (255, 255, 255)
    return image


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def config_dir(project_root: Path) -> Path:
    """Return the configs directory path."""
    return project_root / "configs"


class StaticOCR:
    """OCR provider that returns a fixed result for any image."""

    name = "static"

    def __init__(self, result: OCRResult) -> None:
        self.result = result
        self.calls = 0

    def initialize(self) -> None:
        pass

    def extract_text(self, image_ref: object) -> OCRResult:
        self.calls += 1
        return self.result


class FailingOCR:
    """OCR provider whose extraction always fails."""

    name = "failing"

    def __init__(self, fail_initialize: bool = False) -> None:
        self.fail_initialize = fail_initialize

    def initialize(self) -> None:
        if self.fail_initialize:
            raise RuntimeError("engine missing")

    def extract_text(self, image_ref: object) -> OCRResult:
        raise RuntimeError("OCR crashed")


def png_bytes(height: int = 100, width: int = 200) -> bytes:
    """Encode a small synthetic RGB image as PNG."""
    image = np.zeros((height, width, 3), dtype=np.uint8)
    image[20:80, 20:180] = (255, 255, 255)
    buffer = io.BytesIO()
    Image.fromarray(image).save(buffer, format="PNG")
    return buffer.getvalue()
