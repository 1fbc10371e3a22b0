"""Tesseract OCR provider with block-level output.

Words reported by ``pytesseract.image_to_data`` are grouped into text
blocks by their Tesseract block number; each block keeps the union of
its word boxes and the mean word confidence.
"""

import time
from collections import defaultdict
from typing import Any

import numpy as np
import pytesseract
from PIL import Image

from docpipe.errors import OCRProviderError
from docpipe.models import BoundingBox, OCRResult, TextBlock
from docpipe.preprocessing import ImageRef, load_image
from docpipe.utils.config import OCRConfig
from docpipe.utils.logger import get_logger

logger = get_logger(__name__)

# Tesseract language codes to the ISO codes used in results.
LANGUAGE_CODES: dict[str, str] = {
    "eng": "en",
    "heb": "he",
    "ara": "ar",
    "fra": "fr",
    "deu": "de",
    "spa": "es",
}


def iso_languages(tesseract_lang: str) -> tuple[str, ...]:
    return tuple(LANGUAGE_CODES.get(code, code) for code in tesseract_lang.split("+"))


def union_box(boxes: list[BoundingBox]) -> BoundingBox:
    left = min(box.x for box in boxes)
    top = min(box.y for box in boxes)
    return BoundingBox(
        x=left,
        y=top,
        width=max(box.right for box in boxes) - left,
        height=max(box.bottom for box in boxes) - top,
    )


def group_blocks(data: dict[str, list[Any]], language: str = "en") -> list[TextBlock]:
    """Build text blocks from ``image_to_data`` output.

    Words with non-positive confidence or empty text are dropped. Within a
    block, words are joined by spaces and lines by newlines.

    Args:
        data: ``image_to_data`` result in ``Output.DICT`` form.
        language: Language code stored on every block.

    Returns:
        Blocks in Tesseract block order.
    """
    lines: dict[int, dict[tuple[int, int], list[str]]] = defaultdict(dict)
    boxes: dict[int, list[BoundingBox]] = defaultdict(list)
    confidences: dict[int, list[float]] = defaultdict(list)

    for i, raw_text in enumerate(data["text"]):
        word = str(raw_text).strip()
        conf = float(data["conf"][i])
        if conf <= 0 or not word:
            continue
        block_num = int(data["block_num"][i])
        line_key = (int(data["par_num"][i]), int(data["line_num"][i]))
        lines[block_num].setdefault(line_key, []).append(word)
        boxes[block_num].append(
            BoundingBox(
                x=int(data["left"][i]),
                y=int(data["top"][i]),
                width=int(data["width"][i]),
                height=int(data["height"][i]),
            )
        )
        confidences[block_num].append(conf / 100.0)

    blocks: list[TextBlock] = []
    for block_num in sorted(lines):
        text = "\n".join(" ".join(words) for words in lines[block_num].values())
        block_conf = confidences[block_num]
        blocks.append(
            TextBlock(
                text=text,
                confidence=sum(block_conf) / len(block_conf),
                bounding_box=union_box(boxes[block_num]),
                language=language,
            )
        )
    return blocks


class TesseractProvider:
    """OCR provider backed by the Tesseract engine.

    Args:
        config: Tesseract command, language and page segmentation mode.
    """

    name = "tesseract"

    def __init__(self, config: OCRConfig | None = None) -> None:
        self.config = config or OCRConfig()
        if self.config.tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = self.config.tesseract_cmd
        self.languages = iso_languages(self.config.default_lang)
        self._version: str | None = None

    def initialize(self) -> None:
        """Check that the Tesseract binary can be executed.

        Raises:
            OCRProviderError: If Tesseract is not installed or not runnable.
        """
        if self._version is not None:
            return
        try:
            self._version = str(pytesseract.get_tesseract_version())
        except (pytesseract.TesseractNotFoundError, OSError) as exc:
            raise OCRProviderError(f"Tesseract is not available: {exc}") from exc
        logger.info("Tesseract %s ready (lang=%s)", self._version, self.config.default_lang)

    def extract_text(self, image_ref: ImageRef) -> OCRResult:
        """Run Tesseract on an image.

        Args:
            image_ref: Decoded array, encoded bytes, or a file path.

        Returns:
            OCR result with block-level boxes and confidences in [0, 1].

        Raises:
            OCRProviderError: If Tesseract fails on the image.
        """
        start = time.perf_counter()
        image = image_ref if isinstance(image_ref, np.ndarray) else load_image(image_ref)
        pil_image = Image.fromarray(image)
        lang = self.config.default_lang
        tess_config = f"--psm {self.config.psm}"

        try:
            text = pytesseract.image_to_string(pil_image, lang=lang, config=tess_config)
            data = pytesseract.image_to_data(
                pil_image,
                lang=lang,
                config=tess_config,
                output_type=pytesseract.Output.DICT,
            )
        except pytesseract.TesseractError as exc:
            raise OCRProviderError(f"Tesseract failed: {exc}") from exc

        blocks = group_blocks(data, language=self.languages[0])
        word_confidences = [
            float(conf) / 100.0
            for conf, word in zip(data["conf"], data["text"])
            if float(conf) > 0 and str(word).strip()
        ]
        confidence = (
            sum(word_confidences) / len(word_confidences) if word_confidences else 0.0
        )
        elapsed_ms = (time.perf_counter() - start) * 1000

        logger.info(
            "Tesseract extracted %d blocks with average confidence %.2f",
            len(blocks),
            confidence,
        )
        return OCRResult(
            text=text.strip(),
            blocks=tuple(blocks),
            confidence=min(1.0, confidence),
            processing_time_ms=elapsed_ms,
            languages=self.languages,
            engine=self.name,
        )
