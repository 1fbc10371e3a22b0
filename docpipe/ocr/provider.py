"""OCR provider interface and multi-engine selection."""

import time
from collections.abc import Sequence
from typing import Protocol

from docpipe.errors import OCRProviderError
from docpipe.models import OCRResult
from docpipe.preprocessing import ImageRef
from docpipe.utils.logger import get_logger

logger = get_logger(__name__)


class OCRProvider(Protocol):
    """Anything that turns an image reference into an :class:`OCRResult`."""

    name: str

    def initialize(self) -> None: ...

    def extract_text(self, image_ref: ImageRef) -> OCRResult: ...


class MultiEngineOCR:
    """Runs several providers and keeps the most confident result.

    Providers that fail to initialize are dropped. Initialization fails
    only when no provider is left.

    Args:
        providers: Providers to run, in preference order.
    """

    name = "multi"

    def __init__(self, providers: Sequence[OCRProvider]) -> None:
        self.providers = list(providers)
        self._available: list[OCRProvider] = []
        self._initialized = False

    @property
    def available_engines(self) -> list[str]:
        return [provider.name for provider in self._available]

    def initialize(self) -> None:
        if self._initialized:
            return
        for provider in self.providers:
            try:
                provider.initialize()
                self._available.append(provider)
                logger.info("OCR engine %s initialized", provider.name)
            except Exception as exc:
                logger.warning("Failed to initialize OCR engine %s: %s", provider.name, exc)
        if not self._available:
            raise OCRProviderError(
                "No OCR engines available",
                {"engines": [provider.name for provider in self.providers]},
            )
        self._initialized = True

    def extract_text(self, image_ref: ImageRef) -> OCRResult:
        """Run every available engine on the image.

        Raises:
            OCRProviderError: If every engine fails.
        """
        if not self._initialized:
            self.initialize()

        start = time.perf_counter()
        results: list[OCRResult] = []
        errors: dict[str, str] = {}
        for provider in self._available:
            try:
                results.append(provider.extract_text(image_ref))
            except Exception as exc:
                logger.warning("OCR engine %s failed: %s", provider.name, exc)
                errors[provider.name] = str(exc)

        if not results:
            raise OCRProviderError("No OCR engines produced results", {"errors": errors})

        best = max(results, key=lambda result: result.confidence)
        logger.info(
            "Multi-engine OCR chose %s (confidence %.3f) from %d result(s) in %.0fms",
            best.engine,
            best.confidence,
            len(results),
            (time.perf_counter() - start) * 1000,
        )
        return best
