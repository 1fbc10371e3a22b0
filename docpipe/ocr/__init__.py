"""OCR providers: Tesseract and multi-engine selection."""

from docpipe.errors import ConfigurationError
from docpipe.utils.config import AppConfig

from .provider import MultiEngineOCR, OCRProvider
from .tesseract_engine import TesseractProvider

ENGINES = {"tesseract": TesseractProvider}


def build_ocr_provider(config: AppConfig) -> OCRProvider:
    """Create the provider for the configured OCR engines.

    A single engine is returned as-is; several are wrapped in
    :class:`MultiEngineOCR`.

    Raises:
        ConfigurationError: If an engine name is unknown or none is configured.
    """
    names = config.processing.ocr_engines
    unknown = [name for name in names if name not in ENGINES]
    if unknown or not names:
        raise ConfigurationError(
            "Unsupported OCR engine configuration",
            {"unknown": unknown, "supported": sorted(ENGINES)},
        )
    providers = [ENGINES[name](config.ocr) for name in names]
    if len(providers) == 1:
        return providers[0]
    return MultiEngineOCR(providers)


__all__ = [
    "ENGINES",
    "MultiEngineOCR",
    "OCRProvider",
    "TesseractProvider",
    "build_ocr_provider",
]
