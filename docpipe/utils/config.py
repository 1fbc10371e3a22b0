"""Configuration management for the document processing pipeline.

Loads and validates YAML configuration with sensible defaults for
preprocessing, OCR, context understanding, extraction, quality checks
and per-document processing options.
"""

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class PreprocessingConfig(BaseModel):
    """Configuration for image enhancement before OCR."""

    deskew_enabled: bool = True
    denoise_enabled: bool = True
    denoise_method: str = "bilateral"
    binarize_enabled: bool = True
    binarize_method: str = "adaptive"
    contrast_enabled: bool = True
    clahe_clip_limit: float = 2.0
    clahe_tile_size: int = 8
    cache_size: int = 32


class OCRConfig(BaseModel):
    """Configuration for the Tesseract OCR provider."""

    tesseract_cmd: str | None = None
    default_lang: str = "eng"
    psm: int = 3


class ContextConfig(BaseModel):
    """Configuration for the context engine and its optional model backend."""

    use_model: bool = False
    model_name: str = "microsoft/layoutlm-base-uncased"
    device: str | None = None


class ExtractionConfig(BaseModel):
    """Configuration for extractor selection."""

    reselect_low_confidence: bool = True
    reselect_threshold: float = 0.7
    compare_threshold: float = 0.8


class QualityConfig(BaseModel):
    """Pass thresholds for the quality assurance checks."""

    min_ocr_confidence: float = 0.7
    min_text_length: int = 10
    min_block_confidence: float = 0.6
    max_suspicious_ratio: float = 0.05
    min_classification_confidence: float = 0.6
    min_layout_confidence: float = 0.5
    max_confidence_gap: float = 0.3


class ProcessingOptions(BaseModel):
    """Per-document processing options."""

    enable_context_understanding: bool = True
    enable_structured_extraction: bool = True
    languages: list[str] = Field(default_factory=lambda: ["en"])
    max_processing_time_ms: int = 30000
    quality_threshold: float = 0.7
    enable_preprocessing: bool = True
    ocr_engines: list[str] = Field(default_factory=lambda: ["tesseract"])


class AppConfig(BaseModel):
    """Top-level application configuration."""

    preprocessing: PreprocessingConfig = Field(default_factory=PreprocessingConfig)
    ocr: OCRConfig = Field(default_factory=OCRConfig)
    context: ContextConfig = Field(default_factory=ContextConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    quality: QualityConfig = Field(default_factory=QualityConfig)
    processing: ProcessingOptions = Field(default_factory=ProcessingOptions)
    log_level: str = "INFO"


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from a YAML file.

    Args:
        path: Path to the YAML configuration file.
            Defaults to configs/config.yaml.

    Returns:
        Validated application configuration.
    """
    if path is None:
        path = Path("configs/config.yaml")

    if path.exists():
        logger.info("Loading configuration from %s", path)
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
        return AppConfig(**raw)

    logger.info("No config file found at %s, using defaults", path)
    return AppConfig()
