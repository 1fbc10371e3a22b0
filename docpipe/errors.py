"""Exception hierarchy for the document processing pipeline.

    DocpipeError
    ├── ConfigurationError
    ├── InitializationError
    ├── OCRProviderError
    ├── PreprocessingError
    └── PipelineStageError
"""

from typing import Any


class DocpipeError(Exception):
    """Base exception carrying a message and optional details.

    Attributes:
        message: Human-readable error message.
        details: Additional context for logs and API responses.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(DocpipeError):
    """Raised when configuration values are invalid."""


class InitializationError(DocpipeError):
    """Raised when an essential component cannot be initialized."""

    def __init__(self, component: str, reason: str) -> None:
        super().__init__(
            f"Failed to initialize {component}: {reason}",
            {"component": component},
        )
        self.component = component


class OCRProviderError(DocpipeError):
    """Raised when no OCR engine can produce a result."""


class PreprocessingError(DocpipeError):
    """Raised when an image cannot be loaded or decoded."""


class PipelineStageError(DocpipeError):
    """Raised when a pipeline stage fails.

    Args:
        stage: Name of the failing stage (``ocr``, ``context``, ...).
        message: Description of the failure.
    """

    def __init__(self, stage: str, message: str) -> None:
        super().__init__(message, {"stage": stage})
        self.stage = stage
