"""Pipeline orchestration."""

from .orchestrator import (
    HybridDocumentProcessor,
    basic_classify,
    build_processor,
    generic_record,
)

__all__ = [
    "HybridDocumentProcessor",
    "basic_classify",
    "build_processor",
    "generic_record",
]
