"""Context understanding: classification, entities, relationships, layout."""

from .classifier import classify_document
from .engine import ContextEngine, ModelOutput, build_context_engine
from .entities import extract_entities
from .layout import LayoutAnalyzer, detect_text_direction
from .relationships import extract_relationships

__all__ = [
    "ContextEngine",
    "LayoutAnalyzer",
    "ModelOutput",
    "build_context_engine",
    "classify_document",
    "detect_text_direction",
    "extract_entities",
    "extract_relationships",
]
