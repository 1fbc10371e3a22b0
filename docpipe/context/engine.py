"""Context engine: turns an OCR result into a classified, annotated document.

The rule-based path (classification, entities, relationships, layout,
sections) always exists. An optional model backend may produce the same
shape; when it fails the engine falls back to the rules and reports the
fallback through :class:`~docpipe.models.StageOutcome`.
"""

from dataclasses import dataclass, field
from typing import Protocol

from docpipe.models import (
    ContextualResult,
    DocumentContext,
    DocumentType,
    Entity,
    EntityType,
    LayoutInfo,
    OCRResult,
    Orientation,
    Relationship,
    RelationshipType,
    StageOutcome,
)
from docpipe.utils.config import ContextConfig
from docpipe.utils.logger import get_logger
from docpipe.utils.text import clamp

from .classifier import UNKNOWN_CONFIDENCE, classify_document
from .entities import extract_entities, find_bounding_box, normalize_value
from .layout import LayoutAnalyzer, detect_text_direction
from .relationships import extract_relationships

logger = get_logger(__name__)


@dataclass
class ModelEntity:
    """Entity span predicted by a model backend."""

    type: str
    value: str
    confidence: float
    start: int = 0
    end: int = 0


@dataclass
class ModelRelationship:
    """Relationship predicted by a model backend, by entity index."""

    type: str
    source: int
    target: int
    confidence: float


@dataclass
class ModelOutput:
    """Fixed output shape every model backend must return."""

    document_type: str
    confidence: float
    entities: list[ModelEntity] = field(default_factory=list)
    relationships: list[ModelRelationship] = field(default_factory=list)
    layout: dict[str, object] = field(default_factory=dict)


class ContextModelBackend(Protocol):
    """A learned replacement for the rule-based scorer."""

    name: str

    def predict(self, ocr_result: OCRResult) -> ModelOutput: ...


class ContextEngine:
    """Classifies documents and extracts entities, relationships and layout.

    Args:
        backend: Optional model backend tried before the rules.
        layout_analyzer: Layout analyzer; a default one is created if omitted.
    """

    def __init__(
        self,
        backend: ContextModelBackend | None = None,
        layout_analyzer: LayoutAnalyzer | None = None,
    ) -> None:
        self.backend = backend
        self.layout_analyzer = layout_analyzer or LayoutAnalyzer()
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    def initialize(self) -> None:
        """Prepare the engine. Safe to call more than once."""
        if self._initialized:
            return
        if self.backend is None:
            logger.info("Context engine using rule-based understanding")
        else:
            logger.info("Context engine using model backend %s", self.backend.name)
        self._initialized = True

    def understand_context(self, ocr_result: OCRResult) -> ContextualResult:
        """Produce the contextual result for one OCR result."""
        return self.analyze(ocr_result).value

    def analyze(self, ocr_result: OCRResult) -> StageOutcome[ContextualResult]:
        """Run the model backend (if any) and fall back to rules on failure.

        Args:
            ocr_result: OCR output for one document.

        Returns:
            Outcome whose ``fallback_used`` flag is set when the model
            backend failed or the rules themselves failed.
        """
        if not self._initialized:
            self.initialize()

        backend_error: str | None = None
        if self.backend is not None:
            try:
                return StageOutcome(self.process_with_model(ocr_result))
            except Exception as exc:
                logger.warning("Model backend failed, using rule-based fallback: %s", exc)
                backend_error = str(exc)

        try:
            result = self.process_with_rules(ocr_result)
        except Exception as exc:
            logger.exception("Rule-based context understanding failed")
            return StageOutcome(self.basic_result(ocr_result), True, str(exc))

        logger.info(
            "Document type: %s (confidence: %.3f)",
            result.document_type,
            result.confidence,
        )
        return StageOutcome(result, backend_error is not None, backend_error)

    def process_with_rules(self, ocr_result: OCRResult) -> ContextualResult:
        """Rule-based context understanding."""
        text = ocr_result.text
        document_type, confidence = classify_document(text)
        entities = extract_entities(text, ocr_result.blocks)
        relationships = extract_relationships(entities)
        layout = self.layout_analyzer.analyze_layout(ocr_result.blocks, text)
        sections = self.layout_analyzer.analyze_sections(ocr_result.blocks, entities)

        return ContextualResult(
            document_type=document_type,
            confidence=confidence,
            context=DocumentContext(
                layout=layout,
                entities=entities,
                relationships=relationships,
                sections=sections,
                confidence=confidence,
            ),
            raw_ocr=ocr_result,
            backend="rules",
        )

    def process_with_model(self, ocr_result: OCRResult) -> ContextualResult:
        """Run the model backend and map its output onto the shared shape.

        Raises:
            RuntimeError: If no backend is configured.
        """
        if self.backend is None:
            raise RuntimeError("Model backend not available")

        output = self.backend.predict(ocr_result)
        confidence = clamp(output.confidence)
        entities = self.parse_entities(output.entities, ocr_result)
        relationships = self.parse_relationships(output.relationships, entities)
        layout = self.parse_layout(output.layout, ocr_result)
        sections = self.layout_analyzer.analyze_sections(ocr_result.blocks, entities)

        return ContextualResult(
            document_type=self.parse_document_type(output.document_type),
            confidence=confidence,
            context=DocumentContext(
                layout=layout,
                entities=entities,
                relationships=relationships,
                sections=sections,
                confidence=confidence,
            ),
            raw_ocr=ocr_result,
            backend="model",
        )

    @staticmethod
    def parse_document_type(value: str) -> DocumentType:
        try:
            return DocumentType(value.lower())
        except ValueError:
            return DocumentType.UNKNOWN

    @staticmethod
    def parse_entities(
        predicted: list[ModelEntity], ocr_result: OCRResult
    ) -> tuple[Entity, ...]:
        entities: list[Entity] = []
        for item in predicted:
            try:
                entity_type = EntityType(item.type.lower())
            except ValueError:
                logger.debug("Skipping unknown model entity type: %s", item.type)
                continue
            entities.append(
                Entity(
                    type=entity_type,
                    value=item.value,
                    confidence=clamp(item.confidence),
                    bounding_box=find_bounding_box(item.value, ocr_result.blocks),
                    normalized_value=normalize_value(entity_type, item.value),
                )
            )
        return tuple(entities)

    @staticmethod
    def parse_relationships(
        predicted: list[ModelRelationship], entities: tuple[Entity, ...]
    ) -> tuple[Relationship, ...]:
        if not predicted:
            return extract_relationships(entities)
        relationships: list[Relationship] = []
        for item in predicted:
            if not (0 <= item.source < len(entities) and 0 <= item.target < len(entities)):
                continue
            try:
                relationship_type = RelationshipType(item.type.lower())
            except ValueError:
                continue
            relationships.append(
                Relationship(
                    type=relationship_type,
                    source=entities[item.source],
                    target=entities[item.target],
                    confidence=clamp(item.confidence),
                )
            )
        return tuple(relationships)

    def parse_layout(
        self, predicted: dict[str, object], ocr_result: OCRResult
    ) -> LayoutInfo:
        """Merge model layout hints over the geometric analysis."""
        base = self.layout_analyzer.analyze_layout(ocr_result.blocks, ocr_result.text)
        orientation = predicted.get("orientation", base.orientation)
        columns = predicted.get("columns", base.column_count)
        has_table = predicted.get("has_table", base.has_table)
        return LayoutInfo(
            orientation=(
                Orientation(orientation)
                if orientation in {o.value for o in Orientation}
                else base.orientation
            ),
            column_count=int(columns) if isinstance(columns, int) else base.column_count,
            has_table=bool(has_table),
            has_header=base.has_header,
            has_footer=base.has_footer,
            text_direction=base.text_direction,
            confidence=base.confidence,
        )

    @staticmethod
    def basic_result(ocr_result: OCRResult) -> ContextualResult:
        """Minimal unknown-type result used when context analysis fails."""
        return ContextualResult(
            document_type=DocumentType.UNKNOWN,
            confidence=UNKNOWN_CONFIDENCE,
            context=DocumentContext(
                layout=LayoutInfo(
                    text_direction=detect_text_direction(ocr_result.text),
                    confidence=0.5,
                ),
                confidence=UNKNOWN_CONFIDENCE,
            ),
            raw_ocr=ocr_result,
            backend="basic",
        )


def build_context_engine(config: ContextConfig | None = None) -> ContextEngine:
    """Create a context engine, attaching the LayoutLM backend when enabled.

    Args:
        config: Context configuration; defaults to rules only.

    Returns:
        Context engine instance (not yet initialized).
    """
    config = config or ContextConfig()
    if not config.use_model:
        return ContextEngine()

    from .layoutlm_backend import LayoutLMBackend

    return ContextEngine(backend=LayoutLMBackend(config.model_name, device=config.device))
