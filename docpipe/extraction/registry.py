"""Extractor registry: maps document types to extraction strategies."""

import re

from docpipe.models import (
    ContextualResult,
    DocumentType,
    EntityType,
    MultiExtractionResult,
    StructuredData,
    ValidationResult,
)
from docpipe.utils.logger import get_logger

from .base import ExtractionStrategy
from .generic import GenericExtractor
from .id_document import IDDocumentExtractor
from .invoice import InvoiceExtractor
from .passport import PassportExtractor
from .receipt import ReceiptExtractor

logger = get_logger(__name__)

RESELECT_THRESHOLD = 0.7
COMPARE_THRESHOLD = 0.8
MAX_FIT = 0.95
MAX_ALTERNATIVES = 2
SWITCH_MARGIN = 0.1

RESELECT_CANDIDATES = (
    DocumentType.RECEIPT,
    DocumentType.INVOICE,
    DocumentType.ID_CARD,
    DocumentType.PASSPORT,
)
COMPARE_CANDIDATES = (DocumentType.RECEIPT, DocumentType.INVOICE, DocumentType.ID_CARD)

GENERIC_TYPES = (
    DocumentType.BUSINESS_CARD,
    DocumentType.BANK_STATEMENT,
    DocumentType.UTILITY_BILL,
    DocumentType.TAX_FORM,
    DocumentType.MEDICAL_RECORD,
    DocumentType.INSURANCE_CARD,
    DocumentType.VEHICLE_REGISTRATION,
    DocumentType.CONTRACT,
)

FitCues = tuple[list[tuple[str, float]], list[tuple[EntityType, float]]]

# Per candidate: text cues and entity cues with their weights.
FIT_WEIGHTS: dict[DocumentType, FitCues] = {
    DocumentType.RECEIPT: (
        [(r"receipt", 0.3), (r"total", 0.2)],
        [(EntityType.AMOUNT, 0.2), (EntityType.LINE_ITEM, 0.3)],
    ),
    DocumentType.INVOICE: (
        [(r"invoice", 0.3), (r"bill to", 0.2), (r"due date", 0.2)],
        [(EntityType.AMOUNT, 0.2), (EntityType.DATE, 0.1)],
    ),
    DocumentType.PASSPORT: (
        [(r"passport", 0.4), (r"nationality", 0.2)],
        [
            (EntityType.PERSON_NAME, 0.2),
            (EntityType.DATE, 0.1),
            (EntityType.DOCUMENT_NUMBER, 0.1),
        ],
    ),
    DocumentType.ID_CARD: (
        [(r"\bid\b|identification", 0.3), (r"license", 0.2)],
        [
            (EntityType.PERSON_NAME, 0.2),
            (EntityType.DATE, 0.2),
            (EntityType.ADDRESS, 0.1),
        ],
    ),
}


def estimate_fit(context: ContextualResult, document_type: DocumentType) -> float:
    """Heuristic fit of a candidate type from keyword and entity presence.

    Args:
        context: Classified document.
        document_type: Candidate type to score.

    Returns:
        Fit score capped at 0.95; 0 for types without fit weights.
    """
    if document_type not in FIT_WEIGHTS:
        return 0.0
    text = context.raw_ocr.text.lower()
    present = {entity.type for entity in context.context.entities}
    keywords, entity_cues = FIT_WEIGHTS[document_type]

    score = sum(weight for pattern, weight in keywords if re.search(pattern, text))
    score += sum(weight for entity_type, weight in entity_cues if entity_type in present)
    return min(MAX_FIT, score)


class ExtractorRegistry:
    """Owns one extraction strategy per document type plus a generic fallback.

    Constructed once and handed to the pipeline; :meth:`initialize` is
    idempotent.
    """

    def __init__(self) -> None:
        self.generic = GenericExtractor()
        self._extractors: dict[DocumentType, ExtractionStrategy] = {}
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    def register(self, document_type: DocumentType, extractor: ExtractionStrategy) -> None:
        self._extractors[document_type] = extractor

    def initialize(self) -> None:
        """Register the built-in strategies and initialize each of them.

        A strategy whose initialization fails stays registered; the failure
        is logged.
        """
        if self._initialized:
            return

        identity = IDDocumentExtractor()
        self.register(DocumentType.RECEIPT, ReceiptExtractor())
        self.register(DocumentType.INVOICE, InvoiceExtractor())
        self.register(DocumentType.ID_CARD, identity)
        self.register(DocumentType.DRIVERS_LICENSE, identity)
        self.register(DocumentType.PASSPORT, PassportExtractor())
        for document_type in GENERIC_TYPES:
            self.register(document_type, self.generic)

        unique = {id(e): e for e in [self.generic, *self._extractors.values()]}
        for extractor in unique.values():
            try:
                extractor.initialize()
            except Exception as exc:
                logger.warning("Failed to initialize %s extractor: %s", extractor.name, exc)

        self._initialized = True
        logger.info("Extractor registry initialized with %d types", len(self._extractors))

    def get_extractor(self, document_type: DocumentType) -> ExtractionStrategy:
        """Registered strategy for the type, or the generic strategy."""
        extractor = self._extractors.get(document_type)
        if extractor is not None and extractor.can_handle(document_type):
            return extractor
        logger.debug("No specific extractor for %s, using generic extractor", document_type)
        return self.generic

    def supported_types(self) -> list[DocumentType]:
        return list(self._extractors)

    def has_extractor(self, document_type: DocumentType) -> bool:
        return document_type in self._extractors

    def get_best_extractor(
        self, context: ContextualResult, threshold: float = RESELECT_THRESHOLD
    ) -> tuple[ExtractionStrategy, float]:
        """Re-select the strategy when classification confidence is low.

        Below ``threshold``, each candidate type other than the classified
        one is scored with :func:`estimate_fit`; a candidate replaces the
        current choice when its fit beats the best confidence so far.

        Args:
            context: Classified document.
            threshold: Confidence under which candidates are probed.

        Returns:
            ``(strategy, confidence)`` for the chosen strategy.
        """
        best = self.get_extractor(context.document_type)
        best_confidence = context.confidence
        if context.confidence >= threshold:
            return best, best_confidence

        for candidate in RESELECT_CANDIDATES:
            if candidate == context.document_type:
                continue
            extractor = self._extractors.get(candidate)
            if extractor is None or not extractor.can_handle(candidate):
                continue
            fit = estimate_fit(context, candidate)
            if fit > best_confidence:
                best, best_confidence = extractor, fit

        if best is not self.get_extractor(context.document_type):
            logger.info(
                "Re-selected %s extractor (fit %.2f) over %s (confidence %.2f)",
                best.name,
                best_confidence,
                context.document_type,
                context.confidence,
            )
        return best, best_confidence

    def extract_with_multiple_extractors(
        self, context: ContextualResult, threshold: float = COMPARE_THRESHOLD
    ) -> MultiExtractionResult:
        """Run the primary strategy and, on low confidence, up to two alternatives.

        The primary result is never replaced; a switch is only recommended
        when an alternative's validation confidence beats the primary's by
        more than 0.1.
        """
        primary = self.get_extractor(context.document_type)
        primary_result = primary.extract(context)
        primary_validation = primary.validate(primary_result)

        alternatives: list[tuple[str, StructuredData, ValidationResult]] = []
        if context.confidence < threshold:
            candidates = [t for t in COMPARE_CANDIDATES if t != context.document_type]
            for candidate in candidates[:MAX_ALTERNATIVES]:
                extractor = self._extractors.get(candidate)
                if extractor is None:
                    continue
                try:
                    result = extractor.extract(context)
                    validation = extractor.validate(result)
                    alternatives.append((str(candidate), result, validation))
                except Exception as exc:
                    logger.warning(
                        "Alternative extraction with %s failed: %s", candidate, exc
                    )

        best = max(alternatives, key=lambda alt: alt[2].confidence, default=None)
        margin = primary_validation.confidence + SWITCH_MARGIN
        if best is not None and best[2].confidence > margin:
            return MultiExtractionResult(
                primary_result=primary_result,
                primary_validation=primary_validation,
                alternative_results=tuple(alternatives),
                recommendation=(
                    f"Alternative extractor ({best[0]}) has higher confidence: "
                    f"{best[2].confidence:.2f} vs {primary_validation.confidence:.2f}"
                ),
                switch_recommended=True,
                recommended_extractor=best[0],
            )
        return MultiExtractionResult(
            primary_result=primary_result,
            primary_validation=primary_validation,
            alternative_results=tuple(alternatives),
            recommendation="Primary extractor is suitable",
        )

    def extraction_stats(self) -> dict[str, object]:
        return {
            "total_extractors": len(self._extractors),
            "supported_types": [str(t) for t in self._extractors],
            "strategies": sorted({e.name for e in self._extractors.values()}),
            "initialized": self._initialized,
        }

    def validate_extractors(self) -> dict[str, object]:
        """Check that every registered strategy accepts its document type."""
        working: list[str] = []
        failing: list[str] = []
        details: dict[str, str] = {}
        for document_type, extractor in self._extractors.items():
            if extractor.can_handle(document_type):
                working.append(str(document_type))
                details[str(document_type)] = "Working correctly"
            else:
                failing.append(str(document_type))
                details[str(document_type)] = "Cannot handle document type"
        return {"working": working, "failing": failing, "details": details}
