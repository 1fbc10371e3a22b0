"""Common interface for document-type-specific extraction strategies."""

import re
from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import date

from docpipe.models import (
    ContextualResult,
    DocumentType,
    Entity,
    EntityType,
    StructuredData,
    TextBlock,
    ValidationResult,
)
from docpipe.utils.logger import get_logger
from docpipe.utils.text import clamp

logger = get_logger(__name__)

CURRENCY_MARKERS: list[tuple[str, tuple[str, ...]]] = [
    ("ILS", ("₪", "ILS", "שקל")),
    ("EUR", ("€", "EUR")),
    ("GBP", ("£", "GBP")),
]

STREET_SUFFIXES = (
    r"(?:Street|St|Avenue|Ave|Road|Rd|Boulevard|Blvd|Lane|Ln|Drive|Dr)"
)
_ADDRESS_RE = re.compile(rf"\d+\s+[A-Za-z\s]+{STREET_SUFFIXES}\b", re.IGNORECASE)
_DATE_RE = re.compile(r"\d{1,2}[-/]\d{1,2}[-/]\d{2,4}")
_AMOUNT_RE = re.compile(r"\$?\d+\.?\d*")


def detect_currency(text: str, default: str = "USD") -> str:
    """Detect the document currency from symbols and ISO codes."""
    for code, markers in CURRENCY_MARKERS:
        if any(marker in text for marker in markers):
            return code
    return default


def first_entity(entities: Sequence[Entity], entity_type: EntityType) -> Entity | None:
    return next((e for e in entities if e.type == entity_type), None)


def first_date_entity(entities: Sequence[Entity]) -> date | None:
    """Normalized value of the first date entity that parsed to a date."""
    for entity in entities:
        if entity.type == EntityType.DATE and isinstance(entity.normalized_value, date):
            return entity.normalized_value
    return None


def looks_like_address(text: str) -> bool:
    return bool(_ADDRESS_RE.search(text))


def looks_like_date(text: str) -> bool:
    return bool(_DATE_RE.search(text))


def looks_like_amount(text: str) -> bool:
    return bool(_AMOUNT_RE.search(text))


def non_empty_lines(text: str) -> list[str]:
    return [line.strip() for line in text.split("\n") if line.strip()]


def blocks_of(context: ContextualResult) -> tuple[TextBlock, ...]:
    return context.raw_ocr.blocks


class ExtractionStrategy(ABC):
    """Turns a classified document into a typed structured record.

    Subclasses set ``name`` and ``document_types`` and implement
    :meth:`extract` and :meth:`validate`.
    """

    name: str = "base"
    document_types: tuple[DocumentType, ...] = ()

    def __init__(self) -> None:
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    def initialize(self) -> None:
        """Prepare the strategy. Safe to call more than once."""
        if not self._initialized:
            logger.debug("%s extractor initialized", self.name)
            self._initialized = True

    def can_handle(self, document_type: DocumentType) -> bool:
        return document_type in self.document_types

    @abstractmethod
    def extract(self, context: ContextualResult) -> StructuredData:
        """Build the structured record for a classified document."""

    @abstractmethod
    def validate(self, data: StructuredData) -> ValidationResult:
        """Assess the record this strategy produced."""

    def _wrong_kind(self, data: StructuredData) -> ValidationResult:
        return ValidationResult(
            is_valid=False,
            confidence=0.0,
            errors=(f"{self.name} extractor cannot validate {data.kind} data",),
        )


class ValidationBuilder:
    """Accumulates validation findings with additive confidence adjustments."""

    def __init__(self, base_confidence: float) -> None:
        self.confidence = base_confidence
        self.errors: list[str] = []
        self.warnings: list[str] = []
        self.suggestions: list[str] = []

    def error(self, message: str, penalty: float, suggestion: str | None = None) -> None:
        self.errors.append(message)
        self._adjust(-penalty, suggestion)

    def errors_from(self, messages: Sequence[str], penalty: float) -> None:
        """Record several errors under a single penalty."""
        self.errors.extend(messages)
        self._adjust(-penalty, None)

    def warn(self, message: str, penalty: float, suggestion: str | None = None) -> None:
        self.warnings.append(message)
        self._adjust(-penalty, suggestion)

    def bonus(self, amount: float) -> None:
        self.confidence += amount

    def _adjust(self, delta: float, suggestion: str | None) -> None:
        self.confidence += delta
        if suggestion:
            self.suggestions.append(suggestion)

    def build(self) -> ValidationResult:
        return ValidationResult(
            is_valid=not self.errors,
            confidence=clamp(self.confidence),
            errors=tuple(self.errors),
            warnings=tuple(self.warnings),
            suggestions=tuple(self.suggestions),
        )


def labeled_block(
    lines: list[str], label: re.Pattern[str], stop: re.Pattern[str] | None = None
) -> str | None:
    """Collect the lines under a label such as ``Bill To:``.

    Text after the label on the same line is part of the block. The block
    ends at a blank line or a line matching ``stop``.

    Returns:
        The block text, or ``None`` when the label is absent.
    """
    for index, raw in enumerate(lines):
        line = raw.strip()
        match = label.match(line)
        if not match:
            continue
        collected = []
        rest = line[match.end():].strip()
        if rest:
            collected.append(rest)
        for following in lines[index + 1:]:
            following = following.strip()
            if not following:
                if collected:
                    break
                continue
            if stop is not None and stop.match(following):
                break
            collected.append(following)
        return "\n".join(collected)
    return None

