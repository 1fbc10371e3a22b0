"""Core document data model shared by every pipeline stage.

OCR output, entities, relationships and layout records are immutable
once created; sequences are stored as tuples.
"""

from dataclasses import dataclass, field
from datetime import date
from enum import StrEnum


class DocumentType(StrEnum):
    """Known document types. Declaration order is used for tie-breaking."""

    RECEIPT = "receipt"
    INVOICE = "invoice"
    PASSPORT = "passport"
    DRIVERS_LICENSE = "drivers_license"
    ID_CARD = "id_card"
    BUSINESS_CARD = "business_card"
    BANK_STATEMENT = "bank_statement"
    UTILITY_BILL = "utility_bill"
    TAX_FORM = "tax_form"
    MEDICAL_RECORD = "medical_record"
    INSURANCE_CARD = "insurance_card"
    VEHICLE_REGISTRATION = "vehicle_registration"
    CONTRACT = "contract"
    UNKNOWN = "unknown"


class EntityType(StrEnum):
    """Types of entities found in document text."""

    DATE = "date"
    AMOUNT = "amount"
    CURRENCY = "currency"
    PERSON_NAME = "person_name"
    ORGANIZATION = "organization"
    ADDRESS = "address"
    PHONE = "phone"
    EMAIL = "email"
    URL = "url"
    DOCUMENT_NUMBER = "document_number"
    LINE_ITEM = "line_item"
    TOTAL = "total"
    TAX = "tax"
    DISCOUNT = "discount"


class RelationshipType(StrEnum):
    """Types of association between two entities."""

    ITEM_PRICE = "item_price"
    SUBTOTAL_TAX = "subtotal_tax"
    TAX_TOTAL = "tax_total"
    PERSON_ID = "person_id"
    ADDRESS_COMPONENT = "address_component"
    DATE_TRANSACTION = "date_transaction"


class SectionType(StrEnum):
    """Semantic regions of a document page."""

    HEADER = "header"
    FOOTER = "footer"
    BODY = "body"
    TABLE = "table"
    SIGNATURE = "signature"
    STAMP = "stamp"
    LOGO = "logo"


class Orientation(StrEnum):
    PORTRAIT = "portrait"
    LANDSCAPE = "landscape"


class TextDirection(StrEnum):
    LTR = "ltr"
    RTL = "rtl"
    MIXED = "mixed"


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned bounding box for a detected element."""

    x: int
    y: int
    width: int
    height: int

    @property
    def bottom(self) -> int:
        return self.y + self.height

    @property
    def right(self) -> int:
        return self.x + self.width


@dataclass(frozen=True)
class TextBlock:
    """A region of recognized text with its position and confidence."""

    text: str
    confidence: float
    bounding_box: BoundingBox
    language: str = "en"


@dataclass(frozen=True)
class OCRResult:
    """Complete OCR output for one image."""

    text: str
    blocks: tuple[TextBlock, ...] = ()
    confidence: float = 0.0
    processing_time_ms: float = 0.0
    languages: tuple[str, ...] = ("en",)
    engine: str = "unknown"


@dataclass(frozen=True)
class LineItemValue:
    """Normalized value of a line-item entity."""

    description: str
    amount: float


NormalizedValue = date | float | LineItemValue | str


@dataclass(frozen=True)
class Entity:
    """A typed value extracted from document text."""

    type: EntityType
    value: str
    confidence: float
    bounding_box: BoundingBox | None = None
    normalized_value: NormalizedValue | None = None


@dataclass(frozen=True)
class Relationship:
    """A typed association between two entities."""

    type: RelationshipType
    source: Entity
    target: Entity
    confidence: float


@dataclass(frozen=True)
class LayoutInfo:
    """Page-level layout summary."""

    orientation: Orientation = Orientation.PORTRAIT
    column_count: int = 1
    has_table: bool = False
    has_header: bool = False
    has_footer: bool = False
    text_direction: TextDirection = TextDirection.LTR
    confidence: float = 0.5


@dataclass(frozen=True)
class DocumentSection:
    """A partition of the page holding blocks and the entities inside them."""

    type: SectionType
    content: tuple[TextBlock, ...]
    bounding_box: BoundingBox
    entities: tuple[Entity, ...] = ()


@dataclass(frozen=True)
class DocumentContext:
    """Full context-engine output for one document."""

    layout: LayoutInfo = field(default_factory=LayoutInfo)
    entities: tuple[Entity, ...] = ()
    relationships: tuple[Relationship, ...] = ()
    sections: tuple[DocumentSection, ...] = ()
    confidence: float = 0.0

    def entities_of(self, entity_type: EntityType) -> tuple[Entity, ...]:
        """Return the entities of a single type, in extraction order."""
        return tuple(e for e in self.entities if e.type == entity_type)


@dataclass(frozen=True)
class ContextualResult:
    """Classified, entity-annotated document handed to extraction."""

    document_type: DocumentType
    confidence: float
    context: DocumentContext
    raw_ocr: OCRResult
    backend: str = "rules"
