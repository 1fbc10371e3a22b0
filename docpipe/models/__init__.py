"""Immutable data model for the document processing pipeline."""

from .documents import (
    BoundingBox,
    ContextualResult,
    DocumentContext,
    DocumentSection,
    DocumentType,
    Entity,
    EntityType,
    LayoutInfo,
    LineItemValue,
    OCRResult,
    Orientation,
    Relationship,
    RelationshipType,
    SectionType,
    TextBlock,
    TextDirection,
)
from .results import (
    Check,
    HybridProcessingResult,
    MultiExtractionResult,
    ProcessingMetadata,
    QualityMetrics,
    StageOutcome,
    ValidationResult,
)
from .structured import (
    Address,
    BusinessInfo,
    DetectedTable,
    GenericDocumentData,
    IDData,
    IdentityDocumentInfo,
    InvoiceData,
    InvoiceItem,
    InvoiceTotals,
    KeyValuePair,
    MRZData,
    PassportData,
    PassportValidity,
    PersonalInfo,
    ReceiptData,
    ReceiptItem,
    ReceiptMetadata,
    ReceiptTotals,
    StructuredData,
    TextSection,
    VendorInfo,
    VisaStamp,
    VisualData,
)

__all__ = [
    "Address",
    "BoundingBox",
    "BusinessInfo",
    "Check",
    "ContextualResult",
    "DetectedTable",
    "DocumentContext",
    "DocumentSection",
    "DocumentType",
    "Entity",
    "EntityType",
    "GenericDocumentData",
    "HybridProcessingResult",
    "IDData",
    "IdentityDocumentInfo",
    "InvoiceData",
    "InvoiceItem",
    "InvoiceTotals",
    "KeyValuePair",
    "LayoutInfo",
    "LineItemValue",
    "MRZData",
    "MultiExtractionResult",
    "OCRResult",
    "Orientation",
    "PassportData",
    "PassportValidity",
    "PersonalInfo",
    "ProcessingMetadata",
    "QualityMetrics",
    "ReceiptData",
    "ReceiptItem",
    "ReceiptMetadata",
    "ReceiptTotals",
    "Relationship",
    "RelationshipType",
    "SectionType",
    "StageOutcome",
    "StructuredData",
    "TextBlock",
    "TextDirection",
    "TextSection",
    "ValidationResult",
    "VendorInfo",
    "VisaStamp",
    "VisualData",
]
