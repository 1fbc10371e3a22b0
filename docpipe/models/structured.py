"""Document-type-specific structured records.

``StructuredData`` is a closed union. Every record carries a ``kind``
discriminant fixed by its class, so consumers can narrow on
``data.kind`` without knowing which extractor produced it.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Literal

from .documents import BoundingBox, Entity


@dataclass(frozen=True)
class VendorInfo:
    name: str = "Unknown Vendor"
    address: str | None = None
    phone: str | None = None
    website: str | None = None


@dataclass(frozen=True)
class ReceiptItem:
    description: str
    quantity: float
    unit_price: float
    total_price: float
    category: str | None = None


@dataclass(frozen=True)
class ReceiptTotals:
    subtotal: float = 0.0
    tax: float = 0.0
    tip: float = 0.0
    total: float = 0.0
    currency: str = "USD"


@dataclass(frozen=True)
class ReceiptMetadata:
    cashier: str | None = None
    register: str | None = None
    store: str | None = None


@dataclass(frozen=True, kw_only=True)
class ReceiptData:
    """Structured receipt."""

    kind: Literal["receipt"] = field(default="receipt", init=False)
    vendor: VendorInfo = field(default_factory=VendorInfo)
    purchase_date: date | None = None
    items: tuple[ReceiptItem, ...] = ()
    totals: ReceiptTotals = field(default_factory=ReceiptTotals)
    payment_method: str | None = None
    transaction_id: str | None = None
    metadata: ReceiptMetadata = field(default_factory=ReceiptMetadata)


@dataclass(frozen=True)
class BusinessInfo:
    """Party block of an invoice (vendor or customer)."""

    name: str = "Unknown"
    address: str = ""
    phone: str | None = None
    email: str | None = None
    tax_id: str | None = None


@dataclass(frozen=True)
class InvoiceItem:
    description: str
    quantity: float
    unit_price: float
    total_price: float


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: float = 0.0
    tax: float = 0.0
    total: float = 0.0
    currency: str = "USD"


@dataclass(frozen=True, kw_only=True)
class InvoiceData:
    """Structured invoice."""

    kind: Literal["invoice"] = field(default="invoice", init=False)
    invoice_number: str = "Unknown"
    issue_date: date | None = None
    due_date: date | None = None
    vendor: BusinessInfo = field(default_factory=BusinessInfo)
    customer: BusinessInfo = field(default_factory=BusinessInfo)
    items: tuple[InvoiceItem, ...] = ()
    totals: InvoiceTotals = field(default_factory=InvoiceTotals)
    payment_terms: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class PersonalInfo:
    first_name: str = ""
    last_name: str = ""
    middle_name: str | None = None
    date_of_birth: date | None = None
    gender: str | None = None


@dataclass(frozen=True)
class IdentityDocumentInfo:
    document_number: str = ""
    issue_date: date | None = None
    expiry_date: date | None = None
    issuing_authority: str = "Government Authority"
    document_class: str | None = None


@dataclass(frozen=True)
class Address:
    street: str = ""
    city: str = ""
    state: str = ""
    postal_code: str = ""
    country: str = "USA"


@dataclass(frozen=True, kw_only=True)
class IDData:
    """Structured identity card or driver's license."""

    kind: Literal["id_document", "passport"] = field(
        default="id_document", init=False
    )
    personal_info: PersonalInfo = field(default_factory=PersonalInfo)
    document_info: IdentityDocumentInfo = field(default_factory=IdentityDocumentInfo)
    address: Address | None = None
    photo_region: BoundingBox | None = None
    security_features: tuple[str, ...] = ()


@dataclass(frozen=True)
class MRZData:
    """Fields decoded from a TD3 machine-readable zone."""

    document_type: str
    issuing_country: str
    surname: str
    given_names: str
    document_number: str
    nationality: str
    date_of_birth: date | None
    sex: str
    expiry_date: date | None
    personal_number: str | None
    check_digits: tuple[str, str, str, str, str]
    lines: tuple[str, ...] = ()


@dataclass(frozen=True)
class VisualData:
    first_name: str = ""
    last_name: str = ""
    nationality: str | None = None


@dataclass(frozen=True)
class VisaStamp:
    country: str
    stamp_type: str
    stamp_date: date | None
    text: str


@dataclass(frozen=True)
class PassportValidity:
    is_valid: bool
    errors: tuple[str, ...] = ()
    checksums_valid: bool = False


@dataclass(frozen=True, kw_only=True)
class PassportData(IDData):
    """Structured passport: identity fields plus MRZ and visa stamps."""

    kind: Literal["id_document", "passport"] = field(default="passport", init=False)
    mrz_data: MRZData
    visual_data: VisualData = field(default_factory=VisualData)
    stamps: tuple[VisaStamp, ...] = ()
    validity: PassportValidity = field(
        default_factory=lambda: PassportValidity(is_valid=False)
    )


@dataclass(frozen=True)
class KeyValuePair:
    key: str
    value: str
    confidence: float


@dataclass(frozen=True)
class DetectedTable:
    """Rows of cells found by column-count detection."""

    start_line: int
    rows: tuple[tuple[str, ...], ...]

    @property
    def column_count(self) -> int:
        return len(self.rows[0]) if self.rows else 0


@dataclass(frozen=True)
class TextSection:
    title: str
    content: str


@dataclass(frozen=True, kw_only=True)
class GenericDocumentData:
    """Catch-all record for document types without a dedicated extractor."""

    kind: Literal["generic"] = field(default="generic", init=False)
    title: str = "Document"
    content: str = ""
    entities: tuple[Entity, ...] = ()
    key_value_pairs: tuple[KeyValuePair, ...] = ()
    tables: tuple[DetectedTable, ...] = ()
    sections: tuple[TextSection, ...] = ()
    metadata: dict[str, Any] = field(default_factory=dict)


StructuredData = ReceiptData | InvoiceData | IDData | PassportData | GenericDocumentData
