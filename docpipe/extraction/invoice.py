"""Invoice extraction: number, dates, parties, line items and totals."""

import re
from datetime import date, timedelta

from docpipe.models import (
    BusinessInfo,
    ContextualResult,
    DocumentType,
    Entity,
    EntityType,
    InvoiceData,
    InvoiceItem,
    InvoiceTotals,
    LineItemValue,
    StructuredData,
    ValidationResult,
)
from docpipe.utils.logger import get_logger
from docpipe.utils.text import parse_amount, parse_date

from .base import (
    ExtractionStrategy,
    ValidationBuilder,
    detect_currency,
    first_date_entity,
    first_entity,
    labeled_block,
    looks_like_address,
)

logger = get_logger(__name__)

_DATE = (
    r"(\d{1,2}[-/]\d{1,2}[-/]\d{2,4}|\d{4}-\d{2}-\d{2}"
    r"|[A-Za-z]{3,9}\s+\d{1,2},?\s+\d{4})"
)
_AMOUNT = r"\$?\s*(\d[\d,]*\.?\d*)"

INVOICE_NUMBER_PATTERNS = [
    re.compile(
        r"\binvoice[ \t]*(?:number|#|no\.?)[ \t:#]*([A-Z0-9-]*\d[A-Z0-9-]*)",
        re.IGNORECASE,
    ),
    re.compile(r"\binv[ \t#:.]*([A-Z0-9-]*\d[A-Z0-9-]*)", re.IGNORECASE),
    re.compile(r"^([A-Z0-9]{3,})[ \t]*(?:invoice|inv)\b", re.MULTILINE),
]
ISSUE_DATE_RE = re.compile(
    rf"(?:invoice\s+date|date\s+of\s+invoice|issued)[\s:]*{_DATE}", re.IGNORECASE
)
DUE_DATE_RE = re.compile(rf"(?:due\s+date|payment\s+due)[\s:]*{_DATE}", re.IGNORECASE)
NET_TERMS_RE = re.compile(r"\bnet\s+(\d+)\s+days?\b", re.IGNORECASE)

VENDOR_LABEL = re.compile(r"^(?:bill\s+from|from)\b[ \t]*:?", re.IGNORECASE)
VENDOR_STOP = re.compile(r"^(?:bill\s+to|customer|total)\b", re.IGNORECASE)
CUSTOMER_LABEL = re.compile(
    r"^(?:bill\s+to|customer|ship\s+to)\b[ \t]*:?", re.IGNORECASE
)
CUSTOMER_STOP = re.compile(
    r"^(?:invoice|total|items?|description|from|bill\s+from)\b", re.IGNORECASE
)
NOTES_LABEL = re.compile(
    r"^(?:notes?|comments?|remarks?|terms\s+and\s+conditions?)[ \t]*:", re.IGNORECASE
)

_TAX_ID = re.compile(
    r"(?:tax\s+id|vat|ein)[\s:#]*([A-Z0-9-]*\d[A-Z0-9-]*)", re.IGNORECASE
)
_PHONE = re.compile(r"(?:\+\d{1,3}\s?)?(?:\(?\d{3}\)?[-.\s]?)?\d{3}[-.\s]?\d{4}")
_EMAIL = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
_ZIP = re.compile(r"\d{5}(?:-\d{4})?|[A-Z]{2}\s+\d{5}")

ITEMS_HEADER = re.compile(
    r"(?:description|item|product|service).*(?:qty|quantity|price|amount)",
    re.IGNORECASE,
)
ITEMS_END = re.compile(r"(?:subtotal|total|tax|amount due)", re.IGNORECASE)
# "Web Development    5    $100.00    $500.00"
_ITEM_FULL = re.compile(r"^(.+?)\s+(\d+)\s+\$?([\d,]+\.?\d*)\s+\$?([\d,]+\.?\d*)\s*$")
# "Consulting Services    $1,500.00"
_ITEM_TOTAL_ONLY = re.compile(r"^(.+?)\s+\$?([\d,]+\.?\d*)\s*$")
_TOTAL_WORDS = ("total", "subtotal", "tax", "amount", "balance", "due", "net", "gross")

SUBTOTAL_RE = re.compile(
    rf"(?:(?<!\w)sub[\s-]?total|net\s+amount)[\s:]*{_AMOUNT}", re.IGNORECASE
)
TAX_RE = re.compile(
    rf"(?<![\w-])(?:tax|vat|gst|hst)\b(?:\s*\([^)\n]*\))?[\s:]*{_AMOUNT}", re.IGNORECASE
)
TOTAL_RE = re.compile(
    rf"(?<![\w-])(?:grand\s+total|total(?:\s+due)?|amount\s+due|balance(?:\s+due)?)"
    rf"[\s:]*{_AMOUNT}",
    re.IGNORECASE,
)

PAYMENT_TERMS_PATTERNS = [
    (re.compile(r"(?:payment\s+)?terms?[ \t]*:[ \t]*([^\n.]+)", re.IGNORECASE), 1),
    (
        re.compile(
            r"\bnet\s+\d+\s+days?|\bdue\s+(?:on\s+receipt|upon\s+receipt|immediately)",
            re.IGNORECASE,
        ),
        0,
    ),
    (
        re.compile(
            r"\b(?:cash\s+on\s+delivery|cod|prepaid|credit\s+card\s+only)\b",
            re.IGNORECASE,
        ),
        0,
    ),
]


def looks_like_business_address(line: str) -> bool:
    return looks_like_address(line) or bool(_ZIP.search(line))


def parse_business_info(block: str) -> BusinessInfo:
    """Classify the lines of a party block.

    The first line is the name; later lines are a tax id, phone number,
    email address or address continuation.
    """
    lines = [line.strip() for line in block.split("\n") if line.strip()]
    name = ""
    address_lines: list[str] = []
    tax_id = phone = email = None

    for index, line in enumerate(lines):
        if index == 0 or (not name and not looks_like_business_address(line)):
            name = line
            continue
        match = _TAX_ID.search(line)
        if match:
            tax_id = match.group(1)
            continue
        match = _EMAIL.search(line)
        if match:
            email = match.group(0)
            continue
        match = _PHONE.search(line)
        if match and not looks_like_business_address(line):
            phone = match.group(0)
            continue
        address_lines.append(line)

    return BusinessInfo(
        name=name or "Unknown",
        address="\n".join(address_lines),
        phone=phone,
        email=email,
        tax_id=tax_id,
    )


def extract_invoice_number(text: str, entities: tuple[Entity, ...]) -> str:
    for pattern in INVOICE_NUMBER_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(1)
    document_number = first_entity(entities, EntityType.DOCUMENT_NUMBER)
    if document_number:
        return document_number.value
    return "Unknown"


def extract_issue_date(text: str, entities: tuple[Entity, ...]) -> date | None:
    match = ISSUE_DATE_RE.search(text)
    if match:
        parsed = parse_date(match.group(1))
        if parsed is not None:
            return parsed
    return first_date_entity(entities)


def extract_due_date(text: str, issue_date: date | None) -> date | None:
    """Labeled due date, else the issue date plus a ``Net N days`` term."""
    match = DUE_DATE_RE.search(text)
    if match:
        parsed = parse_date(match.group(1))
        if parsed is not None:
            return parsed
    net = NET_TERMS_RE.search(text)
    if net and issue_date is not None:
        return issue_date + timedelta(days=int(net.group(1)))
    return None


def extract_vendor(text: str, entities: tuple[Entity, ...]) -> BusinessInfo:
    lines = text.split("\n")
    block = labeled_block(lines, VENDOR_LABEL, VENDOR_STOP)
    if not block:
        organization = first_entity(entities, EntityType.ORGANIZATION)
        if organization:
            block = organization.value
        else:
            block = "\n".join(
                line for line in lines[:5] if not line.strip().lower().startswith("invoice")
            )
    return parse_business_info(block)


def extract_customer(text: str) -> BusinessInfo:
    block = labeled_block(text.split("\n"), CUSTOMER_LABEL, CUSTOMER_STOP)
    return parse_business_info(block or "")


def parse_invoice_line(line: str) -> InvoiceItem | None:
    """Parse one row of the items table."""
    match = _ITEM_FULL.match(line)
    if match:
        return InvoiceItem(
            description=match.group(1).strip(),
            quantity=int(match.group(2)),
            unit_price=parse_amount(match.group(3)) or 0.0,
            total_price=parse_amount(match.group(4)) or 0.0,
        )
    match = _ITEM_TOTAL_ONLY.match(line)
    if match:
        description = match.group(1).strip()
        if any(word in description.lower() for word in _TOTAL_WORDS):
            return None
        price = parse_amount(match.group(2)) or 0.0
        return InvoiceItem(
            description=description, quantity=1, unit_price=price, total_price=price
        )
    return None


def extract_items(text: str, entities: tuple[Entity, ...]) -> tuple[InvoiceItem, ...]:
    """Rows between an items header and the totals block.

    Falls back to line-item entities when the document has no items
    header.
    """
    items: list[InvoiceItem] = []
    in_items = False
    for raw in text.split("\n"):
        line = raw.strip()
        if not line:
            continue
        if not in_items and ITEMS_HEADER.search(line):
            in_items = True
            continue
        if in_items and ITEMS_END.search(line):
            break
        if in_items:
            item = parse_invoice_line(line)
            if item is not None:
                items.append(item)
    if items:
        return tuple(items)

    return tuple(
        InvoiceItem(
            description=entity.normalized_value.description,
            quantity=1,
            unit_price=entity.normalized_value.amount,
            total_price=entity.normalized_value.amount,
        )
        for entity in entities
        if entity.type == EntityType.LINE_ITEM
        and isinstance(entity.normalized_value, LineItemValue)
        and not any(
            word in entity.normalized_value.description.lower() for word in _TOTAL_WORDS
        )
    )


def _last_amount(pattern: re.Pattern[str], text: str) -> float | None:
    matches = pattern.findall(text)
    return parse_amount(matches[-1]) if matches else None


def extract_totals(text: str, entities: tuple[Entity, ...]) -> InvoiceTotals:
    total = 0.0
    total_entity = first_entity(entities, EntityType.TOTAL)
    if total_entity and isinstance(total_entity.normalized_value, float):
        total = total_entity.normalized_value
    return InvoiceTotals(
        subtotal=_last_amount(SUBTOTAL_RE, text) or 0.0,
        tax=_last_amount(TAX_RE, text) or 0.0,
        total=_last_amount(TOTAL_RE, text) or total,
        currency=detect_currency(text),
    )


def extract_payment_terms(text: str) -> str | None:
    for pattern, group in PAYMENT_TERMS_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(group).strip()
    return None


def extract_notes(text: str) -> str | None:
    return labeled_block(text.split("\n"), NOTES_LABEL) or None


class InvoiceExtractor(ExtractionStrategy):
    """Extracts invoice number, dates, parties, items and totals."""

    name = "invoice"
    document_types = (DocumentType.INVOICE,)

    def extract(self, context: ContextualResult) -> InvoiceData:
        text = context.raw_ocr.text
        entities = context.context.entities
        issue_date = extract_issue_date(text, entities)

        data = InvoiceData(
            invoice_number=extract_invoice_number(text, entities),
            issue_date=issue_date,
            due_date=extract_due_date(text, issue_date),
            vendor=extract_vendor(text, entities),
            customer=extract_customer(text),
            items=extract_items(text, entities),
            totals=extract_totals(text, entities),
            payment_terms=extract_payment_terms(text),
            notes=extract_notes(text),
        )
        logger.info(
            "Invoice extracted: number=%s vendor=%s total=%.2f",
            data.invoice_number,
            data.vendor.name,
            data.totals.total,
        )
        return data

    def validate(self, data: StructuredData) -> ValidationResult:
        if data.kind != "invoice":
            return self._wrong_kind(data)

        result = ValidationBuilder(1.0)
        totals = data.totals

        if not data.invoice_number or data.invoice_number == "Unknown":
            result.warn("Invoice number not found", 0.1)
        if not data.vendor.name or data.vendor.name == "Unknown":
            result.error("Vendor name is required", 0.2)
        if not data.vendor.address:
            result.warn("Vendor address not found", 0.1)
        if not data.customer.name or data.customer.name == "Unknown":
            result.warn("Customer information not found", 0.1)
        if totals.total <= 0:
            result.error("Total amount must be greater than 0", 0.3)
        if totals.subtotal > 0 and abs(totals.subtotal + totals.tax - totals.total) > 0.1:
            result.warn(
                "Total amount does not match subtotal + tax",
                0.1,
                "Verify the calculation of total amount",
            )
        if data.due_date and data.issue_date and data.due_date < data.issue_date:
            result.warn("Due date is before issue date", 0.1)
        if not data.items:
            result.warn(
                "No line items found", 0.2, "Consider manual review for missing items"
            )
        return result.build()
