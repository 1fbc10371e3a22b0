"""Receipt extraction: vendor, line items, totals, payment and metadata."""

import re
from datetime import date

from docpipe.models import (
    ContextualResult,
    DocumentType,
    Entity,
    EntityType,
    LineItemValue,
    ReceiptData,
    ReceiptItem,
    ReceiptMetadata,
    ReceiptTotals,
    StructuredData,
    ValidationResult,
    VendorInfo,
)
from docpipe.utils.logger import get_logger
from docpipe.utils.text import parse_amount, parse_date

from .base import (
    ExtractionStrategy,
    ValidationBuilder,
    detect_currency,
    first_date_entity,
    first_entity,
    looks_like_address,
    looks_like_amount,
    looks_like_date,
    non_empty_lines,
)

logger = get_logger(__name__)

MAX_ITEM_PRICE = 1000.0
TOTAL_TOLERANCE = 0.1
ITEMS_TOLERANCE = 1.0

# Single price at the end of the line: "Coffee 3.50"
_ITEM_SIMPLE = re.compile(r"^(.+?)\s+\$?(\d+\.?\d*)\s*$")
# Quantity, description, unit price, line total: "2 Bagel 1.25 2.50"
_ITEM_QTY = re.compile(r"^(\d+)\s+(.+?)\s+\$?(\d+\.?\d*)\s+\$?(\d+\.?\d*)\s*$")
# Unit-priced: "Bananas @ 0.59"
_ITEM_AT = re.compile(r"^(.+?)\s+@\s+\$?(\d+\.?\d*)\s*$")

_SKIP_LINES = [
    re.compile(r"^={3,}$"),
    re.compile(r"^-{3,}$"),
    re.compile(r"thank\s+you", re.IGNORECASE),
    re.compile(r"visit\s+us", re.IGNORECASE),
    re.compile(r"customer\s+copy", re.IGNORECASE),
    re.compile(r"merchant\s+copy", re.IGNORECASE),
]
_TOTAL_WORDS = re.compile(
    r"\b(?:total|subtotal|sub-total|tax|amount|balance|due|change|tip)\b",
    re.IGNORECASE,
)

_AMOUNT = r"\$?\s*(\d[\d,]*\.?\d*)"
SUBTOTAL_RE = re.compile(rf"(?<!\w)sub[\s-]?total[\s:]*{_AMOUNT}", re.IGNORECASE)
TAX_RE = re.compile(
    rf"(?<![\w-])(?:tax|hst|gst|pst)\b(?:\s*\([^)\n]*\))?[\s:]*{_AMOUNT}",
    re.IGNORECASE,
)
TIP_RE = re.compile(rf"\b(?:tip|gratuity)[\s:]*{_AMOUNT}", re.IGNORECASE)
TOTAL_RE = re.compile(
    rf"(?<![\w-])(?:total|amount\s+due|balance)(?:\s+due)?[\s:]*{_AMOUNT}",
    re.IGNORECASE,
)

PAYMENT_KEYWORDS = [
    "american express",
    "apple pay",
    "google pay",
    "mastercard",
    "contactless",
    "discover",
    "credit",
    "debit",
    "paypal",
    "visa",
    "amex",
    "cash",
    "chip",
]
_MASKED_CARD = re.compile(r"\*{4}\d{4}|\d{4}\*{4}|\*+\d{4}")

_RECEIPT_DATE_PATTERNS = [
    re.compile(r"\b(\d{1,2}/\d{1,2}/\d{2,4})\b"),
    re.compile(r"\b(\d{1,2}-\d{1,2}-\d{2,4})\b"),
    re.compile(r"\b(\d{4}-\d{2}-\d{2})\b"),
    re.compile(r"\b([A-Za-z]{3,9}\s+\d{1,2},?\s+\d{4})\b"),
]
_TRANSACTION_PATTERNS = [
    re.compile(
        r"\b(?:transaction|trans|ref|receipt)[ \t]*(?:id|no\.?)?[ \t#:]*"
        r"([A-Z0-9-]*\d[A-Z0-9-]*)",
        re.IGNORECASE,
    ),
    re.compile(r"\border[ \t#:]*([A-Z0-9-]*\d[A-Z0-9-]*)", re.IGNORECASE),
    re.compile(r"\bconfirmation[ \t#:]*([A-Z0-9-]*\d[A-Z0-9-]*)", re.IGNORECASE),
]
_CASHIER = re.compile(
    r"\b(?:cashier|served by|operator)[ \t:]*([A-Za-z][A-Za-z \t]*)", re.IGNORECASE
)
_REGISTER = re.compile(r"\b(?:register|reg|terminal)[ \t#:]*(\d+)", re.IGNORECASE)
_STORE = re.compile(
    r"\b(?:store|branch|location)[ \t#:]*([A-Za-z0-9][A-Za-z0-9 \t]*)", re.IGNORECASE
)

ITEM_CATEGORIES: dict[str, list[str]] = {
    "food": ["burger", "pizza", "sandwich", "salad", "fries", "chicken", "pasta"],
    "beverage": ["coffee", "tea", "soda", "juice", "water", "beer", "wine", "latte"],
    "grocery": ["milk", "bread", "eggs", "cheese", "fruit", "vegetable", "banana"],
    "retail": ["shirt", "pants", "shoes", "book", "toy", "electronics"],
    "service": ["fee", "service", "delivery", "installation", "repair"],
}


def categorize_item(description: str) -> str | None:
    """Assign a category from the first keyword list that matches."""
    lowered = description.lower()
    for category, keywords in ITEM_CATEGORIES.items():
        if any(keyword in lowered for keyword in keywords):
            return category
    return None


def is_skippable_line(line: str) -> bool:
    return any(pattern.search(line) for pattern in _SKIP_LINES)


def is_plausible_item(description: str, price: float) -> bool:
    """Reject totals, one-character labels and implausible prices."""
    return (
        len(description) > 1
        and not _TOTAL_WORDS.search(description)
        and 0 < price < MAX_ITEM_PRICE
    )


def _last_amount(pattern: re.Pattern[str], text: str) -> float | None:
    matches = pattern.findall(text)
    if not matches:
        return None
    return parse_amount(matches[-1])


def parse_item_line(line: str) -> ReceiptItem | None:
    """Parse one receipt line into an item, trying the three line shapes."""
    match = _ITEM_QTY.match(line)
    if match:
        quantity = int(match.group(1))
        description = match.group(2).strip()
        unit_price = float(match.group(3))
        total_price = float(match.group(4))
        if quantity > 0 and is_plausible_item(description, total_price):
            return ReceiptItem(
                description=description,
                quantity=quantity,
                unit_price=unit_price,
                total_price=total_price,
                category=categorize_item(description),
            )
        return None

    match = _ITEM_AT.match(line)
    if match:
        description = match.group(1).strip()
        price = float(match.group(2))
        if is_plausible_item(description, price):
            return ReceiptItem(
                description=description,
                quantity=1,
                unit_price=price,
                total_price=price,
                category=categorize_item(description),
            )
        return None

    match = _ITEM_SIMPLE.match(line)
    if match:
        description = match.group(1).strip()
        price = float(match.group(2))
        if is_plausible_item(description, price):
            return ReceiptItem(
                description=description,
                quantity=1,
                unit_price=price,
                total_price=price,
                category=categorize_item(description),
            )
    return None


def extract_vendor(text: str, entities: tuple[Entity, ...]) -> VendorInfo:
    """Vendor from an organization entity or the first plain header line."""
    organization = first_entity(entities, EntityType.ORGANIZATION)
    name = organization.value if organization else None
    if name is None:
        for line in non_empty_lines(text)[:5]:
            if (
                len(line) > 2
                and not looks_like_address(line)
                and not looks_like_amount(line)
                and not looks_like_date(line)
            ):
                name = line
                break

    address = first_entity(entities, EntityType.ADDRESS)
    phone = first_entity(entities, EntityType.PHONE)
    website = first_entity(entities, EntityType.URL)
    return VendorInfo(
        name=name or "Unknown Vendor",
        address=address.value if address else None,
        phone=phone.value if phone else None,
        website=website.value if website else None,
    )


def extract_items(text: str, entities: tuple[Entity, ...]) -> tuple[ReceiptItem, ...]:
    """Line items from line-item entities, else from the raw lines."""
    items = [
        ReceiptItem(
            description=entity.normalized_value.description,
            quantity=1,
            unit_price=entity.normalized_value.amount,
            total_price=entity.normalized_value.amount,
            category=categorize_item(entity.normalized_value.description),
        )
        for entity in entities
        if entity.type == EntityType.LINE_ITEM
        and isinstance(entity.normalized_value, LineItemValue)
        and not is_skippable_line(entity.normalized_value.description)
        and is_plausible_item(
            entity.normalized_value.description, entity.normalized_value.amount
        )
    ]
    if items:
        return tuple(items)

    parsed = (
        parse_item_line(line)
        for line in non_empty_lines(text)
        if not is_skippable_line(line)
    )
    return tuple(item for item in parsed if item is not None)


def extract_totals(text: str, entities: tuple[Entity, ...]) -> ReceiptTotals:
    """Totals from entities, overridden by the last labeled amount in the text.

    When exactly one of subtotal and total is missing, it is derived from
    ``total = subtotal + tax + tip``.
    """
    subtotal = tax = tip = total = 0.0
    for entity in entities:
        if not isinstance(entity.normalized_value, float):
            continue
        if entity.type == EntityType.TOTAL and not total:
            total = entity.normalized_value
        elif entity.type == EntityType.TAX and not tax:
            tax = entity.normalized_value

    subtotal = _last_amount(SUBTOTAL_RE, text) or subtotal
    tax = _last_amount(TAX_RE, text) or tax
    tip = _last_amount(TIP_RE, text) or tip
    total = _last_amount(TOTAL_RE, text) or total

    if subtotal > 0 and tax > 0 and total == 0:
        total = round(subtotal + tax + tip, 2)
    elif total > 0 and subtotal == 0 and tax > 0:
        subtotal = round(total - tax - tip, 2)

    return ReceiptTotals(
        subtotal=subtotal,
        tax=tax,
        tip=tip,
        total=total,
        currency=detect_currency(text),
    )


def extract_payment_method(text: str) -> str | None:
    lowered = text.lower()
    for keyword in PAYMENT_KEYWORDS:
        if re.search(rf"\b{re.escape(keyword)}\b", lowered):
            return keyword[0].upper() + keyword[1:]
    if _MASKED_CARD.search(text):
        return "Credit Card"
    return None


def extract_purchase_date(text: str, entities: tuple[Entity, ...]) -> date | None:
    found = first_date_entity(entities)
    if found is not None:
        return found
    for pattern in _RECEIPT_DATE_PATTERNS:
        for match in pattern.finditer(text):
            parsed = parse_date(match.group(1))
            if parsed is not None:
                return parsed
    return None


def extract_transaction_id(text: str, entities: tuple[Entity, ...]) -> str | None:
    document_number = first_entity(entities, EntityType.DOCUMENT_NUMBER)
    if document_number:
        return document_number.value
    for pattern in _TRANSACTION_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(1)
    return None


def extract_metadata(text: str) -> ReceiptMetadata:
    cashier = _CASHIER.search(text)
    register = _REGISTER.search(text)
    store = _STORE.search(text)
    return ReceiptMetadata(
        cashier=cashier.group(1).strip() if cashier else None,
        register=register.group(1) if register else None,
        store=store.group(1).strip() if store else None,
    )


class ReceiptExtractor(ExtractionStrategy):
    """Extracts vendor, items, totals and payment details from receipts."""

    name = "receipt"
    document_types = (DocumentType.RECEIPT,)

    def extract(self, context: ContextualResult) -> ReceiptData:
        text = context.raw_ocr.text
        entities = context.context.entities

        data = ReceiptData(
            vendor=extract_vendor(text, entities),
            purchase_date=extract_purchase_date(text, entities),
            items=extract_items(text, entities),
            totals=extract_totals(text, entities),
            payment_method=extract_payment_method(text),
            transaction_id=extract_transaction_id(text, entities),
            metadata=extract_metadata(text),
        )
        logger.info(
            "Receipt extracted: vendor=%s items=%d total=%.2f",
            data.vendor.name,
            len(data.items),
            data.totals.total,
        )
        return data

    def validate(self, data: StructuredData) -> ValidationResult:
        """Check required fields and the receipt arithmetic.

        Args:
            data: Receipt produced by :meth:`extract`.

        Returns:
            Validation result; confidence starts at 1.0 and drops for each
            finding.
        """
        if data.kind != "receipt":
            return self._wrong_kind(data)

        result = ValidationBuilder(1.0)
        totals = data.totals

        if not data.vendor.name or data.vendor.name == "Unknown Vendor":
            result.warn("Vendor name not found", 0.1)

        if totals.total <= 0:
            result.error("Total amount must be greater than 0", 0.3)

        if totals.subtotal > 0:
            calculated = totals.subtotal + totals.tax + totals.tip
            if abs(calculated - totals.total) > TOTAL_TOLERANCE:
                result.warn(
                    "Total amount does not match subtotal + tax + tip",
                    0.1,
                    "Verify the calculation of total amount",
                )

        if not data.items:
            result.warn(
                "No line items found", 0.2, "Consider manual review for missing items"
            )
        elif totals.subtotal > 0:
            items_sum = sum(item.total_price for item in data.items)
            if abs(items_sum - totals.subtotal) > ITEMS_TOLERANCE:
                result.warn(
                    "Line items do not add up to subtotal",
                    0.1,
                    "Check for missing or misread line items",
                )

        if data.purchase_date and data.purchase_date > date.today():
            result.warn("Receipt date is in the future", 0.1)

        return result.build()
