"""Regex-based entity extraction from OCR text.

All functions are pure: they take text (and OCR blocks for bounding box
lookup) and return new immutable entities.
"""

import re
from collections.abc import Sequence

from docpipe.models import BoundingBox, Entity, EntityType, LineItemValue, TextBlock
from docpipe.utils.text import parse_amount, parse_date

_NUMBER = r"(?:\d{1,3}(?:,\d{3})+|\d+)(?:\.\d{2})?"
_MONTHS = r"(?:jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-z]*\.?"

# Pattern definitions: (regex, flags). The first capture group, when
# present, is the entity value.
ENTITY_PATTERNS: dict[EntityType, list[tuple[str, int]]] = {
    EntityType.DATE: [
        (r"\b\d{1,2}[-/]\d{1,2}[-/]\d{2,4}\b", 0),
        (r"\b\d{4}[-/]\d{1,2}[-/]\d{1,2}\b", 0),
        (rf"\b{_MONTHS}\s+\d{{1,2}},?\s+\d{{4}}\b", re.IGNORECASE),
        (rf"\b\d{{1,2}}\s+{_MONTHS}\s+\d{{4}}\b", re.IGNORECASE),
    ],
    EntityType.AMOUNT: [
        (rf"\$\s*{_NUMBER}", 0),
        (rf"\b{_NUMBER}\s*(?:USD|EUR|GBP|ILS|₪|€|£)", 0),
        (rf"[₪€£]\s*{_NUMBER}", 0),
    ],
    EntityType.PHONE: [
        (r"(?<![\w$.,])(?:\+\d{1,3}\s?)?(?:\(?\d{3}\)?[-.\s]?)?\d{3}[-.\s]?\d{4}(?!\d)", 0),
    ],
    EntityType.EMAIL: [
        (r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}", 0),
    ],
    EntityType.URL: [
        (r"(?:https?://|www\.)[A-Za-z0-9.-]+\.[A-Za-z]{2,}(?:/[^\s]*)?", 0),
    ],
    EntityType.DOCUMENT_NUMBER: [
        (
            r"\b(?:invoice|receipt|ref|confirmation)[ \t]*(?:no\.?|number)?"
            r"[ \t:#]*([A-Z0-9-]*\d[A-Z0-9-]*)",
            re.IGNORECASE,
        ),
        (r"(?:\bno\.?|\bnumber|#)[ \t:]*([A-Z0-9-]*\d[A-Z0-9-]*)", re.IGNORECASE),
    ],
}

LINE_ITEM_PATTERN = re.compile(r"^(.+?)\s+(\d+\.?\d*)\s*$", re.MULTILINE)
TOTAL_PATTERN = re.compile(
    r"(?<![\w-])(?:total(?:\s+due)?|sum|amount\s+due)[\s:]*\$?(\d[\d,]*\.?\d*)",
    re.IGNORECASE,
)
TAX_PATTERN = re.compile(
    r"(?<![\w-])(?:sales\s+)?(?:tax|vat|gst|hst)\b(?:\s*\([^)\n]*\))?"
    r"[\s:]*\$?(\d[\d,]*\.?\d*)",
    re.IGNORECASE,
)
SUBTOTAL_PATTERN = re.compile(
    r"(?<!\w)sub[\s-]?total[\s:]*\$?(\d[\d,]*\.?\d*)", re.IGNORECASE
)
PERSON_NAME_PATTERN = re.compile(
    r"^[ \t]*(?:full[ \t]+)?name[ \t]*:[ \t]*([A-Za-z][A-Za-z .'-]*[A-Za-z])[ \t]*$",
    re.IGNORECASE | re.MULTILINE,
)
ADDRESS_PATTERN = re.compile(
    r"^[ \t]*(\d{1,6}[ \t]+[A-Za-z0-9 .'-]+?[ \t]+"
    r"(?:street|st|avenue|ave|road|rd|boulevard|blvd|lane|ln|drive|dr|way|"
    r"court|ct|place|pl|parkway|pkwy)\b\.?[^\n]*)$",
    re.IGNORECASE | re.MULTILINE,
)

_SUBTOTAL_FLAG = re.compile(r"sub[\s-]?total", re.IGNORECASE)


def entity_confidence(entity_type: EntityType, value: str) -> float:
    """Heuristic confidence for a pattern-matched entity.

    Args:
        entity_type: Type of the entity.
        value: Matched text.

    Returns:
        Confidence in ``[0, 0.99]``.
    """
    confidence = 0.7
    if entity_type == EntityType.DATE:
        if re.search(r"\d{4}-\d{2}-\d{2}", value):
            confidence = 0.9
        elif re.search(r"\d{1,2}/\d{1,2}/\d{4}", value):
            confidence = 0.8
    elif entity_type == EntityType.AMOUNT:
        if re.search(r"\$\d+\.\d{2}", value):
            confidence = 0.9
    elif entity_type == EntityType.EMAIL:
        confidence = 0.95
    elif entity_type == EntityType.PHONE:
        if re.search(r"\(\d{3}\)\s?\d{3}-\d{4}", value):
            confidence = 0.9
    return min(0.99, confidence)


def normalize_value(entity_type: EntityType, value: str) -> object | None:
    """Compute the typed value of an entity.

    Dates that cannot be parsed degrade to the raw string.
    """
    if entity_type == EntityType.DATE:
        return parse_date(value) or value
    if entity_type in (EntityType.AMOUNT, EntityType.TOTAL, EntityType.TAX):
        amount = parse_amount(value)
        return amount if amount is not None else value
    return None


def find_bounding_box(value: str, blocks: Sequence[TextBlock]) -> BoundingBox | None:
    """Return the box of the first OCR block containing ``value`` verbatim."""
    for block in blocks:
        if value and value in block.text:
            return block.bounding_box
    return None


def is_subtotal(entity: Entity) -> bool:
    """Whether an amount entity was captured from a subtotal line."""
    return entity.type == EntityType.AMOUNT and bool(_SUBTOTAL_FLAG.search(entity.value))


def _overlaps(span: tuple[int, int], taken: list[tuple[int, int]]) -> bool:
    return any(span[0] < end and start < span[1] for start, end in taken)


def extract_pattern_entities(
    text: str, blocks: Sequence[TextBlock] = ()
) -> list[Entity]:
    """Extract entities from the pattern table.

    Matches overlapping an earlier match of the same entity type are
    skipped.

    Args:
        text: Full OCR text.
        blocks: OCR blocks used for bounding box lookup.

    Returns:
        Entities in pattern-table order.
    """
    entities: list[Entity] = []
    for entity_type, patterns in ENTITY_PATTERNS.items():
        taken: list[tuple[int, int]] = []
        for pattern, flags in patterns:
            for match in re.finditer(pattern, text, flags):
                if _overlaps(match.span(), taken):
                    continue
                taken.append(match.span())
                value = (match.group(1) if match.groups() else match.group(0)).strip()
                entities.append(
                    Entity(
                        type=entity_type,
                        value=value,
                        confidence=entity_confidence(entity_type, value),
                        bounding_box=find_bounding_box(value, blocks),
                        normalized_value=normalize_value(entity_type, value),
                    )
                )
    return entities


def _amount_entity(
    entity_type: EntityType,
    match: re.Match[str],
    confidence: float,
    blocks: Sequence[TextBlock],
) -> Entity | None:
    amount = parse_amount(match.group(1))
    if amount is None:
        return None
    value = match.group(0).strip()
    return Entity(
        type=entity_type,
        value=value,
        confidence=confidence,
        bounding_box=find_bounding_box(value, blocks),
        normalized_value=amount,
    )


def extract_contextual_entities(
    text: str, blocks: Sequence[TextBlock] = ()
) -> list[Entity]:
    """Line-oriented passes over the raw text.

    Recovers line items, totals, taxes, subtotals, labeled names and
    street addresses that block segmentation may have split.

    Args:
        text: Full OCR text.
        blocks: OCR blocks used for bounding box lookup.

    Returns:
        Newly extracted entities.
    """
    entities: list[Entity] = []

    for match in LINE_ITEM_PATTERN.finditer(text):
        description = match.group(1).strip()
        if not description:
            continue
        entities.append(
            Entity(
                type=EntityType.LINE_ITEM,
                value=description,
                confidence=0.7,
                bounding_box=find_bounding_box(description, blocks),
                normalized_value=LineItemValue(
                    description=description, amount=float(match.group(2))
                ),
            )
        )

    for entity_type, pattern in (
        (EntityType.TOTAL, TOTAL_PATTERN),
        (EntityType.TAX, TAX_PATTERN),
        (EntityType.AMOUNT, SUBTOTAL_PATTERN),
    ):
        for match in pattern.finditer(text):
            entity = _amount_entity(entity_type, match, 0.8, blocks)
            if entity is not None:
                entities.append(entity)

    for match in PERSON_NAME_PATTERN.finditer(text):
        name = match.group(1).strip()
        entities.append(
            Entity(
                type=EntityType.PERSON_NAME,
                value=name,
                confidence=0.75,
                bounding_box=find_bounding_box(name, blocks),
            )
        )

    for match in ADDRESS_PATTERN.finditer(text):
        address = match.group(1).strip()
        entities.append(
            Entity(
                type=EntityType.ADDRESS,
                value=address,
                confidence=0.7,
                bounding_box=find_bounding_box(address, blocks),
            )
        )

    return entities


def extract_entities(text: str, blocks: Sequence[TextBlock] = ()) -> tuple[Entity, ...]:
    """Extract all entities from OCR text.

    Args:
        text: Full OCR text.
        blocks: OCR blocks used for bounding box lookup.

    Returns:
        Pattern entities followed by contextual entities.
    """
    return (
        *extract_pattern_entities(text, blocks),
        *extract_contextual_entities(text, blocks),
    )
