"""Relationship detection between extracted entities."""

from collections.abc import Sequence

from docpipe.models import Entity, EntityType, Relationship, RelationshipType

from .entities import is_subtotal

ITEM_PRICE_MAX_OFFSET = 50
ITEM_PRICE_CONFIDENCE = 0.7
TOTALS_CONFIDENCE = 0.8


def _nearest_amount(item: Entity, amounts: Sequence[Entity]) -> Entity | None:
    if item.bounding_box is None:
        return None
    best: Entity | None = None
    best_offset = ITEM_PRICE_MAX_OFFSET
    for amount in amounts:
        if amount.bounding_box is None:
            continue
        offset = abs(item.bounding_box.y - amount.bounding_box.y)
        if offset < best_offset:
            best, best_offset = amount, offset
    return best


def extract_relationships(entities: Sequence[Entity]) -> tuple[Relationship, ...]:
    """Link line items to prices and subtotals, taxes and totals to each other.

    Item-price links pair each line item with the vertically nearest
    amount less than 50px away. Subtotal, tax and total entities are
    joined all-pairs: subtotal to tax, then tax to total (or subtotal to
    total when the document has no tax entity).

    Args:
        entities: Entities from one document.

    Returns:
        Relationships in detection order.
    """
    relationships: list[Relationship] = []

    amounts = [e for e in entities if e.type == EntityType.AMOUNT]
    for item in (e for e in entities if e.type == EntityType.LINE_ITEM):
        price = _nearest_amount(item, amounts)
        if price is not None:
            relationships.append(
                Relationship(
                    type=RelationshipType.ITEM_PRICE,
                    source=item,
                    target=price,
                    confidence=ITEM_PRICE_CONFIDENCE,
                )
            )

    subtotals = [e for e in amounts if is_subtotal(e)]
    taxes = [e for e in entities if e.type == EntityType.TAX]
    totals = [e for e in entities if e.type == EntityType.TOTAL]

    for subtotal in subtotals:
        for tax in taxes:
            relationships.append(
                Relationship(
                    type=RelationshipType.SUBTOTAL_TAX,
                    source=subtotal,
                    target=tax,
                    confidence=TOTALS_CONFIDENCE,
                )
            )

    for source in taxes or subtotals:
        for total in totals:
            relationships.append(
                Relationship(
                    type=RelationshipType.TAX_TOTAL,
                    source=source,
                    target=total,
                    confidence=TOTALS_CONFIDENCE,
                )
            )

    return tuple(relationships)
