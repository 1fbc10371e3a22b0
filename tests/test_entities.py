"""Tests for regex entity extraction and relationship detection."""

from datetime import date

import pytest

from docpipe.context import extract_entities, extract_relationships
from docpipe.context.entities import (
    entity_confidence,
    find_bounding_box,
    normalize_value,
)
from docpipe.models import (
    BoundingBox,
    Entity,
    EntityType,
    LineItemValue,
    RelationshipType,
)

from conftest import RECEIPT_TEXT, make_block


def _of_type(entities: tuple[Entity, ...], entity_type: EntityType) -> list[Entity]:
    return [e for e in entities if e.type == entity_type]


class TestExtractEntities:
    """Tests for extract_entities."""

    def test_receipt_total(self) -> None:
        totals = _of_type(extract_entities(RECEIPT_TEXT), EntityType.TOTAL)
        assert len(totals) == 1
        assert totals[0].normalized_value == 12.5

    def test_receipt_tax_and_amounts(self) -> None:
        entities = extract_entities(RECEIPT_TEXT)
        assert [e.normalized_value for e in _of_type(entities, EntityType.TAX)] == [1.0]
        amounts = [e.value for e in _of_type(entities, EntityType.AMOUNT)]
        assert "$12.50" in amounts
        assert "$1.00" in amounts

    def test_iso_date(self) -> None:
        dates = _of_type(extract_entities("Issued 2024-03-15"), EntityType.DATE)
        assert len(dates) == 1
        assert dates[0].normalized_value == date(2024, 3, 15)
        assert dates[0].confidence == 0.9

    def test_email(self) -> None:
        emails = _of_type(extract_entities("Contact jane@example.com"), EntityType.EMAIL)
        assert emails[0].value == "jane@example.com"
        assert emails[0].confidence == 0.95

    def test_phone(self) -> None:
        phones = _of_type(extract_entities("Call (555) 123-4567"), EntityType.PHONE)
        assert phones[0].value == "(555) 123-4567"
        assert phones[0].confidence == 0.9

    def test_same_type_overlap_skipped(self) -> None:
        amounts = _of_type(extract_entities("Pay $ 5.00 USD"), EntityType.AMOUNT)
        assert len(amounts) == 1

    def test_line_item(self) -> None:
        items = _of_type(extract_entities("Coffee 3.50"), EntityType.LINE_ITEM)
        assert items[0].normalized_value == LineItemValue("Coffee", 3.5)

    def test_person_name_and_address(self) -> None:
        text = "Name: John Smith\n123 Main Street"
        entities = extract_entities(text)
        assert _of_type(entities, EntityType.PERSON_NAME)[0].value == "John Smith"
        assert _of_type(entities, EntityType.ADDRESS)[0].value == "123 Main Street"

    def test_bounding_box_from_blocks(self) -> None:
        block = make_block("Total: $12.50", y=300)
        totals = _of_type(extract_entities("Total: $12.50", (block,)), EntityType.TOTAL)
        assert totals[0].bounding_box == block.bounding_box

    def test_confidences_in_range(self) -> None:
        for entity in extract_entities(RECEIPT_TEXT + "\n03/15/2024\nfoo@bar.com"):
            assert 0.0 <= entity.confidence <= 1.0

    def test_empty_text(self) -> None:
        assert extract_entities("") == ()


class TestEntityHelpers:
    """Tests for confidence, normalization and box lookup helpers."""

    @pytest.mark.parametrize(
        ("entity_type", "value", "expected"),
        [
            (EntityType.DATE, "2024-01-15", 0.9),
            (EntityType.DATE, "01/15/2024", 0.8),
            (EntityType.DATE, "Jan 15, 2024", 0.7),
            (EntityType.AMOUNT, "$5.00", 0.9),
            (EntityType.AMOUNT, "5 EUR", 0.7),
        ],
    )
    def test_entity_confidence(
        self, entity_type: EntityType, value: str, expected: float
    ) -> None:
        assert entity_confidence(entity_type, value) == expected

    def test_unparseable_date_keeps_raw_text(self) -> None:
        assert normalize_value(EntityType.DATE, "99/99/9999") == "99/99/9999"

    def test_amount_normalized(self) -> None:
        assert normalize_value(EntityType.AMOUNT, "$1,234.50") == 1234.5

    def test_find_bounding_box_missing(self) -> None:
        assert find_bounding_box("absent", (make_block("present"),)) is None


def _entity(
    entity_type: EntityType, value: str, y: int | None = None, amount: float = 1.0
) -> Entity:
    box = BoundingBox(10, y, 100, 20) if y is not None else None
    return Entity(
        type=entity_type,
        value=value,
        confidence=0.8,
        bounding_box=box,
        normalized_value=amount,
    )


class TestExtractRelationships:
    """Tests for extract_relationships."""

    def test_totals_chain(self) -> None:
        entities = (
            _entity(EntityType.AMOUNT, "Subtotal: $9.75", amount=9.75),
            _entity(EntityType.TAX, "Tax: $0.80", amount=0.8),
            _entity(EntityType.TOTAL, "Total: $10.55", amount=10.55),
        )
        relationships = extract_relationships(entities)
        assert [r.type for r in relationships] == [
            RelationshipType.SUBTOTAL_TAX,
            RelationshipType.TAX_TOTAL,
        ]
        assert relationships[1].source is entities[1]

    def test_subtotal_to_total_without_tax(self) -> None:
        entities = (
            _entity(EntityType.AMOUNT, "Subtotal: $9.75", amount=9.75),
            _entity(EntityType.TOTAL, "Total: $9.75", amount=9.75),
        )
        relationships = extract_relationships(entities)
        assert len(relationships) == 1
        assert relationships[0].source is entities[0]

    def test_item_price_nearest_amount(self) -> None:
        item = _entity(EntityType.LINE_ITEM, "Coffee", y=100)
        near = _entity(EntityType.AMOUNT, "$3.50", y=110)
        far = _entity(EntityType.AMOUNT, "$9.00", y=400)
        relationships = extract_relationships((item, far, near))
        assert len(relationships) == 1
        assert relationships[0].type == RelationshipType.ITEM_PRICE
        assert relationships[0].target is near

    def test_item_without_box_is_unlinked(self) -> None:
        item = _entity(EntityType.LINE_ITEM, "Coffee")
        amount = _entity(EntityType.AMOUNT, "$3.50", y=110)
        assert extract_relationships((item, amount)) == ()
