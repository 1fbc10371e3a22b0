"""Tests for invoice extraction and validation."""

from datetime import date

from docpipe.context import ContextEngine
from docpipe.extraction import InvoiceExtractor
from docpipe.extraction.invoice import (
    extract_due_date,
    extract_invoice_number,
    parse_business_info,
    parse_invoice_line,
)
from docpipe.models import (
    BusinessInfo,
    ContextualResult,
    InvoiceData,
    InvoiceItem,
    InvoiceTotals,
)

from conftest import INVOICE_TEXT, make_ocr


def _context(text: str) -> ContextualResult:
    return ContextEngine().understand_context(make_ocr(text))


def _invoice(**overrides: object) -> InvoiceData:
    fields: dict[str, object] = {
        "invoice_number": "INV-1",
        "issue_date": date(2024, 1, 15),
        "due_date": date(2024, 2, 14),
        "vendor": BusinessInfo(name="ACME", address="1 Road"),
        "customer": BusinessInfo(name="Globex"),
        "items": (InvoiceItem("Work", 1, 100.0, 100.0),),
        "totals": InvoiceTotals(subtotal=100.0, tax=8.0, total=108.0),
    }
    fields.update(overrides)
    return InvoiceData(**fields)


class TestInvoiceExtraction:
    """Tests for InvoiceExtractor.extract."""

    def setup_method(self) -> None:
        self.extractor = InvoiceExtractor()
        self.data = self.extractor.extract(_context(INVOICE_TEXT))

    def test_kind(self) -> None:
        assert self.data.kind == "invoice"

    def test_number_and_dates(self) -> None:
        assert self.data.invoice_number == "INV-2024-001"
        assert self.data.issue_date == date(2024, 1, 15)
        assert self.data.due_date == date(2024, 2, 14)

    def test_parties(self) -> None:
        assert self.data.vendor.name == "ACME Corporation"
        assert self.data.customer.name == "Globex Industries"
        assert "42 Market Street" in self.data.customer.address

    def test_items(self) -> None:
        assert self.data.items == (
            InvoiceItem("Web Development", 5, 100.0, 500.0),
            InvoiceItem("Hosting", 1, 50.0, 50.0),
        )

    def test_totals_and_terms(self) -> None:
        assert self.data.totals == InvoiceTotals(
            subtotal=550.0, tax=44.0, total=594.0, currency="USD"
        )
        assert self.data.payment_terms == "Net 30 days"

    def test_validates(self) -> None:
        validation = self.extractor.validate(self.data)
        assert validation.is_valid is True
        assert validation.confidence == 1.0


class TestInvoiceValidation:
    """Tests for InvoiceExtractor.validate."""

    def setup_method(self) -> None:
        self.extractor = InvoiceExtractor()

    def test_due_before_issue_is_warning(self) -> None:
        validation = self.extractor.validate(_invoice(due_date=date(2024, 1, 1)))
        assert validation.is_valid is True
        assert "Due date is before issue date" in validation.warnings

    def test_missing_vendor_is_error(self) -> None:
        validation = self.extractor.validate(_invoice(vendor=BusinessInfo()))
        assert validation.is_valid is False
        assert "Vendor name is required" in validation.errors

    def test_total_mismatch_warns(self) -> None:
        totals = InvoiceTotals(subtotal=100.0, tax=8.0, total=120.0)
        validation = self.extractor.validate(_invoice(totals=totals))
        assert "Total amount does not match subtotal + tax" in validation.warnings

    def test_confidence_never_negative(self) -> None:
        validation = self.extractor.validate(
            InvoiceData(invoice_number="Unknown", totals=InvoiceTotals())
        )
        assert 0.0 <= validation.confidence <= 1.0
        assert validation.is_valid is False


class TestInvoiceHelpers:
    """Tests for invoice parsing helpers."""

    def test_invoice_number_patterns(self) -> None:
        assert extract_invoice_number("Invoice #A-778", ()) == "A-778"
        assert extract_invoice_number("INV: 4521", ()) == "4521"
        assert extract_invoice_number("nothing here", ()) == "Unknown"

    def test_due_date_from_net_terms(self) -> None:
        assert extract_due_date("Terms: Net 30 days", date(2024, 1, 15)) == date(
            2024, 2, 14
        )
        assert extract_due_date("Terms: Net 30 days", None) is None

    def test_parse_business_info(self) -> None:
        info = parse_business_info(
            "Globex Industries\n42 Market Street\nbilling@globex.com\nTax ID: 12-3456789"
        )
        assert info.name == "Globex Industries"
        assert info.email == "billing@globex.com"
        assert info.tax_id == "12-3456789"
        assert info.address == "42 Market Street"

    def test_parse_invoice_line(self) -> None:
        assert parse_invoice_line("Consulting Services    $1,500.00") == InvoiceItem(
            "Consulting Services", 1, 1500.0, 1500.0
        )
        assert parse_invoice_line("Total    $1,500.00") is None
