"""Cross-stage quality assurance for pipeline results.

Runs independent named checks against the OCR result, the contextual
result and the structured record, then folds them into composite OCR
quality, completeness, consistency and overall confidence scores.
"""

import re
from collections.abc import Callable
from datetime import date

from docpipe.models import (
    Check,
    ContextualResult,
    GenericDocumentData,
    IDData,
    InvoiceData,
    OCRResult,
    PassportData,
    QualityMetrics,
    ReceiptData,
    StructuredData,
    TextDirection,
)
from docpipe.utils.config import QualityConfig
from docpipe.utils.logger import get_logger
from docpipe.utils.text import clamp

logger = get_logger(__name__)

SUSPICIOUS_CHARS = re.compile(r"[^\w\s\u0590-\u05FF\u0600-\u06FF.,!?;:()\"'-]")
CALCULATION_TOLERANCE = 1.0

WEIGHT_CHECKS = 0.3
WEIGHT_OCR = 0.25
WEIGHT_COMPLETENESS = 0.25
WEIGHT_CONSISTENCY = 0.2


def ratio(count: float, expected: float) -> float:
    """Saturating ``count / expected`` in [0, 1]."""
    return min(1.0, count / expected) if expected else 0.0


def suspicious_ratio(text: str) -> float:
    """Share of characters outside letters, digits, whitespace and punctuation.

    Empty text counts as entirely suspicious.
    """
    if not text:
        return 1.0
    return len(SUSPICIOUS_CHARS.findall(text)) / len(text)


def mean_block_confidence(ocr: OCRResult) -> float:
    if not ocr.blocks:
        return 0.0
    return sum(block.confidence for block in ocr.blocks) / len(ocr.blocks)


def receipt_items_total(data: ReceiptData) -> float:
    return sum(item.total_price for item in data.items)


def names_overlap(first: str, second: str) -> bool:
    a, b = first.lower(), second.lower()
    return a in b or b in a


def _check(
    name: str,
    passed: bool,
    confidence: float,
    message: str,
    suggestion: str | None = None,
) -> Check:
    return Check(
        name=name,
        passed=passed,
        confidence=clamp(confidence),
        message=message,
        suggestion=suggestion if not passed else None,
    )


class QualityAssurance:
    """Assesses extraction quality across the OCR, context and extraction stages.

    Args:
        config: Pass thresholds; defaults apply when omitted.
    """

    def __init__(self, config: QualityConfig | None = None) -> None:
        self.config = config or QualityConfig()
        self._structured_checks: dict[str, Callable[[StructuredData], list[Check]]] = {
            "receipt": self._check_receipt,
            "invoice": self._check_invoice,
            "id_document": self._check_id,
            "passport": self._check_passport,
            "generic": self._check_generic,
        }

    def assess(
        self, ocr: OCRResult, context: ContextualResult, data: StructuredData
    ) -> QualityMetrics:
        """Run every check and compute the composite scores.

        Args:
            ocr: OCR output.
            context: Contextual result derived from ``ocr``.
            data: Structured record produced by extraction.

        Returns:
            Quality metrics whose warnings are the messages of failed checks.
        """
        checks = self.run_checks(ocr, context, data)
        ocr_quality = self.ocr_quality(ocr)
        completeness = self.completeness(context, data)
        consistency = self.consistency(ocr, context, data)
        confidence = self.overall_confidence(checks, ocr_quality, completeness, consistency)

        failed = [check for check in checks if not check.passed]
        logger.info(
            "Quality assessment: confidence %.3f, %d/%d checks passed",
            confidence,
            len(checks) - len(failed),
            len(checks),
        )
        return QualityMetrics(
            ocr_quality=ocr_quality,
            completeness=completeness,
            consistency=consistency,
            confidence=confidence,
            warnings=tuple(check.message for check in failed),
            suggestions=tuple(c.suggestion for c in failed if c.suggestion),
            checks=tuple(checks),
        )

    def run_checks(
        self, ocr: OCRResult, context: ContextualResult, data: StructuredData
    ) -> list[Check]:
        checks = self.check_ocr(ocr)
        checks.extend(self.check_context(context))
        checks.extend(self.check_structured(data))
        checks.extend(self.check_cross_layer(ocr, context))
        return checks

    def check_ocr(self, ocr: OCRResult) -> list[Check]:
        cfg = self.config
        text_length = len(ocr.text.strip())
        block_confidence = mean_block_confidence(ocr)
        suspicious = suspicious_ratio(ocr.text)
        ocr_ok = ocr.confidence >= cfg.min_ocr_confidence
        length_ok = text_length > cfg.min_text_length
        blocks_ok = block_confidence >= cfg.min_block_confidence
        chars_ok = suspicious < cfg.max_suspicious_ratio

        return [
            _check(
                "OCR Confidence",
                ocr_ok,
                ocr.confidence,
                "OCR confidence is acceptable"
                if ocr_ok
                else f"OCR confidence is low: {ocr.confidence * 100:.1f}%",
                "Consider image preprocessing or using a different OCR engine",
            ),
            _check(
                "Text Length",
                length_ok,
                ratio(text_length, 100),
                "Adequate text extracted" if length_ok else "Very little text extracted",
                "Check image quality and OCR settings",
            ),
            _check(
                "Block Quality",
                blocks_ok,
                block_confidence,
                "Text blocks have good confidence"
                if blocks_ok
                else "Many text blocks have low confidence",
                "Review individual text blocks for accuracy",
            ),
            _check(
                "Character Quality",
                chars_ok,
                1 - suspicious,
                "Text contains mostly valid characters"
                if chars_ok
                else "Text contains many suspicious characters",
                "OCR may have issues with image quality or font recognition",
            ),
        ]

    def check_context(self, context: ContextualResult) -> list[Check]:
        cfg = self.config
        doc = context.context
        classified = context.confidence >= cfg.min_classification_confidence
        entities = len(doc.entities)
        relationships = len(doc.relationships)
        layout_ok = doc.layout.confidence >= cfg.min_layout_confidence

        return [
            _check(
                "Document Classification",
                classified,
                context.confidence,
                f"Document classified as {context.document_type}"
                if classified
                else f"Low confidence in document type: {context.document_type}",
                "Consider manual review of document type classification",
            ),
            _check(
                "Entity Extraction",
                entities > 0,
                ratio(entities, 5),
                f"Extracted {entities} entities" if entities else "No entities extracted",
                "Review text for key information that may have been missed",
            ),
            _check(
                "Relationship Detection",
                relationships > 0,
                ratio(relationships, 3),
                f"Found {relationships} relationships"
                if relationships
                else "No relationships detected between entities",
                "Manual review may be needed to establish data relationships",
            ),
            _check(
                "Layout Analysis",
                layout_ok,
                doc.layout.confidence,
                "Layout analysis successful"
                if layout_ok
                else "Layout analysis has low confidence",
                "Document structure may be complex or unclear",
            ),
        ]

    def check_structured(self, data: StructuredData) -> list[Check]:
        """Dispatch to the checks for the record's ``kind``."""
        return self._structured_checks[data.kind](data)

    def _check_receipt(self, data: ReceiptData) -> list[Check]:
        vendor_found = data.vendor.name != "Unknown Vendor"
        totals = data.totals
        has_total = totals.total > 0
        item_count = len(data.items)
        diff = abs(receipt_items_total(data) - totals.subtotal)
        consistent = diff < CALCULATION_TOLERANCE

        return [
            _check(
                "Vendor Information",
                vendor_found,
                0.8 if vendor_found else 0.2,
                "Vendor name extracted" if vendor_found else "Vendor name not found",
                "Check the top of the receipt for business name",
            ),
            _check(
                "Total Amount",
                has_total,
                0.9 if has_total else 0.0,
                f"Total: {totals.currency} {totals.total}"
                if has_total
                else "Total amount not found or invalid",
                "Look for total, amount due, or balance on the receipt",
            ),
            _check(
                "Line Items",
                item_count > 0,
                ratio(item_count, 3),
                f"Found {item_count} line items" if item_count else "No line items found",
                "Check for itemized purchases between header and total",
            ),
            _check(
                "Calculation Consistency",
                consistent,
                1.0 if diff < 0.1 else 0.7 if consistent else 0.3,
                "Item totals match subtotal"
                if consistent
                else f"Item totals don't match subtotal (diff: {diff:.2f})",
                "Review line items and subtotal for accuracy",
            ),
        ]

    def _check_invoice(self, data: InvoiceData) -> list[Check]:
        today = date.today()
        has_number = data.invoice_number != "Unknown"
        has_vendor = data.vendor.name != "Unknown"
        has_customer = data.customer.name != "Unknown"

        issued = data.issue_date
        issued_ok = issued is not None and issued <= today
        due_ok = data.due_date is None or issued is None or data.due_date >= issued
        if issued is None:
            date_message = "Invoice issue date not found"
        elif not issued_ok:
            date_message = "Invoice date appears to be in the future"
        elif not due_ok:
            date_message = "Invoice due date is before issue date"
        else:
            date_message = "Invoice dates are valid"

        return [
            _check(
                "Invoice Number",
                has_number,
                0.8 if has_number else 0.2,
                f"Invoice #{data.invoice_number}"
                if has_number
                else "Invoice number not found",
            ),
            _check(
                "Vendor Information",
                has_vendor,
                0.8 if has_vendor else 0.2,
                "Vendor information extracted"
                if has_vendor
                else "Vendor information incomplete",
            ),
            _check(
                "Customer Information",
                has_customer,
                0.7 if has_customer else 0.3,
                "Customer information extracted"
                if has_customer
                else "Customer information incomplete",
            ),
            _check(
                "Date Validity",
                issued_ok and due_ok,
                0.8 if issued_ok else 0.2,
                date_message,
            ),
        ]

    def _check_id(self, data: IDData) -> list[Check]:
        person = data.personal_info
        number = data.document_info.document_number
        full_name = bool(person.first_name) and bool(person.last_name)
        expiry = data.document_info.expiry_date
        expired = expiry is not None and expiry < date.today()

        return [
            _check(
                "Personal Information",
                full_name,
                0.9 if full_name else 0.3,
                "Full name extracted" if full_name else "Incomplete name information",
            ),
            _check(
                "Document Number",
                bool(number),
                0.8 if len(number) > 3 else 0.3,
                "Document number extracted" if number else "Document number not found",
            ),
            _check(
                "Document Validity",
                not expired,
                0.5 if expired else 0.8,
                "Document appears to be expired" if expired else "Document is valid",
                "Verify expiry date on the document",
            ),
        ]

    def _check_passport(self, data: PassportData) -> list[Check]:
        validity = data.validity
        mrz = data.mrz_data
        mrz_name = f"{mrz.given_names} {mrz.surname}".strip()
        visual_name = f"{data.visual_data.first_name} {data.visual_data.last_name}".strip()
        match = names_overlap(mrz_name, visual_name)
        consistent = match or not visual_name

        return [
            _check(
                "MRZ Validity",
                validity.is_valid,
                0.9 if validity.is_valid else 0.3,
                "MRZ data is valid"
                if validity.is_valid
                else f"MRZ validation failed: {', '.join(validity.errors)}",
                "Review the machine-readable zone at the bottom of the passport",
            ),
            _check(
                "Data Consistency",
                consistent,
                0.8 if match else 0.4,
                "MRZ and visual data are consistent"
                if consistent
                else "Potential mismatch between MRZ and visual data",
            ),
        ]

    def _check_generic(self, data: GenericDocumentData) -> list[Check]:
        content_length = len(data.content)
        entities = len(data.entities)
        pairs = len(data.key_value_pairs)
        return [
            _check(
                "Content Extraction",
                content_length > 50,
                ratio(content_length, 500),
                "Document content extracted"
                if content_length > 50
                else "Limited content extracted",
            ),
            _check(
                "Entity Extraction",
                entities > 0,
                ratio(entities, 5),
                f"Found {entities} entities" if entities else "No entities extracted",
            ),
            _check(
                "Structure Detection",
                pairs > 0,
                ratio(pairs, 10),
                f"Found {pairs} key-value pairs"
                if pairs
                else "No structured data detected",
            ),
        ]

    def check_cross_layer(self, ocr: OCRResult, context: ContextualResult) -> list[Check]:
        ltr = context.context.layout.text_direction == TextDirection.LTR
        gap = abs(ocr.confidence - context.confidence)
        aligned = gap < self.config.max_confidence_gap
        return [
            _check(
                "Language Consistency",
                ltr,
                0.8 if ltr else 0.6,
                "Language detection is consistent across layers"
                if ltr
                else "Potential language/direction mismatch between OCR and "
                "context analysis",
            ),
            _check(
                "Confidence Correlation",
                aligned,
                1 - gap,
                "OCR and context confidence levels are aligned"
                if aligned
                else "Large difference between OCR and context confidence levels",
                "One processing layer may have issues - "
                "review both OCR and context results",
            ),
        ]

    @staticmethod
    def ocr_quality(ocr: OCRResult) -> float:
        score = (
            ocr.confidence * 0.4
            + ratio(len(ocr.text), 100) * 0.2
            + ratio(len(ocr.blocks), 10) * 0.2
            + (0.2 if ocr.languages else 0.0)
        )
        return clamp(score)

    def completeness(self, context: ContextualResult, data: StructuredData) -> float:
        doc = context.context
        score = (
            context.confidence * 0.3
            + ratio(len(doc.entities), 5) * 0.3
            + ratio(len(doc.relationships), 3) * 0.2
            + self.structured_completeness(data) * 0.2
        )
        return clamp(score)

    @staticmethod
    def structured_completeness(data: StructuredData) -> float:
        """Share of the required fields of the record's kind that are present."""
        match data.kind:
            case "receipt":
                return (
                    (0.3 if data.vendor.name != "Unknown Vendor" else 0.0)
                    + (0.3 if data.totals.total > 0 else 0.0)
                    + (0.4 if data.items else 0.0)
                )
            case "invoice":
                present = [
                    data.invoice_number != "Unknown",
                    data.vendor.name != "Unknown",
                    data.customer.name != "Unknown",
                    data.totals.total > 0,
                    bool(data.items),
                ]
                return 0.2 * sum(present)
            case "id_document":
                person = data.personal_info
                return (
                    (0.3 if person.first_name else 0.0)
                    + (0.3 if person.last_name else 0.0)
                    + (0.4 if data.document_info.document_number else 0.0)
                )
            case "passport":
                return 1.0 if data.validity.is_valid else 0.3
            case _:
                return (
                    (0.4 if len(data.content) > 50 else 0.0)
                    + (0.3 if data.entities else 0.0)
                    + (0.3 if data.key_value_pairs else 0.0)
                )

    def consistency(
        self, ocr: OCRResult, context: ContextualResult, data: StructuredData
    ) -> float:
        score = 1.0 - abs(ocr.confidence - context.confidence) * 0.3
        if context.context.layout.text_direction != TextDirection.LTR:
            score -= 0.2
        score -= self.consistency_penalty(data)
        return clamp(score)

    @staticmethod
    def consistency_penalty(data: StructuredData) -> float:
        """Arithmetic and cross-field penalty for the record's kind."""
        match data.kind:
            case "receipt":
                subtotal = data.totals.subtotal
                diff = abs(receipt_items_total(data) - subtotal)
                return 0.2 if subtotal > 0 and diff > CALCULATION_TOLERANCE else 0.0
            case "invoice":
                issued, due = data.issue_date, data.due_date
                return 0.1 if issued and due and due < issued else 0.0
            case "passport":
                return 0.0 if data.validity.is_valid else 0.3
            case _:
                return 0.0

    @staticmethod
    def overall_confidence(
        checks: list[Check], ocr_quality: float, completeness: float, consistency: float
    ) -> float:
        mean_check = sum(c.confidence for c in checks) / len(checks) if checks else 0.0
        return clamp(
            mean_check * WEIGHT_CHECKS
            + ocr_quality * WEIGHT_OCR
            + completeness * WEIGHT_COMPLETENESS
            + consistency * WEIGHT_CONSISTENCY
        )

    @staticmethod
    def empty_metrics(warning: str) -> QualityMetrics:
        """Zeroed metrics carrying a single warning, for failed runs."""
        return QualityMetrics(
            ocr_quality=0.0,
            completeness=0.0,
            consistency=0.0,
            confidence=0.0,
            warnings=(warning,),
        )


def generate_quality_report(metrics: QualityMetrics) -> str:
    """Render metrics and their checks as a plain-text report."""
    lines = [
        "=== DOCUMENT PROCESSING QUALITY REPORT ===",
        "",
        f"Overall Confidence: {metrics.confidence * 100:.1f}%",
        f"OCR Quality: {metrics.ocr_quality * 100:.1f}%",
        f"Completeness: {metrics.completeness * 100:.1f}%",
        f"Consistency: {metrics.consistency * 100:.1f}%",
        "",
        "=== DETAILED CHECKS ===",
    ]
    for check in metrics.checks:
        line = f"{'✓' if check.passed else '✗'} {check.name}: {check.message}"
        if check.suggestion:
            line += f" ({check.suggestion})"
        lines.append(line)
    lines.extend(["", "=== WARNINGS ==="])
    lines.extend(f"⚠ {warning}" for warning in metrics.warnings)
    return "\n".join(lines)
