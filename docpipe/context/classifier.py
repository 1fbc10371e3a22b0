"""Keyword-pattern document classification.

Each known document type owns an ordered list of case-insensitive
patterns. A type scores one point per non-overlapping match of each of
its patterns; the highest nonzero score wins and ties resolve to the
type declared first.
"""

import re

from docpipe.models import DocumentType

UNKNOWN_CONFIDENCE = 0.3
BASE_CONFIDENCE = 0.5
SCORE_STEP = 0.1
MAX_CONFIDENCE = 0.9

_AMOUNT = r"\$[\d,]+\.?\d*"

DOCUMENT_PATTERNS: dict[DocumentType, list[str]] = {
    DocumentType.RECEIPT: [
        r"receipt",
        rf"total.*{_AMOUNT}",
        rf"tax.*{_AMOUNT}",
        rf"change.*{_AMOUNT}",
        r"cash|card|payment",
    ],
    DocumentType.INVOICE: [
        r"invoice",
        r"bill\s+to",
        r"due\s+date",
        r"invoice\s+(?:number|#)",
        r"payment\s+terms",
    ],
    DocumentType.PASSPORT: [
        r"passport",
        r"nationality",
        r"date\s+of\s+birth",
        r"place\s+of\s+birth",
        r"passport\s+(?:number|no)",
    ],
    DocumentType.DRIVERS_LICENSE: [
        r"driver'?s?\s+licen[sc]e",
        r"class\s+[a-z]\b",
        r"restrictions",
        r"endorsements",
    ],
    DocumentType.ID_CARD: [
        r"identification",
        r"id\s+(?:card|number)",
        r"date\s+of\s+birth",
        r"expires?",
    ],
}

_COMPILED: dict[DocumentType, list[re.Pattern[str]]] = {
    doc_type: [re.compile(p, re.IGNORECASE) for p in patterns]
    for doc_type, patterns in DOCUMENT_PATTERNS.items()
}


def score_document_types(text: str) -> dict[DocumentType, int]:
    """Count pattern matches per document type.

    Args:
        text: Full OCR text.

    Returns:
        Nonzero scores keyed by document type, in declaration order.
    """
    scores: dict[DocumentType, int] = {}
    for doc_type, patterns in _COMPILED.items():
        score = sum(len(pattern.findall(text)) for pattern in patterns)
        if score > 0:
            scores[doc_type] = score
    return scores


def confidence_for_score(score: int) -> float:
    """Map a pattern score onto the saturating confidence scale."""
    if score <= 0:
        return UNKNOWN_CONFIDENCE
    return min(MAX_CONFIDENCE, BASE_CONFIDENCE + SCORE_STEP * score)


def classify_document(text: str) -> tuple[DocumentType, float]:
    """Classify OCR text into a document type.

    Args:
        text: Full OCR text.

    Returns:
        Tuple of (document_type, confidence). Text matching no pattern
        yields ``(DocumentType.UNKNOWN, 0.3)``.
    """
    best_type = DocumentType.UNKNOWN
    best_score = 0
    for doc_type, score in score_document_types(text).items():
        if score > best_score:
            best_type = doc_type
            best_score = score
    return best_type, confidence_for_score(best_score)
