"""Fallback extraction for documents without a dedicated strategy."""

import re
from collections import Counter
from typing import Any

from docpipe.models import (
    ContextualResult,
    DetectedTable,
    DocumentType,
    GenericDocumentData,
    KeyValuePair,
    StructuredData,
    TextDirection,
    TextSection,
    ValidationResult,
)
from docpipe.utils.logger import get_logger

from .base import (
    ExtractionStrategy,
    ValidationBuilder,
    looks_like_address,
    non_empty_lines,
)

logger = get_logger(__name__)

MAX_TITLE_LENGTH = 100
MAX_KEY_LENGTH = 50
MAX_HEURISTIC_KEY_LENGTH = 30
MIN_TABLE_ROWS = 3

# (pattern, confidence) in priority order
KEY_VALUE_PATTERNS: list[tuple[re.Pattern[str], float]] = [
    (re.compile(r"^([^:]+):\s*(.+)$"), 0.8),
    (re.compile(r"^([^-]+)-\s*(.+)$"), 0.7),
    (re.compile(r"^([^=]+)=\s*(.+)$"), 0.6),
]
HEURISTIC_CONFIDENCE = 0.5
COMMON_KEY_WORDS = re.compile(
    r"name|number|date|time|address|phone|email|amount|total|price|cost|fee|tax|"
    r"id|code|reference|order|invoice|receipt|status|type|category|description",
    re.IGNORECASE,
)

_DATE_LIKE = [
    re.compile(r"\d{1,2}[-/]\d{1,2}[-/]\d{2,4}"),
    re.compile(
        r"\b(?:jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-z]*\s+\d{1,2},?\s+\d{4}",
        re.IGNORECASE,
    ),
]
_TITLE_CASE = re.compile(r"^[A-Z][a-z]*(?:\s+[A-Z][a-z]*)*:?$")
_NUMBERED = re.compile(r"^\d+\.?\s")
_PUNCTUATION = re.compile(r"[^\w\s]")


def looks_like_date_line(line: str) -> bool:
    return any(pattern.search(line) for pattern in _DATE_LIKE)


def extract_title(text: str) -> str:
    """Pick a title from the first three lines.

    Skips lines that are very short, start with a digit, look like an
    address or date, or are longer than 100 characters. Falls back to the
    first line.
    """
    lines = non_empty_lines(text)
    if not lines:
        return ""
    for line in lines[:3]:
        if len(line) < 3 or line[0].isdigit():
            continue
        if looks_like_address(line) or looks_like_date_line(line):
            continue
        if len(line) <= MAX_TITLE_LENGTH:
            return line
    return lines[0]


def looks_like_key_value(key: str, value: str) -> bool:
    if len(key) > MAX_HEURISTIC_KEY_LENGTH or not value:
        return False
    if key[0].isdigit() or not re.search(r"[a-zA-Z]", key):
        return False
    if re.fullmatch(r"[^\w\s]+", value):
        return False
    return bool(COMMON_KEY_WORDS.search(key)) or len(key) <= 20


def parse_key_value_line(line: str) -> KeyValuePair | None:
    """Match a line against the separator patterns, then the word-split heuristic."""
    for pattern, confidence in KEY_VALUE_PATTERNS:
        match = pattern.match(line)
        if not match:
            continue
        key, value = match.group(1).strip(), match.group(2).strip()
        if key and value and len(key) < MAX_KEY_LENGTH:
            return KeyValuePair(key=key, value=value, confidence=confidence)

    words = line.split()
    if 2 <= len(words) <= 6:
        half = (len(words) + 1) // 2
        key, value = " ".join(words[:half]), " ".join(words[half:])
        if looks_like_key_value(key, value):
            return KeyValuePair(key=key, value=value, confidence=HEURISTIC_CONFIDENCE)
    return None


def extract_key_value_pairs(text: str) -> tuple[KeyValuePair, ...]:
    """Key-value pairs, first occurrence per key, most confident first."""
    pairs: list[KeyValuePair] = []
    seen: set[str] = set()
    for raw in text.split("\n"):
        line = raw.strip()
        if len(line) < 3:
            continue
        pair = parse_key_value_line(line)
        if pair is None or pair.key.lower() in seen:
            continue
        seen.add(pair.key.lower())
        pairs.append(pair)
    return tuple(sorted(pairs, key=lambda p: p.confidence, reverse=True))


def split_table_row(line: str) -> list[str]:
    """Split a row on runs of spaces, tabs, pipes or (dot-free) commas."""
    separators = [r"\s{2,}", r"\t", r"\|"]
    if "," in line and "." not in line:
        separators.append(r",")
    for separator in separators:
        cells = [cell.strip() for cell in re.split(separator, line) if cell.strip()]
        if len(cells) > 1:
            return cells
    return [line]


def extract_tables(text: str) -> tuple[DetectedTable, ...]:
    """Runs of at least three lines sharing a column count above one.

    A table is extended while the column count holds; scanning resumes
    after its last row.
    """
    lines = non_empty_lines(text)
    rows = [split_table_row(line) for line in lines]
    tables: list[DetectedTable] = []
    index = 0
    while index <= len(rows) - MIN_TABLE_ROWS:
        width = len(rows[index])
        if width < 2:
            index += 1
            continue
        end = index + 1
        while end < len(rows) and len(rows[end]) == width:
            end += 1
        if end - index >= MIN_TABLE_ROWS:
            tables.append(
                DetectedTable(
                    start_line=index,
                    rows=tuple(tuple(row) for row in rows[index:end]),
                )
            )
            index = end
        else:
            index += 1
    return tuple(tables)


def header_shape(line: str) -> bool:
    """Formatting cues of a section header, ignoring what follows it."""
    if not line or len(line) > MAX_TITLE_LENGTH:
        return False
    if len(_PUNCTUATION.findall(line)) / len(line) > 0.3:
        return False
    all_caps = line == line.upper() and bool(re.search(r"[A-Z]", line))
    return (
        all_caps
        or bool(_TITLE_CASE.match(line))
        or bool(_NUMBERED.match(line))
        or line.endswith(":")
    )


def section_headers(lines: list[str]) -> list[bool]:
    """Header flags per line.

    A line is a header when it has header formatting and the next line is
    non-empty and not itself a header. Evaluated bottom-up.
    """
    flags = [False] * len(lines)
    for index in range(len(lines) - 2, -1, -1):
        following = lines[index + 1].strip()
        flags[index] = (
            header_shape(lines[index].strip())
            and bool(following)
            and not flags[index + 1]
        )
    return flags


def extract_sections(text: str) -> tuple[TextSection, ...]:
    lines = text.split("\n")
    flags = section_headers(lines)
    sections: list[TextSection] = []
    title: str | None = None
    content: list[str] = []
    for line, is_header in zip(lines, flags):
        stripped = line.strip()
        if is_header:
            if title is not None:
                sections.append(TextSection(title=title, content="\n".join(content)))
            title, content = stripped, []
        elif title is not None and stripped:
            content.append(stripped)
    if title is not None:
        sections.append(TextSection(title=title, content="\n".join(content)))
    return tuple(sections)


def compile_metadata(context: ContextualResult) -> dict[str, Any]:
    ocr = context.raw_ocr
    layout = context.context.layout
    return {
        "document_type": str(context.document_type),
        "confidence": context.confidence,
        "detected_languages": list(ocr.languages),
        "ocr_confidence": ocr.confidence,
        "processing_time_ms": ocr.processing_time_ms,
        "block_count": len(ocr.blocks),
        "text_length": len(ocr.text),
        "has_rtl_text": layout.text_direction in (TextDirection.RTL, TextDirection.MIXED),
        "layout": {
            "orientation": str(layout.orientation),
            "columns": layout.column_count,
            "has_table": layout.has_table,
            "has_header": layout.has_header,
            "has_footer": layout.has_footer,
        },
        "entity_counts": dict(Counter(str(e.type) for e in context.context.entities)),
    }


class GenericExtractor(ExtractionStrategy):
    """Title, key-value pairs, tables and sections for any document."""

    name = "generic"
    document_types = tuple(DocumentType)

    def can_handle(self, document_type: DocumentType) -> bool:
        return True

    def extract(self, context: ContextualResult) -> GenericDocumentData:
        text = context.raw_ocr.text
        data = GenericDocumentData(
            title=extract_title(text),
            content=text,
            entities=context.context.entities,
            key_value_pairs=extract_key_value_pairs(text),
            tables=extract_tables(text),
            sections=extract_sections(text),
            metadata=compile_metadata(context),
        )
        logger.info(
            "Generic extraction: %d pairs, %d tables, %d sections",
            len(data.key_value_pairs),
            len(data.tables),
            len(data.sections),
        )
        return data

    def validate(self, data: StructuredData) -> ValidationResult:
        if data.kind != "generic":
            return self._wrong_kind(data)

        content_length = len(data.content.strip())
        if content_length == 0:
            return ValidationResult(
                is_valid=False, confidence=0.0, errors=("Document content is empty",)
            )

        result = ValidationBuilder(0.7)
        if content_length < 50:
            result.warn("Document content is very short", 0.2)
        elif content_length > 10000:
            result.warn("Document content is very long", 0.1)

        if not data.entities:
            result.warn(
                "No entities extracted from document",
                0.1,
                "Consider manual review to identify key information",
            )
        else:
            result.bonus(min(0.2, len(data.entities) * 0.02))

        if not data.key_value_pairs:
            result.suggestions.append(
                "No structured key-value pairs found - document may be unstructured text"
            )
        else:
            confident = [p for p in data.key_value_pairs if p.confidence > 0.7]
            result.bonus(min(0.15, len(confident) * 0.03))

        if not data.title:
            result.suggestions.append(
                "Consider adding a title or header for better organization"
            )
        if not data.metadata:
            result.warn("No metadata available", 0.05)
        return result.build()
