"""Layout analysis for document structure detection.

Derives orientation, column count, table/header/footer presence and text
direction from OCR block geometry, and partitions blocks into semantic
sections.
"""

import re
from collections.abc import Sequence

from docpipe.models import (
    BoundingBox,
    DocumentSection,
    Entity,
    LayoutInfo,
    Orientation,
    SectionType,
    TextBlock,
    TextDirection,
)
from docpipe.utils.logger import get_logger

logger = get_logger(__name__)

_HEBREW = re.compile(r"[\u0590-\u05FF]")
_ARABIC = re.compile(r"[\u0600-\u06FF]")
_LATIN = re.compile(r"[a-zA-Z]")
_CELL_SPLIT = re.compile(r"\s{2,}")


def detect_text_direction(text: str) -> TextDirection:
    """Classify text direction from Hebrew/Arabic versus Latin counts.

    Args:
        text: Raw document text.

    Returns:
        ``MIXED`` when right-to-left characters exceed half the Latin
        count and Latin text is present, ``RTL`` when right-to-left
        characters dominate, ``LTR`` otherwise.
    """
    rtl = len(_HEBREW.findall(text)) + len(_ARABIC.findall(text))
    latin = len(_LATIN.findall(text))
    if rtl > latin * 0.5 and latin > 0:
        return TextDirection.MIXED
    if rtl > latin:
        return TextDirection.RTL
    return TextDirection.LTR


def enclosing_box(blocks: Sequence[TextBlock]) -> BoundingBox:
    """Calculate the bounding box that encloses all given blocks."""
    x_min = min(b.bounding_box.x for b in blocks)
    y_min = min(b.bounding_box.y for b in blocks)
    x_max = max(b.bounding_box.right for b in blocks)
    y_max = max(b.bounding_box.bottom for b in blocks)
    return BoundingBox(x_min, y_min, x_max - x_min, y_max - y_min)


class LayoutAnalyzer:
    """Analyzes OCR block positions to describe page structure.

    Args:
        edge_margin: Distance in pixels from the page edge within which a
            block counts as header or footer.
        column_gap: Minimum horizontal gap between left edges that starts
            a new column.
        max_columns: Upper bound on the reported column count.
        section_merge_gap: Vertical distance under which consecutive
            blocks stay in the same section.
    """

    def __init__(
        self,
        edge_margin: int = 100,
        column_gap: int = 50,
        max_columns: int = 4,
        section_merge_gap: int = 50,
    ) -> None:
        self.edge_margin = edge_margin
        self.column_gap = column_gap
        self.max_columns = max_columns
        self.section_merge_gap = section_merge_gap

    def analyze_layout(self, blocks: Sequence[TextBlock], text: str) -> LayoutInfo:
        """Describe the page layout.

        Args:
            blocks: OCR text blocks.
            text: Full OCR text.

        Returns:
            Layout summary. Without blocks, geometry-derived fields keep
            their defaults and confidence drops to 0.5.
        """
        direction = detect_text_direction(text)
        has_table = self.detect_table(text)
        if not blocks:
            return LayoutInfo(
                has_table=has_table, text_direction=direction, confidence=0.5
            )

        avg_width = sum(b.bounding_box.width for b in blocks) / len(blocks)
        avg_height = sum(b.bounding_box.height for b in blocks) / len(blocks)
        orientation = (
            Orientation.LANDSCAPE if avg_width > avg_height else Orientation.PORTRAIT
        )

        by_y = sorted(blocks, key=lambda b: b.bounding_box.y)
        lowest_edge = max(b.bounding_box.bottom for b in blocks)

        return LayoutInfo(
            orientation=orientation,
            column_count=self.estimate_columns([b.bounding_box.x for b in blocks]),
            has_table=has_table,
            has_header=by_y[0].bounding_box.y < self.edge_margin,
            has_footer=by_y[-1].bounding_box.y > lowest_edge - self.edge_margin,
            text_direction=direction,
            confidence=0.8,
        )

    def estimate_columns(self, x_positions: Sequence[int]) -> int:
        """Count columns from gaps between sorted left edges."""
        if len(x_positions) < 2:
            return 1
        ordered = sorted(x_positions)
        gaps = sum(
            1
            for left, right in zip(ordered, ordered[1:])
            if right - left > self.column_gap
        )
        return min(self.max_columns, gaps + 1)

    @staticmethod
    def detect_table(text: str) -> bool:
        """A table is at least three lines splitting into three or more cells."""
        aligned = [
            line
            for line in text.split("\n")
            if len(_CELL_SPLIT.split(line.strip())) >= 3
        ]
        return len(aligned) >= 3

    def section_type(self, block: TextBlock) -> SectionType:
        """Classify a single block by position and content."""
        text = block.text.lower()
        if block.bounding_box.y < self.edge_margin:
            return SectionType.HEADER
        if "total" in text or "signature" in text:
            return SectionType.FOOTER
        if "table" in text or len(block.text.split()) < 3:
            return SectionType.TABLE
        return SectionType.BODY

    def analyze_sections(
        self, blocks: Sequence[TextBlock], entities: Sequence[Entity] = ()
    ) -> tuple[DocumentSection, ...]:
        """Group blocks into sections in reading order.

        Args:
            blocks: OCR text blocks.
            entities: Document entities; each section receives the ones
                whose value appears in its text.

        Returns:
            Sections in top-to-bottom order.
        """
        if not blocks:
            return ()

        ordered = sorted(
            blocks,
            key=lambda b: (b.bounding_box.y // 20, b.bounding_box.x, b.bounding_box.y),
        )

        groups: list[tuple[SectionType, list[TextBlock]]] = []
        current_type = self.section_type(ordered[0])
        current: list[TextBlock] = [ordered[0]]
        for block in ordered[1:]:
            block_type = self.section_type(block)
            near = (
                abs(block.bounding_box.y - current[-1].bounding_box.y)
                < self.section_merge_gap
            )
            if block_type == current_type or near:
                current.append(block)
            else:
                groups.append((current_type, current))
                current_type, current = block_type, [block]
        groups.append((current_type, current))

        sections = tuple(
            self._build_section(section_type, members, entities)
            for section_type, members in groups
        )
        logger.debug("Detected %d document sections", len(sections))
        return sections

    @staticmethod
    def _build_section(
        section_type: SectionType,
        blocks: list[TextBlock],
        entities: Sequence[Entity],
    ) -> DocumentSection:
        text = "\n".join(b.text for b in blocks)
        return DocumentSection(
            type=section_type,
            content=tuple(blocks),
            bounding_box=enclosing_box(blocks),
            entities=tuple(e for e in entities if e.value and e.value in text),
        )
