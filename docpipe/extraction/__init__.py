"""Document-type-specific extraction strategies and their registry."""

from .base import ExtractionStrategy
from .generic import GenericExtractor
from .id_document import IDDocumentExtractor
from .invoice import InvoiceExtractor
from .passport import PassportExtractor, resolve_mrz_year
from .receipt import ReceiptExtractor
from .registry import ExtractorRegistry, estimate_fit

__all__ = [
    "ExtractionStrategy",
    "ExtractorRegistry",
    "GenericExtractor",
    "IDDocumentExtractor",
    "InvoiceExtractor",
    "PassportExtractor",
    "ReceiptExtractor",
    "estimate_fit",
    "resolve_mrz_year",
]
