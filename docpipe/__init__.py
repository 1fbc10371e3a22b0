"""Hybrid Document Processing Pipeline.

Turns a photographed document into a typed structured record through
layered OCR, context understanding, type-specific extraction and
cross-stage quality assurance.
"""

__version__ = "1.0.0"
