"""Image loading, hashing and enhancement before OCR."""

from .pipeline import ImagePreprocessor, ImageRef, PreprocessedImage, load_image

__all__ = ["ImagePreprocessor", "ImageRef", "PreprocessedImage", "load_image"]
