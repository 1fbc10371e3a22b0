"""Image preprocessing collaborator for the document pipeline.

Loads an image reference, hashes its source bytes for deduplication and
applies the configured OpenCV enhancements. Results are kept in a small
LRU cache; the cache is the only state shared between documents, so all
access to it goes through a lock.
"""

import hashlib
import io
import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np
from PIL import Image, UnidentifiedImageError

from docpipe.errors import PreprocessingError
from docpipe.utils.config import PreprocessingConfig
from docpipe.utils.logger import get_logger

from .filters import binarize, denoise, deskew, enhance_contrast, sharpness

logger = get_logger(__name__)

ImageRef = str | Path | bytes | np.ndarray


@dataclass(frozen=True, eq=False)
class PreprocessedImage:
    """Loaded (and optionally enhanced) image with its content hash."""

    image: np.ndarray
    content_hash: str
    width: int
    height: int
    enhancements: tuple[str, ...] = field(default=())
    sharpness: float = 0.0


def read_source(image_ref: ImageRef) -> bytes:
    """Raw bytes identifying the image, used for hashing.

    Raises:
        PreprocessingError: If a path does not exist.
    """
    if isinstance(image_ref, np.ndarray):
        header = f"{image_ref.shape}:{image_ref.dtype}".encode()
        return header + image_ref.tobytes()
    if isinstance(image_ref, bytes):
        return image_ref
    path = Path(image_ref)
    if not path.is_file():
        raise PreprocessingError(f"Image not found: {path}", {"path": str(path)})
    return path.read_bytes()


def decode_image(image_ref: ImageRef, source: bytes) -> np.ndarray:
    """Decode the reference into an RGB or grayscale array.

    Raises:
        PreprocessingError: If the bytes are not a readable image.
    """
    if isinstance(image_ref, np.ndarray):
        return image_ref
    try:
        image = Image.open(io.BytesIO(source))
        if image.mode not in ("L", "RGB"):
            image = image.convert("RGB")
        return np.array(image)
    except (UnidentifiedImageError, OSError) as exc:
        raise PreprocessingError(f"Cannot decode image: {exc}") from exc


def load_image(image_ref: ImageRef) -> np.ndarray:
    return decode_image(image_ref, read_source(image_ref))


class ImagePreprocessor:
    """Hashes, decodes and enhances document images.

    Args:
        config: Enhancement switches and cache size.
    """

    def __init__(self, config: PreprocessingConfig | None = None) -> None:
        self.config = config or PreprocessingConfig()
        self._cache: OrderedDict[tuple[str, bool], PreprocessedImage] = OrderedDict()
        self._lock = threading.Lock()
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    def initialize(self) -> None:
        if self._initialized:
            return
        logger.info("Image preprocessor ready (cache size %d)", self.config.cache_size)
        self._initialized = True

    def preprocess_image(
        self, image_ref: ImageRef, enhance: bool = True
    ) -> PreprocessedImage:
        """Load an image and apply the configured enhancements.

        Args:
            image_ref: File path, encoded image bytes, or a decoded array.
            enhance: When ``False`` the image is only decoded and hashed.

        Returns:
            The preprocessed image; repeated calls for the same content are
            served from the cache.

        Raises:
            PreprocessingError: If the image cannot be read or decoded.
        """
        source = read_source(image_ref)
        content_hash = hashlib.sha256(source).hexdigest()
        key = (content_hash, enhance)

        with self._lock:
            cached = self._cache.get(key)
            if cached is not None:
                self._cache.move_to_end(key)
                logger.debug("Preprocessing cache hit for %s", content_hash[:12])
                return cached

        image = decode_image(image_ref, source)
        enhancements: list[str] = []
        if enhance:
            image, enhancements = self.enhance(image)

        result = PreprocessedImage(
            image=image,
            content_hash=content_hash,
            width=int(image.shape[1]),
            height=int(image.shape[0]),
            enhancements=tuple(enhancements),
            sharpness=sharpness(image),
        )
        self._store(key, result)
        logger.info(
            "Preprocessed %dx%d image %s (%s)",
            result.width,
            result.height,
            content_hash[:12],
            ", ".join(enhancements) or "no enhancements",
        )
        return result

    def enhance(self, image: np.ndarray) -> tuple[np.ndarray, list[str]]:
        """Run deskew, denoise, contrast and binarization as configured."""
        cfg = self.config
        applied: list[str] = []
        result = image.copy()

        if cfg.deskew_enabled:
            result, angle = deskew(result)
            if angle:
                applied.append(f"deskew({angle:.1f})")
        if cfg.denoise_enabled:
            result = denoise(result, method=cfg.denoise_method)
            applied.append(f"denoise({cfg.denoise_method})")
        if cfg.contrast_enabled:
            result = enhance_contrast(result, cfg.clahe_clip_limit, cfg.clahe_tile_size)
            applied.append("contrast")
        if cfg.binarize_enabled:
            result = binarize(result, method=cfg.binarize_method)
            applied.append(f"binarize({cfg.binarize_method})")
        return result, applied

    def _store(self, key: tuple[str, bool], result: PreprocessedImage) -> None:
        with self._lock:
            self._cache[key] = result
            self._cache.move_to_end(key)
            while len(self._cache) > self.config.cache_size:
                self._cache.popitem(last=False)

    def cache_size(self) -> int:
        with self._lock:
            return len(self._cache)

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()
        logger.debug("Preprocessing cache cleared")
