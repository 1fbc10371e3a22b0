"""Tests for image loading, hashing and enhancement."""

from pathlib import Path

import numpy as np
import pytest

from docpipe.errors import PreprocessingError
from docpipe.preprocessing import ImagePreprocessor, load_image
from docpipe.preprocessing.filters import (
    binarize,
    denoise,
    deskew,
    detect_skew_angle,
    enhance_contrast,
    sharpness,
    to_gray,
)
from docpipe.preprocessing.pipeline import read_source
from docpipe.utils.config import PreprocessingConfig

from conftest import png_bytes


def _make_noisy_image(height: int = 200, width: int = 300) -> np.ndarray:
    """Create a synthetic noisy grayscale image for testing."""
    rng = np.random.default_rng(42)
    base = np.zeros((height, width), dtype=np.uint8)
    base[50:150, 50:250] = 200
    noise = rng.integers(0, 50, size=(height, width), dtype=np.uint8)
    return np.clip(base.astype(np.int16) + noise.astype(np.int16), 0, 255).astype(
        np.uint8
    )


class TestFilters:
    """Tests for the OpenCV enhancement filters."""

    def test_to_gray(self, sample_color_image: np.ndarray) -> None:
        gray = to_gray(sample_color_image)
        assert gray.shape == (200, 300)
        assert to_gray(gray) is gray

    def test_detect_skew_angle_no_lines(self) -> None:
        assert detect_skew_angle(np.zeros((100, 100), dtype=np.uint8)) == 0.0

    def test_deskew_blank_image_unchanged(self) -> None:
        blank = np.zeros((100, 100), dtype=np.uint8)
        result, angle = deskew(blank)
        assert angle == 0.0
        assert result is blank

    def test_deskew_returns_same_shape(self) -> None:
        image = _make_noisy_image()
        result, _ = deskew(image)
        assert result.shape == image.shape

    @pytest.mark.parametrize("method", ["gaussian", "bilateral"])
    def test_denoise_methods(self, method: str) -> None:
        image = _make_noisy_image()
        assert denoise(image, method=method).shape == image.shape

    def test_denoise_invalid_method(self) -> None:
        with pytest.raises(ValueError, match="Unsupported denoise method"):
            denoise(_make_noisy_image(), method="median")

    def test_enhance_contrast_returns_gray(self, sample_color_image: np.ndarray) -> None:
        assert enhance_contrast(sample_color_image).ndim == 2

    @pytest.mark.parametrize("method", ["otsu", "adaptive"])
    def test_binarize_is_binary(self, method: str) -> None:
        result = binarize(_make_noisy_image(), method=method)
        assert set(np.unique(result)) <= {0, 255}

    def test_sharpness(self, sample_image: np.ndarray) -> None:
        flat = np.full((100, 100), 128, dtype=np.uint8)
        assert sharpness(flat) == 0.0
        assert sharpness(sample_image) > 0.0


class TestLoading:
    """Tests for reading and decoding image references."""

    def test_array_passthrough(self, sample_image: np.ndarray) -> None:
        assert load_image(sample_image) is sample_image

    def test_decode_png_bytes(self) -> None:
        image = load_image(png_bytes(height=40, width=60))
        assert image.shape == (40, 60, 3)

    def test_path(self, tmp_path: Path) -> None:
        path = tmp_path / "page.png"
        path.write_bytes(png_bytes())
        assert load_image(path).shape == (100, 200, 3)
        assert load_image(str(path)).shape == (100, 200, 3)

    def test_missing_path(self, tmp_path: Path) -> None:
        with pytest.raises(PreprocessingError, match="Image not found"):
            read_source(tmp_path / "missing.png")

    def test_undecodable_bytes(self) -> None:
        with pytest.raises(PreprocessingError, match="Cannot decode image"):
            load_image(b"not an image")

    def test_array_source_includes_shape(self) -> None:
        a = np.zeros((2, 8), dtype=np.uint8)
        b = np.zeros((4, 4), dtype=np.uint8)
        assert read_source(a) != read_source(b)


class TestImagePreprocessor:
    """Tests for ImagePreprocessor and its cache."""

    def test_enhancements_applied(self, sample_color_image: np.ndarray) -> None:
        result = ImagePreprocessor().preprocess_image(sample_color_image)
        assert result.image.ndim == 2
        assert (result.width, result.height) == (300, 200)
        assert "contrast" in result.enhancements
        assert "binarize(adaptive)" in result.enhancements

    def test_no_enhancement(self, sample_color_image: np.ndarray) -> None:
        result = ImagePreprocessor().preprocess_image(sample_color_image, enhance=False)
        assert result.enhancements == ()
        assert result.image is sample_color_image

    def test_disabled_steps(self, sample_image: np.ndarray) -> None:
        config = PreprocessingConfig(
            deskew_enabled=False,
            denoise_enabled=False,
            contrast_enabled=False,
            binarize_method="otsu",
        )
        result = ImagePreprocessor(config).preprocess_image(sample_image)
        assert result.enhancements == ("binarize(otsu)",)

    def test_hash_is_stable(self) -> None:
        preprocessor = ImagePreprocessor()
        data = png_bytes()
        first = preprocessor.preprocess_image(data)
        second = preprocessor.preprocess_image(data)
        assert first is second
        assert len(first.content_hash) == 64

    def test_cache_keyed_by_enhance_flag(self, sample_image: np.ndarray) -> None:
        preprocessor = ImagePreprocessor()
        preprocessor.preprocess_image(sample_image, enhance=True)
        preprocessor.preprocess_image(sample_image, enhance=False)
        assert preprocessor.cache_size() == 2

    def test_cache_evicts_oldest(self) -> None:
        preprocessor = ImagePreprocessor(PreprocessingConfig(cache_size=2))
        for value in (10, 20, 30):
            preprocessor.preprocess_image(
                np.full((20, 20), value, dtype=np.uint8), enhance=False
            )
        assert preprocessor.cache_size() == 2

    def test_clear_cache(self, sample_image: np.ndarray) -> None:
        preprocessor = ImagePreprocessor()
        preprocessor.preprocess_image(sample_image)
        preprocessor.clear_cache()
        assert preprocessor.cache_size() == 0

    def test_initialize(self) -> None:
        preprocessor = ImagePreprocessor()
        preprocessor.initialize()
        assert preprocessor.initialized is True
