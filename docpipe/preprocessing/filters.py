"""OpenCV enhancement filters applied to document photos before OCR.

Images are loaded through Pillow, so color images arrive in RGB order.
"""

import cv2
import numpy as np

from docpipe.utils.logger import get_logger

logger = get_logger(__name__)


def to_gray(image: np.ndarray) -> np.ndarray:
    """Convert an RGB image to grayscale; grayscale input is returned as-is."""
    if image.ndim == 3:
        return cv2.cvtColor(image, cv2.COLOR_RGB2GRAY)
    return image


def detect_skew_angle(image: np.ndarray) -> float:
    """Median angle of the dominant Hough lines, in degrees.

    Returns 0.0 when no lines are found.
    """
    edges = cv2.Canny(to_gray(image), 50, 150, apertureSize=3)
    lines = cv2.HoughLinesP(edges, 1, np.pi / 180, 100, minLineLength=100, maxLineGap=10)
    if lines is None:
        return 0.0
    angles = [np.arctan2(y2 - y1, x2 - x1) * 180 / np.pi for x1, y1, x2, y2 in lines[:, 0]]
    return float(np.median(angles))


def deskew(image: np.ndarray, angle_threshold: float = 0.5) -> tuple[np.ndarray, float]:
    """Rotate the image to undo skew.

    Args:
        image: Input image.
        angle_threshold: Smallest angle, in degrees, worth correcting.

    Returns:
        Tuple of (image, applied_angle); the angle is 0.0 when unchanged.
    """
    angle = detect_skew_angle(image)
    if abs(angle) < angle_threshold:
        return image, 0.0

    h, w = image.shape[:2]
    matrix = cv2.getRotationMatrix2D((w // 2, h // 2), angle, 1.0)
    rotated = cv2.warpAffine(
        image, matrix, (w, h), flags=cv2.INTER_CUBIC, borderMode=cv2.BORDER_REPLICATE
    )
    logger.debug("Deskewed image by %.2f degrees", angle)
    return rotated, angle


def denoise(image: np.ndarray, method: str = "bilateral") -> np.ndarray:
    """Reduce sensor noise while keeping glyph edges.

    Raises:
        ValueError: If ``method`` is not ``"gaussian"`` or ``"bilateral"``.
    """
    if method == "gaussian":
        return cv2.GaussianBlur(image, (5, 5), 0)
    if method == "bilateral":
        return cv2.bilateralFilter(image, 9, 75, 75)
    raise ValueError(f"Unsupported denoise method: {method}")


def enhance_contrast(
    image: np.ndarray, clip_limit: float = 2.0, tile_size: int = 8
) -> np.ndarray:
    """CLAHE on the grayscale image."""
    clahe = cv2.createCLAHE(clipLimit=clip_limit, tileGridSize=(tile_size, tile_size))
    return clahe.apply(to_gray(image))


def binarize(image: np.ndarray, method: str = "adaptive") -> np.ndarray:
    """Threshold to black text on white, with Otsu or adaptive Gaussian."""
    gray = to_gray(image)
    if method == "otsu":
        _, binary = cv2.threshold(gray, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)
        return binary
    return cv2.adaptiveThreshold(
        gray, 255, cv2.ADAPTIVE_THRESH_GAUSSIAN_C, cv2.THRESH_BINARY, 11, 2
    )


def sharpness(image: np.ndarray) -> float:
    """Laplacian variance; higher means sharper."""
    return float(cv2.Laplacian(to_gray(image), cv2.CV_64F).var())
