"""Color space conversion and marker-color classification."""
from collections import Counter
from dataclasses import dataclass, field, replace
from typing import Dict, List, Tuple

import numpy as np
from skimage.color import rgb2hsv

from safezone.types import (
    ColorRange,
    DetectionSettings,
    NoiseReduction,
    PixelBuffer,
    RGBRange,
)

# Pixels below this alpha never count as marker pixels
ALPHA_THRESHOLD = 128

GREEN_COLOR_RANGES: Dict[str, ColorRange] = {
    # Bright/vivid green, the usual marker color
    "VIVID_GREEN": ColorRange(h_min=100, h_max=140, s_min=50, s_max=100, v_min=40, v_max=100),
    "DARK_GREEN": ColorRange(h_min=80, h_max=120, s_min=30, s_max=100, v_min=20, v_max=60),
    "LIGHT_GREEN": ColorRange(h_min=110, h_max=150, s_min=20, s_max=70, v_min=60, v_max=100),
    "ALL_GREEN": ColorRange(h_min=80, h_max=160, s_min=15, s_max=100, v_min=15, v_max=100),
}


def _round_half_up(values: np.ndarray) -> np.ndarray:
    return np.floor(values + 0.5)


def rgb_to_hsv(rgb: np.ndarray) -> np.ndarray:
    """
    Convert RGB values to integer HSV.

    Args:
        rgb: Array (..., 3) with values 0-255

    Returns:
        Float array (..., 3) holding whole-number hue in degrees [0, 360)
        and saturation/value in percent [0, 100]
    """
    rgb = np.asarray(rgb, dtype=np.float64) / 255.0
    hsv = rgb2hsv(rgb)
    h = _round_half_up(hsv[..., 0] * 360.0) % 360
    s = _round_half_up(hsv[..., 1] * 100.0)
    v = _round_half_up(hsv[..., 2] * 100.0)
    return np.stack([h, s, v], axis=-1)


def hue_in_band(hue: np.ndarray, h_min: float, h_max: float, widen: float) -> np.ndarray:
    """Test hues against a band widened by ``widen`` degrees on each side.

    ``h_min > h_max`` denotes a band that wraps through 0 degrees.
    """
    if h_max - h_min + 2 * widen >= 360 or (h_min > h_max and h_min - h_max <= 2 * widen):
        return np.ones(hue.shape, dtype=bool)
    low = (h_min - widen) % 360
    high = (h_max + widen) % 360
    if low <= high:
        return (hue >= low) & (hue <= high)
    return (hue >= low) | (hue <= high)


def match_hsv(hsv: np.ndarray, band: ColorRange, tolerance: float) -> np.ndarray:
    """Boolean mask of HSV pixels inside ``band`` widened by ``tolerance`` percent."""
    h_ok = hue_in_band(hsv[..., 0], band.h_min, band.h_max, tolerance * 3.6)
    s_min = max(0.0, band.s_min - tolerance)
    s_max = min(100.0, band.s_max + tolerance)
    v_min = max(0.0, band.v_min - tolerance)
    v_max = min(100.0, band.v_max + tolerance)
    s_ok = (hsv[..., 1] >= s_min) & (hsv[..., 1] <= s_max)
    v_ok = (hsv[..., 2] >= v_min) & (hsv[..., 2] <= v_max)
    return h_ok & s_ok & v_ok


def match_rgb(rgb: np.ndarray, band: RGBRange, tolerance: float) -> np.ndarray:
    """Boolean mask of RGB pixels inside ``band`` widened by ``tolerance`` percent."""
    widen = tolerance * 2.55
    rgb = rgb.astype(np.int16)
    result = np.ones(rgb.shape[:-1], dtype=bool)
    for i, channel in enumerate("rgb"):
        low = getattr(band, f"{channel}_min") - widen
        high = getattr(band, f"{channel}_max") + widen
        result &= (rgb[..., i] >= low) & (rgb[..., i] <= high)
    return result


def classify_pixels(pixels: PixelBuffer, settings: DetectionSettings) -> np.ndarray:
    """
    Classify every pixel against the configured marker color band.

    Args:
        pixels: RGBA buffer (H, W, 4) uint8
        settings: Detection settings

    Returns:
        Boolean mask (H, W), True where the pixel is marker-colored
    """
    rgb = pixels[..., :3]
    opaque = pixels[..., 3] >= ALPHA_THRESHOLD
    band = settings.color_range
    if isinstance(band, RGBRange):
        matched = match_rgb(rgb, band, settings.tolerance_percent)
    else:
        matched = match_hsv(rgb_to_hsv(rgb), band, settings.tolerance_percent)
    return matched & opaque


@dataclass
class ImageColorAnalysis:
    """Coarse color statistics of an image."""
    dominant_colors: List[Tuple[int, int, int]] = field(default_factory=list)
    color_distribution: Dict[str, int] = field(default_factory=dict)
    has_target_color: bool = False


def analyze_image_colors(
    pixels: PixelBuffer,
    settings: DetectionSettings,
    stride: int = 16
) -> ImageColorAnalysis:
    """
    Sample pixels and summarize the image's color content.

    Args:
        pixels: RGBA buffer (H, W, 4)
        settings: Detection settings whose band defines the target color
        stride: Sample every ``stride``-th pixel in raster order

    Returns:
        ImageColorAnalysis with the five most frequent HSV bins
    """
    flat = pixels.reshape(-1, 4)[::stride]
    flat = flat[flat[:, 3] >= ALPHA_THRESHOLD]
    if len(flat) == 0:
        return ImageColorAnalysis()

    hsv = rgb_to_hsv(flat[:, :3])
    keys = np.stack([
        _round_half_up(hsv[:, 0] / 10) * 10,
        _round_half_up(hsv[:, 1] / 20) * 20,
        _round_half_up(hsv[:, 2] / 20) * 20,
    ], axis=1).astype(int)
    counts = Counter(f"{h}-{s}-{v}" for h, s, v in keys)

    # most_common keeps first-seen order on ties, so the result is deterministic
    dominant = [
        tuple(int(part) for part in key.split("-"))
        for key, _ in counts.most_common(5)
    ]

    band = settings.color_range
    if isinstance(band, RGBRange):
        has_target = bool(match_rgb(flat[:, :3], band, settings.tolerance_percent).any())
    else:
        has_target = bool(match_hsv(hsv, band, settings.tolerance_percent).any())

    return ImageColorAnalysis(
        dominant_colors=dominant,
        color_distribution=dict(counts),
        has_target_color=has_target,
    )


def adapt_settings(
    settings: DetectionSettings,
    analysis: ImageColorAnalysis
) -> DetectionSettings:
    """
    Derive detection settings tuned to an image's color analysis.

    Returns a new settings object; ``settings`` is left untouched.
    """
    changes = {}
    if not analysis.has_target_color:
        changes["tolerance_percent"] = min(25.0, settings.tolerance_percent + 10)

    variety = len(analysis.color_distribution)
    if variety > 50:
        changes["noise_reduction"] = NoiseReduction(enabled=True, kernel_size=5, iterations=2)
    elif variety < 20:
        changes["noise_reduction"] = replace(settings.noise_reduction, kernel_size=3, iterations=1)

    return replace(settings, **changes)
