"""Tests for color conversion and pixel classification."""
import numpy as np

from safezone.color import (
    GREEN_COLOR_RANGES,
    adapt_settings,
    analyze_image_colors,
    classify_pixels,
    hue_in_band,
    match_rgb,
    rgb_to_hsv,
)
from safezone.types import DetectionSettings, RGBRange

from images import GREEN, blank, paint


class TestRgbToHsv:
    """Test RGB to integer HSV conversion."""

    def test_primary_colors(self):
        """Pure colors map to whole-degree hues at full saturation."""
        rgb = np.array([[255, 0, 0], [0, 255, 0], [0, 0, 255]])
        hsv = rgb_to_hsv(rgb)
        np.testing.assert_array_equal(hsv[:, 0], [0, 120, 240])
        np.testing.assert_array_equal(hsv[:, 1], [100, 100, 100])
        np.testing.assert_array_equal(hsv[:, 2], [100, 100, 100])

    def test_white_has_no_saturation(self):
        hsv = rgb_to_hsv(np.array([255, 255, 255]))
        assert hsv[1] == 0
        assert hsv[2] == 100

    def test_values_are_rounded(self):
        """Value of 200/255 = 78.4% rounds to 78."""
        hsv = rgb_to_hsv(np.array([0, 200, 0]))
        assert hsv[2] == 78


class TestHueBand:
    """Test hue band matching."""

    def test_plain_band(self):
        hue = np.array([79.0, 80.0, 120.0, 160.0, 161.0])
        np.testing.assert_array_equal(
            hue_in_band(hue, 80, 160, 0), [False, True, True, True, False]
        )

    def test_band_wrapping_through_zero(self):
        """h_min > h_max wraps through 0 degrees."""
        hue = np.array([350.0, 10.0, 180.0])
        np.testing.assert_array_equal(hue_in_band(hue, 340, 20, 0), [True, True, False])

    def test_tolerance_widens_band(self):
        """10% tolerance widens the hue band by 36 degrees per side."""
        hue = np.array([165.0, 196.0, 197.0])
        np.testing.assert_array_equal(hue_in_band(hue, 80, 160, 0), [False, False, False])
        np.testing.assert_array_equal(hue_in_band(hue, 80, 160, 36), [True, True, False])

    def test_full_circle(self):
        hue = np.array([0.0, 90.0, 359.0])
        assert hue_in_band(hue, 0, 300, 40).all()


class TestClassifyPixels:
    """Test pixel classification against detection settings."""

    def test_green_matches_white_does_not(self):
        image = paint(blank(4, 1), 0, 0, 2, 1)
        result = classify_pixels(image, DetectionSettings())
        np.testing.assert_array_equal(result, [[True, True, False, False]])

    def test_transparent_pixels_never_match(self):
        """Alpha below 128 excludes a pixel even when its color matches."""
        image = blank(3, 1, GREEN)
        image[0, 0, 3] = 0
        image[0, 1, 3] = 127
        image[0, 2, 3] = 128
        result = classify_pixels(image, DetectionSettings())
        np.testing.assert_array_equal(result, [[False, False, True]])

    def test_rgb_band(self):
        band = RGBRange(r_min=0, r_max=10, g_min=190, g_max=210, b_min=0, b_max=10)
        image = paint(blank(2, 1), 0, 0, 1, 1)
        result = classify_pixels(image, DetectionSettings(color_range=band, tolerance_percent=0))
        np.testing.assert_array_equal(result, [[True, False]])

    def test_rgb_tolerance(self):
        """Tolerance widens RGB bands by 2.55 levels per percent."""
        band = RGBRange(r_min=100, r_max=100, g_min=100, g_max=100, b_min=100, b_max=100)
        rgb = np.array([[110, 100, 100]])
        assert not match_rgb(rgb, band, 3.0)[0]
        assert match_rgb(rgb, band, 4.0)[0]

    def test_presets_are_valid(self):
        for band in GREEN_COLOR_RANGES.values():
            band.validate()


class TestColorAnalysis:
    """Test image color analysis and settings adaptation."""

    def test_detects_target_color(self, scenario_a_pixels):
        analysis = analyze_image_colors(scenario_a_pixels, DetectionSettings())
        assert analysis.has_target_color
        assert 1 <= len(analysis.dominant_colors) <= 5

    def test_white_image_has_no_target(self):
        analysis = analyze_image_colors(blank(64, 64), DetectionSettings())
        assert not analysis.has_target_color
        assert analysis.dominant_colors == [(0, 0, 100)]

    def test_fully_transparent_image(self):
        image = blank(8, 8)
        image[..., 3] = 0
        analysis = analyze_image_colors(image, DetectionSettings())
        assert analysis.dominant_colors == []

    def test_adapt_raises_tolerance_without_target(self):
        settings = DetectionSettings(tolerance_percent=10.0)
        analysis = analyze_image_colors(blank(64, 64), settings)
        adapted = adapt_settings(settings, analysis)
        assert adapted.tolerance_percent == 20.0
        assert settings.tolerance_percent == 10.0

    def test_adapt_caps_tolerance(self):
        settings = DetectionSettings(tolerance_percent=20.0)
        analysis = analyze_image_colors(blank(64, 64), settings)
        assert adapt_settings(settings, analysis).tolerance_percent == 25.0
