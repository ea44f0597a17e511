"""Tests for mask generation, metrics and mask validation."""
import math

import numpy as np
import pytest

from safezone.contour import trace_contours
from safezone.mask import calculate_metrics, generate_mask, main_contour_index, validate_mask
from safezone.types import (
    ConfigurationError,
    Contour,
    DetectionSettings,
    MaskGenerationOptions,
    MaskValidationOptions,
    Rect,
    SimplificationOptions,
    SmoothingOptions,
)

from images import blank, paint


class TestGenerateMask:
    """Test the full mask generation sequence."""

    def test_scenario_a(self, scenario_a_mask):
        """One contour close to 60,000 px with the rectangle's bounds."""
        mask = scenario_a_mask

        assert (mask.width, mask.height) == (1000, 1000)
        assert len(mask.contours) == 1
        contour = mask.contours[0]
        assert contour.bounding_rect == Rect(350, 400, 300, 200)
        assert 57000 <= contour.area <= 60000
        assert mask.validation.is_valid
        assert mask.validation.metrics.aspect_ratio == pytest.approx(1.5)
        assert mask.validation.metrics.solidity == pytest.approx(1.0)

    def test_contours_within_image(self, two_rect_pixels, settings):
        mask = generate_mask(two_rect_pixels, settings)
        for contour in mask.contours:
            assert contour.points[:, 0].min() >= 0
            assert contour.points[:, 1].min() >= 0
            assert contour.points[:, 0].max() < mask.width
            assert contour.points[:, 1].max() < mask.height

    def test_circle_compactness(self, disc_pixels, settings):
        """Compactness is measured on the default simplified contour.

        The raw 8-connected trace has a staircase perimeter that keeps
        compactness near 0.9; simplification straightens it.
        """
        mask = generate_mask(disc_pixels, settings)
        assert len(mask.contours) == 1
        assert mask.validation.metrics.compactness == pytest.approx(1.0, abs=0.03)

    def test_empty_image_never_raises(self, settings):
        mask = generate_mask(blank(100, 100), settings)
        assert mask.contours == []
        assert not mask.validation.is_valid
        assert mask.validation.errors

    def test_min_hole_size_zero_keeps_hole(self, ring_pixels, settings):
        options = MaskGenerationOptions(fill_holes=True, min_hole_size=0)
        mask = generate_mask(ring_pixels, settings, options)
        assert [c.is_hole for c in mask.contours] == [False, True]

    def test_large_min_hole_size_fills_hole(self, ring_pixels, settings):
        options = MaskGenerationOptions(fill_holes=True, min_hole_size=10 ** 9)
        mask = generate_mask(ring_pixels, settings, options)
        assert [c.is_hole for c in mask.contours] == [False]

    def test_fill_holes_disabled(self, ring_pixels, settings):
        options = MaskGenerationOptions(fill_holes=False, min_hole_size=10 ** 9)
        mask = generate_mask(ring_pixels, settings, options)
        assert len(mask.holes_of(0)) == 1

    def test_hole_reduces_net_area(self, ring_pixels, settings):
        mask = generate_mask(ring_pixels, settings)
        outer = mask.contours[0]
        assert mask.net_area(0) < outer.area
        assert mask.total_area == pytest.approx(mask.net_area(0))

    def test_simplification_reduces_points(self, disc_pixels, settings):
        plain = generate_mask(
            disc_pixels, settings,
            MaskGenerationOptions(contour_simplification=SimplificationOptions(enabled=False)),
        )
        simplified = generate_mask(disc_pixels, settings)
        assert len(simplified.contours[0]) < len(plain.contours[0])

    def test_regions_and_raster_kept(self, scenario_a_mask):
        assert len(scenario_a_mask.regions) == 1
        assert np.count_nonzero(scenario_a_mask.mask) == 60000

    @pytest.mark.parametrize("options", [
        MaskGenerationOptions(smoothing=SmoothingOptions(kernel_size=4)),
        MaskGenerationOptions(smoothing=SmoothingOptions(kernel_size=53)),
        MaskGenerationOptions(smoothing=SmoothingOptions(iterations=-1)),
        MaskGenerationOptions(contour_simplification=SimplificationOptions(epsilon=-1)),
        MaskGenerationOptions(min_hole_size=-1),
    ])
    def test_invalid_options(self, options, scenario_a_pixels, settings):
        with pytest.raises(ConfigurationError):
            generate_mask(scenario_a_pixels, settings, options)

    def test_options_round_trip(self):
        options = MaskGenerationOptions(
            min_hole_size=7,
            smoothing=SmoothingOptions(kernel_shape="cross"),
        )
        assert MaskGenerationOptions.from_dict(options.to_dict()) == options


class TestMetrics:
    """Test shape quality metrics."""

    def test_square_metrics(self):
        contour = Contour(np.array([[0, 0], [10, 0], [10, 10], [0, 10]], dtype=float))
        metrics = calculate_metrics([contour], 0)
        assert metrics.area == pytest.approx(100.0)
        assert metrics.perimeter == pytest.approx(40.0)
        assert metrics.solidity == pytest.approx(1.0)
        assert metrics.compactness == pytest.approx(math.pi / 4)

    def test_concave_shape_has_low_solidity(self):
        # U shape
        points = np.array([
            [0, 0], [30, 0], [30, 30], [20, 30], [20, 10], [10, 10], [10, 30], [0, 30]
        ], dtype=float)
        metrics = calculate_metrics([Contour(points)], 0)
        assert 0 < metrics.solidity < 1
        assert metrics.solidity == pytest.approx(700 / 900)

    def test_metric_ranges(self, disc_pixels, ring_pixels, settings):
        for pixels in (disc_pixels, ring_pixels):
            metrics = generate_mask(pixels, settings).validation.metrics
            assert 0 < metrics.solidity <= 1
            assert 0 < metrics.compactness <= 1
            assert metrics.area >= 0

    def test_main_contour_is_largest(self):
        mask = np.zeros((60, 60), dtype=np.uint8)
        mask[2:8, 2:8] = 255
        mask[20:50, 20:50] = 255
        contours = trace_contours(mask)
        assert main_contour_index(contours) == 1

    def test_main_contour_none_when_empty(self):
        assert main_contour_index([]) is None


class TestValidateMask:
    """Test heuristic mask validation."""

    def test_area_too_small(self):
        image = paint(blank(50, 50), 10, 10, 5, 5)
        settings = DetectionSettings(min_area=0)
        options = MaskGenerationOptions(smoothing=SmoothingOptions(enabled=False))
        mask = generate_mask(image, settings, options)
        assert not mask.validation.is_valid
        assert any("too small" in e for e in mask.validation.errors)

    def test_multiple_regions_warning(self, two_rect_pixels, settings):
        mask = generate_mask(two_rect_pixels, settings)
        assert mask.validation.is_valid
        assert any("Multiple constraint areas" in w for w in mask.validation.warnings)

    def test_narrow_aspect_warning(self):
        contour = Contour(np.array([[0, 0], [10, 0], [10, 200], [0, 200]], dtype=float))
        result = validate_mask([contour], MaskValidationOptions())
        assert any("narrow" in w for w in result.warnings)

    def test_disabled_skips_checks(self):
        contour = Contour(np.array([[0, 0], [2, 0], [2, 2], [0, 2]], dtype=float))
        result = validate_mask([contour], MaskValidationOptions(enabled=False))
        assert result.is_valid
        assert result.metrics.area == pytest.approx(4.0)
