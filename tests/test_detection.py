"""Tests for marker region detection."""
import numpy as np
import pytest

from safezone.detection import detect_regions, label_regions, marker_mask
from safezone.types import (
    ConfigurationError,
    DetectionSettings,
    EdgeSmoothing,
    InputError,
    NoiseReduction,
)

from images import blank, paint


class TestDetectRegions:
    """Test connected-region detection."""

    def test_scenario_a_single_region(self, scenario_a_pixels, settings):
        """A centered 300x200 rectangle is found with exact bounds."""
        result = detect_regions(scenario_a_pixels, settings)

        assert result.found
        assert len(result.regions) == 1
        region = result.regions[0]
        assert region.bbox == (350, 400, 650, 600)
        assert region.area == 60000
        assert region.centroid == pytest.approx((499.5, 499.5))
        assert region.confidence == pytest.approx(100.0)
        assert result.total_area == 60000

    def test_no_match_returns_empty(self, settings):
        result = detect_regions(blank(50, 50), settings)
        assert result.regions == []
        assert not result.found
        assert result.total_area == 0

    def test_deterministic(self, two_rect_pixels, settings):
        first = detect_regions(two_rect_pixels, settings)
        second = detect_regions(two_rect_pixels, settings)
        assert [r.bbox for r in first.regions] == [r.bbox for r in second.regions]
        assert [r.area for r in first.regions] == [r.area for r in second.regions]

    def test_regions_in_raster_order(self, two_rect_pixels, settings):
        result = detect_regions(two_rect_pixels, settings)
        assert [r.x for r in result.regions] == [50, 250]

    def test_min_area_noise_floor(self, settings):
        """Components smaller than min_area are discarded."""
        image = paint(blank(100, 100), 10, 10, 3, 3)
        paint(image, 50, 50, 20, 20)
        result = detect_regions(image, settings)
        assert len(result.regions) == 1
        assert result.regions[0].area == 400

    def test_max_area(self, two_rect_pixels):
        image = paint(two_rect_pixels.copy(), 0, 0, 5, 5)
        settings = DetectionSettings(min_area=0, max_area=100)
        result = detect_regions(image, settings)
        assert [r.area for r in result.regions] == [25]

    def test_connectivity(self):
        """Diagonally touching squares merge only under 8-connectivity."""
        image = paint(blank(40, 40), 0, 0, 10, 10)
        paint(image, 10, 10, 10, 10)

        four = detect_regions(image, DetectionSettings(connectivity=4))
        eight = detect_regions(image, DetectionSettings(connectivity=8))

        assert len(four.regions) == 2
        assert len(eight.regions) == 1
        assert eight.regions[0].area == 200

    def test_label_map_matches_regions(self, two_rect_pixels, settings):
        label_map, regions = label_regions(two_rect_pixels, settings)
        assert label_map.dtype == np.int32
        for region in regions:
            assert np.count_nonzero(label_map == region.label) == region.area

    def test_rgb_input_is_accepted(self, scenario_a_pixels, settings):
        result = detect_regions(scenario_a_pixels[..., :3], settings)
        assert len(result.regions) == 1


class TestMaskCleanup:
    """Test optional noise reduction and edge smoothing."""

    def test_noise_reduction_removes_speckles(self):
        image = paint(blank(50, 50), 5, 5, 1, 1)
        paint(image, 20, 20, 20, 20)
        settings = DetectionSettings(
            min_area=0,
            noise_reduction=NoiseReduction(enabled=True, kernel_size=3, iterations=1),
        )
        mask = marker_mask(image, settings)
        assert not mask[5, 5]
        assert mask[20:40, 20:40].all()

    def test_edge_smoothing_keeps_solid_shapes(self, two_rect_pixels):
        settings = DetectionSettings(edge_smoothing=EdgeSmoothing(enabled=True))
        mask = marker_mask(two_rect_pixels, settings)
        assert mask[110:190, 60:140].all()
        assert not mask[:90].any()


class TestDetectionConfiguration:
    """Test that bad input fails fast."""

    @pytest.mark.parametrize("kwargs", [
        {"tolerance_percent": 150},
        {"tolerance_percent": -1},
        {"connectivity": 6},
        {"min_area": -5},
        {"noise_reduction": NoiseReduction(enabled=True, kernel_size=4)},
        {"noise_reduction": NoiseReduction(enabled=True, kernel_size=53)},
    ])
    def test_invalid_settings(self, kwargs, scenario_a_pixels):
        with pytest.raises(ConfigurationError):
            detect_regions(scenario_a_pixels, DetectionSettings(**kwargs))

    def test_configuration_error_is_value_error(self):
        with pytest.raises(ValueError):
            DetectionSettings(connectivity=5).validate()

    def test_malformed_buffer(self, settings):
        with pytest.raises(InputError):
            detect_regions(np.zeros((10, 10), dtype=np.uint8), settings)

    def test_empty_buffer(self, settings):
        with pytest.raises(InputError):
            detect_regions(np.zeros((0, 10, 4), dtype=np.uint8), settings)

    def test_from_dict(self):
        settings = DetectionSettings.from_dict({
            "color_range": {"h_min": 100, "h_max": 140},
            "tolerance_percent": 5,
            "noise_reduction": {"enabled": True, "kernel_size": 5},
        })
        assert settings.color_range.h_min == 100
        assert settings.noise_reduction.kernel_size == 5
        settings.validate()
