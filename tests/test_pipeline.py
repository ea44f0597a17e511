"""Tests for the end-to-end pipeline."""
import numpy as np
import pytest
from PIL import Image

from safezone.pipeline import process_image, process_pixels
from safezone.types import (
    ConfigurationError,
    ConstraintRequirements,
    DetectionSettings,
    InputError,
    MaskGenerationOptions,
    NoMarkerFoundError,
    SmoothingOptions,
)

from images import blank


class TestProcessPixels:
    """Test detection -> mask -> validation chaining."""

    def test_scenario_a_usable(self, scenario_a_pixels, settings):
        result = process_pixels(scenario_a_pixels, settings)

        assert result.marker_found
        assert (result.width, result.height) == (1000, 1000)
        assert len(result.mask.contours) == 1
        assert result.validation.is_valid
        assert result.is_usable
        assert result.require_marker() is result
        assert result.processing_time >= 0

    def test_no_marker(self, settings):
        result = process_pixels(blank(64, 48), settings)

        assert not result.marker_found
        assert result.mask is None
        assert result.validation is None
        assert not result.is_usable
        with pytest.raises(NoMarkerFoundError):
            result.require_marker()

    def test_requirements_flow_through(self, scenario_a_pixels, settings):
        result = process_pixels(
            scenario_a_pixels, settings, requirements=ConstraintRequirements(min_area=70000)
        )
        assert not result.validation.is_valid
        assert not result.is_usable

    def test_config_checked_before_pixels(self):
        """A bad config is reported even when the buffer is also malformed."""
        with pytest.raises(ConfigurationError):
            process_pixels(np.zeros((4, 4)), DetectionSettings(tolerance_percent=150))

    @pytest.mark.parametrize("kwargs", [
        {"options": MaskGenerationOptions(smoothing=SmoothingOptions(kernel_size=2))},
        {"requirements": ConstraintRequirements(min_area=-1)},
    ])
    def test_invalid_config(self, kwargs, scenario_a_pixels):
        with pytest.raises(ConfigurationError):
            process_pixels(scenario_a_pixels, **kwargs)

    def test_malformed_buffer(self, settings):
        with pytest.raises(InputError):
            process_pixels(np.zeros((4, 4)), settings)

    def test_rgb_buffer_accepted(self, scenario_a_pixels, settings):
        result = process_pixels(scenario_a_pixels[..., :3].copy(), settings)
        assert result.marker_found


class TestProcessImage:
    """Test running the pipeline from an image file."""

    def test_png_file(self, scenario_a_pixels, settings, tmp_path):
        path = tmp_path / "template.png"
        Image.fromarray(scenario_a_pixels).save(path)

        result = process_image(path, settings)

        assert result.is_usable
        assert result.mask.contours[0].bounding_rect.width == 300

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            process_image(tmp_path / "missing.png")

    def test_undecodable_file(self, tmp_path):
        path = tmp_path / "broken.png"
        path.write_bytes(b"not an image")
        with pytest.raises(InputError):
            process_image(path)
