"""Shared synthetic images for safezone tests."""
import numpy as np
import pytest

from safezone.mask import generate_mask
from safezone.types import DetectionSettings, MaskGenerationOptions, SmoothingOptions

from images import GREEN, WHITE, blank, paint


@pytest.fixture
def settings():
    return DetectionSettings(tolerance_percent=10.0)


@pytest.fixture
def scenario_a_pixels():
    """1000x1000 white image with a centered 300x200 green rectangle."""
    return paint(blank(1000, 1000), 350, 400, 300, 200)


@pytest.fixture
def scenario_a_mask(scenario_a_pixels, settings):
    options = MaskGenerationOptions(smoothing=SmoothingOptions(iterations=1, kernel_size=3))
    return generate_mask(scenario_a_pixels, settings, options)


@pytest.fixture
def two_rect_pixels():
    """400x300 image with two disjoint 100x100 green squares."""
    image = blank(400, 300)
    paint(image, 50, 100, 100, 100)
    paint(image, 250, 100, 100, 100)
    return image


@pytest.fixture
def one_rect_pixels():
    """Same canvas and total area as ``two_rect_pixels`` in one piece."""
    return paint(blank(400, 300), 100, 100, 200, 100)


@pytest.fixture
def ring_pixels():
    """200x200 image with a 120x120 green square and a 40x40 hole."""
    image = paint(blank(200, 200), 40, 40, 120, 120)
    return paint(image, 80, 80, 40, 40, WHITE)


@pytest.fixture
def disc_pixels():
    """300x300 image with a green disc of radius 100."""
    image = blank(300, 300)
    yy, xx = np.mgrid[:300, :300]
    inside = (xx - 150) ** 2 + (yy - 150) ** 2 <= 100 ** 2
    image[inside] = GREEN
    return image
