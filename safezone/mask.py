"""Mask generation: rasterize, clean, trace, simplify and score marker regions."""
import logging
import math
import time
from typing import List, Optional

import numpy as np

from safezone.contour import convex_hull_area, simplify_contours, trace_contours
from safezone.detection import label_regions
from safezone.morphology import fill_holes, rasterize_regions, smooth_mask
from safezone.raster_ingest import as_pixel_buffer
from safezone.types import (
    Contour,
    DetectionSettings,
    GeneratedMask,
    MaskGenerationOptions,
    MaskMetrics,
    MaskValidationOptions,
    MaskValidationResult,
    PixelBuffer,
    net_area,
)

logger = logging.getLogger(__name__)


def generate_mask(
    pixels: PixelBuffer,
    settings: DetectionSettings,
    options: Optional[MaskGenerationOptions] = None
) -> GeneratedMask:
    """
    Build a clean, traced mask of the marker-colored area.

    Runs detection, then: rasterize -> smooth -> fill holes -> trace ->
    simplify -> metrics -> validation. Never raises on empty or degenerate
    geometry; the result then has zero contours and an invalid validation.

    Args:
        pixels: RGBA buffer (H, W, 4)
        settings: Detection settings
        options: Mask generation options. Uses defaults if None.

    Returns:
        GeneratedMask

    Raises:
        ConfigurationError: If settings or options are out of range
        InputError: If the pixel buffer is malformed
    """
    options = options or MaskGenerationOptions()
    settings.validate()
    options.validate()

    start_time = time.time()
    pixels = as_pixel_buffer(pixels)
    height, width = pixels.shape[:2]

    # Step 1: Detect and rasterize marker regions
    label_map, regions = label_regions(pixels, settings)
    mask = rasterize_regions(label_map, regions)
    logger.debug(f"Rasterized {len(regions)} regions ({int(np.count_nonzero(mask))} px)")

    # Step 2: Morphological smoothing
    if options.smoothing.enabled:
        mask = smooth_mask(mask, options.smoothing)

    # Step 3: Selective hole filling
    if options.fill_holes:
        mask = fill_holes(mask, options.min_hole_size)

    # Step 4: Contour extraction
    contours = trace_contours(mask)
    logger.debug(f"Traced {len(contours)} contours")

    # Step 5: Simplification
    if options.contour_simplification.enabled:
        before = sum(len(c) for c in contours)
        contours = simplify_contours(contours, options.contour_simplification.epsilon)
        logger.debug(f"Simplified {before} -> {sum(len(c) for c in contours)} points")

    # Steps 6-7: Metrics and validation
    validation = validate_mask(contours, options.validation)

    processing_time = time.time() - start_time
    logger.info(
        f"Generated mask with {len(contours)} contours in {processing_time:.3f}s "
        f"(valid={validation.is_valid})"
    )

    return GeneratedMask(
        width=width,
        height=height,
        contours=contours,
        options=options,
        processing_time=processing_time,
        validation=validation,
        regions=regions,
        mask=mask,
    )


def main_contour_index(contours: List[Contour]) -> Optional[int]:
    """Index of the outer contour with the largest net area, skipping degenerate ones."""
    best = None
    best_area = -1.0
    for i, contour in enumerate(contours):
        if contour.is_hole or contour.is_degenerate:
            continue
        area = net_area(contours, i)
        if area > best_area:
            best, best_area = i, area
    return best


def calculate_metrics(contours: List[Contour], index: int) -> MaskMetrics:
    """
    Shape metrics of one outer contour (holes subtracted).

    Solidity is area over convex-hull area; compactness is
    4*pi*area / perimeter^2 (1.0 for a circle). Both lie in (0, 1] for
    any contour with area.
    """
    outer = contours[index]
    area = net_area(contours, index)
    perimeter = outer.perimeter
    if area <= 0 or perimeter <= 0:
        return MaskMetrics()

    rect = outer.bounding_rect
    aspect_ratio = rect.width / rect.height if rect.height > 0 else 0.0

    hull_area = convex_hull_area(outer.points)
    solidity = min(1.0, area / hull_area) if hull_area > 0 else 1.0
    compactness = min(1.0, 4.0 * math.pi * area / (perimeter * perimeter))

    return MaskMetrics(
        area=area,
        perimeter=perimeter,
        aspect_ratio=aspect_ratio,
        solidity=solidity,
        compactness=compactness,
    )


def validate_mask(
    contours: List[Contour],
    options: MaskValidationOptions
) -> MaskValidationResult:
    """
    Heuristic quality checks on the traced mask.

    Args:
        contours: Traced (and possibly simplified) contours
        options: Validation thresholds

    Returns:
        MaskValidationResult with metrics of the main contour
    """
    index = main_contour_index(contours)
    if index is None:
        return MaskValidationResult(
            is_valid=False,
            errors=["No valid contours found in the mask"],
            suggestions=[
                "Try adjusting color tolerance",
                "Check if image contains target colors",
            ],
        )

    metrics = calculate_metrics(contours, index)
    if not options.enabled:
        return MaskValidationResult(is_valid=True, metrics=metrics)

    errors = []
    warnings = []
    suggestions = []

    if metrics.area < options.min_area:
        errors.append(
            f"Constraint area too small: {round(metrics.area)} < {options.min_area:g} pixels"
        )
        suggestions.append("Increase color tolerance or check image quality")
    elif options.max_area is not None and metrics.area > options.max_area:
        warnings.append(
            f"Constraint area very large: {round(metrics.area)} > {options.max_area:g} pixels"
        )
        suggestions.append("Consider reducing color tolerance")

    low, high = options.aspect_ratio_range
    if metrics.aspect_ratio < low:
        warnings.append(f"Aspect ratio too narrow: {metrics.aspect_ratio:.2f} < {low:g}")
        suggestions.append("Constraint area may be too thin for logo placement")
    elif metrics.aspect_ratio > high:
        warnings.append(f"Aspect ratio too wide: {metrics.aspect_ratio:.2f} > {high:g}")
        suggestions.append("Constraint area may be too elongated")

    if metrics.solidity < options.min_solidity:
        warnings.append("Constraint area has irregular shape (low solidity)")
        suggestions.append("Consider enabling hole filling or smoothing")

    if metrics.compactness < options.min_compactness:
        warnings.append("Constraint area has complex perimeter (low compactness)")
        suggestions.append("Consider contour simplification")

    outer_indices = [i for i, c in enumerate(contours) if not c.is_hole and not c.is_degenerate]
    if len(outer_indices) > 1:
        total_area = sum(net_area(contours, i) for i in outer_indices)
        main_ratio = metrics.area / total_area if total_area > 0 else 0.0
        if main_ratio < options.min_main_region_ratio:
            warnings.append(f"Multiple constraint areas detected ({len(outer_indices)} regions)")
            suggestions.append("Consider if logo should be placed in largest area only")

    return MaskValidationResult(
        is_valid=not errors,
        errors=errors,
        warnings=warnings,
        suggestions=suggestions,
        metrics=metrics,
    )
