"""Placement zones: largest inscribed rectangles and their quality scores."""
import logging
import math
from typing import List, Optional, Tuple

import cv2
import numpy as np

from safezone.contour import draw_contour
from safezone.types import (
    ConstraintRequirements,
    GeneratedMask,
    PlacementZone,
    Rect,
)

logger = logging.getLogger(__name__)

# Quality weights
AREA_WEIGHT = 0.5
ASPECT_WEIGHT = 0.3
EDGE_WEIGHT = 0.2
RESTRICTION_PENALTY = 0.1


def largest_rectangle(binary: np.ndarray) -> Optional[Rect]:
    """
    Largest axis-aligned rectangle of nonzero cells.

    Builds per-row column heights and scans each row's histogram with a
    monotonic stack. Adjacent columns of equal height are scanned as one
    bar, so a row costs time in the number of height changes rather than
    its width; rows without set cells are skipped. Ties keep the first
    rectangle found in row-major order, so the result is deterministic.

    Args:
        binary: 2D array, nonzero = usable

    Returns:
        Rect in array coordinates, or None if no cell is set
    """
    rows, cols = binary.shape
    heights = np.zeros(cols, dtype=np.int64)
    best_area = 0
    best = None

    for y in range(rows):
        row = binary[y] > 0
        heights = np.where(row, heights + 1, 0)
        if not row.any():
            continue

        starts = np.concatenate(([0], np.flatnonzero(np.diff(heights)) + 1))
        bars = list(zip(starts.tolist(), heights[starts].tolist()))
        bars.append((cols, 0))  # trailing 0 flushes the stack

        stack: List[Tuple[int, int]] = []  # (left, height)
        for x, h in bars:
            left = x
            while stack and stack[-1][1] >= h:
                left, top_h = stack.pop()
                area = top_h * (x - left)
                if area > best_area:
                    best_area = area
                    best = Rect(left, y - top_h + 1, x - left, top_h)
            stack.append((left, h))

    return best


def usable_area(
    mask: GeneratedMask,
    index: int,
    requirements: ConstraintRequirements,
    image_width: int,
    image_height: int
) -> Tuple[np.ndarray, Tuple[int, int]]:
    """
    Raster of the pixels where a logo may sit inside one outer contour.

    The contour is painted with its holes cleared, eroded by the logo
    padding, and an image-border band of ``margin_from_edges`` is removed.

    Returns:
        Tuple of (binary array, (x, y) origin of the array in the image)
    """
    outer = mask.contours[index]
    bounds = outer.bounding_rect
    # One pixel of background around the shape so erosion sees its edge
    origin = (bounds.x - 1, bounds.y - 1)
    raster = np.zeros((bounds.height + 2, bounds.width + 2), dtype=np.uint8)

    draw_contour(raster, outer, origin)
    for hole in mask.holes_of(index):
        draw_contour(raster, hole, origin)

    padding = requirements.logo_placement.padding_from_edges
    if padding > 0:
        kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (2 * padding + 1, 2 * padding + 1))
        raster = cv2.erode(raster, kernel, borderType=cv2.BORDER_CONSTANT, borderValue=0)

    margin = requirements.position.margin_from_edges
    if margin > 0:
        xs = np.arange(raster.shape[1]) + origin[0]
        ys = np.arange(raster.shape[0]) + origin[1]
        raster[:, (xs < margin) | (xs >= image_width - margin)] = 0
        raster[(ys < margin) | (ys >= image_height - margin), :] = 0

    return raster, origin


def edge_distance(rect: Rect, image_width: int, image_height: int) -> int:
    """Smallest gap between the rectangle and the image border."""
    return min(
        rect.x,
        rect.y,
        image_width - (rect.x + rect.width),
        image_height - (rect.y + rect.height),
    )


def _aspect_score(rect: Rect, target: float) -> float:
    ratio = rect.width / rect.height
    return min(ratio, target) / max(ratio, target)


def _in_allowed_region(rect: Rect, allowed: str, image_width: int, image_height: int) -> bool:
    """Whether the rectangle's center falls in the preferred part of the image."""
    if allowed == "anywhere":
        return True
    cx, cy = rect.center
    col = min(2, int(3 * cx / image_width))
    row = min(2, int(3 * cy / image_height))
    if allowed == "center":
        return col == 1 and row == 1
    if allowed == "corners":
        return col != 1 and row != 1
    # edges: anywhere except the central cell
    return not (col == 1 and row == 1)


def zone_restrictions(
    rect: Rect,
    requirements: ConstraintRequirements,
    image_width: int,
    image_height: int
) -> List[str]:
    restrictions = []
    min_w, min_h = requirements.logo_placement.min_logo_size
    if rect.width < min_w or rect.height < min_h:
        restrictions.append(f"Smaller than minimum logo size {min_w}x{min_h}px")
    allowed = requirements.position.allowed_regions
    if not _in_allowed_region(rect, allowed, image_width, image_height):
        restrictions.append(f"Outside preferred {allowed} area of the image")
    return restrictions


def zone_quality(
    rect: Rect,
    total_area: float,
    restrictions: List[str],
    requirements: ConstraintRequirements,
    image_width: int,
    image_height: int
) -> float:
    """
    Score a candidate rectangle in [0, 1].

    Weighted sum of area share, aspect-ratio closeness and edge clearance.
    A zone smaller than the minimum logo size is scaled by the square of
    how much of that size it offers, then each restriction subtracts a
    fixed penalty.
    """
    logo = requirements.logo_placement
    area_share = min(1.0, rect.area / total_area) if total_area > 0 else 0.0

    target = logo.target_aspect_ratio or logo.logo_aspect_ratio or 1.0
    aspect_score = _aspect_score(rect, target)

    margin = requirements.position.margin_from_edges
    if margin > 0:
        gap = edge_distance(rect, image_width, image_height)
        edge_score = min(1.0, gap / (2.0 * margin))
    else:
        edge_score = 1.0

    quality = AREA_WEIGHT * area_share + ASPECT_WEIGHT * aspect_score + EDGE_WEIGHT * edge_score

    min_w, min_h = logo.min_logo_size
    fit = min(1.0, rect.width / min_w, rect.height / min_h)
    quality *= fit * fit
    quality -= RESTRICTION_PENALTY * len(restrictions)

    return max(0.0, min(1.0, quality))


def _ceil(value: float) -> int:
    return int(math.ceil(value - 1e-9))


def suggested_logo_size(rect: Rect, requirements: ConstraintRequirements) -> Tuple[int, int]:
    """
    Smallest logo size that meets the minimum, at the relevant aspect ratio.

    Uses the logo's own aspect ratio when given, otherwise the zone's.
    The result never exceeds the zone or the maximum logo size.
    """
    logo = requirements.logo_placement
    min_w, min_h = logo.min_logo_size
    ratio = logo.logo_aspect_ratio or rect.width / rect.height

    width = max(min_w, min_h * ratio)
    height = max(min_h, width / ratio)
    width = height * ratio

    max_w, max_h = logo.max_logo_size
    return (
        min(_ceil(width), rect.width, max_w),
        min(_ceil(height), rect.height, max_h),
    )


def compute_placement_zones(
    mask: GeneratedMask,
    requirements: ConstraintRequirements,
    image_width: Optional[int] = None,
    image_height: Optional[int] = None
) -> List[PlacementZone]:
    """
    Largest usable rectangle per outer contour, ranked by quality.

    Args:
        mask: Generated mask
        requirements: Placement requirements
        image_width: Image width for margins and edge scores. Defaults to the mask width.
        image_height: Image height for margins and edge scores. Defaults to the mask height.

    Returns:
        Zones sorted by quality (best first) with ids ``zone-1``, ``zone-2``, ...
    """
    image_width = mask.width if image_width is None else image_width
    image_height = mask.height if image_height is None else image_height
    total_area = mask.total_area
    candidates = []

    for index, contour in enumerate(mask.contours):
        if contour.is_hole or contour.is_degenerate:
            continue

        usable, (ox, oy) = usable_area(mask, index, requirements, image_width, image_height)
        local = largest_rectangle(usable)
        if local is None:
            logger.debug(f"Contour {index} has no usable area after padding and margins")
            continue

        rect = Rect(local.x + ox, local.y + oy, local.width, local.height)
        restrictions = zone_restrictions(rect, requirements, image_width, image_height)
        quality = zone_quality(
            rect, total_area, restrictions, requirements, image_width, image_height
        )
        candidates.append((rect, quality, restrictions, index))

    candidates.sort(key=lambda c: (-c[1], c[0].y, c[0].x))

    zones = []
    for rank, (rect, quality, restrictions, index) in enumerate(candidates, start=1):
        zones.append(PlacementZone(
            id=f"zone-{rank}",
            region=rect,
            center_point=rect.center,
            quality=quality,
            suggested_logo_size=suggested_logo_size(rect, requirements),
            restrictions=restrictions,
            source_contour=index,
        ))

    return zones
