"""Contour tracing, winding normalization and Douglas-Peucker simplification."""
import logging
from typing import List

import cv2
import numpy as np

from safezone.types import BinaryMask, Contour, GeometryError, Points

logger = logging.getLogger(__name__)


def make_contour(raw: np.ndarray, is_hole: bool = False, parent=None) -> Contour:
    """
    Build a Contour from raw (N, 1, 2) or (N, 2) points with normalized winding.

    Outer contours get positive signed area, holes negative.

    Raises:
        GeometryError: If the boundary has fewer than 3 points or no area
    """
    points = np.asarray(raw, dtype=np.float64).reshape(-1, 2)
    if len(points) < 3:
        raise GeometryError(f"Boundary has only {len(points)} points")

    contour = Contour(points=points, is_hole=is_hole, parent=parent)
    signed = contour.signed_area
    if signed == 0:
        raise GeometryError("Boundary encloses no area")

    if (signed < 0) != is_hole:
        # Reverse but keep the first point first
        contour.points = np.roll(contour.points[::-1], 1, axis=0)
    return contour


def trace_contours(mask: BinaryMask) -> List[Contour]:
    """
    Trace outer boundaries and hole boundaries of every mask component.

    Uses border following with a two-level hierarchy: each outer boundary
    is followed in the returned list by the boundaries of its holes, whose
    ``parent`` is the outer contour's index. A component sitting inside
    another component's hole is reported as its own outer contour.

    Degenerate components (single pixels, one-pixel lines) are logged and
    skipped.

    Args:
        mask: Binary mask (H, W) uint8 with 255 for foreground

    Returns:
        List of contours, outer contours in raster order of their top-left
        point
    """
    mask = (mask > 0).astype(np.uint8) * 255
    contours, hierarchy = cv2.findContours(mask, cv2.RETR_CCOMP, cv2.CHAIN_APPROX_NONE)
    if hierarchy is None or len(contours) == 0:
        return []

    hierarchy = hierarchy[0]  # OpenCV returns list of arrays
    groups = []

    for i, h in enumerate(hierarchy):
        if h[3] != -1:
            continue  # Holes are collected through their parent

        try:
            outer = make_contour(contours[i], is_hole=False)
        except GeometryError as e:
            logger.warning(f"Discarding component {i}: {e}")
            continue

        holes = []
        child = h[2]
        while child != -1:
            try:
                holes.append(make_contour(contours[child], is_hole=True))
            except GeometryError as e:
                logger.warning(f"Discarding hole {child} of component {i}: {e}")
            child = hierarchy[child][0]

        x_min, y_min = outer.points.min(axis=0)
        groups.append(((y_min, x_min), outer, holes))

    groups.sort(key=lambda g: g[0])

    result = []
    for _, outer, holes in groups:
        outer_index = len(result)
        result.append(outer)
        for hole in holes:
            hole.parent = outer_index
            result.append(hole)

    return result


def _segment_distances(points: Points, start: np.ndarray, end: np.ndarray) -> np.ndarray:
    """Distance from each point to the segment start-end."""
    line_vec = end - start
    line_len_sq = float(np.dot(line_vec, line_vec))
    point_vec = points - start
    if line_len_sq == 0:
        return np.hypot(point_vec[:, 0], point_vec[:, 1])

    # Project point onto line
    t = np.clip(point_vec @ line_vec / line_len_sq, 0.0, 1.0)
    projection = start + t[:, None] * line_vec
    diff = points - projection
    return np.hypot(diff[:, 0], diff[:, 1])


def _douglas_peucker_keep(points: Points, start: int, end: int, epsilon: float, keep: np.ndarray) -> None:
    """Mark points of the chain points[start..end] that survive simplification."""
    stack = [(start, end)]
    while stack:
        s, e = stack.pop()
        if e <= s + 1:
            continue

        distances = _segment_distances(points[s + 1:e], points[s], points[e])
        offset = int(np.argmax(distances))
        max_dist = distances[offset]

        # If max distance is greater than epsilon, keep the point
        if max_dist > epsilon:
            max_idx = s + 1 + offset
            keep[max_idx] = True
            stack.append((max_idx, e))
            stack.append((s, max_idx))


def douglas_peucker(points: Points, epsilon: float) -> Points:
    """
    Simplify an open polyline, keeping both endpoints.

    Args:
        points: Input points (N, 2)
        epsilon: Maximum perpendicular deviation

    Returns:
        Simplified points
    """
    points = np.asarray(points, dtype=np.float64)
    if len(points) <= 2 or epsilon <= 0:
        return points.copy()

    keep = np.zeros(len(points), dtype=bool)
    keep[0] = True
    keep[-1] = True
    _douglas_peucker_keep(points, 0, len(points) - 1, epsilon, keep)
    return points[keep]


def simplify_closed(points: Points, epsilon: float) -> Points:
    """
    Simplify a closed contour with Douglas-Peucker.

    The loop is split at its first point and the point farthest from it;
    both chains are simplified independently. The split does not depend
    on ``epsilon``, so a larger epsilon never keeps more points.
    ``epsilon == 0`` returns the input unchanged.

    Args:
        points: Closed contour points (N, 2) without a repeated end point
        epsilon: Maximum perpendicular deviation in pixels

    Returns:
        Simplified points
    """
    points = np.asarray(points, dtype=np.float64)
    n = len(points)
    if n <= 3 or epsilon <= 0:
        return points.copy()

    deltas = points - points[0]
    far = int(np.argmax(np.hypot(deltas[:, 0], deltas[:, 1])))
    if far == 0:
        return points.copy()

    extended = np.vstack([points, points[:1]])
    keep = np.zeros(n + 1, dtype=bool)
    keep[0] = keep[far] = keep[n] = True
    _douglas_peucker_keep(extended, 0, far, epsilon, keep)
    _douglas_peucker_keep(extended, far, n, epsilon, keep)

    return extended[:n][keep[:n]]


def simplify_contour(contour: Contour, epsilon: float) -> Contour:
    """
    Simplify a contour, keeping its role and parent.

    Raises:
        GeometryError: If simplification collapses the contour
    """
    simplified = simplify_closed(contour.points, epsilon)
    return make_contour(simplified, is_hole=contour.is_hole, parent=contour.parent)


def simplify_contours(contours: List[Contour], epsilon: float) -> List[Contour]:
    """
    Simplify multiple contours.

    Outer contours that collapse are dropped along with their holes;
    collapsed holes are dropped on their own. Parent indices are
    remapped to the surviving list.

    Args:
        contours: Contours as returned by ``trace_contours``
        epsilon: Maximum perpendicular deviation

    Returns:
        List of simplified contours
    """
    result = []
    index_map = {}

    for i, contour in enumerate(contours):
        if contour.is_hole and contour.parent not in index_map:
            continue
        try:
            simplified = simplify_contour(contour, epsilon)
        except GeometryError as e:
            logger.warning(f"Discarding contour {i} after simplification: {e}")
            continue

        if contour.is_hole:
            simplified.parent = index_map[contour.parent]
        else:
            index_map[i] = len(result)
        result.append(simplified)

    return result


def convex_hull(points: Points) -> Points:
    """Convex hull vertices of a point set."""
    hull = cv2.convexHull(np.asarray(points, dtype=np.float32))
    return hull.reshape(-1, 2).astype(np.float64)


def convex_hull_area(points: Points) -> float:
    if len(points) < 3:
        return 0.0
    return float(cv2.contourArea(convex_hull(points).astype(np.float32)))


def draw_contour(raster: np.ndarray, contour: Contour, offset=(0, 0)) -> None:
    """
    Paint one contour into a 0/255 raster in place.

    Outer contours are filled with 255. Holes are cleared and their
    boundary pixels, which belong to the foreground, are painted back.

    Args:
        raster: Target array (H, W) uint8
        contour: Contour in image coordinates
        offset: (x, y) origin of ``raster`` in image coordinates
    """
    if contour.is_degenerate:
        return
    shifted = contour.points - np.asarray(offset, dtype=np.float64)
    pts = np.round(shifted).astype(np.int32).reshape(-1, 1, 2)
    if contour.is_hole:
        cv2.fillPoly(raster, [pts], 0)
    else:
        cv2.fillPoly(raster, [pts], 255)
    cv2.polylines(raster, [pts], True, 255, 1)
