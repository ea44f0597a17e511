"""Constraint validation: feasibility checks, confidence and text report."""
import logging
import math
from typing import Dict, List, Optional

from safezone.contour import convex_hull_area
from safezone.mask import main_contour_index
from safezone.placement import compute_placement_zones
from safezone.types import (
    ConstraintMetrics,
    ConstraintRequirements,
    ConstraintValidationResult,
    Contour,
    GeneratedMask,
    PlacementZone,
    ValidationIssue,
    ValidationSeverity,
    net_area,
)

logger = logging.getLogger(__name__)

SEVERITY_PENALTIES = {"error": 0.3, "warning": 0.15, "info": 0.05}
ISSUE_WEIGHT = 0.6
ZONE_WEIGHT = 0.4
ERROR_CONFIDENCE_CAP = 0.5
EDGE_HUGGING_THRESHOLD = 5


def _error(priority: int) -> ValidationSeverity:
    return ValidationSeverity(level="error", blocking=True, priority=priority)


def _warning(priority: int) -> ValidationSeverity:
    return ValidationSeverity(level="warning", blocking=False, priority=priority)


def _info(priority: int) -> ValidationSeverity:
    return ValidationSeverity(level="info", blocking=False, priority=priority)


def edge_distances(contours: List[Contour], image_width: int, image_height: int) -> Dict[str, float]:
    """Closest approach of any outer contour point to each image edge."""
    outers = [c.points for c in contours if not c.is_hole and not c.is_degenerate]
    x_min = min(float(p[:, 0].min()) for p in outers)
    y_min = min(float(p[:, 1].min()) for p in outers)
    x_max = max(float(p[:, 0].max()) for p in outers)
    y_max = max(float(p[:, 1].max()) for p in outers)
    return {
        "left": x_min,
        "top": y_min,
        "right": image_width - 1 - x_max,
        "bottom": image_height - 1 - y_max,
    }


def calculate_metrics(
    mask: GeneratedMask,
    index: int,
    image_width: int,
    image_height: int,
    requirements: ConstraintRequirements
) -> ConstraintMetrics:
    """Shape and position metrics of the main contour."""
    main = mask.contours[index]
    rect = main.bounding_rect
    aspect_ratio = rect.width / rect.height if rect.height > 0 else 0.0

    short, long_ = sorted((rect.width, rect.height))
    eccentricity = 1.0 - short / long_ if short > 0 else 1.0

    hull_area = convex_hull_area(main.points)
    convexity = min(1.0, net_area(mask.contours, index) / hull_area) if hull_area > 0 else 0.0

    cx, cy = main.centroid
    center_distance = math.hypot(cx - image_width / 2, cy - image_height / 2)

    logo = requirements.logo_placement
    available_w = rect.width - 2 * logo.padding_from_edges
    available_h = rect.height - 2 * logo.padding_from_edges
    logo_capacity = (
        max(min(logo.min_logo_size), min(available_w, available_h) * 0.3),
        min(max(logo.max_logo_size), max(available_w, available_h) * 0.8),
    )

    return ConstraintMetrics(
        area=mask.total_area,
        aspect_ratio=aspect_ratio,
        eccentricity=eccentricity,
        convexity=convexity,
        center_distance=center_distance,
        edge_distance=min(edge_distances(mask.contours, image_width, image_height).values()),
        logo_capacity=logo_capacity,
    )


def check_area(mask: GeneratedMask, index: int, requirements: ConstraintRequirements,
               issues: List[ValidationIssue]) -> None:
    area = mask.total_area
    affected = mask.contours[index].bounding_rect

    if area < requirements.min_area:
        issues.append(ValidationIssue(
            id="area_too_small",
            severity=_error(9),
            title="Constraint area too small",
            description=f"Area is {round(area)} pixels, minimum required is {requirements.min_area:g} pixels",
            suggestion="Increase color tolerance or use a larger marked area in the template",
            category="area",
            measured_value=area,
            required_value=requirements.min_area,
            affected_area=affected,
        ))
    elif requirements.max_area is not None and area > requirements.max_area:
        issues.append(ValidationIssue(
            id="area_too_large",
            severity=_warning(5),
            title="Constraint area very large",
            description=f"Area is {round(area)} pixels, recommended maximum is {requirements.max_area:g} pixels",
            suggestion="Consider reducing color tolerance or using a smaller constraint area",
            category="area",
            measured_value=area,
            required_value=requirements.max_area,
            affected_area=affected,
        ))


def check_aspect_ratio(metrics: ConstraintMetrics, requirements: ConstraintRequirements,
                       issues: List[ValidationIssue]) -> None:
    low, high = requirements.aspect_ratio.min, requirements.aspect_ratio.max
    ratio = metrics.aspect_ratio

    if ratio < low:
        issues.append(ValidationIssue(
            id="aspect_too_narrow",
            severity=_warning(6),
            title="Constraint area too narrow",
            description=f"Aspect ratio is {ratio:.2f}, minimum recommended is {low:g}",
            suggestion="Consider using a wider constraint area for better logo placement",
            category="aspect",
            measured_value=ratio,
            required_value=low,
        ))
    elif ratio > high:
        issues.append(ValidationIssue(
            id="aspect_too_wide",
            severity=_warning(6),
            title="Constraint area too wide",
            description=f"Aspect ratio is {ratio:.2f}, maximum recommended is {high:g}",
            suggestion="Consider using a more square constraint area for better logo placement",
            category="aspect",
            measured_value=ratio,
            required_value=high,
        ))


def check_contiguity(mask: GeneratedMask, index: int, requirements: ConstraintRequirements,
                     issues: List[ValidationIssue], recommendations: List[str]) -> None:
    contiguity = requirements.contiguity
    outer_indices = [
        i for i, c in enumerate(mask.contours) if not c.is_hole and not c.is_degenerate
    ]
    count = len(outer_indices)

    if contiguity.require_single_region and count > 1:
        severity = _error(8) if contiguity.severity == "error" else _warning(8)
        issues.append(ValidationIssue(
            id="multiple_regions",
            severity=severity,
            title="Multiple disconnected regions detected",
            description=f"Found {count} separate regions, but only a single region is allowed",
            suggestion="Use hole filling or increase color tolerance to connect regions",
            category="contiguity",
            measured_value=float(count),
            required_value=1.0,
        ))
    elif count > contiguity.max_disconnected_regions:
        issues.append(ValidationIssue(
            id="too_many_regions",
            severity=_warning(7),
            title="Too many disconnected regions",
            description=f"Found {count} regions, maximum recommended is {contiguity.max_disconnected_regions}",
            suggestion="Consider region merging or use the largest region only",
            category="contiguity",
            measured_value=float(count),
            required_value=float(contiguity.max_disconnected_regions),
        ))

    if count > 1:
        total = mask.total_area
        main_ratio = net_area(mask.contours, index) / total if total > 0 else 0.0
        if main_ratio < contiguity.min_main_region_ratio:
            issues.append(ValidationIssue(
                id="fragmented_regions",
                severity=_warning(6),
                title="Constraint area is fragmented",
                description=f"Main region contains only {main_ratio * 100:.1f}% of total area",
                suggestion="Consider using only the largest region or improve region connectivity",
                category="contiguity",
                measured_value=main_ratio,
                required_value=contiguity.min_main_region_ratio,
            ))
            recommendations.append("Consider enabling hole filling to connect nearby regions")
            recommendations.append("Use higher morphological smoothing iterations")


def check_edge_distances(mask: GeneratedMask, index: int, image_width: int, image_height: int,
                         requirements: ConstraintRequirements,
                         issues: List[ValidationIssue], recommendations: List[str]) -> None:
    margin = requirements.position.margin_from_edges
    distances = edge_distances(mask.contours, image_width, image_height)
    closest_edge = min(distances, key=distances.get)
    closest = distances[closest_edge]

    if closest < margin:
        issues.append(ValidationIssue(
            id="too_close_to_edge",
            severity=_warning(5),
            title="Constraint too close to image edge",
            description=f"Distance to {closest_edge} edge is {closest:g}px, recommended minimum is {margin}px",
            suggestion="Ensure adequate margin for logo placement and visual balance",
            category="position",
            measured_value=closest,
            required_value=float(margin),
            affected_area=mask.contours[index].bounding_rect,
        ))
        recommendations.append(
            f"Add more padding around the constraint area (especially on {closest_edge} side)"
        )

    for edge, distance in distances.items():
        if distance < EDGE_HUGGING_THRESHOLD:
            issues.append(ValidationIssue(
                id=f"hugging_{edge}_edge",
                severity=_info(3),
                title=f"Constraint extends to {edge} edge",
                description=f"Very close to {edge} edge ({distance:g}px), may limit logo placement options",
                suggestion="Consider leaving more space for visual breathing room",
                category="position",
                measured_value=distance,
            ))


def check_position(metrics: ConstraintMetrics, mask: GeneratedMask, index: int,
                   image_width: int, image_height: int, requirements: ConstraintRequirements,
                   issues: List[ValidationIssue], recommendations: List[str]) -> None:
    position = requirements.position
    max_distance = math.hypot(image_width / 2, image_height / 2)
    ratio = metrics.center_distance / max_distance if max_distance > 0 else 0.0

    if position.allowed_regions == "center" and ratio > 0.3:
        issues.append(ValidationIssue(
            id="not_centered",
            severity=_warning(4),
            title="Constraint not well-centered",
            description=f"Constraint center is {round(metrics.center_distance)}px from image center",
            suggestion="Move constraint closer to image center for better visual balance",
            category="position",
            measured_value=ratio,
            required_value=0.3,
            affected_area=mask.contours[index].bounding_rect,
        ))

    if position.center_bias > 0.5 and ratio > 0.4:
        recommendations.append("Consider repositioning constraint closer to center for better visual impact")
    elif position.center_bias < 0.3 and ratio < 0.2:
        recommendations.append(
            "Constraint is very centered - consider off-center placement for dynamic composition"
        )


def check_logo_space(zones: List[PlacementZone], mask: GeneratedMask, index: int,
                     requirements: ConstraintRequirements,
                     issues: List[ValidationIssue], recommendations: List[str]) -> None:
    """Error unless some zone fits the minimum logo size in both dimensions."""
    min_w, min_h = requirements.logo_placement.min_logo_size
    fitting = [z for z in zones if z.region.width >= min_w and z.region.height >= min_h]
    if fitting:
        return

    if zones:
        best = max(zones, key=lambda z: z.region.area)
        available = f"{best.region.width}x{best.region.height}px"
    else:
        available = "0x0px"

    issues.append(ValidationIssue(
        id="insufficient_logo_space",
        severity=_error(9),
        title="Insufficient space for logo placement",
        description=f"Largest usable space is {available}, minimum logo needs {min_w}x{min_h}px",
        suggestion="Increase constraint area or reduce padding requirements",
        category="placement",
        required_value=float(min_w * min_h),
        affected_area=mask.contours[index].bounding_rect,
    ))
    recommendations.append("Reduce the minimum logo size or logo padding")


def check_geometry(metrics: ConstraintMetrics, mask: GeneratedMask, index: int,
                   requirements: ConstraintRequirements,
                   issues: List[ValidationIssue], recommendations: List[str]) -> None:
    geometry = requirements.geometry
    rect = mask.contours[index].bounding_rect

    if rect.width < geometry.min_width:
        issues.append(ValidationIssue(
            id="width_too_small",
            severity=_warning(6),
            title="Constraint width too small",
            description=f"Width is {rect.width}px, recommended minimum is {geometry.min_width}px",
            suggestion="Increase constraint width for better logo placement",
            category="geometry",
            measured_value=float(rect.width),
            required_value=float(geometry.min_width),
        ))

    if rect.height < geometry.min_height:
        issues.append(ValidationIssue(
            id="height_too_small",
            severity=_warning(6),
            title="Constraint height too small",
            description=f"Height is {rect.height}px, recommended minimum is {geometry.min_height}px",
            suggestion="Increase constraint height for better logo placement",
            category="geometry",
            measured_value=float(rect.height),
            required_value=float(geometry.min_height),
        ))

    if metrics.eccentricity > geometry.max_eccentricity:
        issues.append(ValidationIssue(
            id="too_elongated",
            severity=_info(4),
            title="Constraint shape very elongated",
            description=f"Shape eccentricity is {metrics.eccentricity:.2f}, may limit logo aspect ratios",
            suggestion="Consider using a more balanced shape for versatile logo placement",
            category="geometry",
            measured_value=metrics.eccentricity,
            required_value=geometry.max_eccentricity,
        ))

    if metrics.convexity < geometry.min_convexity:
        issues.append(ValidationIssue(
            id="irregular_shape",
            severity=_warning(5),
            title="Constraint has irregular shape",
            description=f"Shape convexity is {metrics.convexity:.2f}, indicating concave or irregular boundaries",
            suggestion="Consider shape smoothing or using a more regular constraint area",
            category="geometry",
            measured_value=metrics.convexity,
            required_value=geometry.min_convexity,
        ))
        recommendations.append("Enable morphological smoothing to regularize shape")
        recommendations.append("Consider manual adjustment of constraint boundaries")


def calculate_confidence(issues: List[ValidationIssue], best_quality: float) -> float:
    """
    Overall confidence in [0, 1].

    Each issue subtracts ``penalty(level) * priority / 10`` from a score
    of 1, which is blended with the best zone quality. Any error caps the
    result at 0.5.
    """
    issue_score = 1.0
    for issue in issues:
        issue_score -= SEVERITY_PENALTIES[issue.severity.level] * issue.severity.priority / 10
    issue_score = max(0.0, issue_score)

    confidence = ISSUE_WEIGHT * issue_score + ZONE_WEIGHT * best_quality
    if any(issue.severity.level == "error" for issue in issues):
        confidence = min(confidence, ERROR_CONFIDENCE_CAP)
    return max(0.0, min(1.0, confidence))


def _empty_result(reason: str) -> ConstraintValidationResult:
    return ConstraintValidationResult(
        is_valid=False,
        is_usable=False,
        confidence=0.0,
        issues=[ValidationIssue(
            id="no_constraint",
            severity=_error(10),
            title="No constraint detected",
            description=reason,
            suggestion="Ensure marked constraint areas are present and detectable",
            category="area",
        )],
        recommendations=[
            "Check color detection settings",
            "Verify marked areas are present in the template",
            "Adjust color tolerance if needed",
        ],
    )


def validate_constraint(
    mask: GeneratedMask,
    image_width: int,
    image_height: int,
    requirements: Optional[ConstraintRequirements] = None
) -> ConstraintValidationResult:
    """
    Check a generated mask against placement requirements.

    Feasibility problems are reported as issues, never raised.

    Args:
        mask: Generated mask
        image_width: Image width in pixels
        image_height: Image height in pixels
        requirements: Placement requirements. Uses defaults if None.

    Returns:
        ConstraintValidationResult

    Raises:
        ConfigurationError: If the requirements are out of range
    """
    requirements = requirements or ConstraintRequirements()
    requirements.validate()

    index = main_contour_index(mask.contours)
    if index is None:
        logger.warning("Validation requested for a mask without contours")
        return _empty_result("No constraint regions detected")

    issues: List[ValidationIssue] = []
    recommendations: List[str] = []

    metrics = calculate_metrics(mask, index, image_width, image_height, requirements)
    zones = compute_placement_zones(mask, requirements, image_width, image_height)

    check_area(mask, index, requirements, issues)
    check_aspect_ratio(metrics, requirements, issues)
    check_contiguity(mask, index, requirements, issues, recommendations)
    check_edge_distances(mask, index, image_width, image_height, requirements, issues, recommendations)
    check_position(metrics, mask, index, image_width, image_height, requirements, issues, recommendations)
    check_logo_space(zones, mask, index, requirements, issues, recommendations)
    check_geometry(metrics, mask, index, requirements, issues, recommendations)

    best_quality = zones[0].quality if zones else 0.0
    confidence = calculate_confidence(issues, best_quality)
    is_valid = not any(issue.severity.level == "error" for issue in issues)
    is_usable = is_valid and any(z.quality >= requirements.min_zone_quality for z in zones)

    logger.info(
        f"Validated constraint: valid={is_valid}, usable={is_usable}, "
        f"confidence={confidence:.2f}, {len(issues)} issues, {len(zones)} zones"
    )

    return ConstraintValidationResult(
        is_valid=is_valid,
        is_usable=is_usable,
        confidence=confidence,
        issues=issues,
        placement_zones=zones,
        recommendations=recommendations,
        metrics=metrics,
    )


def create_validation_report(result: ConstraintValidationResult) -> str:
    """Plain-text summary of a validation result. Pure formatting."""
    metrics = result.metrics
    lines = [
        "=== CONSTRAINT VALIDATION REPORT ===",
        f"Status: {'✓ VALID' if result.is_valid else '✗ INVALID'}",
        f"Usable: {'✓ YES' if result.is_usable else '✗ NO'}",
        f"Confidence: {result.confidence * 100:.1f}%",
        "",
        "--- METRICS ---",
        f"Area: {round(metrics.area)} pixels",
        f"Aspect Ratio: {metrics.aspect_ratio:.2f}",
        f"Eccentricity: {metrics.eccentricity:.2f}",
        f"Convexity: {metrics.convexity:.2f}",
        f"Edge Distance: {round(metrics.edge_distance)}px",
        f"Logo Capacity: {round(metrics.logo_capacity[0])}-{round(metrics.logo_capacity[1])}px",
        "",
    ]

    for level, heading in (("error", "ERRORS"), ("warning", "WARNINGS"), ("info", "INFO")):
        group = result.issues_by_level(level)
        if not group:
            continue
        lines.append(f"--- {heading} ---")
        for issue in group:
            lines.append(f"[{issue.id}] {issue.title}: {issue.description}")
            lines.append(f"    Suggestion: {issue.suggestion}")
        lines.append("")

    if result.recommendations:
        lines.append("--- RECOMMENDATIONS ---")
        for recommendation in result.recommendations:
            lines.append(f"- {recommendation}")
        lines.append("")

    if result.placement_zones:
        lines.append("--- PLACEMENT ZONES ---")
        for zone in result.placement_zones:
            r = zone.region
            logo_w, logo_h = zone.suggested_logo_size
            line = (
                f"{zone.id}: {round(zone.quality * 100)}% quality, {r.width}x{r.height}px "
                f"at ({r.x}, {r.y}), suggested logo {logo_w}x{logo_h}px"
            )
            if zone.restrictions:
                line += f" [{'; '.join(zone.restrictions)}]"
            lines.append(line)

    return "\n".join(lines)
