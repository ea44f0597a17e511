"""Raster, SVG and JSON views of a generated mask's contours."""
import io
import json
from dataclasses import fields
from pathlib import Path
from typing import Any, Dict, List, Union

import numpy as np
from PIL import Image

from safezone.contour import draw_contour, make_contour
from safezone.types import (
    ConfigurationError,
    Contour,
    ExportError,
    GeneratedMask,
    GeometryError,
    MaskGenerationOptions,
    MaskValidationResult,
    Region,
)

JSON_FORMAT_VERSION = 1

EXPORT_FORMATS = ("png", "svg", "json")


def to_alpha_mask(mask: GeneratedMask) -> np.ndarray:
    """
    Rasterize the contours back into a 0/255 alpha mask.

    Each outer contour is filled, its holes are cleared and the hole
    boundary pixels (which belong to the foreground) are restored.
    Contours are drawn in list order, so a component inside another
    component's hole is painted after the hole is cleared.

    Args:
        mask: Generated mask

    Returns:
        Array (H, W) uint8
    """
    raster = np.zeros((mask.height, mask.width), dtype=np.uint8)

    for contour in mask.contours:
        draw_contour(raster, contour)

    return raster


def to_png_bytes(mask: GeneratedMask) -> bytes:
    """Encode the alpha mask as an RGBA PNG: white where masked, transparent elsewhere."""
    alpha = to_alpha_mask(mask)
    rgba = np.zeros((mask.height, mask.width, 4), dtype=np.uint8)
    rgba[..., :3] = 255
    rgba[..., 3] = alpha

    buffer = io.BytesIO()
    Image.fromarray(rgba).save(buffer, format="PNG")
    return buffer.getvalue()


def format_number(x: float, precision: int) -> str:
    """
    Format number with given precision.

    Args:
        x: Number to format
        precision: Decimal places

    Returns:
        Formatted string
    """
    formatted = f"{x:.{precision}f}"
    # Remove trailing zeros and decimal point if not needed
    if '.' in formatted:
        formatted = formatted.rstrip('0').rstrip('.')
    if formatted == "-0":
        formatted = "0"
    return formatted


def contour_to_path(contour: Contour, precision: int = 2) -> str:
    """Closed SVG subpath ``M x,y L x,y ... Z`` for one contour."""
    fmt = lambda v: format_number(v, precision)
    commands = []
    for i, (x, y) in enumerate(contour.points):
        command = "M" if i == 0 else "L"
        commands.append(f"{command}{fmt(x)},{fmt(y)}")
    commands.append("Z")
    return " ".join(commands)


def to_svg_path(mask: GeneratedMask, precision: int = 2) -> str:
    """Compound path data for all contours; holes are cut out by even-odd fill."""
    return " ".join(
        contour_to_path(c, precision) for c in mask.contours if not c.is_degenerate
    )


def to_svg(mask: GeneratedMask, precision: int = 2) -> str:
    """
    Render the contours as a standalone SVG document.

    Args:
        mask: Generated mask
        precision: Decimal places for coordinates

    Returns:
        SVG string
    """
    path_data = to_svg_path(mask, precision)
    path_elem = ""
    if path_data:
        path_elem = (
            f'<path d="{path_data}" fill="white" stroke="black" '
            f'stroke-width="1" fill-rule="evenodd"/>'
        )

    return f'''<?xml version="1.0" encoding="UTF-8"?>
<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 {mask.width} {mask.height}" width="{mask.width}" height="{mask.height}">
  {path_elem}
</svg>'''


def to_dict(mask: GeneratedMask) -> Dict[str, Any]:
    """Structured representation of the mask (the cleaned raster is omitted)."""
    return {
        "version": JSON_FORMAT_VERSION,
        "width": mask.width,
        "height": mask.height,
        "contours": [
            {
                "points": contour.points.tolist(),
                "is_hole": contour.is_hole,
                "parent": contour.parent,
                "area": contour.area,
                "perimeter": contour.perimeter,
            }
            for contour in mask.contours
        ],
        "regions": [region.to_dict() for region in mask.regions],
        "validation": mask.validation.to_dict(),
        "options": mask.options.to_dict(),
        "processing_time": mask.processing_time,
    }


def to_json(mask: GeneratedMask, indent: int = 2) -> str:
    return json.dumps(to_dict(mask), indent=indent)


def _region_from_dict(data: Dict[str, Any]) -> Region:
    names = {f.name for f in fields(Region)}
    values = {k: v for k, v in data.items() if k in names}
    values["centroid"] = tuple(values["centroid"])
    return Region(**values)


def from_dict(data: Dict[str, Any]) -> GeneratedMask:
    """
    Rebuild a GeneratedMask from its structured representation.

    Contours go through the same checks as traced ones: each needs at
    least 3 points and some area, and a hole's parent must be an earlier
    outer contour.

    Raises:
        ExportError: If the document is missing fields or malformed
    """
    if not isinstance(data, dict):
        raise ExportError(f"Mask document must be an object, got {type(data).__name__}")

    try:
        version = data.get("version", JSON_FORMAT_VERSION)
        if version != JSON_FORMAT_VERSION:
            raise ExportError(f"Unsupported mask document version {version}")

        contours: List[Contour] = []
        for i, item in enumerate(data["contours"]):
            is_hole = bool(item["is_hole"])
            parent = item.get("parent")
            if is_hole and (
                not isinstance(parent, int) or not 0 <= parent < i or contours[parent].is_hole
            ):
                raise ExportError(f"Hole contour {i} has invalid parent {parent!r}")
            try:
                contours.append(make_contour(item["points"], is_hole=is_hole,
                                             parent=parent if is_hole else None))
            except GeometryError as e:
                raise ExportError(f"Contour {i} is degenerate: {e}") from e

        return GeneratedMask(
            width=int(data["width"]),
            height=int(data["height"]),
            contours=contours,
            options=MaskGenerationOptions.from_dict(data.get("options", {})),
            processing_time=float(data.get("processing_time", 0.0)),
            validation=MaskValidationResult.from_dict(data["validation"]),
            regions=[_region_from_dict(r) for r in data.get("regions", [])],
        )
    except (KeyError, TypeError, ValueError, AttributeError, IndexError) as e:
        raise ExportError(f"Malformed mask document: {e}") from e


def from_json(text: str) -> GeneratedMask:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ExportError(f"Invalid JSON: {e}") from e
    return from_dict(data)


def export_mask(mask: GeneratedMask, fmt: str) -> Union[bytes, str]:
    """
    Serialize a mask in one of the supported formats.

    Args:
        mask: Generated mask
        fmt: "png", "svg" or "json"

    Returns:
        PNG bytes, or SVG/JSON text

    Raises:
        ConfigurationError: If the format is unknown
    """
    if fmt == "png":
        return to_png_bytes(mask)
    if fmt == "svg":
        return to_svg(mask)
    if fmt == "json":
        return to_json(mask)
    raise ConfigurationError(f"Unsupported export format: {fmt!r} (expected one of {EXPORT_FORMATS})")


def save_export(mask: GeneratedMask, fmt: str, output_path: Union[str, Path]) -> Path:
    """Write ``export_mask(mask, fmt)`` to ``output_path``."""
    output_path = Path(output_path)
    payload = export_mask(mask, fmt)
    if isinstance(payload, bytes):
        output_path.write_bytes(payload)
    else:
        output_path.write_text(payload, encoding="utf-8")
    return output_path
