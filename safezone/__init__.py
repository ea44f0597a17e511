"""Safe-zone detection, mask generation and placement validation."""
from safezone.types import (
    ConfigurationError,
    ConstraintRequirements,
    ConstraintValidationResult,
    DetectionSettings,
    ExportError,
    GeneratedMask,
    GeometryError,
    InputError,
    MaskGenerationOptions,
    NoMarkerFoundError,
    PlacementZone,
    Region,
    SafeZoneError,
    ValidationIssue,
)
from safezone.detection import detect_regions
from safezone.mask import generate_mask
from safezone.validation import create_validation_report, validate_constraint
from safezone.pipeline import PipelineResult, process_image, process_pixels

__version__ = "0.1.0"

__all__ = [
    "ConfigurationError",
    "ConstraintRequirements",
    "ConstraintValidationResult",
    "DetectionSettings",
    "ExportError",
    "GeneratedMask",
    "GeometryError",
    "InputError",
    "MaskGenerationOptions",
    "NoMarkerFoundError",
    "PlacementZone",
    "Region",
    "SafeZoneError",
    "ValidationIssue",
    "detect_regions",
    "generate_mask",
    "validate_constraint",
    "create_validation_report",
    "PipelineResult",
    "process_image",
    "process_pixels",
]
