"""End-to-end safe-zone pipeline: detect -> mask -> validate."""
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from safezone.detection import detect_regions
from safezone.mask import generate_mask
from safezone.raster_ingest import as_pixel_buffer, ingest
from safezone.types import (
    ConstraintRequirements,
    ConstraintValidationResult,
    DetectionResult,
    DetectionSettings,
    GeneratedMask,
    MaskGenerationOptions,
    NoMarkerFoundError,
    PixelBuffer,
)
from safezone.validation import validate_constraint

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    """Outputs of one pipeline run.

    ``mask`` and ``validation`` are None when no marker was found.
    """
    width: int
    height: int
    detection: DetectionResult
    mask: Optional[GeneratedMask] = None
    validation: Optional[ConstraintValidationResult] = None
    processing_time: float = 0.0

    @property
    def marker_found(self) -> bool:
        return self.detection.found

    @property
    def is_usable(self) -> bool:
        return self.validation is not None and self.validation.is_usable

    def require_marker(self) -> "PipelineResult":
        """Return self, or raise NoMarkerFoundError if detection came up empty."""
        if not self.marker_found:
            raise NoMarkerFoundError("No marker-colored region found in the image")
        return self


def process_pixels(
    pixels: PixelBuffer,
    settings: Optional[DetectionSettings] = None,
    options: Optional[MaskGenerationOptions] = None,
    requirements: Optional[ConstraintRequirements] = None
) -> PipelineResult:
    """
    Run detection, mask generation and constraint validation.

    All configuration is checked before any pixel work. If detection
    finds no region the run stops there.

    Args:
        pixels: RGBA (or RGB) buffer
        settings: Detection settings. Uses defaults if None.
        options: Mask generation options. Uses defaults if None.
        requirements: Placement requirements. Uses defaults if None.

    Returns:
        PipelineResult

    Raises:
        ConfigurationError: If any configuration is out of range
        InputError: If the pixel buffer is malformed
    """
    settings = settings or DetectionSettings()
    options = options or MaskGenerationOptions()
    requirements = requirements or ConstraintRequirements()
    settings.validate()
    options.validate()
    requirements.validate()

    start_time = time.time()
    pixels = as_pixel_buffer(pixels)
    height, width = pixels.shape[:2]

    # Step 1: Detection
    detection = detect_regions(pixels, settings)
    if not detection.found:
        logger.warning("No marker regions detected; skipping mask generation")
        return PipelineResult(
            width=width,
            height=height,
            detection=detection,
            processing_time=time.time() - start_time,
        )

    # Step 2: Mask generation
    mask = generate_mask(pixels, settings, options)

    # Step 3: Constraint validation
    validation = validate_constraint(mask, width, height, requirements)

    processing_time = time.time() - start_time
    logger.info(f"Pipeline finished in {processing_time:.3f}s (usable={validation.is_usable})")

    return PipelineResult(
        width=width,
        height=height,
        detection=detection,
        mask=mask,
        validation=validation,
        processing_time=processing_time,
    )


def process_image(
    path: Union[str, Path],
    settings: Optional[DetectionSettings] = None,
    options: Optional[MaskGenerationOptions] = None,
    requirements: Optional[ConstraintRequirements] = None
) -> PipelineResult:
    """Decode an image file and run :func:`process_pixels` on it."""
    pixels = ingest(path)
    logger.debug(f"Loaded {path}: {pixels.shape[1]}x{pixels.shape[0]}")
    return process_pixels(pixels, settings, options, requirements)
