"""Core types and exceptions for safe-zone detection and validation."""
from dataclasses import dataclass, field, asdict, replace
from typing import Any, Dict, List, Optional, Tuple, Union

import numpy as np

# Type aliases
PixelBuffer = np.ndarray  # (H, W, 4) uint8 RGBA
BinaryMask = np.ndarray  # (H, W) uint8, 0 or 255
LabelMap = np.ndarray  # (H, W) int32
Points = np.ndarray  # (N, 2) float64, x/y pixel centers

MAX_KERNEL_SIZE = 51


class SafeZoneError(Exception):
    """Base exception for safe-zone processing errors."""
    pass


class ConfigurationError(SafeZoneError, ValueError):
    """Raised when settings, options or requirements are out of range."""
    pass


class InputError(SafeZoneError):
    """Raised for malformed pixel buffers or unreadable images."""
    pass


class NoMarkerFoundError(InputError):
    """Raised on request when no pixel matched the marker color."""
    pass


class GeometryError(SafeZoneError):
    """Raised when a traced boundary is degenerate and cannot be used."""
    pass


class ExportError(SafeZoneError):
    """Raised when a mask cannot be serialized or deserialized."""
    pass


# ---------------------------------------------------------------------------
# Detection settings
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ColorRange:
    """HSV band. Hue in degrees [0, 360), saturation/value in percent."""
    h_min: float
    h_max: float
    s_min: float = 0.0
    s_max: float = 100.0
    v_min: float = 0.0
    v_max: float = 100.0

    def validate(self) -> None:
        for name in ("h_min", "h_max"):
            value = getattr(self, name)
            if not 0 <= value <= 360:
                raise ConfigurationError(f"{name} must be in [0, 360], got {value}")
        for name in ("s_min", "s_max", "v_min", "v_max"):
            value = getattr(self, name)
            if not 0 <= value <= 100:
                raise ConfigurationError(f"{name} must be in [0, 100], got {value}")
        if self.s_min > self.s_max or self.v_min > self.v_max:
            raise ConfigurationError("Saturation/value band minimum exceeds maximum")


@dataclass(frozen=True)
class RGBRange:
    """Per-channel RGB band with values in [0, 255]."""
    r_min: int = 0
    r_max: int = 255
    g_min: int = 0
    g_max: int = 255
    b_min: int = 0
    b_max: int = 255

    def validate(self) -> None:
        for channel in "rgb":
            low = getattr(self, f"{channel}_min")
            high = getattr(self, f"{channel}_max")
            if not (0 <= low <= 255 and 0 <= high <= 255):
                raise ConfigurationError(f"{channel.upper()} band must lie in [0, 255]")
            if low > high:
                raise ConfigurationError(f"{channel.upper()} band minimum exceeds maximum")


@dataclass(frozen=True)
class NoiseReduction:
    """Morphological opening applied to the classification mask before labeling."""
    enabled: bool = False
    kernel_size: int = 3
    iterations: int = 1


@dataclass(frozen=True)
class EdgeSmoothing:
    """Gaussian blur + re-threshold applied to the classification mask."""
    enabled: bool = False
    blur_radius: float = 1.0
    threshold: int = 128


@dataclass(frozen=True)
class DetectionSettings:
    """Configuration for marker color detection."""
    color_range: Union[ColorRange, RGBRange] = field(
        default_factory=lambda: ColorRange(80, 160, 15, 100, 15, 100)
    )
    tolerance_percent: float = 10.0
    min_area: int = 50
    max_area: Optional[int] = None
    connectivity: int = 4
    noise_reduction: NoiseReduction = field(default_factory=NoiseReduction)
    edge_smoothing: EdgeSmoothing = field(default_factory=EdgeSmoothing)

    def validate(self) -> None:
        """Raise ConfigurationError if any field is out of range."""
        self.color_range.validate()
        if not 0 <= self.tolerance_percent <= 100:
            raise ConfigurationError(
                f"tolerance_percent must be in [0, 100], got {self.tolerance_percent}"
            )
        if self.min_area < 0:
            raise ConfigurationError(f"min_area must be >= 0, got {self.min_area}")
        if self.max_area is not None and self.max_area < self.min_area:
            raise ConfigurationError("max_area must be >= min_area")
        if self.connectivity not in (4, 8):
            raise ConfigurationError(f"connectivity must be 4 or 8, got {self.connectivity}")
        if self.noise_reduction.enabled:
            _validate_kernel(self.noise_reduction.kernel_size, self.noise_reduction.iterations)
        if self.edge_smoothing.enabled:
            if self.edge_smoothing.blur_radius <= 0:
                raise ConfigurationError("edge_smoothing.blur_radius must be > 0")
            if not 0 <= self.edge_smoothing.threshold <= 255:
                raise ConfigurationError("edge_smoothing.threshold must be in [0, 255]")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DetectionSettings":
        data = dict(data)
        color = data.pop("color_range", None)
        if isinstance(color, dict):
            data["color_range"] = RGBRange(**color) if "r_min" in color else ColorRange(**color)
        elif color is not None:
            data["color_range"] = color
        if isinstance(data.get("noise_reduction"), dict):
            data["noise_reduction"] = NoiseReduction(**data["noise_reduction"])
        if isinstance(data.get("edge_smoothing"), dict):
            data["edge_smoothing"] = EdgeSmoothing(**data["edge_smoothing"])
        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _validate_kernel(kernel_size: int, iterations: int) -> None:
    if kernel_size < 1 or kernel_size % 2 == 0 or kernel_size > MAX_KERNEL_SIZE:
        raise ConfigurationError(
            f"kernel_size must be an odd integer in [1, {MAX_KERNEL_SIZE}], got {kernel_size}"
        )
    if iterations < 0:
        raise ConfigurationError(f"iterations must be >= 0, got {iterations}")


# ---------------------------------------------------------------------------
# Detection output
# ---------------------------------------------------------------------------

@dataclass
class Region:
    """Connected set of marker-colored pixels.

    The pixels themselves live in the label map produced alongside the
    regions; ``label`` is the integer they carry there.
    """
    label: int
    x: int
    y: int
    width: int
    height: int
    area: int
    centroid: Tuple[float, float]
    confidence: float = 0.0

    @property
    def bbox(self) -> Tuple[int, int, int, int]:
        """(x1, y1, x2, y2) with exclusive x2/y2."""
        return (self.x, self.y, self.x + self.width, self.y + self.height)

    @property
    def center(self) -> Tuple[int, int]:
        return (round(self.x + self.width / 2), round(self.y + self.height / 2))

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["bbox"] = list(self.bbox)
        data["centroid"] = list(self.centroid)
        return data


@dataclass
class DetectionResult:
    """Output of color detection."""
    regions: List[Region]
    total_area: int
    average_confidence: float
    processing_time: float

    @property
    def found(self) -> bool:
        return len(self.regions) > 0


# ---------------------------------------------------------------------------
# Mask generation
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SmoothingOptions:
    enabled: bool = True
    iterations: int = 2
    kernel_size: int = 3
    kernel_shape: str = "square"


@dataclass(frozen=True)
class SimplificationOptions:
    enabled: bool = True
    epsilon: float = 2.0


@dataclass(frozen=True)
class MaskValidationOptions:
    """Heuristic thresholds for the mask's own quality checks."""
    enabled: bool = True
    min_area: float = 50.0
    max_area: Optional[float] = 100000.0
    aspect_ratio_range: Tuple[float, float] = (0.1, 10.0)
    min_solidity: float = 0.7
    min_compactness: float = 0.25
    min_main_region_ratio: float = 0.8


@dataclass(frozen=True)
class MaskGenerationOptions:
    """Configuration for mask cleanup, tracing and simplification."""
    fill_holes: bool = True
    min_hole_size: int = 100
    smoothing: SmoothingOptions = field(default_factory=SmoothingOptions)
    contour_simplification: SimplificationOptions = field(default_factory=SimplificationOptions)
    validation: MaskValidationOptions = field(default_factory=MaskValidationOptions)

    def validate(self) -> None:
        """Raise ConfigurationError if any field is out of range."""
        if self.min_hole_size < 0:
            raise ConfigurationError(f"min_hole_size must be >= 0, got {self.min_hole_size}")
        if self.smoothing.enabled:
            _validate_kernel(self.smoothing.kernel_size, self.smoothing.iterations)
            if self.smoothing.kernel_shape not in ("square", "cross"):
                raise ConfigurationError(
                    f"kernel_shape must be 'square' or 'cross', got {self.smoothing.kernel_shape!r}"
                )
        if self.contour_simplification.epsilon < 0:
            raise ConfigurationError(
                f"epsilon must be >= 0, got {self.contour_simplification.epsilon}"
            )
        low, high = self.validation.aspect_ratio_range
        if low > high:
            raise ConfigurationError("aspect_ratio_range minimum exceeds maximum")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MaskGenerationOptions":
        data = dict(data)
        if isinstance(data.get("smoothing"), dict):
            data["smoothing"] = SmoothingOptions(**data["smoothing"])
        if isinstance(data.get("contour_simplification"), dict):
            data["contour_simplification"] = SimplificationOptions(**data["contour_simplification"])
        if isinstance(data.get("validation"), dict):
            validation = dict(data["validation"])
            if "aspect_ratio_range" in validation:
                validation["aspect_ratio_range"] = tuple(validation["aspect_ratio_range"])
            data["validation"] = MaskValidationOptions(**validation)
        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["validation"]["aspect_ratio_range"] = list(self.validation.aspect_ratio_range)
        return data


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle in pixel extents (x + width is exclusive)."""
    x: int
    y: int
    width: int
    height: int

    @property
    def area(self) -> int:
        return self.width * self.height

    @property
    def center(self) -> Tuple[float, float]:
        return (self.x + self.width / 2, self.y + self.height / 2)

    def contains(self, other: "Rect") -> bool:
        return (
            other.x >= self.x
            and other.y >= self.y
            and other.x + other.width <= self.x + self.width
            and other.y + other.height <= self.y + self.height
        )

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass
class Contour:
    """Closed boundary of a mask component or of a hole within one.

    Outer contours have positive signed area, holes negative; ``parent``
    is the index of the enclosing outer contour in the owning list.
    """
    points: Points
    is_hole: bool = False
    parent: Optional[int] = None

    def __post_init__(self):
        self.points = np.asarray(self.points, dtype=np.float64).reshape(-1, 2)

    @property
    def signed_area(self) -> float:
        x = self.points[:, 0]
        y = self.points[:, 1]
        return float(np.dot(x, np.roll(y, -1)) - np.dot(np.roll(x, -1), y)) / 2.0

    @property
    def area(self) -> float:
        return abs(self.signed_area)

    @property
    def is_degenerate(self) -> bool:
        """Fewer than 3 points or no enclosed area."""
        return len(self.points) < 3 or self.signed_area == 0

    @property
    def perimeter(self) -> float:
        if len(self.points) < 2:
            return 0.0
        deltas = np.roll(self.points, -1, axis=0) - self.points
        return float(np.sum(np.hypot(deltas[:, 0], deltas[:, 1])))

    @property
    def bounding_rect(self) -> Rect:
        x_min, y_min = np.floor(self.points.min(axis=0)).astype(int)
        x_max, y_max = np.floor(self.points.max(axis=0)).astype(int)
        return Rect(int(x_min), int(y_min), int(x_max - x_min + 1), int(y_max - y_min + 1))

    @property
    def centroid(self) -> Tuple[float, float]:
        cx, cy = self.points.mean(axis=0)
        return (float(cx), float(cy))

    def __len__(self) -> int:
        return len(self.points)


def net_area(contours: List[Contour], index: int) -> float:
    """Area of the outer contour at ``index`` minus the areas of its holes."""
    holes = [c.area for c in contours if c.is_hole and c.parent == index]
    return max(0.0, contours[index].area - sum(holes))


@dataclass
class MaskMetrics:
    area: float = 0.0
    perimeter: float = 0.0
    aspect_ratio: float = 0.0
    solidity: float = 0.0
    compactness: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass
class MaskValidationResult:
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)
    metrics: MaskMetrics = field(default_factory=MaskMetrics)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MaskValidationResult":
        data = dict(data)
        data["metrics"] = MaskMetrics(**data.get("metrics", {}))
        return cls(**data)


@dataclass
class GeneratedMask:
    """Cleaned, traced and simplified marker mask."""
    width: int
    height: int
    contours: List[Contour]
    options: MaskGenerationOptions
    processing_time: float
    validation: MaskValidationResult
    regions: List[Region] = field(default_factory=list)
    mask: Optional[BinaryMask] = field(default=None, repr=False)

    @property
    def outer_contours(self) -> List[Contour]:
        return [c for c in self.contours if not c.is_hole]

    def holes_of(self, index: int) -> List[Contour]:
        return [c for c in self.contours if c.is_hole and c.parent == index]

    def net_area(self, index: int) -> float:
        return net_area(self.contours, index)

    @property
    def total_area(self) -> float:
        return sum(self.net_area(i) for i, c in enumerate(self.contours) if not c.is_hole)


# ---------------------------------------------------------------------------
# Constraint validation
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AspectRatioRequirement:
    min: float = 0.2
    max: float = 5.0


@dataclass(frozen=True)
class PositionRequirement:
    margin_from_edges: int = 20
    allowed_regions: str = "anywhere"  # center | edges | corners | anywhere
    center_bias: float = 0.3


@dataclass(frozen=True)
class ContiguityRequirement:
    require_single_region: bool = False
    severity: str = "error"
    max_disconnected_regions: int = 3
    min_main_region_ratio: float = 0.7


@dataclass(frozen=True)
class GeometryRequirement:
    min_width: int = 20
    min_height: int = 20
    max_eccentricity: float = 0.95
    min_convexity: float = 0.4


@dataclass(frozen=True)
class LogoPlacementRequirement:
    min_logo_size: Tuple[int, int] = (50, 50)
    max_logo_size: Tuple[int, int] = (1000, 1000)
    padding_from_edges: int = 10
    logo_aspect_ratio: Optional[float] = None
    target_aspect_ratio: Optional[float] = None


@dataclass(frozen=True)
class ConstraintRequirements:
    """Placement requirements supplied by the caller for one validation."""
    min_area: float = 500.0
    max_area: Optional[float] = None
    aspect_ratio: AspectRatioRequirement = field(default_factory=AspectRatioRequirement)
    position: PositionRequirement = field(default_factory=PositionRequirement)
    contiguity: ContiguityRequirement = field(default_factory=ContiguityRequirement)
    geometry: GeometryRequirement = field(default_factory=GeometryRequirement)
    logo_placement: LogoPlacementRequirement = field(default_factory=LogoPlacementRequirement)
    min_zone_quality: float = 0.3

    def validate(self) -> None:
        """Raise ConfigurationError if any field is out of range."""
        if self.min_area < 0:
            raise ConfigurationError(f"min_area must be >= 0, got {self.min_area}")
        if self.max_area is not None and self.max_area < self.min_area:
            raise ConfigurationError("max_area must be >= min_area")
        if self.position.margin_from_edges < 0:
            raise ConfigurationError("margin_from_edges must be >= 0")
        if self.position.allowed_regions not in ("center", "edges", "corners", "anywhere"):
            raise ConfigurationError(
                f"Unknown allowed_regions {self.position.allowed_regions!r}"
            )
        if self.contiguity.severity not in ("error", "warning"):
            raise ConfigurationError("contiguity.severity must be 'error' or 'warning'")
        if self.logo_placement.padding_from_edges < 0:
            raise ConfigurationError("padding_from_edges must be >= 0")
        if min(self.logo_placement.min_logo_size) <= 0:
            raise ConfigurationError("min_logo_size dimensions must be > 0")
        for name in ("logo_aspect_ratio", "target_aspect_ratio"):
            value = getattr(self.logo_placement, name)
            if value is not None and value <= 0:
                raise ConfigurationError(f"{name} must be > 0")
        if not 0 <= self.min_zone_quality <= 1:
            raise ConfigurationError("min_zone_quality must be in [0, 1]")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConstraintRequirements":
        data = dict(data)
        nested = {
            "aspect_ratio": AspectRatioRequirement,
            "position": PositionRequirement,
            "contiguity": ContiguityRequirement,
            "geometry": GeometryRequirement,
        }
        for key, klass in nested.items():
            if isinstance(data.get(key), dict):
                data[key] = klass(**data[key])
        logo = data.get("logo_placement")
        if isinstance(logo, dict):
            logo = dict(logo)
            for key in ("min_logo_size", "max_logo_size"):
                value = logo.get(key)
                if isinstance(value, (int, float)):
                    logo[key] = (int(value), int(value))
                elif value is not None:
                    logo[key] = tuple(int(v) for v in value)
            data["logo_placement"] = LogoPlacementRequirement(**logo)
        return cls(**data)

    def with_overrides(self, **changes) -> "ConstraintRequirements":
        return replace(self, **changes)


@dataclass(frozen=True)
class ValidationSeverity:
    level: str  # error | warning | info
    blocking: bool = False
    priority: int = 5


@dataclass
class ValidationIssue:
    id: str
    severity: ValidationSeverity
    title: str
    description: str
    suggestion: str
    category: str
    measured_value: Optional[float] = None
    required_value: Optional[float] = None
    affected_area: Optional[Rect] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class PlacementZone:
    id: str
    region: Rect
    center_point: Tuple[float, float]
    quality: float
    suggested_logo_size: Tuple[int, int]
    restrictions: List[str] = field(default_factory=list)
    source_contour: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ConstraintMetrics:
    area: float = 0.0
    aspect_ratio: float = 0.0
    eccentricity: float = 0.0
    convexity: float = 0.0
    center_distance: float = 0.0
    edge_distance: float = 0.0
    logo_capacity: Tuple[float, float] = (0.0, 0.0)


@dataclass
class ConstraintValidationResult:
    is_valid: bool
    is_usable: bool
    confidence: float
    issues: List[ValidationIssue] = field(default_factory=list)
    placement_zones: List[PlacementZone] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    metrics: ConstraintMetrics = field(default_factory=ConstraintMetrics)

    def issues_by_level(self, level: str) -> List[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity.level == level]

    @property
    def best_zone(self) -> Optional[PlacementZone]:
        return self.placement_zones[0] if self.placement_zones else None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
