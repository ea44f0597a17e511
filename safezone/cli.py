"""Command line interface for safezone."""
import argparse
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Tuple

from safezone.color import GREEN_COLOR_RANGES
from safezone.export import save_export
from safezone.pipeline import process_image
from safezone.types import (
    ConfigurationError,
    ConstraintRequirements,
    DetectionSettings,
    InputError,
    MaskGenerationOptions,
)
from safezone.validation import create_validation_report

EXIT_USABLE = 0
EXIT_NOT_USABLE = 1
EXIT_NO_MARKER = 2
EXIT_ERROR = 3

OUTPUT_FORMATS = ['png', 'svg', 'json', 'report']


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser."""
    parser = argparse.ArgumentParser(
        prog='safezone',
        description='Detect a color-marked safe zone and validate it for logo placement'
    )

    parser.add_argument(
        'input',
        type=str,
        help='Input image path'
    )

    parser.add_argument(
        '-o', '--output-dir',
        type=str,
        default=None,
        help='Directory for output files (default: next to the input)'
    )

    parser.add_argument(
        '--config',
        type=str,
        default=None,
        help='JSON file with "detection", "mask" and "requirements" sections'
    )

    parser.add_argument(
        '--preset',
        type=str,
        choices=sorted(name.lower() for name in GREEN_COLOR_RANGES),
        default=None,
        help='Marker color preset'
    )

    parser.add_argument(
        '--tolerance',
        type=float,
        default=None,
        help='Color tolerance in percent (default: 10)'
    )

    parser.add_argument(
        '--min-area',
        type=float,
        default=None,
        help='Minimum constraint area in pixels (default: 500)'
    )

    parser.add_argument(
        '--min-logo',
        type=int,
        nargs=2,
        metavar=('W', 'H'),
        default=None,
        help='Minimum logo size in pixels (default: 50 50)'
    )

    parser.add_argument(
        '--single-region',
        action='store_true',
        help='Require the marked area to be a single connected region'
    )

    parser.add_argument(
        '--format',
        type=str,
        nargs='+',
        choices=OUTPUT_FORMATS,
        default=OUTPUT_FORMATS,
        help='Outputs to write (default: all)'
    )

    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Verbose logging'
    )

    return parser


def load_config(path: Path) -> Tuple[DetectionSettings, MaskGenerationOptions, ConstraintRequirements]:
    """
    Load configuration sections from a JSON file.

    Raises:
        ConfigurationError: If the file is unreadable or has unknown fields
    """
    try:
        data = json.loads(path.read_text(encoding='utf-8'))
        settings = DetectionSettings.from_dict(data.get('detection', {}))
        options = MaskGenerationOptions.from_dict(data.get('mask', {}))
        requirements = ConstraintRequirements.from_dict(data.get('requirements', {}))
    except (OSError, ValueError, TypeError, AttributeError) as e:
        raise ConfigurationError(f"Invalid config file {path}: {e}") from e
    return settings, options, requirements


def build_config(parsed_args) -> Tuple[DetectionSettings, MaskGenerationOptions, ConstraintRequirements]:
    """Config file values, overridden by command line flags."""
    if parsed_args.config:
        settings, options, requirements = load_config(Path(parsed_args.config))
    else:
        settings = DetectionSettings()
        options = MaskGenerationOptions()
        requirements = ConstraintRequirements()

    if parsed_args.preset:
        settings = replace(settings, color_range=GREEN_COLOR_RANGES[parsed_args.preset.upper()])
    if parsed_args.tolerance is not None:
        settings = replace(settings, tolerance_percent=parsed_args.tolerance)

    if parsed_args.min_area is not None:
        requirements = requirements.with_overrides(min_area=parsed_args.min_area)
    if parsed_args.min_logo:
        logo = replace(requirements.logo_placement, min_logo_size=tuple(parsed_args.min_logo))
        requirements = requirements.with_overrides(logo_placement=logo)
    if parsed_args.single_region:
        contiguity = replace(requirements.contiguity, require_single_region=True)
        requirements = requirements.with_overrides(contiguity=contiguity)

    return settings, options, requirements


def main(args=None):
    """Main entry point."""
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    logging.basicConfig(
        level=logging.DEBUG if parsed_args.verbose else logging.WARNING,
        format='%(levelname)s %(name)s: %(message)s'
    )

    # Resolve input path
    input_path = Path(parsed_args.input)
    if not input_path.exists():
        print(f"Error: Input file not found: {input_path}", file=sys.stderr)
        return EXIT_ERROR

    output_dir = Path(parsed_args.output_dir) if parsed_args.output_dir else input_path.parent

    try:
        settings, options, requirements = build_config(parsed_args)
        result = process_image(input_path, settings, options, requirements)
    except (ConfigurationError, InputError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR

    print(f"Image: {result.width}x{result.height}")
    if not result.marker_found:
        print("No marker-colored region found ✗")
        return EXIT_NO_MARKER

    mask = result.mask
    validation = result.validation
    print(f"Regions: {len(result.detection.regions)}, contours: {len(mask.contours)}")
    print(f"Valid: {'✓' if validation.is_valid else '✗'}  "
          f"Usable: {'✓' if validation.is_usable else '✗'}  "
          f"Confidence: {validation.confidence * 100:.1f}%")

    output_dir.mkdir(parents=True, exist_ok=True)
    stem = input_path.stem
    for fmt in parsed_args.format:
        if fmt == 'report':
            path = output_dir / f"{stem}_report.txt"
            path.write_text(create_validation_report(validation), encoding='utf-8')
        else:
            path = save_export(mask, fmt, output_dir / f"{stem}_mask.{fmt}")
        print(f"  Wrote {path}")

    return EXIT_USABLE if validation.is_usable else EXIT_NOT_USABLE


if __name__ == '__main__':
    sys.exit(main())
