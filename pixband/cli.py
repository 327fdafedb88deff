"""Command line interface for pixband."""
import argparse
import logging
import sys
from pathlib import Path

from pixband.pipeline import BandingPipeline
from pixband.types import (
    BandingConfig,
    BandingError,
    ColorMode,
    ErosionMode,
    LayerOrder,
    OperationMode,
)

OPERATIONS = {
    'shrink': OperationMode.SHRINK,
    'recolor': OperationMode.RECOLOR_AVERAGE,
    'expand': OperationMode.EXPAND,
    'remove': OperationMode.REMOVE,
}

COLOR_MODES = {
    'majority': ColorMode.MAJORITY_NEIGHBOR,
    'continuation': ColorMode.ENDPOINT_CONTINUATION,
}

EROSION_MODES = {
    'constant': ErosionMode.CONSTANT,
    'linear': ErosionMode.LINEAR_BY_LAYER,
}

LAYER_ORDERS = {
    'area': LayerOrder.AREA,
    'brightness': LayerOrder.BRIGHTNESS,
}

EDGES = ('left', 'right', 'top', 'bottom')


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser."""
    parser = argparse.ArgumentParser(
        prog='pixband',
        description='Detect and correct banding in pixel art'
    )

    parser.add_argument(
        'input',
        type=str,
        help='Input image path'
    )

    parser.add_argument(
        '-o', '--output',
        type=str,
        help='Output image path (default: input_corrected.png)'
    )

    parser.add_argument(
        '--strategy',
        type=str,
        choices=['detect', 'correction', 'pillow', 'dither'],
        default='correction',
        help='detect only (writes an upscaled overlay), segment correction, '
             'pillow-shading reconstruction or dithering (default: correction)'
    )

    parser.add_argument(
        '--operation',
        type=str,
        choices=list(OPERATIONS),
        default='shrink',
        help='Segment operation for the correction strategy (default: shrink)'
    )

    parser.add_argument(
        '--color-mode',
        type=str,
        choices=list(COLOR_MODES),
        default='continuation',
        help='Replacement color policy (default: continuation)'
    )

    parser.add_argument(
        '--edges',
        type=str,
        default=','.join(EDGES),
        help='Comma-separated segment ends that may be altered (default: left,right,top,bottom)'
    )

    parser.add_argument(
        '--shrink-ratio',
        type=float,
        default=0.0,
        help='Extra pixels removed per end as a fraction of segment length (default: 0)'
    )

    parser.add_argument(
        '--select',
        type=str,
        default=None,
        help='Correct only the segment at X,Y'
    )

    parser.add_argument(
        '--orientation',
        type=str,
        choices=['h', 'v'],
        default='h',
        help='Scan orientation of the selected segment (default: h)'
    )

    parser.add_argument(
        '--generator',
        type=str,
        default=None,
        help='Anchor point X,Y for pillow shading'
    )

    parser.add_argument(
        '--iterations',
        type=int,
        default=10,
        help='Pillow-shading attempts, the best is kept (default: 10)'
    )

    parser.add_argument(
        '--erosion',
        type=str,
        choices=list(EROSION_MODES),
        default='constant',
        help='Layer erosion mode (default: constant)'
    )

    parser.add_argument(
        '--linear-factor',
        type=float,
        default=1.0,
        help='Erosion iterations per layer index in linear mode (default: 1.0)'
    )

    parser.add_argument(
        '--expansion-iterations',
        type=int,
        default=1,
        help='Shape expansion iterations (default: 1)'
    )

    parser.add_argument(
        '--probability',
        type=float,
        default=0.3,
        help='Probability to add a candidate pixel during expansion (default: 0.3)'
    )

    parser.add_argument(
        '--layer-order',
        type=str,
        choices=list(LAYER_ORDERS),
        default='area',
        help='Layer ordering for reconstruction (default: area)'
    )

    parser.add_argument(
        '--no-preserve-outline',
        action='store_true',
        help='Clip reconstructed layers to the silhouette only'
    )

    parser.add_argument(
        '--seed',
        type=int,
        default=42,
        help='Random seed, negative for a nondeterministic run (default: 42)'
    )

    parser.add_argument(
        '--max-iterations',
        type=int,
        default=500,
        help='Iteration cap of the automatic correction loop (default: 500)'
    )

    parser.add_argument(
        '--save-stages',
        type=str,
        default=None,
        help='Directory to save pipeline stage debug images'
    )

    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Enable debug logging'
    )

    return parser


def parse_point(value: str):
    """Parse "X,Y" into an integer tuple."""
    parts = value.split(',')
    if len(parts) != 2:
        raise ValueError(f"Expected X,Y but got {value!r}")
    return int(parts[0].strip()), int(parts[1].strip())


def parse_edges(value: str):
    """Parse a comma-separated edge list into a set of edge names."""
    edges = {part.strip().lower() for part in value.split(',') if part.strip()}
    unknown = edges - set(EDGES)
    if unknown:
        raise ValueError(f"Unknown edges: {', '.join(sorted(unknown))}")
    return edges


def build_config(parsed_args) -> BandingConfig:
    """Map command line options onto a BandingConfig."""
    edges = parse_edges(parsed_args.edges)
    return BandingConfig(
        alter_left_edge='left' in edges,
        alter_right_edge='right' in edges,
        alter_top_edge='top' in edges,
        alter_bottom_edge='bottom' in edges,
        operation_mode=OPERATIONS[parsed_args.operation],
        color_mode=COLOR_MODES[parsed_args.color_mode],
        shrink_ratio=parsed_args.shrink_ratio,
        max_correction_iterations=parsed_args.max_iterations,
        pipeline_iterations=parsed_args.iterations,
        erosion_mode=EROSION_MODES[parsed_args.erosion],
        linear_erosion_factor=parsed_args.linear_factor,
        expansion_iterations=parsed_args.expansion_iterations,
        probability_to_add_pixel=parsed_args.probability,
        preserve_outline=not parsed_args.no_preserve_outline,
        layer_order=LAYER_ORDERS[parsed_args.layer_order],
        seed=parsed_args.seed if parsed_args.seed >= 0 else None,
    )


def main(args=None):
    """Main entry point."""
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    logging.basicConfig(
        level=logging.DEBUG if parsed_args.verbose else logging.INFO,
        format='%(levelname)s %(name)s: %(message)s'
    )

    # Resolve input path
    input_path = Path(parsed_args.input)
    if not input_path.exists():
        print(f"Error: Input file not found: {input_path}", file=sys.stderr)
        return 1

    # Determine output path
    if parsed_args.output:
        output_path = Path(parsed_args.output)
    else:
        output_path = input_path.with_name(f"{input_path.stem}_corrected.png")

    try:
        config = build_config(parsed_args)
        selection = None
        if parsed_args.select:
            selection = (parse_point(parsed_args.select), parsed_args.orientation == 'h')
        generator = parse_point(parsed_args.generator) if parsed_args.generator else None
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"Mode: {parsed_args.strategy}")
    if parsed_args.save_stages:
        print(f"Debug stages will be saved to: {parsed_args.save_stages}")

    try:
        pipeline = BandingPipeline(config)
        report = pipeline.process(
            input_path,
            output_path,
            strategy=parsed_args.strategy,
            selection=selection,
            generator=generator,
            stages_dir=parsed_args.save_stages
        )
    except (BandingError, OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"\nResults:")
    print(f"  Banding pairs: {report['initial_error']} -> {report['final_error']}")
    print(f"  Changed pixels: {report['changed_pixels']}")
    print(f"  Converged: {'yes' if report['converged'] else 'no'}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
