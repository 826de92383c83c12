# ABOUTME: Command-line interface for the texturing pipeline
# ABOUTME: Parses options into a PipelineConfig and runs the pipeline

import argparse
import sys
import traceback

from .config import PipelineConfig
from .orchestrator import Pipeline
from utils.logging_utils import setup_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Mesh Texturing - Bake texture atlases from calibrated photographs',
        epilog="""
Examples:
  # Chart placement from reference cameras
  texture-mesh mesh.ply mesh.vis views.json ./output --chart-layout charts.json

  # Global parameterization
  texture-mesh mesh.ply mesh.vis views.json ./output --unwrap-method LSCM

  # Texture a retopologized OBJ using the dense mesh visibilities
  texture-mesh mesh.ply mesh.vis views.json ./output --replacement-mesh retopo.obj
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    # Required arguments
    parser.add_argument('input_mesh', type=str,
                        help='Dense reconstructed mesh (.ply, .obj, ...)')
    parser.add_argument('visibilities', type=str,
                        help='Per-point visibility file of the dense mesh')
    parser.add_argument('views', type=str,
                        help='Camera calibration JSON file')
    parser.add_argument('output_dir', type=str,
                        help='Output directory for textures and the OBJ mesh')

    # Optional arguments
    parser.add_argument('--replacement-mesh', type=str, default=None,
                        help='OBJ mesh to texture instead of the dense mesh; '
                             'its UVs are kept when present')
    parser.add_argument('--chart-layout', type=str, default=None,
                        help='Chart packing JSON (required for Basic unwrapping '
                             'unless the replacement mesh carries UVs)')
    parser.add_argument('--unwrap-method', type=str, default='Basic',
                        choices=['Basic', 'ABF', 'LSCM'],
                        help='UV generation method. Default: Basic')
    parser.add_argument('--texture-side', type=int, default=8192,
                        help='Atlas side in pixels. Default: 8192')
    parser.add_argument('--padding', type=int, default=15,
                        help='Gutter width in pixels. Default: 15')
    parser.add_argument('--downscale', type=int, default=2,
                        choices=[1, 2, 4, 8],
                        help='Texture downscale factor. Default: 2')
    parser.add_argument('--fill-holes', action='store_true',
                        help='Fill unpainted texture pixels (disables padding)')
    parser.add_argument('--texture-file-type', type=str, default='png',
                        choices=['png', 'jpg', 'tif'],
                        help='Texture image format. Default: png')
    parser.add_argument('--flip-normals', action='store_true',
                        help='Invert triangle orientation of the replacement mesh')
    parser.add_argument('--image-cache-size', type=int, default=8,
                        help='Number of source images kept in memory. Default: 8')
    parser.add_argument('--basename', type=str, default='texturedMesh',
                        help='Output OBJ/MTL base name. Default: texturedMesh')
    parser.add_argument('--verbose', action='store_true',
                        help='Enable verbose logging (DEBUG level)')
    parser.add_argument('--quiet', action='store_true',
                        help='Quiet mode - only show warnings and errors')
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    logger = setup_logging(verbose=args.verbose, quiet=args.quiet)

    try:
        config = PipelineConfig(
            input_mesh=args.input_mesh,
            visibilities_file=args.visibilities,
            views_file=args.views,
            output_dir=args.output_dir,
            replacement_mesh=args.replacement_mesh,
            chart_layout=args.chart_layout,
            unwrap_method=args.unwrap_method,
            texture_side=args.texture_side,
            padding=args.padding,
            downscale=args.downscale,
            fill_holes=args.fill_holes,
            texture_file_type=args.texture_file_type,
            flip_normals=args.flip_normals,
            image_cache_size=args.image_cache_size,
            output_basename=args.basename,
        )

        pipeline = Pipeline(config)
        output_files = pipeline.run()

        logger.info("")
        logger.info("Success! Generated %d files:", len(output_files))
        for f in output_files:
            logger.info("   - %s", f)

        sys.exit(0)

    except FileNotFoundError as e:
        logger.error("File not found: %s", e)
        sys.exit(1)
    except ValueError as e:
        logger.error("Invalid configuration: %s", e)
        sys.exit(1)
    except Exception as e:
        logger.error("Pipeline failed: %s", e)
        if args.verbose:
            traceback.print_exc()
        sys.exit(1)


if __name__ == '__main__':
    main()
