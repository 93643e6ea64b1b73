"""Command line converter between URDF and COLLADA kinematics scenes.

Examples:
    collada-kinematics urdf2collada robot.urdf robot.dae
    collada-kinematics collada2urdf robot.dae robot.urdf --mesh-dir meshes
"""

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from collada_kinematics.artifacts import ArtifactStore
from collada_kinematics.config import DEFAULT_OPTIONS, ConversionOptions
from collada_kinematics.core.robot_model import Mesh, RobotModel
from collada_kinematics.errors import ColladaError
from collada_kinematics.io.collada_reader import load_collada
from collada_kinematics.io.collada_writer import write_collada
from collada_kinematics.io.urdf_parser import load_urdf
from collada_kinematics.io.urdf_writer import to_urdf_string

console_logger = logging.getLogger(__name__)


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse and return command line arguments."""
    parser = argparse.ArgumentParser(
        prog="collada-kinematics",
        description=__doc__,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable verbose logging."
    )
    parser.add_argument(
        "--tessellation",
        type=float,
        default=DEFAULT_OPTIONS.tessellation,
        help="Resolution factor for sphere and cylinder triangulation.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    urdf2collada = subparsers.add_parser("urdf2collada", help="Convert a URDF file to COLLADA.")
    urdf2collada.add_argument("input", type=Path, help="Input URDF file.")
    urdf2collada.add_argument("output", type=Path, help="Output COLLADA file.")

    collada2urdf = subparsers.add_parser("collada2urdf", help="Convert a COLLADA file to URDF.")
    collada2urdf.add_argument("input", type=Path, help="Input COLLADA file.")
    collada2urdf.add_argument("output", type=Path, help="Output URDF file.")
    collada2urdf.add_argument(
        "--mesh-dir",
        type=Path,
        default=None,
        help="Directory for the per-link mesh files (default: next to the output).",
    )
    return parser.parse_args(argv)


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _relocate_meshes(model: RobotModel, prefix: str) -> None:
    """Prefix the filenames of exported link meshes with the mesh directory."""
    if prefix in ("", "."):
        return
    for link in model.links.values():
        if link.visual is not None and isinstance(link.visual.geometry, Mesh) and link.visual.geometry.filename:
            link.visual.geometry.filename = f"{prefix}/{link.visual.geometry.filename}"


def urdf_to_collada(args: argparse.Namespace, options: ConversionOptions) -> None:
    if not args.input.exists():
        raise FileNotFoundError(f"URDF file not found: {args.input}")
    model = load_urdf(args.input)
    write_collada(model, args.output, options, base_dir=args.input.parent)


def collada_to_urdf(args: argparse.Namespace, options: ConversionOptions) -> None:
    if not args.input.exists():
        raise FileNotFoundError(f"COLLADA file not found: {args.input}")
    mesh_dir = args.mesh_dir if args.mesh_dir is not None else args.output.parent
    with ArtifactStore() as store:
        model = load_collada(args.input, options, artifacts=store)
        _relocate_meshes(model, Path(os.path.relpath(mesh_dir, args.output.parent)).as_posix())
        args.output.write_text(to_urdf_string(model))
        console_logger.info(f"URDF written to {args.output}")
        store.materialize(mesh_dir)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point.

    Returns:
        Exit code (0 for success, non-zero for error).
    """
    args = parse_arguments(argv)
    setup_logging(args.verbose)
    console_logger.debug("Verbose logging enabled")
    options = DEFAULT_OPTIONS.with_overrides(tessellation=args.tessellation)

    try:
        if args.command == "urdf2collada":
            urdf_to_collada(args, options)
        else:
            collada_to_urdf(args, options)
        return 0
    except ColladaError as e:
        console_logger.error(f"Conversion failed: {e}")
        return 1
    except (FileNotFoundError, ValueError, OSError) as e:
        console_logger.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
