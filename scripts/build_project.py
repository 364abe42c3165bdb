#!/usr/bin/env python3
"""
Build a project headlessly and export the assembly as STL.

Runs exactly one scheduler pass and writes a run folder
(input/, artifacts/assembly.stl, metrics.json, summary.md, manifest.json).

Usage:
    python scripts/build_project.py turbojet_assembly
    python scripts/build_project.py my_engine.wgp --voxel-size 10
    python scripts/build_project.py turbojet_assembly --set "Req. Thrust (kN)=50" -v
"""
import sys
import argparse
import logging
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from app_config import AppConfig
from engine.contracts import EngineError
from pipeline import BuildConfig, run_build


def _parse_override(text: str):
    name, sep, value = text.rpartition("=")
    if not sep or not name:
        raise argparse.ArgumentTypeError(f"Expected NAME=VALUE, got {text!r}")
    try:
        return name.strip(), float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Value for {name!r} is not a number: {value!r}")


def main():
    parser = argparse.ArgumentParser(
        description="Build a .wgp project or a registered component kind and export STL.",
    )
    parser.add_argument(
        "source",
        help="Path to a .wgp project file, or a component kind such as turbojet_assembly",
    )
    parser.add_argument("--name", default=None, help="Design name used for the run folder")
    parser.add_argument(
        "--runs-dir", default="runs",
        help="Directory holding run folders (default: runs)",
    )
    parser.add_argument(
        "--voxel-size", type=float, default=None,
        help="Voxel size in mm (default: project value, else saved setting)",
    )
    parser.add_argument(
        "--set", dest="overrides", action="append", type=_parse_override, default=[],
        metavar="NAME=VALUE",
        help="Override a root parameter (repeatable)",
    )
    parser.add_argument("--no-stl", action="store_true", help="Skip mesh conversion and STL export")
    parser.add_argument(
        "--verbose", "-v", action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.voxel_size is not None and args.voxel_size <= 0:
        parser.error("--voxel-size must be positive")

    config = BuildConfig(
        runs_dir=args.runs_dir,
        voxel_size=args.voxel_size,
        export_stl=not args.no_stl,
        overrides=dict(args.overrides),
    )

    try:
        result = run_build(
            args.source,
            design_name=args.name,
            config=config,
            default_voxel=AppConfig.load().voxel_size_mm,
        )
    except (EngineError, FileNotFoundError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)

    build = result.build
    print(f"\nRun {result.run_id}: {build.assembly.voxel_count} voxels in {build.elapsed_s:.2f}s")
    for nid, message in build.errors.items():
        print(f"  node {nid} failed: {message}")
    print(f"STL:     {result.stl_path or 'not exported'}")
    print(f"Summary: {result.summary_path}")


if __name__ == "__main__":
    main()
