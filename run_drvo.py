#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
DRVO Standalone Entry Point (run_drvo.py)

Replays a recorded session through the dead-reckoning and visual-odometry
engines and reports how the two trajectories (and an optional reference)
compare.

Configuration Model:
--------------------
    YAML config holds every algorithm threshold (see configs/default.yaml).
    CLI provides only paths, camera intrinsics and runtime flags.

Usage:
    python run_drvo.py --imu session/imu.csv --output out/

    # With camera frames and a reference trajectory:
    python run_drvo.py --config configs/default.yaml --imu imu.csv \\
        --images_dir frames/ --images_index frames.csv \\
        --intrinsics 500 500 320 240 --reference gt.csv --output out/

Author: DRVO project
"""

import argparse
import sys


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="DR vs VO trajectory comparison",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # IMU only:
  python run_drvo.py --imu imu.csv --output out/

  # Pedestrian step model, threaded VO:
  python run_drvo.py --imu imu.csv --images_dir frames/ --images_index frames.csv \\
      --intrinsics 500 500 320 240 --pedestrian --threaded_vo --output out/
        """
    )

    # Required inputs
    parser.add_argument("--imu", type=str, required=True,
                        help="Path to IMU CSV file")

    # Configuration
    parser.add_argument("--config", type=str, default=None,
                        help="Path to YAML config file (defaults if omitted)")

    # Optional data inputs
    parser.add_argument("--mag", type=str, default=None,
                        help="Path to magnetometer CSV")
    parser.add_argument("--images_dir", type=str, default=None,
                        help="Directory containing camera frames")
    parser.add_argument("--images_index", type=str, default=None,
                        help="CSV with timestamp and filename per frame")
    parser.add_argument("--intrinsics", type=float, nargs=4, default=None,
                        metavar=("FX", "FY", "CX", "CY"),
                        help="Camera intrinsics in pixels")
    parser.add_argument("--reference", type=str, default=None,
                        help="Reference trajectory CSV (timestamp,x,y,z[,qw,qx,qy,qz])")
    parser.add_argument("--output", type=str, default=None,
                        help="Output directory for trajectories and metrics")

    # Runtime flags
    parser.add_argument("--no_calibration", action="store_true",
                        help="Skip the stationary bias calibration window")
    parser.add_argument("--unlevel", action="store_true",
                        help="Device not flat during calibration: estimate attitude from gravity")
    parser.add_argument("--pedestrian", action="store_true",
                        help="Also run step-based pedestrian dead reckoning")
    parser.add_argument("--threaded_vo", action="store_true",
                        help="Run VO on a worker thread behind the latest-frame queue")
    parser.add_argument("--verbose", action="store_true",
                        help="Per-sample / per-frame debug output")

    return parser.parse_args(argv)


def main(argv=None) -> int:
    """Main entry point - load YAML config and run the session."""
    args = parse_args(argv)

    from drvo import config as drvo_config
    from drvo.main_loop import RunConfig, TrackingRunner

    if args.verbose:
        drvo_config.VERBOSE_DEBUG = True
        drvo_config.VERBOSE_VO = True

    run_cfg = RunConfig(
        imu_path=args.imu,
        config_yaml=args.config,
        mag_path=args.mag,
        images_dir=args.images_dir,
        images_index=args.images_index,
        intrinsics=list(args.intrinsics) if args.intrinsics else None,
        reference_path=args.reference,
        output_dir=args.output,
        calibrate=not args.no_calibration,
        assume_level=not args.unlevel,
        pedestrian=args.pedestrian,
        threaded_vo=args.threaded_vo,
    )

    try:
        TrackingRunner(run_cfg).run()
    except (FileNotFoundError, ValueError) as e:
        print(f"ERROR: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
