"""
Main Tracking Loop Runner

This module provides the TrackingRunner class that replays a recorded
session through both trajectory engines and compares them:

- Data loading (IMU, optional magnetometer, optional images, optional reference)
- Stationary bias calibration over the first samples
- Dead reckoning (strapdown, optional pedestrian step model)
- Visual odometry, inline or through the latest-frame-wins worker
- Alignment, metrics and CSV output

Usage:
    from drvo.main_loop import TrackingRunner, RunConfig

    run_cfg = RunConfig(imu_path="imu.csv", images_dir="frames/",
                        images_index="frames.csv", intrinsics=[500, 500, 320, 240])
    runner = TrackingRunner(run_cfg)
    results = runner.run()

Author: DRVO project
"""

import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .alignment import align_and_evaluate, associate_by_timestamp, compute_metrics, compute_relative_error
from .config import TrackingConfig, load_config
from .data_loaders import (
    ImageItem, MagRecord, load_image_index, load_imu_csv, load_mag_csv,
    load_trajectory_csv, read_frame,
)
from .dead_reckoning import DeadReckoningEngine
from .frame_queue import FrameWorker, LatestFrameQueue
from .imu_calibration import StationaryCalibrator, attitude_from_gravity
from .orientation_filter import MadgwickFilter
from .output_utils import (
    init_output_dir, print_metrics, print_tracking_summary, save_metrics_csv,
    save_trajectory_csv,
)
from .pedestrian import PedestrianDeadReckoning
from .pose_types import ImuSample
from .visual_odometry import VisualOdometryController

# Event ordering at equal timestamps: IMU first, then magnetometer, then frames
_EV_IMU, _EV_MAG, _EV_FRAME = 0, 1, 2


@dataclass
class RunConfig:
    """Session inputs and runner switches."""
    imu_path: str
    config_yaml: Optional[str] = None
    mag_path: Optional[str] = None
    images_dir: Optional[str] = None
    images_index: Optional[str] = None
    intrinsics: Optional[List[float]] = None  # [fx, fy, cx, cy]
    reference_path: Optional[str] = None
    output_dir: Optional[str] = None
    calibrate: bool = True
    assume_level: bool = True
    pedestrian: bool = False
    threaded_vo: bool = False
    associate_max_dt: float = 0.1
    rte_window: float = 1.0


@dataclass
class RunResults:
    """Everything a finished run produced."""
    dr_poses: tuple = ()
    vo_poses: tuple = ()
    pdr_poses: tuple = ()
    metrics: Dict = field(default_factory=dict)
    alignments: Dict = field(default_factory=dict)
    relative_errors: Dict = field(default_factory=dict)


class TrackingRunner:
    """
    Replays one recorded session.

    1. Data loading
    2. Calibration window (not integrated)
    3. Time-ordered replay of IMU, magnetometer and camera events
    4. Evaluation and output
    """

    def __init__(self, run_cfg: RunConfig, cfg: Optional[TrackingConfig] = None):
        self.run_cfg = run_cfg
        if cfg is None:
            cfg = load_config(run_cfg.config_yaml) if run_cfg.config_yaml else TrackingConfig()
        self.cfg = cfg

        self.imu: List[ImuSample] = []
        self.mag: List[MagRecord] = []
        self.images: List[ImageItem] = []
        self.reference = []

        self.dr: Optional[DeadReckoningEngine] = None
        self.vo: Optional[VisualOdometryController] = None
        self.pdr: Optional[PedestrianDeadReckoning] = None
        self.worker: Optional[FrameWorker] = None

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------
    def load_data(self):
        rc = self.run_cfg
        self.imu = load_imu_csv(rc.imu_path)
        if rc.mag_path:
            self.mag = load_mag_csv(rc.mag_path)
        if rc.images_dir and rc.images_index:
            if rc.intrinsics is None or len(rc.intrinsics) < 4:
                raise ValueError("Camera intrinsics [fx, fy, cx, cy] are required with images")
            self.images = load_image_index(rc.images_dir, rc.images_index)
        if rc.reference_path:
            self.reference = load_trajectory_csv(rc.reference_path)

    def calibrate(self) -> int:
        """
        Estimate biases from the first calibration_samples IMU samples.

        Returns:
            Number of samples consumed (0 when calibration is off or the
            window was not stationary)
        """
        n = min(self.cfg.calibration_samples, len(self.imu))
        if not self.run_cfg.calibrate or n == 0:
            return 0

        calib = StationaryCalibrator(max_samples=n, assume_level=self.run_cfg.assume_level,
                                     g_nominal=self.cfg.gravity)
        for s in self.imu[:n]:
            calib.add_sample(s.accel, s.gyro)

        if not calib.is_stationary():
            print(f"[CALIB] WARNING: first {n} samples are not stationary "
                  f"(accel std={calib.accel_std}, gyro std={calib.gyro_std}); using configured biases")
            return 0

        self.dr.update_calibration(calib.to_calibration())
        if not self.run_cfg.assume_level:
            q0 = attitude_from_gravity(calib.accel_mean)
            self.dr.orientation_filter.set_orientation(q0)
            print(f"[CALIB] Initial attitude from gravity: q={q0}")
        return n

    def setup_engines(self):
        self.dr = DeadReckoningEngine(orientation_filter=MadgwickFilter(beta=self.cfg.beta), cfg=self.cfg)
        self.vo = VisualOdometryController(self.cfg)
        if self.run_cfg.pedestrian:
            self.pdr = PedestrianDeadReckoning(self.cfg)
        if self.run_cfg.threaded_vo:
            self.worker = FrameWorker(self.vo, LatestFrameQueue(self.cfg.frame_queue_size))

    # ------------------------------------------------------------------
    # Replay
    # ------------------------------------------------------------------
    def _events(self, start: int):
        events = [(s.timestamp, _EV_IMU, i) for i, s in enumerate(self.imu) if i >= start]
        if self.cfg.use_magnetometer:
            events += [(m.t, _EV_MAG, i) for i, m in enumerate(self.mag)]
        events += [(it.t, _EV_FRAME, i) for i, it in enumerate(self.images)]
        events.sort()
        return events

    def replay(self, start: int = 0):
        last_t = None
        frames_read = 0
        if self.worker is not None:
            self.worker.start()
        try:
            for t, kind, idx in self._events(start):
                if kind == _EV_IMU:
                    sample = self.imu[idx]
                    if last_t is not None:
                        dt = sample.timestamp - last_t
                        self.dr.process(sample, dt)
                        if self.pdr is not None:
                            self.pdr.process_sample(sample.timestamp, sample.accel, sample.gyro, dt)
                    last_t = sample.timestamp
                elif kind == _EV_MAG:
                    self.dr.process_magnetometer(self.mag[idx].mag, t)
                else:
                    frame = read_frame(self.images[idx], self.run_cfg.intrinsics)
                    if frame is None:
                        continue
                    frames_read += 1
                    if self.worker is not None:
                        self.worker.submit(frame)
                    else:
                        self.vo.process(frame)
        finally:
            if self.worker is not None:
                self.worker.wait_idle()
                self.worker.stop()
        print(f"[FRAMES] {frames_read}/{len(self.images)} frames delivered to VO")

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------
    def evaluate(self, results: RunResults):
        rc = self.run_cfg
        if results.dr_poses and results.vo_poses:
            ref_m, est_m = associate_by_timestamp(results.dr_poses, results.vo_poses, rc.associate_max_dt)
            results.metrics["vo_vs_dr"] = compute_metrics(ref_m, est_m)
            results.relative_errors["vo_vs_dr"] = compute_relative_error(ref_m, est_m, rc.rte_window)
            print_metrics("VO vs DR (unaligned)", results.metrics["vo_vs_dr"])

        if not self.reference:
            return
        for name, poses in (("dr", results.dr_poses), ("vo", results.vo_poses), ("pdr", results.pdr_poses)):
            ref_m, est_m = associate_by_timestamp(self.reference, poses, rc.associate_max_dt)
            if len(est_m) < 3:
                print(f"[ALIGN] {name.upper()}: only {len(est_m)} poses overlap the reference, skipped")
                continue
            alignment, metrics = align_and_evaluate(self.reference, poses, rc.associate_max_dt)
            key = f"{name}_vs_reference"
            results.alignments[key] = alignment
            results.metrics[key] = metrics
            results.relative_errors[key] = compute_relative_error(ref_m, est_m, rc.rte_window)
            print_metrics(f"{name.upper()} vs reference (aligned)", metrics, alignment)

    def save_outputs(self, results: RunResults):
        paths = init_output_dir(self.run_cfg.output_dir)
        save_trajectory_csv(results.dr_poses, paths["dr_csv"])
        save_trajectory_csv(results.vo_poses, paths["vo_csv"])
        if self.pdr is not None:
            save_trajectory_csv(results.pdr_poses, paths["pdr_csv"])
        if results.metrics:
            save_metrics_csv(results.metrics, paths["metrics_csv"])
        print(f"\nOutputs saved to: {self.run_cfg.output_dir}")

    def run(self) -> RunResults:
        """Run the complete session and return the results."""
        print("=" * 80)
        print("DR / VO Tracking Session")
        print("=" * 80)
        t_start = time.time()

        self.load_data()
        self.setup_engines()
        start = self.calibrate()
        self.replay(start)

        results = RunResults(
            dr_poses=self.dr.pose_history,
            vo_poses=self.vo.pose_history,
            pdr_poses=self.pdr.pose_history if self.pdr is not None else (),
        )
        print_tracking_summary(results.dr_poses, results.vo_poses, self.dr.stats, self.vo.stats,
                               self.pdr.step_count if self.pdr is not None else None)
        self.evaluate(results)
        if self.run_cfg.output_dir:
            self.save_outputs(results)
        print(f"\n--- Done in {time.time() - t_start:.1f} s ---")
        return results
