"""
DRVO (Dead-Reckoning vs. Visual Odometry) Package

Two independent trajectory estimators for a handheld device plus the tools
to compare them:

- Strapdown inertial dead reckoning driven by a Madgwick orientation filter
- Monocular frame-to-keyframe visual odometry (Harris corners, patch
  matching with Lowe's ratio test, median-flow pose deltas)
- Umeyama trajectory alignment and drift/RMSE metrics

Version: 1.2.0

Changes in v1.2.0:
- NEW: LatestFrameQueue / FrameWorker (frame_queue.py)
  * Camera frames arriving faster than VO can process are dropped,
    newest frame wins, stale frames are counted
- NEW: align_and_evaluate() associates poses by timestamp before fitting
- IMPROVED: svd_3x3 re-orthogonalises power-iteration vectors so planar
  trajectories still yield a proper rotation

Changes in v1.1.0:
- NEW: Pedestrian dead reckoning (pedestrian.py) with dynamic step counter
- NEW: Magnetometer heading fusion into the Madgwick yaw
- NEW: Stationary IMU bias calibration (imu_calibration.py)

Submodules:
- config: TrackingConfig dataclass and YAML loading
- math_utils: Quaternion operations, rotation matrices
- pose_types: Pose, ImuSample, Calibration, Feature, Match, Keyframe
- orientation_filter: Madgwick gradient-descent filter
- dead_reckoning: Strapdown integrator
- imu_calibration: Stationary bias / gravity estimation
- magnetometer: Heading from magnetometer, complementary yaw filter
- pedestrian: Step counter and stride-based dead reckoning
- feature_detector: Harris corner detection
- feature_matcher: Patch SSD matching with ratio test
- pose_estimator: Robust median-flow pose delta
- visual_odometry: Keyframe-based VO controller
- linalg: 3x3 power-iteration eigen/SVD
- alignment: Umeyama alignment and trajectory metrics
- frame_queue: Latest-frame-wins queue and worker thread
- numerical_checks: NaN/inf and quaternion tripwires
- data_loaders: IMU / magnetometer CSV and image sequence loaders
- output_utils: Console reports
- main_loop: TrackingRunner for recorded sessions

Usage:
    from drvo.config import load_config
    from drvo.dead_reckoning import DeadReckoningEngine
    from drvo.visual_odometry import VisualOdometryController
    from drvo.alignment import umeyama, compute_metrics
    from drvo.main_loop import TrackingRunner
"""

__version__ = "1.2.0"

# Lazy module imports - access as drvo.config, drvo.alignment, etc.
import importlib

_SUBMODULES = {
    "config", "math_utils", "pose_types", "orientation_filter",
    "dead_reckoning", "imu_calibration", "magnetometer", "pedestrian",
    "feature_detector", "feature_matcher", "pose_estimator",
    "visual_odometry", "linalg", "alignment", "frame_queue",
    "numerical_checks", "data_loaders", "output_utils", "main_loop",
}


def __getattr__(name):
    """Lazy module loading to avoid importing all dependencies at once."""
    if name in _SUBMODULES:
        module = importlib.import_module(f".{name}", __name__)
        globals()[name] = module
        return module
    raise AttributeError(f"module 'drvo' has no attribute '{name}'")


def __dir__():
    """List available submodules."""
    return list(_SUBMODULES)


__all__ = list(_SUBMODULES)
