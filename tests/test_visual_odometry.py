import numpy as np
import pytest

import drvo.visual_odometry as vo_module
from drvo.config import TrackingConfig
from drvo.pose_types import CameraFrame
from drvo.visual_odometry import TrackingState, VisualOdometryController

W, H = 160, 120
INTRINSICS = [500.0, 500.0, 80.0, 60.0]


@pytest.fixture(scope="module")
def texture():
    rng = np.random.default_rng(7)
    return rng.integers(0, 256, size=(200, 260), dtype=np.uint8)


def _crop(texture, k, step=4):
    x0 = 20 + step * k
    return np.ascontiguousarray(texture[30:30 + H, x0:x0 + W]).reshape(-1)


def _frame(image, t, intrinsics=INTRINSICS):
    return CameraFrame(image=image, width=W, height=H, timestamp=t, intrinsics=intrinsics)


def test_frame_without_intrinsics_is_skipped(texture):
    vo = VisualOdometryController()
    assert vo.process(_frame(_crop(texture, 0), 0.0, intrinsics=None)) is None
    assert vo.process(_frame(_crop(texture, 0), 0.0, intrinsics=[0.0, 500.0, 80.0, 60.0])) is None
    assert vo.stats['skipped'] == 2
    assert vo.state == TrackingState.UNINITIALIZED
    assert vo.pose_history == ()


def test_malformed_image_is_skipped():
    vo = VisualOdometryController()
    assert vo.process_frame(b"\x00" * 100, W, H, 0.0, INTRINSICS) is None
    assert vo.process_frame(b"\x00" * 100, 8, 8, 0.0, INTRINSICS) is None
    assert vo.stats['skipped'] == 2
    assert vo.state == TrackingState.UNINITIALIZED


def test_first_frame_initialises_at_identity(texture):
    vo = VisualOdometryController()
    pose = vo.process(_frame(_crop(texture, 0), 1.5))
    assert vo.state == TrackingState.TRACKING
    assert pose.timestamp == 1.5
    assert np.allclose(pose.position, 0.0)
    assert np.allclose(pose.orientation, [1.0, 0.0, 0.0, 0.0])
    assert len(vo.keyframes) == 1
    assert len(vo.keyframes[0].features) > 0


def test_featureless_frame_repeats_last_pose():
    vo = VisualOdometryController()
    flat = np.full(W * H, 90, dtype=np.uint8)
    vo.process_frame(flat, W, H, 0.0, INTRINSICS)
    pose = vo.process_frame(flat, W, H, 0.1, INTRINSICS)
    assert pose.timestamp == 0.1
    assert np.allclose(pose.position, 0.0)
    assert vo.last_quality['repeated']
    assert vo.stats['repeated'] == 1


def test_camera_pan_moves_pose_along_x(texture):
    vo = VisualOdometryController()
    vo.process(_frame(_crop(texture, 0), 0.0))
    pose = vo.process(_frame(_crop(texture, 1), 0.1))

    # Content moves 4 px left: flow -4/500, translation +0.0004, smoothed by 0.3
    assert vo.last_quality['match_count'] >= 8
    assert vo.last_quality['inlier_ratio'] == 1.0
    assert abs(pose.position[0] - 0.00012) < 1e-9
    assert abs(pose.position[1]) < 1e-12
    assert np.allclose(vo.velocity, [0.00012, 0.0, 0.0])

    xs = [pose.position[0]]
    for k in range(2, 5):
        xs.append(vo.process(_frame(_crop(texture, k), 0.1 * k)).position[0])
    assert all(b > a for a, b in zip(xs, xs[1:]))
    assert len(vo.pose_history) == 5
    # Default keyframe distance is far beyond this motion
    assert len(vo.keyframes) == 1


def test_small_keyframe_distance_creates_keyframes(texture):
    vo = VisualOdometryController(TrackingConfig(keyframe_translation=0.0001))
    counts = []
    for k in range(4):
        vo.process(_frame(_crop(texture, k), 0.1 * k))
        counts.append(len(vo.keyframes))
    assert counts[0] == 1
    assert counts[1] == 2
    assert counts == sorted(counts)
    assert vo.stats['keyframes'] == counts[-1]
    assert len(vo.pose_history) == 4


def test_fast_motion_is_rejected_as_outlier(texture):
    vo = VisualOdometryController(TrackingConfig(max_speed=1e-6))
    vo.process(_frame(_crop(texture, 0), 0.0))
    pose = vo.process(_frame(_crop(texture, 1), 0.1))
    assert vo.last_quality['outlier_rejected']
    assert vo.stats['outlier_rejected'] == 1
    assert np.allclose(pose.position, 0.0)


def test_reset_returns_to_uninitialized(texture):
    vo = VisualOdometryController()
    vo.process(_frame(_crop(texture, 0), 0.0))
    vo.process(_frame(_crop(texture, 1), 0.1))
    vo.reset()
    assert vo.state == TrackingState.UNINITIALIZED
    assert vo.pose_history == ()
    assert vo.keyframes == ()
    assert np.allclose(vo.velocity, 0.0)


def test_reset_during_frame_discards_result(texture, monkeypatch):
    vo = VisualOdometryController()
    real_detect = vo_module.detect_corners

    def detect_then_reset(*args, **kwargs):
        vo.reset()
        return real_detect(*args, **kwargs)

    monkeypatch.setattr(vo_module, "detect_corners", detect_then_reset)
    assert vo.process(_frame(_crop(texture, 0), 0.0)) is None
    assert vo.pose_history == ()
    assert vo.state == TrackingState.UNINITIALIZED


def test_resolution_change_restarts_from_new_keyframe(texture):
    vo = VisualOdometryController()
    vo.process(_frame(_crop(texture, 0), 0.0))

    def small(k):
        x0 = 20 + 4 * k
        return np.ascontiguousarray(texture[30:130, x0:x0 + 120]).reshape(-1)

    held = vo.process_frame(small(1), 120, 100, 0.1, INTRINSICS)
    assert np.allclose(held.position, 0.0)
    assert vo.stats['resolution_changes'] == 1
    assert (vo.keyframes[-1].width, vo.keyframes[-1].height) == (120, 100)

    xs = [vo.process_frame(small(k), 120, 100, 0.1 * k, INTRINSICS).position[0] for k in range(2, 6)]
    assert vo.stats['repeated'] == 0
    assert vo.stats['keyframes'] == 2
    assert xs[0] > 0.0
    assert all(b > a for a, b in zip(xs, xs[1:]))
    assert len(vo.pose_history) == 6
