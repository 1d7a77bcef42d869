import threading

import numpy as np

from drvo.config import STANDARD_GRAVITY, TrackingConfig
from drvo.dead_reckoning import DeadReckoningEngine
from drvo.pose_types import Calibration, ImuSample


def _stationary(engine, n, dt=0.01, accel=(0.0, 0.0, STANDARD_GRAVITY), gyro=(0.0, 0.0, 0.0)):
    pose = None
    for i in range(n):
        pose = engine.process_sample((i + 1) * dt, accel, gyro, dt)
    return pose


def test_stationary_device_does_not_move():
    engine = DeadReckoningEngine()
    pose = _stationary(engine, 2000)
    assert np.linalg.norm(pose.position) < 1e-6
    assert np.linalg.norm(engine.state.velocity) < 1e-6
    assert len(engine.pose_history) == 2000


def test_stationary_with_matching_calibration_does_not_move():
    accel_bias = np.array([0.1, -0.05, 0.2])
    gyro_bias = np.array([0.01, 0.0, -0.02])
    engine = DeadReckoningEngine(calibration=Calibration(accel_bias, gyro_bias))
    pose = _stationary(engine, 1000,
                       accel=np.array([0.0, 0.0, STANDARD_GRAVITY]) + accel_bias,
                       gyro=gyro_bias)
    assert np.linalg.norm(pose.position) < 1e-6


def test_vertical_acceleration_integrates_semi_implicitly():
    engine = DeadReckoningEngine()
    pose = engine.process_sample(0.1, [0.0, 0.0, STANDARD_GRAVITY + 1.0], [0.0, 0.0, 0.0], 0.1)
    # v = 0.1, p = v*dt + a*dt^2/2
    assert abs(engine.state.velocity[2] - 0.1) < 1e-12
    assert abs(pose.position[2] - 0.015) < 1e-12


def test_bad_dt_is_rejected_without_touching_state():
    engine = DeadReckoningEngine()
    _stationary(engine, 10)
    before = engine.state
    for dt in (0.0, -0.01, 0.6, float("nan")):
        assert engine.process_sample(1.0, [1.0, 0.0, 9.8], [0.0, 0.0, 0.0], dt) is None
    assert engine.stats["rejected_dt"] == 4
    assert engine.state is before
    assert len(engine.pose_history) == 10


def test_max_dt_comes_from_config():
    cfg = TrackingConfig(max_dt=0.05)
    engine = DeadReckoningEngine(cfg=cfg)
    assert engine.process_sample(0.1, [0.0, 0.0, 9.8], [0.0, 0.0, 0.0], 0.1) is None
    assert engine.process_sample(0.1, [0.0, 0.0, 9.8], [0.0, 0.0, 0.0], 0.05) is not None


def test_non_finite_sample_is_rejected():
    engine = DeadReckoningEngine()
    assert engine.process_sample(0.01, [np.nan, 0.0, 9.8], [0.0, 0.0, 0.0], 0.01) is None
    assert engine.process_sample(0.01, [0.0, 0.0, 9.8], [np.inf, 0.0, 0.0], 0.01) is None
    assert engine.stats["rejected_nonfinite"] == 2
    assert len(engine.pose_history) == 0


def test_reset_zeroes_state_and_history():
    engine = DeadReckoningEngine()
    for i in range(20):
        engine.process_sample(i * 0.01, [0.5, 0.0, 10.3], [0.0, 0.0, 0.3], 0.01)
    assert np.linalg.norm(engine.state.pose.position) > 0
    engine.reset()
    assert np.allclose(engine.state.pose.position, 0.0)
    assert np.allclose(engine.state.velocity, 0.0)
    assert np.allclose(engine.orientation_filter.orientation, [1.0, 0.0, 0.0, 0.0])
    assert engine.pose_history == ()


def test_pose_history_is_a_read_only_snapshot():
    engine = DeadReckoningEngine()
    _stationary(engine, 3)
    history = engine.pose_history
    _stationary(engine, 2)
    assert len(history) == 3
    assert not history[0].position.flags.writeable


def test_process_stream_seeds_clock_with_first_sample():
    engine = DeadReckoningEngine()
    samples = [ImuSample(t, [0.0, 0.0, STANDARD_GRAVITY], [0.0, 0.0, 0.0]) for t in (0.0, 0.01, 0.02)]
    poses = engine.process_stream(samples)
    assert len(poses) == 2
    assert poses[0].timestamp == 0.01


def test_magnetometer_heading_fusion():
    cfg = TrackingConfig(use_magnetometer=True, heading_alpha=0.0)
    engine = DeadReckoningEngine(cfg=cfg)
    # Field along body X with a level device: body X points North
    fused = engine.process_magnetometer([30.0, 0.0, -20.0], 0.0)
    assert abs(fused - np.pi / 2) < 1e-9
    assert abs(engine.orientation_filter.yaw - np.pi / 2) < 1e-9
    assert engine.stats["mag_updates"] == 1


def test_vertical_only_field_carries_no_heading():
    engine = DeadReckoningEngine(cfg=TrackingConfig(use_magnetometer=True))
    assert engine.process_magnetometer([0.0, 0.0, 40.0], 0.0) is None
    assert engine.stats["mag_updates"] == 0


def test_imu_sample_magnetometer_is_fused_when_enabled():
    cfg = TrackingConfig(use_magnetometer=True, heading_alpha=0.0)
    engine = DeadReckoningEngine(cfg=cfg)
    sample = ImuSample(0.01, [0.0, 0.0, STANDARD_GRAVITY], [0.0, 0.0, 0.0], mag=[0.0, 30.0, -20.0])
    engine.process(sample, 0.01)
    assert engine.stats["mag_updates"] == 1
    assert abs(engine.orientation_filter.yaw) < 1e-9


def test_rejection_counters_wait_for_engine_lock():
    engine = DeadReckoningEngine()
    done = threading.Event()

    def reject_two():
        engine.process_sample(0.0, (0.0, 0.0, STANDARD_GRAVITY), (0.0, 0.0, 0.0), -1.0)
        engine.process_sample(0.0, (np.nan, 0.0, 0.0), (0.0, 0.0, 0.0), 0.01)
        done.set()

    with engine._lock:
        worker = threading.Thread(target=reject_two, daemon=True)
        worker.start()
        assert not done.wait(timeout=0.1)
        assert engine.stats["rejected_dt"] == 0
    worker.join(timeout=2.0)
    assert done.is_set()
    assert engine.stats["rejected_dt"] == 1
    assert engine.stats["rejected_nonfinite"] == 1
