import threading
import time

import numpy as np
import pytest

from drvo.frame_queue import FrameWorker, LatestFrameQueue
from drvo.pose_types import CameraFrame
from drvo.visual_odometry import VisualOdometryController


def _frame(t):
    return CameraFrame(image=b"", width=0, height=0, timestamp=t)


class RecordingController:
    def __init__(self, gate=None):
        self.seen = []
        self.gate = gate

    def process(self, frame):
        if self.gate is not None:
            self.gate.wait(timeout=2.0)
        self.seen.append(frame.timestamp)


def test_single_slot_queue_keeps_latest_frame():
    q = LatestFrameQueue(maxsize=1)
    for t in (0.0, 0.1, 0.2):
        q.put(_frame(t))
    assert len(q) == 1
    assert q.dropped == 2
    assert q.delivered == 3
    assert q.get(timeout=0.01).timestamp == 0.2
    assert q.get(timeout=0.01) is None


def test_larger_queue_drops_oldest_first():
    q = LatestFrameQueue(maxsize=2)
    for t in (0.0, 0.1, 0.2):
        q.put(_frame(t))
    assert q.dropped == 1
    assert [q.get(0.01).timestamp, q.get(0.01).timestamp] == [0.1, 0.2]


def test_idle_tracks_in_progress_frames():
    q = LatestFrameQueue()
    assert q.is_idle()
    q.put(_frame(0.0))
    assert not q.is_idle()
    q.get(0.01)
    assert not q.is_idle()
    q.task_done()
    assert q.is_idle()
    q.put(_frame(1.0))
    assert q.clear() == 1
    assert q.is_idle()


def test_invalid_queue_size():
    with pytest.raises(ValueError):
        LatestFrameQueue(maxsize=0)


def test_worker_processes_submitted_frames():
    controller = RecordingController()
    worker = FrameWorker(controller, LatestFrameQueue(maxsize=4), poll_interval=0.01)
    worker.start()
    try:
        for t in (0.0, 0.1, 0.2):
            worker.submit(_frame(t))
        assert worker.wait_idle(timeout=2.0)
    finally:
        worker.stop()
    assert controller.seen == [0.0, 0.1, 0.2]
    assert worker.stats["processed"] == 3
    assert not worker.is_running


def test_slow_worker_skips_to_newest_frame():
    gate = threading.Event()
    controller = RecordingController(gate)
    worker = FrameWorker(controller, poll_interval=0.01)
    worker.start()
    try:
        worker.submit(_frame(0.0))
        # Wait until the first frame has been taken off the queue
        for _ in range(200):
            if len(worker.queue) == 0:
                break
            time.sleep(0.005)
        for t in (0.1, 0.2, 0.3):
            worker.submit(_frame(t))
        gate.set()
        assert worker.wait_idle(timeout=2.0)
    finally:
        worker.stop()
    assert controller.seen == [0.0, 0.3]
    assert worker.queue.dropped == 2


def test_worker_drives_visual_odometry():
    rng = np.random.default_rng(3)
    img = rng.integers(0, 256, size=(60, 80), dtype=np.uint8)
    vo = VisualOdometryController()
    worker = FrameWorker(vo, LatestFrameQueue(maxsize=2), poll_interval=0.01)
    worker.start()
    try:
        worker.submit(CameraFrame(img.tobytes(), 80, 60, 0.0, [400.0, 400.0, 40.0, 30.0]))
        assert worker.wait_idle(timeout=5.0)
    finally:
        worker.stop()
    assert len(vo.pose_history) == 1


class FailingController(RecordingController):
    def process(self, frame):
        if frame.timestamp == 0.1:
            raise RuntimeError("bad frame")
        super().process(frame)


def test_worker_survives_controller_error():
    controller = FailingController()
    worker = FrameWorker(controller, LatestFrameQueue(maxsize=4), poll_interval=0.01)
    worker.start()
    try:
        for t in (0.0, 0.1, 0.2):
            worker.submit(_frame(t))
        assert worker.wait_idle(timeout=2.0)
        assert worker._thread.is_alive()
        worker.submit(_frame(0.3))
        assert worker.wait_idle(timeout=2.0)
    finally:
        worker.stop()
    assert controller.seen == [0.0, 0.2, 0.3]
    assert worker.stats["errors"] == 1
    assert worker.stats["processed"] == 4
