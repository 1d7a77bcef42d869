#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Latest-frame-wins camera queue and the worker thread that drains it.

Frame delivery never blocks:
- put() always succeeds; when the queue is full the oldest frame is dropped
- the worker processes whatever is newest and counts what it missed
"""

from __future__ import annotations

import threading
import time
from collections import deque
from typing import Optional

from .pose_types import CameraFrame


class LatestFrameQueue:
    """Bounded FIFO that drops the oldest frame instead of blocking."""

    def __init__(self, maxsize: int = 1):
        if maxsize < 1:
            raise ValueError("maxsize must be >= 1")
        self.maxsize = int(maxsize)
        self._frames: deque[CameraFrame] = deque(maxlen=self.maxsize)
        self._cond = threading.Condition()
        self._in_progress = 0
        self.dropped = 0
        self.delivered = 0

    def __len__(self) -> int:
        with self._cond:
            return len(self._frames)

    def put(self, frame: CameraFrame) -> None:
        with self._cond:
            if len(self._frames) == self.maxsize:
                self.dropped += 1
            self._frames.append(frame)
            self.delivered += 1
            self._cond.notify()

    def get(self, timeout: Optional[float] = None) -> Optional[CameraFrame]:
        """Pop the oldest queued frame; None if nothing arrived before timeout."""
        with self._cond:
            if not self._frames:
                self._cond.wait(timeout)
            if not self._frames:
                return None
            self._in_progress += 1
            return self._frames.popleft()

    def task_done(self) -> None:
        """Mark a frame returned by get() as fully processed."""
        with self._cond:
            self._in_progress = max(0, self._in_progress - 1)

    def is_idle(self) -> bool:
        with self._cond:
            return not self._frames and self._in_progress == 0

    def clear(self) -> int:
        with self._cond:
            n = len(self._frames)
            self._frames.clear()
            return n


class FrameWorker:
    """Daemon thread feeding queued frames to a VisualOdometryController."""

    def __init__(self, controller, queue: Optional[LatestFrameQueue] = None, poll_interval: float = 0.05):
        self.controller = controller
        self.queue = queue if queue is not None else LatestFrameQueue(1)
        self.poll_interval = float(poll_interval)
        self._lock = threading.Lock()
        self._running = False
        self._thread: Optional[threading.Thread] = None
        self.stats = {
            "processed": 0,
            "errors": 0,
            "last_process_ms": 0.0,
        }

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._thread = threading.Thread(target=self._worker_loop, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._running = False
        t = self._thread
        if t is not None:
            t.join(timeout=1.5)
        self._thread = None
        if self.queue.dropped:
            print(f"[QUEUE] Worker stopped: processed={self.stats['processed']} "
                  f"dropped={self.queue.dropped}/{self.queue.delivered}")

    def submit(self, frame: CameraFrame) -> None:
        self.queue.put(frame)

    def wait_idle(self, timeout: float = 5.0) -> bool:
        """Block until the queue is empty and no frame is in progress."""
        deadline = time.time() + timeout
        while time.time() < deadline:
            if self.queue.is_idle():
                return True
            time.sleep(0.005)
        return False

    def _worker_loop(self) -> None:
        while self._running:
            frame = self.queue.get(timeout=self.poll_interval)
            if frame is None:
                continue
            t0 = time.time()
            try:
                self.controller.process(frame)
            except Exception as e:
                print(f"[QUEUE] Frame t={frame.timestamp} failed: {e}, worker continues")
                with self._lock:
                    self.stats["errors"] += 1
            finally:
                self.queue.task_done()
                with self._lock:
                    self.stats["processed"] += 1
                    self.stats["last_process_ms"] = (time.time() - t0) * 1000.0
