import threading
from typing import Any, Optional, Sequence

import numpy as np
import pytest

from depthpose.depth import DepthMap
from depthpose.errors import EstimationError
from depthpose.geometry import Ray
from depthpose.pose.base import PoseEstimator
from depthpose.pose.types import BodyPart, Keypoint, PoseResult, TimingInfo
from depthpose.scheduler import Frame, FrameScheduler


class FakeEstimator(PoseEstimator):
	"""Returns a fixed pose; can be held mid-inference to test single-flight."""

	def __init__(self, pose: Optional[PoseResult] = None, block: bool = False, fail_on: Sequence[Any] = ()):
		self.pose = pose
		self.fail_on = set(fail_on)
		self.calls = []
		self.closed = False
		self.close_called = threading.Event()
		self.started = threading.Event()
		self.release = threading.Event()
		if not block:
			self.release.set()
		self._lock = threading.Lock()
		self._active = 0
		self.max_active = 0

	def name(self) -> str:
		return "fake"

	def estimate(self, image):
		with self._lock:
			self._active += 1
			self.max_active = max(self.max_active, self._active)
			self.calls.append(image)
		self.started.set()
		try:
			self.release.wait(5.0)
			if image in self.fail_on:
				raise EstimationError(f"boom on {image}")
			return self.pose, TimingInfo(inference=0.002)
		finally:
			with self._lock:
				self._active -= 1

	def close(self) -> None:
		self.closed = True
		self.close_called.set()


class FakeRayCaster:
	"""Straight-down-the-axis rays from a fixed origin; None outside the viewport."""

	def __init__(self, viewport_size=(800, 600), origin=(0.0, 0.0, 0.0), direction=(0.0, 1.0, 0.0)):
		self.viewport_size = viewport_size
		self.origin = origin
		self.direction = direction
		self.calls = []

	def cast_ray(self, viewport_point):
		self.calls.append(tuple(viewport_point))
		u, v = viewport_point
		if not (0 <= u <= self.viewport_size[0] and 0 <= v <= self.viewport_size[1]):
			return None
		return Ray.of(self.origin, self.direction)


def make_pose(score: float = 0.9, width: int = 400, height: int = 400, parts=None) -> PoseResult:
	parts = parts or {
		BodyPart.NOSE: (200.0, 50.0),
		BodyPart.LEFT_SHOULDER: (150.0, 120.0),
		BodyPart.RIGHT_SHOULDER: (250.0, 120.0),
		BodyPart.LEFT_WRIST: (100.0, 250.0),
		BodyPart.RIGHT_WRIST: (300.0, 250.0),
	}
	kps = tuple(Keypoint(body_part=p, x_px=x, y_px=y, score=0.8) for p, (x, y) in parts.items())
	return PoseResult(keypoints=kps, score=score, width=width, height=height)


def flat_depth(value: float, shape=(4, 4)) -> DepthMap:
	return DepthMap(np.full(shape, value, dtype=np.float32))


def depth_frame(seq: int, value: float = 1.0) -> Frame:
	return Frame(image=seq, depth_map=flat_depth(value), seq=seq)


@pytest.fixture
def estimator():
	return FakeEstimator(pose=make_pose())


@pytest.fixture
def scheduler(estimator):
	s = FrameScheduler(estimator=estimator)
	s.start()
	yield s
	s.stop()
