from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from depthpose.config import AppConfig, CounterConfig
from depthpose.geometry import CameraIntrinsics, PinholeRayCaster, RayCaster, WorldPoint
from depthpose.pose.base import PoseEstimator, create_estimator
from depthpose.pose.types import BodyPart, is_usable
from depthpose.rep_counter import HysteresisCounter, RepCounterState, SideToSideCounter, ThresholdCounter
from depthpose.scheduler import Admission, Frame, FrameScheduler, InferenceOutcome
from depthpose.triangulation import Triangulator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FrameReport:
	"""
	What the pipeline produced for one processed frame.

	`joints` maps every tracked joint name to its world point, or None when the
	joint has no position this frame (no usable pose, joint not detected, no ray).
	"""

	seq: int
	t_host: Optional[float]
	usable: bool
	score: Optional[float]
	joints: Mapping[str, Optional[WorldPoint]]
	counts: Mapping[str, int]
	reps_completed: Tuple[str, ...] = ()
	timing_ms: Optional[float] = None

	def as_dict(self) -> Dict[str, Any]:
		return {
			"seq": self.seq,
			"t_host": self.t_host,
			"usable": self.usable,
			"score": self.score,
			"joints": {k: (v.as_dict() if v is not None else None) for k, v in self.joints.items()},
			"counts": dict(self.counts),
			"reps_completed": list(self.reps_completed),
			"timing_ms": self.timing_ms,
		}


Sink = Callable[[FrameReport], None]


class LatestSlot:
	"""Single shared slot, written by the fusion path and read from anywhere."""

	def __init__(self) -> None:
		self._lock = threading.Lock()
		self._value: Optional[FrameReport] = None

	def set(self, value: Optional[FrameReport]) -> None:
		with self._lock:
			self._value = value

	def get(self) -> Optional[FrameReport]:
		with self._lock:
			return self._value


@dataclass
class CounterBinding:
	"""
	Wires one counter to the world-space signal that drives it.

	Absent or degraded points give the counter no update for that frame.
	"""

	name: str
	counter: ThresholdCounter
	joint: BodyPart
	axis: str = "y"
	release_joint: Optional[BodyPart] = None

	def _signal(self, points: Mapping[BodyPart, Optional[WorldPoint]], joint: BodyPart) -> Optional[float]:
		p = points.get(joint)
		if p is None or p.degraded:
			return None
		return p.axis(self.axis)

	def feed(self, points: Mapping[BodyPart, Optional[WorldPoint]]) -> bool:
		v = self._signal(points, self.joint)
		if v is None:
			return False
		if self.release_joint is None:
			return self.counter.update(v)
		r = self._signal(points, self.release_joint)
		if r is None:
			return False
		return self.counter.update(v, r)


def build_binding(cfg: CounterConfig) -> CounterBinding:
	if cfg.kind == "side_to_side":
		counter: ThresholdCounter = SideToSideCounter(negative_threshold=cfg.low, positive_threshold=cfg.high)
	else:
		counter = HysteresisCounter(low=cfg.low, high=cfg.high)
	return CounterBinding(
		name=cfg.name,
		counter=counter,
		joint=BodyPart.parse(cfg.joint),
		axis=cfg.axis,
		release_joint=BodyPart.parse(cfg.release_joint) if cfg.release_joint else None,
	)


class TrackingSession:
	"""
	One tracking session: frames in, world-space joints and repetition counts out.

	Frames go through the scheduler's admission gate from the capture context.
	Completed inferences are fused on the consumer context (`process_next` /
	`drain`), each with the depth map of its own frame, and the resulting
	FrameReport is published to the sink and to the `latest` slot.
	"""

	def __init__(
		self,
		scheduler: FrameScheduler,
		triangulator: Triangulator,
		min_score: float = 0.2,
		bindings: Iterable[CounterBinding] = (),
		sink: Optional[Sink] = None,
	) -> None:
		self.scheduler = scheduler
		self.triangulator = triangulator
		self.min_score = float(min_score)
		self.bindings: List[CounterBinding] = list(bindings)
		self.sink = sink
		self.latest = LatestSlot()
		self._counter_lock = threading.Lock()
		self._stats: Dict[str, int] = {"processed": 0, "usable": 0, "below_min_score": 0}

	def start(self) -> None:
		self.scheduler.start()

	def stop(self) -> None:
		self.scheduler.stop()

	def on_frame(self, frame: Frame) -> Admission:
		return self.scheduler.submit(frame)

	def process_next(self, timeout: Optional[float] = 0.0) -> Optional[FrameReport]:
		outcome = self.scheduler.next_outcome(timeout)
		if outcome is None:
			return None
		return self.process(outcome)

	def drain(self) -> List[FrameReport]:
		out: List[FrameReport] = []
		while True:
			report = self.process_next(0.0)
			if report is None:
				return out
			out.append(report)

	def process(self, outcome: InferenceOutcome) -> FrameReport:
		pose = outcome.pose
		frame = outcome.frame
		usable = is_usable(pose, self.min_score)

		points: Dict[BodyPart, Optional[WorldPoint]]
		completed: List[str] = []
		with self._counter_lock:
			self._stats["processed"] += 1
			if usable:
				self._stats["usable"] += 1
				points = self.triangulator.triangulate(pose, frame.depth_map)
				for b in self.bindings:
					if b.feed(points):
						completed.append(b.name)
			else:
				if pose is not None:
					self._stats["below_min_score"] += 1
				points = {j: None for j in self.triangulator.joints}
			counts = {b.name: b.counter.count for b in self.bindings}

		report = FrameReport(
			seq=frame.seq,
			t_host=frame.t_host,
			usable=usable,
			score=float(pose.score) if pose is not None else None,
			joints={j.value: p for j, p in points.items()},
			counts=counts,
			reps_completed=tuple(completed),
			timing_ms=round(outcome.timing.total * 1000.0, 3),
		)
		for name in completed:
			logger.info("rep completed: %s (count=%d)", name, counts[name])

		self.latest.set(report)
		if self.sink is not None:
			try:
				self.sink(report)
			except Exception:
				logger.exception("visualization sink failed on frame %s", frame.seq)
		return report

	def counter_states(self) -> Dict[str, RepCounterState]:
		with self._counter_lock:
			return {b.name: b.counter.snapshot() for b in self.bindings}

	def restart(self) -> None:
		"""Explicit session restart: the only way counters go back to zero."""
		with self._counter_lock:
			for b in self.bindings:
				b.counter.reset()
			for k in self._stats:
				self._stats[k] = 0
		self.latest.set(None)
		logger.info("tracking session restarted")

	def get_status(self) -> Dict[str, Any]:
		with self._counter_lock:
			st: Dict[str, Any] = dict(self._stats)
		st["min_score"] = self.min_score
		st["tracked_joints"] = [j.value for j in self.triangulator.joints]
		st["scheduler"] = self.scheduler.get_status()
		return st


def build_ray_caster(cfg: AppConfig) -> PinholeRayCaster:
	vp = cfg.viewport
	k = vp.intrinsics
	intr = CameraIntrinsics(fx=k.fx, fy=k.fy, cx=k.cx, cy=k.cy, width=k.width, height=k.height)
	return PinholeRayCaster(intr, (vp.width, vp.height))


def build_session(
	cfg: AppConfig,
	estimator: Optional[PoseEstimator] = None,
	ray_caster: Optional[RayCaster] = None,
	sink: Optional[Sink] = None,
) -> TrackingSession:
	"""
	Assemble a session from configuration. Without an explicit estimator one is
	created from `cfg.pose.model_type`; an unknown type raises ConfigError.
	"""
	if estimator is None:
		estimator = create_estimator(
			cfg.pose.model_type,
			min_detection_confidence=cfg.pose.min_detection_confidence,
			min_tracking_confidence=cfg.pose.min_tracking_confidence,
		)
	scheduler = FrameScheduler(
		estimator=estimator,
		cadence=cfg.scheduler.cadence,
		counter_wrap=cfg.scheduler.counter_wrap,
	)
	triangulator = Triangulator(
		joints=[BodyPart.parse(j) for j in cfg.pose.tracked_joints],
		ray_caster=ray_caster or build_ray_caster(cfg),
		viewport_size=(cfg.viewport.width, cfg.viewport.height),
		image_size=cfg.pose.image_size,
	)
	return TrackingSession(
		scheduler=scheduler,
		triangulator=triangulator,
		min_score=cfg.pose.min_score,
		bindings=[build_binding(c) for c in cfg.counters],
		sink=sink,
	)
