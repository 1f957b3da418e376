from __future__ import annotations

import logging
import queue
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Union

from depthpose.depth import DepthMap
from depthpose.errors import EstimationError
from depthpose.pose.base import PoseEstimator
from depthpose.pose.types import PoseResult, TimingInfo

logger = logging.getLogger(__name__)

DEFAULT_CADENCE = 4
DEFAULT_COUNTER_WRAP = 60

_STOP = object()


class Admission(str, Enum):
	SUBMITTED = "submitted"
	NO_DEPTH = "no_depth"
	SKIPPED_CADENCE = "skipped_cadence"
	DROPPED_BUSY = "dropped_busy"
	NOT_READY = "not_ready"


@dataclass(frozen=True, eq=False)
class Frame:
	"""
	One camera frame and the depth map captured with it.

	The two travel together through the pipeline so a pose is always fused with the
	depth of the frame it was estimated from.
	"""

	image: Any
	depth_map: Optional[DepthMap]
	seq: int
	t_host: Optional[float] = None


@dataclass(frozen=True, eq=False)
class InferenceOutcome:
	frame: Frame
	pose: Optional[PoseResult]  # None: estimator ran but detected nothing
	timing: TimingInfo


EstimatorSource = Union[PoseEstimator, Callable[[], PoseEstimator], None]


class FrameScheduler:
	"""
	Admission control in front of a single pose-inference worker.

	- Cadence: a counter advances on every depth-bearing frame and wraps at
	  `counter_wrap`; only frames whose counter value is a multiple of `cadence` are
	  eligible. Frames without depth are never submitted.
	- Single-flight: while an inference runs, eligible frames are dropped, not queued.
	- Not ready: with no estimator loaded (startup, model switch) frames are dropped.

	Results are delivered in production order through `next_outcome()`, a
	single-producer/single-consumer channel between the worker and whoever fuses
	and renders them.
	"""

	def __init__(
		self,
		estimator: Optional[PoseEstimator] = None,
		cadence: int = DEFAULT_CADENCE,
		counter_wrap: int = DEFAULT_COUNTER_WRAP,
	) -> None:
		if int(cadence) < 1:
			raise ValueError(f"cadence must be >= 1, got {cadence}")
		if int(counter_wrap) < int(cadence):
			raise ValueError(f"counter_wrap ({counter_wrap}) must be >= cadence ({cadence})")
		self.cadence = int(cadence)
		self.counter_wrap = int(counter_wrap)

		self._lock = threading.Lock()
		self._idle = threading.Condition(self._lock)
		self._estimator: Optional[PoseEstimator] = estimator
		self._switching = False
		self._in_flight = False
		self._depth_counter = 0

		self._work: "queue.Queue[Any]" = queue.Queue()
		self._outcomes: "queue.Queue[InferenceOutcome]" = queue.Queue()
		self._thread: Optional[threading.Thread] = None
		self._running = False

		self._stats: Dict[str, Any] = {
			"frames_seen": 0,
			"depth_frames": 0,
			"no_depth": 0,
			"skipped_cadence": 0,
			"dropped_not_ready": 0,
			"dropped_busy": 0,
			"submitted": 0,
			"completed": 0,
			"no_detection": 0,
			"estimation_errors": 0,
			"last_seq": None,
			"last_timing_ms": None,
			"last_error": None,
		}

	# ---- lifecycle ----

	def start(self) -> None:
		with self._lock:
			if self._running:
				return
			self._running = True
		t = threading.Thread(target=self._worker_loop, name="pose-worker", daemon=True)
		self._thread = t
		t.start()

	def stop(self, timeout: float = 3.0) -> None:
		with self._lock:
			if not self._running:
				return
			self._running = False
		self._work.put(_STOP)
		t = self._thread
		if t and t.is_alive():
			t.join(timeout=timeout)
			if t.is_alive():
				# The worker closes the estimator once the running inference returns.
				logger.warning("pose worker still busy after %.1fs; leaving it to finish", timeout)
		self._thread = None

	def is_running(self) -> bool:
		with self._lock:
			return bool(self._running)

	# ---- admission ----

	def submit(self, frame: Frame) -> Admission:
		with self._lock:
			self._stats["frames_seen"] += 1
			if frame.depth_map is None:
				self._stats["no_depth"] += 1
				return Admission.NO_DEPTH

			counter = self._depth_counter
			self._depth_counter = (counter + 1) % self.counter_wrap
			self._stats["depth_frames"] += 1
			if counter % self.cadence != 0:
				self._stats["skipped_cadence"] += 1
				return Admission.SKIPPED_CADENCE

			if self._in_flight:
				self._stats["dropped_busy"] += 1
				return Admission.DROPPED_BUSY
			if not self._ready_locked():
				self._stats["dropped_not_ready"] += 1
				return Admission.NOT_READY

			self._in_flight = True
			self._stats["submitted"] += 1
			self._stats["last_seq"] = frame.seq
			# Enqueued under the lock so the frame always lands ahead of a stop sentinel.
			self._work.put(frame)
		return Admission.SUBMITTED

	def is_busy(self) -> bool:
		with self._lock:
			return bool(self._in_flight)

	def is_ready(self) -> bool:
		with self._lock:
			return self._ready_locked()

	def _ready_locked(self) -> bool:
		return self._estimator is not None and not self._switching and self._running

	# ---- model switching ----

	def set_estimator(self, source: EstimatorSource, timeout: Optional[float] = None) -> None:
		"""
		Replace the estimator on the worker so it never overlaps an inference.

		`source` is an estimator, a zero-argument factory, or None to unload. Frames
		are "not ready" until the switch completes. Factory errors (ConfigError for
		unknown models) propagate to the caller.
		"""
		with self._lock:
			self._switching = True
			running = self._running
		fut: "Future[None]" = Future()
		if running:
			self._work.put((fut, source))
		else:
			self._apply_switch(fut, source)
		fut.result(timeout=timeout)

	def _apply_switch(self, fut: "Future[None]", source: EstimatorSource) -> None:
		old = self._estimator
		with self._lock:
			self._estimator = None
		try:
			if old is not None:
				old.close()
			if source is None or isinstance(source, PoseEstimator):
				new = source
			else:
				new = source()
		except Exception as e:
			with self._lock:
				self._switching = False
			fut.set_exception(e)
			return
		with self._lock:
			self._estimator = new
			self._switching = False
		if new is not None:
			logger.info("pose estimator ready: %s", new.name())
		fut.set_result(None)

	# ---- worker ----

	def _worker_loop(self) -> None:
		while True:
			item = self._work.get()
			if item is _STOP:
				break
			if isinstance(item, tuple):
				self._apply_switch(*item)
				continue
			self._run_inference(item)
		with self._lock:
			est = self._estimator
		if est is not None:
			est.close()

	def _run_inference(self, frame: Frame) -> None:
		try:
			est = self._estimator
			if est is None:
				return
			t0 = time.perf_counter()
			try:
				pose, timing = est.estimate(frame.image)
			except EstimationError as e:
				logger.warning("pose estimation failed on frame %s: %s", frame.seq, e)
				with self._lock:
					self._stats["estimation_errors"] += 1
					self._stats["last_error"] = str(e)
				return
			except Exception as e:
				logger.exception("pose estimator raised on frame %s", frame.seq)
				with self._lock:
					self._stats["estimation_errors"] += 1
					self._stats["last_error"] = repr(e)
				return

			wall_ms = (time.perf_counter() - t0) * 1000.0
			with self._lock:
				self._stats["completed"] += 1
				if pose is None:
					self._stats["no_detection"] += 1
				self._stats["last_timing_ms"] = round(timing.total * 1000.0 if timing.total > 0 else wall_ms, 3)
			self._outcomes.put(InferenceOutcome(frame=frame, pose=pose, timing=timing))
		finally:
			with self._idle:
				self._in_flight = False
				self._idle.notify_all()

	# ---- consumer side ----

	def next_outcome(self, timeout: Optional[float] = 0.0) -> Optional[InferenceOutcome]:
		"""
		Pop the oldest completed inference. `timeout=0` does not block; None blocks.
		"""
		try:
			if timeout is not None and timeout <= 0:
				return self._outcomes.get_nowait()
			return self._outcomes.get(timeout=timeout)
		except queue.Empty:
			return None

	def wait_idle(self, timeout: Optional[float] = None) -> bool:
		with self._idle:
			return self._idle.wait_for(lambda: not self._in_flight, timeout=timeout)

	def get_status(self) -> Dict[str, Any]:
		with self._lock:
			st = dict(self._stats)
			st.update(
				{
					"running": bool(self._running),
					"ready": self._ready_locked(),
					"estimator": self._estimator.name() if self._estimator is not None else None,
					"in_flight": bool(self._in_flight),
					"depth_counter": int(self._depth_counter),
					"cadence": self.cadence,
					"pending_outcomes": self._outcomes.qsize(),
				}
			)
			return st
