from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple

from depthpose.depth import DepthMap
from depthpose.scheduler import Frame

logger = logging.getLogger(__name__)

FrameCallback = Callable[[Frame], Any]


class OakdDepthSource:
	"""
	DepthAI/OAK-D camera source producing RGB frames with aligned stereo depth.

	Responsibilities:
	- Connect/disconnect the device and run a DepthAI pipeline in a capture thread.
	- Pair each RGB frame with the depth frame captured with it (on-device Sync node)
	  and hand the pair to `on_frame` as one Frame.

	Notes:
	- Depth is aligned to the RGB socket and converted from uint16 millimetres to metres.
	- Requires `depthai` (v3 host pipeline API) to be installed on the target.
	"""

	def __init__(
		self,
		on_frame: FrameCallback,
		rgb_size: Tuple[int, int] = (1280, 720),
		fps: int = 30,
	) -> None:
		self._on_frame = on_frame
		self._lock = threading.Lock()
		self._running = False
		self._thread: Optional[threading.Thread] = None
		self._last_error: Optional[str] = None
		self._rgb_size: Tuple[int, int] = (int(rgb_size[0]), int(rgb_size[1]))
		self._fps: int = int(fps) if int(fps) > 0 else 30
		self._seq = 0
		self._t_last_frame: Optional[float] = None
		self._frames_without_depth = 0

	def name(self) -> str:
		return "oakd"

	def is_running(self) -> bool:
		with self._lock:
			return bool(self._running)

	def get_status(self) -> Dict[str, Any]:
		with self._lock:
			return {
				"backend": self.name(),
				"running": bool(self._running),
				"frames": int(self._seq),
				"frames_without_depth": int(self._frames_without_depth),
				"t_last_frame": self._t_last_frame,
				"rgb_size": list(self._rgb_size),
				"fps": int(self._fps),
				"error": self._last_error,
			}

	def start(self) -> None:
		with self._lock:
			if self._running:
				return
			self._running = True
			self._last_error = None

		t = threading.Thread(target=self._run_capture_loop, name="oakd-capture", daemon=True)
		self._thread = t
		t.start()

	def stop(self) -> None:
		with self._lock:
			self._running = False

		# Pipeline teardown happens in the capture thread; we just wait briefly for exit.
		t = self._thread
		if t and t.is_alive():
			t.join(timeout=3.0)
		self._thread = None

	def _emit(self, rgb, depth_mm) -> None:
		depth_map = DepthMap.from_millimeters(depth_mm) if depth_mm is not None else None
		with self._lock:
			seq = self._seq
			self._seq += 1
			self._t_last_frame = time.time()
			if depth_map is None:
				self._frames_without_depth += 1
		self._on_frame(Frame(image=rgb, depth_map=depth_map, seq=seq, t_host=self._t_last_frame))

	def _run_capture_loop(self) -> None:
		try:
			import depthai as dai  # type: ignore
		except ImportError as e:
			with self._lock:
				self._last_error = f"depthai import failed: {e!r}"
				self._running = False
			return

		pipeline = None
		try:
			with self._lock:
				rgb_w, rgb_h = self._rgb_size
				fps = float(self._fps)

			pipeline = dai.Pipeline()
			cam = pipeline.create(dai.node.Camera).build(dai.CameraBoardSocket.CAM_A)
			left = pipeline.create(dai.node.Camera).build(dai.CameraBoardSocket.CAM_B)
			right = pipeline.create(dai.node.Camera).build(dai.CameraBoardSocket.CAM_C)

			rgb_out = cam.requestOutput((rgb_w, rgb_h), type=dai.ImgFrame.Type.RGB888i, fps=fps)
			stereo = pipeline.create(dai.node.StereoDepth).build(
				left.requestOutput((640, 400), fps=fps),
				right.requestOutput((640, 400), fps=fps),
			)
			# Depth pixels line up with RGB pixels so normalized coordinates agree.
			stereo.setDepthAlign(dai.CameraBoardSocket.CAM_A)
			stereo.setOutputSize(rgb_w, rgb_h)

			sync = pipeline.create(dai.node.Sync)
			rgb_out.link(sync.inputs["rgb"])
			stereo.depth.link(sync.inputs["depth"])
			q = sync.out.createOutputQueue()

			pipeline.start()
			logger.info("oakd pipeline started (%dx%d @ %.0f fps)", rgb_w, rgb_h, fps)

			while True:
				with self._lock:
					if not self._running:
						break
				group = q.tryGet()
				if group is None:
					time.sleep(0.002)
					continue
				rgb_msg = group["rgb"]
				depth_msg = group["depth"]
				if rgb_msg is None:
					continue
				rgb = rgb_msg.getFrame()
				depth_mm = depth_msg.getFrame() if depth_msg is not None else None
				self._emit(rgb, depth_mm)

		except Exception as e:
			logger.exception("oakd capture loop failed")
			with self._lock:
				self._last_error = f"camera loop error: {e!r}"
		finally:
			with self._lock:
				self._running = False
			if pipeline is not None and hasattr(pipeline, "stop"):
				pipeline.stop()
