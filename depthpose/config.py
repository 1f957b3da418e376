from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from depthpose.errors import ConfigError
from depthpose.pose.base import MODEL_TYPES
from depthpose.pose.types import BodyPart

logger = logging.getLogger(__name__)

DEFAULT_TRACKED_JOINTS: Tuple[str, ...] = (
	"nose",
	"left_shoulder",
	"right_shoulder",
	"left_wrist",
	"right_wrist",
)
COUNTER_KINDS = ("hysteresis", "side_to_side")
AXES = ("x", "y", "z")


@dataclass(frozen=True)
class PoseConfig:
	model_type: str = "mediapipe_full"
	# Poses scoring below this never reach triangulation.
	min_score: float = 0.2
	min_detection_confidence: float = 0.5
	min_tracking_confidence: float = 0.5
	tracked_joints: Tuple[str, ...] = DEFAULT_TRACKED_JOINTS
	# Optional [w,h] of the image the estimator saw; defaults to the size it reports.
	image_size: Optional[Tuple[int, int]] = None


@dataclass(frozen=True)
class SchedulerConfig:
	# Process 1 of every `cadence` depth frames.
	cadence: int = 4
	counter_wrap: int = 60


@dataclass(frozen=True)
class IntrinsicsConfig:
	# Pinhole intrinsics, in pixels of a (width x height) image.
	fx: float = 1400.0
	fy: float = 1400.0
	cx: float = 720.0
	cy: float = 960.0
	width: int = 1440
	height: int = 1920


@dataclass(frozen=True)
class ViewportConfig:
	width: int = 1440
	height: int = 1920
	intrinsics: IntrinsicsConfig = field(default_factory=IntrinsicsConfig)


@dataclass(frozen=True)
class CounterConfig:
	name: str
	kind: str = "hysteresis"  # hysteresis / side_to_side
	joint: str = "left_wrist"
	axis: str = "y"
	# hysteresis: arm above `high`, count below `low`.
	# side_to_side: `joint` arms at <= `low`, `release_joint` counts at >= `high`.
	low: float = 0.0
	high: float = 1.0
	release_joint: Optional[str] = None


@dataclass(frozen=True)
class CameraConfig:
	backend: str = "none"  # none / oakd
	fps: int = 30
	rgb_size: Tuple[int, int] = (1280, 720)


@dataclass(frozen=True)
class LoggingConfig:
	level: str = "INFO"


@dataclass(frozen=True)
class AppConfig:
	pose: PoseConfig = field(default_factory=PoseConfig)
	scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
	viewport: ViewportConfig = field(default_factory=ViewportConfig)
	counters: Tuple[CounterConfig, ...] = ()
	camera: CameraConfig = field(default_factory=CameraConfig)
	logging: LoggingConfig = field(default_factory=LoggingConfig)


_CONFIG_PATH: Optional[Path] = None
_CONFIG_CACHE: Optional[AppConfig] = None


def _repo_root() -> Path:
	# depthpose/config.py -> repo root is one level up.
	return Path(__file__).resolve().parents[1]


def get_default_config_path() -> Path:
	return _repo_root() / "config.json"


def set_config_path(path: str | Path) -> None:
	"""
	Override the config path (must be called before first get_config()).
	"""
	global _CONFIG_PATH
	global _CONFIG_CACHE
	_CONFIG_PATH = Path(path).expanduser().resolve()
	_CONFIG_CACHE = None


def _deep_get(d: Dict[str, Any], keys: list[str], default: Any = None) -> Any:
	cur: Any = d
	for k in keys:
		if not isinstance(cur, dict):
			return default
		cur = cur.get(k)
	return cur if cur is not None else default


def _as_int(v: Any, default: int) -> int:
	try:
		return int(v)
	except (TypeError, ValueError):
		return int(default)


def _as_float(v: Any, default: float) -> float:
	try:
		return float(v)
	except (TypeError, ValueError):
		return float(default)


def _as_str(v: Any, default: str = "") -> str:
	return str(v) if v is not None else str(default)


def _as_size(v: Any, default: Optional[Tuple[int, int]]) -> Optional[Tuple[int, int]]:
	if isinstance(v, (list, tuple)) and len(v) == 2:
		w, h = _as_int(v[0], 0), _as_int(v[1], 0)
		if w > 0 and h > 0:
			return (w, h)
	return default


def _check_joint(name: str, where: str) -> str:
	try:
		return BodyPart.parse(name).value
	except ValueError:
		raise ConfigError(f"{where}: unknown joint {name!r}") from None


def _parse_counter(obj: Any, idx: int) -> CounterConfig:
	if not isinstance(obj, dict):
		raise ConfigError(f"counters[{idx}] must be an object")
	name = _as_str(obj.get("name"), f"counter_{idx}").strip() or f"counter_{idx}"
	where = f"counter {name!r}"
	kind = _as_str(obj.get("kind"), "hysteresis").strip().lower()
	if kind not in COUNTER_KINDS:
		raise ConfigError(f"{where}: unknown kind {kind!r} (expected one of {', '.join(COUNTER_KINDS)})")
	axis = _as_str(obj.get("axis"), "y").strip().lower()
	if axis not in AXES:
		raise ConfigError(f"{where}: unknown axis {axis!r}")
	joint = _check_joint(_as_str(obj.get("joint"), ""), where)
	release_joint = obj.get("release_joint")
	if release_joint is not None:
		release_joint = _check_joint(_as_str(release_joint), where)
	if kind == "side_to_side" and release_joint is None:
		raise ConfigError(f"{where}: side_to_side needs a release_joint")
	if "low" not in obj or "high" not in obj:
		raise ConfigError(f"{where}: both 'low' and 'high' thresholds are required")
	low = _as_float(obj.get("low"), 0.0)
	high = _as_float(obj.get("high"), 0.0)
	if not low < high:
		raise ConfigError(f"{where}: thresholds need low < high (got low={low}, high={high})")
	return CounterConfig(
		name=name,
		kind=kind,
		joint=joint,
		axis=axis,
		low=low,
		high=high,
		release_joint=release_joint,
	)


def parse_config(raw: Dict[str, Any]) -> AppConfig:
	"""
	Build an AppConfig from a decoded JSON object.

	Numeric fields fall back to defaults when unparsable. Structural mistakes that
	would make tracking meaningless (unknown model, joints or counter kinds,
	collapsed hysteresis) raise ConfigError.
	"""
	model_type = _as_str(_deep_get(raw, ["pose", "model_type"], "mediapipe_full"), "mediapipe_full").strip().lower()
	if model_type not in MODEL_TYPES:
		raise ConfigError(f"unknown pose model type: {model_type!r} (expected one of {', '.join(MODEL_TYPES)})")
	min_score = _as_float(_deep_get(raw, ["pose", "min_score"], 0.2), 0.2)
	min_det = _as_float(_deep_get(raw, ["pose", "min_detection_confidence"], 0.5), 0.5)
	min_trk = _as_float(_deep_get(raw, ["pose", "min_tracking_confidence"], 0.5), 0.5)
	joints_raw = _deep_get(raw, ["pose", "tracked_joints"], list(DEFAULT_TRACKED_JOINTS))
	if not isinstance(joints_raw, list) or not joints_raw:
		raise ConfigError("pose.tracked_joints must be a non-empty list")
	tracked = tuple(dict.fromkeys(_check_joint(_as_str(j), "pose.tracked_joints") for j in joints_raw))
	image_size = _as_size(_deep_get(raw, ["pose", "image_size"], None), None)

	cadence = _as_int(_deep_get(raw, ["scheduler", "cadence"], 4), 4)
	counter_wrap = _as_int(_deep_get(raw, ["scheduler", "counter_wrap"], 60), 60)
	cadence = cadence if cadence > 0 else 4
	counter_wrap = counter_wrap if counter_wrap >= cadence else 60

	vp_w = _as_int(_deep_get(raw, ["viewport", "width"], 1440), 1440)
	vp_h = _as_int(_deep_get(raw, ["viewport", "height"], 1920), 1920)
	if vp_w <= 0 or vp_h <= 0:
		raise ConfigError(f"viewport size must be positive (got {vp_w}x{vp_h})")
	d = IntrinsicsConfig()
	intr = IntrinsicsConfig(
		fx=_as_float(_deep_get(raw, ["viewport", "intrinsics", "fx"], d.fx), d.fx),
		fy=_as_float(_deep_get(raw, ["viewport", "intrinsics", "fy"], d.fy), d.fy),
		cx=_as_float(_deep_get(raw, ["viewport", "intrinsics", "cx"], d.cx), d.cx),
		cy=_as_float(_deep_get(raw, ["viewport", "intrinsics", "cy"], d.cy), d.cy),
		width=_as_int(_deep_get(raw, ["viewport", "intrinsics", "width"], d.width), d.width),
		height=_as_int(_deep_get(raw, ["viewport", "intrinsics", "height"], d.height), d.height),
	)
	if intr.fx <= 0 or intr.fy <= 0 or intr.width <= 0 or intr.height <= 0:
		raise ConfigError("viewport.intrinsics needs positive fx, fy, width and height")

	counters_raw = raw.get("counters") or []
	if not isinstance(counters_raw, list):
		raise ConfigError("counters must be a list")
	counters = tuple(_parse_counter(c, i) for i, c in enumerate(counters_raw))
	names = [c.name for c in counters]
	if len(set(names)) != len(names):
		raise ConfigError(f"duplicate counter names: {names}")
	for c in counters:
		for j in (c.joint, c.release_joint):
			if j is not None and j not in tracked:
				raise ConfigError(f"counter {c.name!r} reads {j!r}, which is not in pose.tracked_joints")

	cam_backend = _as_str(_deep_get(raw, ["camera", "backend"], "none"), "none").strip().lower() or "none"
	if cam_backend not in ("none", "oakd"):
		raise ConfigError(f"unknown camera backend: {cam_backend!r}")
	cam_fps = _as_int(_deep_get(raw, ["camera", "fps"], 30), 30)
	cam_size = _as_size(_deep_get(raw, ["camera", "rgb_size"], None), (1280, 720))

	log_level = _as_str(_deep_get(raw, ["logging", "level"], "INFO"), "INFO").strip().upper() or "INFO"

	return AppConfig(
		pose=PoseConfig(
			model_type=model_type,
			min_score=min_score,
			min_detection_confidence=min_det,
			min_tracking_confidence=min_trk,
			tracked_joints=tracked,
			image_size=image_size,
		),
		scheduler=SchedulerConfig(cadence=cadence, counter_wrap=counter_wrap),
		viewport=ViewportConfig(width=vp_w, height=vp_h, intrinsics=intr),
		counters=counters,
		camera=CameraConfig(backend=cam_backend, fps=cam_fps if cam_fps > 0 else 30, rgb_size=cam_size),
		logging=LoggingConfig(level=log_level),
	)


def load_config(path: Optional[str | Path] = None) -> AppConfig:
	p = Path(path).expanduser().resolve() if path else (_CONFIG_PATH or get_default_config_path())
	if not p.exists():
		# Defaults-only config; app can still run.
		return AppConfig()
	try:
		raw = json.loads(p.read_text(encoding="utf-8"))
	except (OSError, ValueError) as e:
		# If config is unreadable, fail safe to defaults (but keep app running).
		logger.warning("config %s unreadable, using defaults: %s", p, e)
		return AppConfig()

	if not isinstance(raw, dict):
		return AppConfig()
	return parse_config(raw)


def get_config() -> AppConfig:
	global _CONFIG_CACHE
	if _CONFIG_CACHE is None:
		_CONFIG_CACHE = load_config()
	return _CONFIG_CACHE
