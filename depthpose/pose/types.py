from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, Optional, Sequence, Tuple


class BodyPart(str, Enum):
	"""
	Fixed set of body parts produced by COCO-17 style estimators (MoveNet, PoseNet,
	and the MediaPipe adapter in this package).
	"""

	NOSE = "nose"
	LEFT_EYE = "left_eye"
	RIGHT_EYE = "right_eye"
	LEFT_EAR = "left_ear"
	RIGHT_EAR = "right_ear"
	LEFT_SHOULDER = "left_shoulder"
	RIGHT_SHOULDER = "right_shoulder"
	LEFT_ELBOW = "left_elbow"
	RIGHT_ELBOW = "right_elbow"
	LEFT_WRIST = "left_wrist"
	RIGHT_WRIST = "right_wrist"
	LEFT_HIP = "left_hip"
	RIGHT_HIP = "right_hip"
	LEFT_KNEE = "left_knee"
	RIGHT_KNEE = "right_knee"
	LEFT_ANKLE = "left_ankle"
	RIGHT_ANKLE = "right_ankle"

	@classmethod
	def parse(cls, name: str) -> "BodyPart":
		key = str(name).strip().lower()
		try:
			return cls(key)
		except ValueError:
			raise ValueError(f"unknown body part: {name!r}") from None


# Estimator output contract: position in the raw keypoint array -> body part.
COCO17_ORDER: Tuple[BodyPart, ...] = tuple(BodyPart)


@dataclass(frozen=True)
class Keypoint:
	"""
	A single 2D keypoint in pixel coordinates.
	"""

	body_part: BodyPart
	x_px: float
	y_px: float
	score: float  # confidence/visibility [0..1] best-effort


@dataclass(frozen=True)
class TimingInfo:
	preprocessing: float = 0.0
	inference: float = 0.0
	postprocessing: float = 0.0

	@property
	def total(self) -> float:
		return float(self.preprocessing + self.inference + self.postprocessing)


@dataclass(frozen=True)
class PoseResult:
	"""
	Estimator output for a single frame.

	- Coordinates are in pixel space of the source image (`width` x `height`).
	- `score` is the overall pose confidence; keypoints carry their own scores.
	- Lookups go through each keypoint's `body_part`, never through its position.
	"""

	keypoints: Tuple[Keypoint, ...]
	score: float
	width: int
	height: int
	_by_part: Dict[BodyPart, Keypoint] = field(init=False, repr=False, compare=False)

	def __post_init__(self) -> None:
		by_part: Dict[BodyPart, Keypoint] = {}
		for kp in self.keypoints:
			# First occurrence wins; estimators emit each part at most once.
			by_part.setdefault(kp.body_part, kp)
		object.__setattr__(self, "_by_part", by_part)

	@classmethod
	def from_ordered(
		cls,
		points: Sequence[Tuple[float, float, float]],
		score: float,
		width: int,
		height: int,
		order: Sequence[BodyPart] = COCO17_ORDER,
	) -> "PoseResult":
		"""
		Build a result from an estimator's raw (x, y, score) rows using an explicit
		index -> body part table. Rows beyond the table are ignored.
		"""
		kps = tuple(
			Keypoint(body_part=part, x_px=float(x), y_px=float(y), score=float(s))
			for part, (x, y, s) in zip(order, points)
		)
		return cls(keypoints=kps, score=float(score), width=int(width), height=int(height))

	def keypoint(self, body_part: BodyPart) -> Optional[Keypoint]:
		return self._by_part.get(body_part)

	def coordinate_of(self, body_part: BodyPart) -> Optional[Tuple[float, float]]:
		kp = self._by_part.get(body_part)
		if kp is None:
			return None
		return (kp.x_px, kp.y_px)

	def body_parts(self) -> Iterable[BodyPart]:
		return self._by_part.keys()


def is_usable(result: Optional[PoseResult], min_score: float) -> bool:
	"""Confidence gate: results below `min_score` never reach triangulation."""
	if result is None:
		return False
	return float(result.score) >= float(min_score)
