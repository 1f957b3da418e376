from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional, Tuple

from depthpose.errors import ConfigError
from depthpose.pose.types import PoseResult, TimingInfo


class PoseEstimator(ABC):
	"""
	Model adapter interface.

	Implementations take an RGB image (H,W,3 uint8) and return the pose for it, or
	None when nothing was detected. Internal faults raise EstimationError.
	Calls are never made concurrently on one instance.
	"""

	@abstractmethod
	def name(self) -> str: ...

	@abstractmethod
	def estimate(self, image: Any) -> Tuple[Optional[PoseResult], TimingInfo]: ...

	@abstractmethod
	def close(self) -> None: ...


MODEL_TYPES = ("mediapipe_lite", "mediapipe_full", "mediapipe_heavy")


def create_estimator(model_type: str, **kwargs: Any) -> PoseEstimator:
	"""
	Build an estimator for a configured model type.

	Unknown types are a configuration error and must abort startup.
	"""
	mt = str(model_type or "").strip().lower()
	if mt not in MODEL_TYPES:
		raise ConfigError(f"unknown pose model type: {model_type!r} (expected one of {', '.join(MODEL_TYPES)})")

	from depthpose.pose.mediapipe_provider import MediaPipePoseEstimator

	complexity = {"mediapipe_lite": 0, "mediapipe_full": 1, "mediapipe_heavy": 2}[mt]
	return MediaPipePoseEstimator(model_complexity=complexity, **kwargs)
