from __future__ import annotations

import time
from typing import Any, Optional, Tuple

from depthpose.errors import ConfigError, EstimationError
from depthpose.pose.base import PoseEstimator
from depthpose.pose.types import BodyPart, Keypoint, PoseResult, TimingInfo


class MediaPipePoseEstimator(PoseEstimator):
	"""
	MediaPipe Pose estimator that outputs the canonical COCO-17 keypoint set.

	Notes:
	- MediaPipe uses normalized coordinates; we convert to pixel space.
	- `visibility` is used as the per-keypoint score; the pose score is their mean.
	"""

	def __init__(
		self,
		model_complexity: int = 1,
		min_detection_confidence: float = 0.5,
		min_tracking_confidence: float = 0.5,
	) -> None:
		try:
			import mediapipe as mp  # type: ignore
		except ImportError as e:
			raise ConfigError(
				"MediaPipe is not installed. Install pose deps with: pip install 'depthpose[mediapipe]'"
			) from e

		self._mp = mp
		self._complexity = int(model_complexity)
		self._pose = mp.solutions.pose.Pose(
			static_image_mode=False,
			model_complexity=self._complexity,
			enable_segmentation=False,
			smooth_landmarks=True,
			min_detection_confidence=float(min_detection_confidence),
			min_tracking_confidence=float(min_tracking_confidence),
		)

		# Map COCO names using MediaPipe PoseLandmark indices
		PL = mp.solutions.pose.PoseLandmark
		self._mapping = {
			BodyPart.NOSE: PL.NOSE,
			BodyPart.LEFT_EYE: PL.LEFT_EYE,
			BodyPart.RIGHT_EYE: PL.RIGHT_EYE,
			BodyPart.LEFT_EAR: PL.LEFT_EAR,
			BodyPart.RIGHT_EAR: PL.RIGHT_EAR,
			BodyPart.LEFT_SHOULDER: PL.LEFT_SHOULDER,
			BodyPart.RIGHT_SHOULDER: PL.RIGHT_SHOULDER,
			BodyPart.LEFT_ELBOW: PL.LEFT_ELBOW,
			BodyPart.RIGHT_ELBOW: PL.RIGHT_ELBOW,
			BodyPart.LEFT_WRIST: PL.LEFT_WRIST,
			BodyPart.RIGHT_WRIST: PL.RIGHT_WRIST,
			BodyPart.LEFT_HIP: PL.LEFT_HIP,
			BodyPart.RIGHT_HIP: PL.RIGHT_HIP,
			BodyPart.LEFT_KNEE: PL.LEFT_KNEE,
			BodyPart.RIGHT_KNEE: PL.RIGHT_KNEE,
			BodyPart.LEFT_ANKLE: PL.LEFT_ANKLE,
			BodyPart.RIGHT_ANKLE: PL.RIGHT_ANKLE,
		}

	def name(self) -> str:
		return f"mediapipe_pose_c{self._complexity}"

	def estimate(self, image: Any) -> Tuple[Optional[PoseResult], TimingInfo]:
		# image: HxWx3 RGB
		h, w = int(image.shape[0]), int(image.shape[1])
		t0 = time.perf_counter()
		try:
			res = self._pose.process(image)
		except Exception as e:
			raise EstimationError(f"mediapipe process failed: {e!r}") from e
		t1 = time.perf_counter()

		if not res or not getattr(res, "pose_landmarks", None):
			return None, TimingInfo(inference=t1 - t0)

		lm = res.pose_landmarks.landmark
		kps = []
		for part, idx in self._mapping.items():
			p = lm[int(idx)]
			kps.append(
				Keypoint(
					body_part=part,
					x_px=float(p.x) * float(w),
					y_px=float(p.y) * float(h),
					score=float(getattr(p, "visibility", 0.0) or 0.0),
				)
			)
		score = sum(k.score for k in kps) / float(len(kps)) if kps else 0.0
		t2 = time.perf_counter()
		return PoseResult(keypoints=tuple(kps), score=score, width=w, height=h), TimingInfo(
			inference=t1 - t0, postprocessing=t2 - t1
		)

	def close(self) -> None:
		if self._pose is not None:
			self._pose.close()
			self._pose = None
