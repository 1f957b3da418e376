"""
Keypoint-to-3D triangulation.

A joint's pixel coordinate is normalized against the source image, scaled into
viewport pixels for ray casting, and fused with a depth sample taken at the
normalized coordinate:

	world = ray.origin + ray.direction * depth

Depth sampling and ray casting use different coordinate spaces. The depth map is
always addressed with the normalized point; the ray caster with the viewport one.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, Optional, Tuple

from depthpose.depth import DepthMap
from depthpose.geometry import RayCaster, WorldPoint
from depthpose.pose.types import BodyPart, PoseResult

logger = logging.getLogger(__name__)


def normalize_pixel(point: Tuple[float, float], image_size: Tuple[int, int]) -> Tuple[float, float]:
	w, h = float(image_size[0]), float(image_size[1])
	if w <= 0.0 or h <= 0.0:
		raise ValueError(f"image size must be positive, got {image_size!r}")
	return (float(point[0]) / w, float(point[1]) / h)


def to_viewport(normalized: Tuple[float, float], viewport_size: Tuple[int, int]) -> Tuple[float, float]:
	return (float(normalized[0]) * float(viewport_size[0]), float(normalized[1]) * float(viewport_size[1]))


def triangulate_joint(
	pixel: Tuple[float, float],
	image_size: Tuple[int, int],
	depth_map: Optional[DepthMap],
	ray_caster: RayCaster,
	viewport_size: Tuple[int, int],
) -> Optional[WorldPoint]:
	"""
	Returns None when no ray exists for the point. An undefined depth sample gives
	the ray origin flagged as degraded.
	"""
	norm = normalize_pixel(pixel, image_size)
	ray = ray_caster.cast_ray(to_viewport(norm, viewport_size))
	if ray is None:
		return None

	depth = depth_map.sample(norm) if depth_map is not None else None
	if depth is None:
		return WorldPoint.from_array(ray.origin, degraded=True)
	return WorldPoint.from_array(ray.at(depth))


class Triangulator:
	"""
	Triangulates a fixed set of tracked joints for one pose + depth map pair.
	Holds configuration only; every call is independent of the previous one.
	"""

	def __init__(
		self,
		joints: Iterable[BodyPart],
		ray_caster: RayCaster,
		viewport_size: Tuple[int, int],
		image_size: Optional[Tuple[int, int]] = None,
	) -> None:
		self.joints: Tuple[BodyPart, ...] = tuple(joints)
		self.ray_caster = ray_caster
		self.viewport_size = (int(viewport_size[0]), int(viewport_size[1]))
		# Overrides the size reported by the pose, for estimators fed a resized image.
		self.image_size = (int(image_size[0]), int(image_size[1])) if image_size else None

	def triangulate(
		self,
		pose: PoseResult,
		depth_map: Optional[DepthMap],
	) -> Dict[BodyPart, Optional[WorldPoint]]:
		image_size = self.image_size or (pose.width, pose.height)
		out: Dict[BodyPart, Optional[WorldPoint]] = {}
		for joint in self.joints:
			pixel = pose.coordinate_of(joint)
			if pixel is None:
				out[joint] = None
				continue
			out[joint] = triangulate_joint(pixel, image_size, depth_map, self.ray_caster, self.viewport_size)
			if out[joint] is None:
				logger.debug("no ray for %s at %r", joint.value, pixel)
		return out
