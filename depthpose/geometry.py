from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, Tuple

import numpy as np


@dataclass(frozen=True, eq=False)
class Ray:
	"""
	A world-space ray: origin + t * direction.
	"""

	origin: np.ndarray
	direction: np.ndarray

	@classmethod
	def of(cls, origin, direction) -> "Ray":
		o = np.asarray(origin, dtype=np.float64).reshape(3)
		d = np.asarray(direction, dtype=np.float64).reshape(3)
		return cls(origin=o, direction=d)

	def at(self, t: float) -> np.ndarray:
		return self.origin + self.direction * float(t)


@dataclass(frozen=True)
class WorldPoint:
	"""
	3D position of one joint for one frame.

	`degraded` is set when no depth was available and the point collapsed onto the
	ray origin; sinks may choose not to render such joints.
	"""

	x: float
	y: float
	z: float
	degraded: bool = False

	@classmethod
	def from_array(cls, v, degraded: bool = False) -> "WorldPoint":
		return cls(x=float(v[0]), y=float(v[1]), z=float(v[2]), degraded=bool(degraded))

	def as_tuple(self) -> Tuple[float, float, float]:
		return (self.x, self.y, self.z)

	def as_dict(self) -> Dict[str, Any]:
		return {"x": self.x, "y": self.y, "z": self.z, "degraded": self.degraded}

	def axis(self, name: str) -> float:
		return float(getattr(self, name))


class RayCaster(Protocol):
	"""
	Rendering-side collaborator that turns a viewport pixel into a world ray.
	Returns None when the point is outside the viewport or nothing can be hit.
	"""

	def cast_ray(self, viewport_point: Tuple[float, float]) -> Optional[Ray]: ...


@dataclass(frozen=True)
class CameraIntrinsics:
	fx: float
	fy: float
	cx: float
	cy: float
	width: int
	height: int

	def scaled_to(self, width: int, height: int) -> "CameraIntrinsics":
		sx = float(width) / float(self.width)
		sy = float(height) / float(self.height)
		return CameraIntrinsics(
			fx=self.fx * sx,
			fy=self.fy * sy,
			cx=self.cx * sx,
			cy=self.cy * sy,
			width=int(width),
			height=int(height),
		)


class PinholeRayCaster:
	"""
	Ray caster for a fixed pinhole camera.

	Camera frame: +x right, +y up, looking down -z (the AR/OpenGL convention, so a
	raised hand has a larger y). `rotation` and `translation` give the
	camera-to-world pose; with the defaults world == camera.
	Intrinsics are rescaled to the viewport so callers pass viewport pixels.
	"""

	def __init__(
		self,
		intrinsics: CameraIntrinsics,
		viewport_size: Tuple[int, int],
		rotation=None,
		translation=None,
	) -> None:
		vw, vh = int(viewport_size[0]), int(viewport_size[1])
		if vw <= 0 or vh <= 0:
			raise ValueError(f"viewport size must be positive, got {viewport_size!r}")
		self.viewport_size = (vw, vh)
		self.intrinsics = intrinsics.scaled_to(vw, vh)
		self._R = np.eye(3) if rotation is None else np.asarray(rotation, dtype=np.float64).reshape(3, 3)
		self._t = np.zeros(3) if translation is None else np.asarray(translation, dtype=np.float64).reshape(3)

	def cast_ray(self, viewport_point: Tuple[float, float]) -> Optional[Ray]:
		u, v = float(viewport_point[0]), float(viewport_point[1])
		vw, vh = self.viewport_size
		if not (0.0 <= u <= vw and 0.0 <= v <= vh):
			return None
		k = self.intrinsics
		d_cam = np.array([(u - k.cx) / k.fx, -(v - k.cy) / k.fy, -1.0])
		d_world = self._R @ d_cam
		d_world = d_world / np.linalg.norm(d_world)
		return Ray(origin=self._t.copy(), direction=d_world)
