from __future__ import annotations

import math
from typing import Optional, Tuple

import numpy as np

DEPTH_FLOAT32 = "depth_float32"
DEPTH_FORMATS = (DEPTH_FLOAT32,)


class DepthMap:
	"""
	Read-only grid of per-pixel distances (metres) associated with one frame.

	Cells that hold NaN, infinity or a non-positive distance are "undefined".
	Sampling is only defined for depth pixel formats; any other buffer answers
	None everywhere.
	"""

	__slots__ = ("_values", "pixel_format")

	def __init__(self, values, pixel_format: str = DEPTH_FLOAT32) -> None:
		arr = np.array(values, dtype=np.float32, copy=True)
		if arr.ndim != 2:
			raise ValueError(f"depth map must be 2D, got shape {arr.shape}")
		arr.setflags(write=False)
		self._values = arr
		self.pixel_format = str(pixel_format)

	@classmethod
	def from_millimeters(cls, values) -> "DepthMap":
		"""Convert a uint16 millimetre buffer (0 = no measurement) into metres."""
		mm = np.asarray(values)
		metres = mm.astype(np.float32) / 1000.0
		metres[mm == 0] = np.nan
		return cls(metres, pixel_format=DEPTH_FLOAT32)

	@property
	def values(self) -> np.ndarray:
		return self._values

	@property
	def width(self) -> int:
		return int(self._values.shape[1])

	@property
	def height(self) -> int:
		return int(self._values.shape[0])

	def value_at(self, column: int, row: int) -> Optional[float]:
		if self.pixel_format not in DEPTH_FORMATS:
			return None
		if column < 0 or row < 0 or column >= self.width or row >= self.height:
			return None
		v = float(self._values[row, column])
		if not math.isfinite(v) or v <= 0.0:
			return None
		return v

	def sample(self, point: Tuple[float, float]) -> Optional[float]:
		"""
		Sample at a normalized coordinate; (0,0) is top-left and (1,1) bottom-right.
		"""
		x, y = float(point[0]), float(point[1])
		if not (0.0 <= x <= 1.0 and 0.0 <= y <= 1.0):
			return None
		col = min(int(x * self.width), self.width - 1)
		row = min(int(y * self.height), self.height - 1)
		return self.value_at(col, row)

	def __repr__(self) -> str:
		return f"DepthMap({self.width}x{self.height}, {self.pixel_format})"
