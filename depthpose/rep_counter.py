from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class CounterState(str, Enum):
	IDLE = "idle"
	ARMED = "armed"


@dataclass(frozen=True)
class RepCounterState:
	state: CounterState
	count: int

	@property
	def armed(self) -> bool:
		return self.state is CounterState.ARMED

	def as_dict(self) -> Dict[str, Any]:
		return {"state": self.state.value, "armed": self.armed, "count": int(self.count)}


class ThresholdCounter:
	"""
	Two-threshold latch that turns a 1D signal into repetition counts.

	IDLE -> ARMED when the arm signal passes `arm_threshold` in the arm direction
	(above it when `arm_above`, below it otherwise). ARMED -> IDLE, with count += 1,
	when the release signal passes `release_threshold` in the opposite direction.
	Every other input leaves the state unchanged.

	The release signal defaults to the arm signal. Passing a separate
	`release_value` to `update` drives the two thresholds from independent inputs
	(e.g. left and right hip x for side-to-side movements).

	The thresholds must be separated in the release direction so that noise around
	one threshold cannot both arm and release the latch.
	"""

	def __init__(
		self,
		arm_threshold: float,
		release_threshold: float,
		arm_above: bool = True,
		inclusive: bool = False,
	) -> None:
		self.arm_threshold = float(arm_threshold)
		self.release_threshold = float(release_threshold)
		self.arm_above = bool(arm_above)
		self.inclusive = bool(inclusive)
		if self.arm_above and not self.release_threshold < self.arm_threshold:
			raise ValueError(
				f"release threshold ({self.release_threshold}) must be below arm threshold ({self.arm_threshold})"
			)
		if not self.arm_above and not self.release_threshold > self.arm_threshold:
			raise ValueError(
				f"release threshold ({self.release_threshold}) must be above arm threshold ({self.arm_threshold})"
			)
		self._state = CounterState.IDLE
		self._count = 0

	@property
	def state(self) -> CounterState:
		return self._state

	@property
	def count(self) -> int:
		return self._count

	def _above(self, v: float, threshold: float) -> bool:
		return v >= threshold if self.inclusive else v > threshold

	def _below(self, v: float, threshold: float) -> bool:
		return v <= threshold if self.inclusive else v < threshold

	def update(self, value: float, release_value: Optional[float] = None) -> bool:
		"""
		Feed one frame's signal. Returns True when this call completed a repetition.
		"""
		v = float(value)
		r = v if release_value is None else float(release_value)

		if self._state is CounterState.IDLE:
			crossed = self._above(v, self.arm_threshold) if self.arm_above else self._below(v, self.arm_threshold)
			if crossed:
				self._state = CounterState.ARMED
			return False

		crossed = self._below(r, self.release_threshold) if self.arm_above else self._above(r, self.release_threshold)
		if crossed:
			self._count += 1
			self._state = CounterState.IDLE
			return True
		return False

	def reset(self) -> None:
		self._state = CounterState.IDLE
		self._count = 0

	def snapshot(self) -> RepCounterState:
		return RepCounterState(state=self._state, count=self._count)


class HysteresisCounter(ThresholdCounter):
	"""
	Single-signal counter: arms above `high`, counts when the signal drops below `low`.
	"""

	def __init__(self, low: float, high: float) -> None:
		if not float(low) < float(high):
			raise ValueError(f"hysteresis requires low < high, got low={low} high={high}")
		super().__init__(arm_threshold=high, release_threshold=low, arm_above=True)
		self.low = float(low)
		self.high = float(high)


class SideToSideCounter(ThresholdCounter):
	"""
	Two-input counter: the left input arms at or below `negative_threshold`, the
	right input closes the repetition at or above `positive_threshold`.
	"""

	def __init__(self, negative_threshold: float, positive_threshold: float) -> None:
		super().__init__(
			arm_threshold=negative_threshold,
			release_threshold=positive_threshold,
			arm_above=False,
			inclusive=True,
		)

	def update(self, value: float, release_value: Optional[float] = None) -> bool:
		if release_value is None:
			raise TypeError("side-to-side counter needs both left and right inputs")
		return super().update(value, release_value)
