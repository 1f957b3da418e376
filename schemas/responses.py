"""Pydantic response models for API validation and docs."""
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class CounterStateResponse(BaseModel):
	"""State of one repetition counter."""

	state: str = Field(..., description="'idle' or 'armed'")
	armed: bool
	count: int


class CountersResponse(BaseModel):
	"""Response from GET /tracking/counters."""

	counters: Dict[str, CounterStateResponse]


class WorldPointResponse(BaseModel):
	x: float
	y: float
	z: float
	degraded: bool = Field(False, description="No depth at this joint; point sits on the ray origin")


class FrameReportResponse(BaseModel):
	"""Response from GET /tracking/latest. Joints without a position are null."""

	seq: int
	t_host: Optional[float] = None
	usable: bool
	score: Optional[float] = None
	joints: Dict[str, Optional[WorldPointResponse]]
	counts: Dict[str, int]
	reps_completed: List[str] = []
	timing_ms: Optional[float] = None


class RestartResponse(BaseModel):
	"""Response from POST /tracking/restart."""

	detail: str
	counters: Dict[str, CounterStateResponse]
