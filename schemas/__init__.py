"""Pydantic response models for API validation and docs."""
from schemas.responses import (
	CounterStateResponse,
	CountersResponse,
	FrameReportResponse,
	RestartResponse,
	WorldPointResponse,
)

__all__ = [
	"CounterStateResponse",
	"CountersResponse",
	"FrameReportResponse",
	"RestartResponse",
	"WorldPointResponse",
]
