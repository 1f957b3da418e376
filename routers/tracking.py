"""Tracking routes. Routes: /tracking/status, /tracking/counters, /tracking/latest, /tracking/restart."""
from fastapi import APIRouter, Depends, HTTPException

from app_state import AppState
from deps import get_state
from schemas.responses import CountersResponse, FrameReportResponse, RestartResponse

router = APIRouter(tags=["tracking"])


def _counters(state: AppState) -> dict:
	return {name: st.as_dict() for name, st in state.require_session().counter_states().items()}


@router.get("/tracking/status")
async def tracking_status(state: AppState = Depends(get_state)):
	"""Scheduler admission counters, estimator readiness and camera status."""
	st = state.require_session().get_status()
	st["camera"] = state.camera.get_status() if state.camera is not None else None
	st["ws_clients"] = state.manager.client_count() if state.manager is not None else 0
	return st


@router.get("/tracking/counters", response_model=CountersResponse)
async def tracking_counters(state: AppState = Depends(get_state)):
	return {"counters": _counters(state)}


@router.get("/tracking/latest", response_model=FrameReportResponse)
async def tracking_latest(state: AppState = Depends(get_state)):
	"""The most recently processed frame."""
	report = state.require_session().latest.get()
	if report is None:
		raise HTTPException(status_code=404, detail="No frame processed yet")
	return report.as_dict()


@router.post("/tracking/restart", response_model=RestartResponse)
async def tracking_restart(state: AppState = Depends(get_state)):
	"""Restart the session: counters go back to idle / zero."""
	state.require_session().restart()
	return {"detail": "Session restarted.", "counters": _counters(state)}
