"""Depth camera routes. Routes: /camera/connect, /camera/disconnect, /camera/status."""
import asyncio

from fastapi import APIRouter, Depends, HTTPException

from app_state import AppState
from deps import get_state

router = APIRouter(tags=["camera"])


def _require_camera(state: AppState):
	if state.camera is None:
		raise HTTPException(status_code=503, detail="No depth camera configured (camera.backend is 'none').")
	return state.camera


@router.post("/camera/connect")
async def camera_connect(state: AppState = Depends(get_state)):
	"""Start depth camera capture; frames flow into the tracking session."""
	cam = _require_camera(state)
	cam.start()
	await asyncio.sleep(0.2)
	st = cam.get_status()
	if not st.get("running") and st.get("error"):
		err = str(st.get("error"))
		if "depthai" in err.lower():
			raise HTTPException(status_code=503, detail=f"Depth camera backend not available on this system: {err}")
		raise HTTPException(status_code=500, detail=err)
	return {"detail": "Camera capture started.", "status": st}


@router.post("/camera/disconnect")
async def camera_disconnect(state: AppState = Depends(get_state)):
	cam = _require_camera(state)
	cam.stop()
	return {"detail": "Camera capture stopped.", "status": cam.get_status()}


@router.get("/camera/status")
async def camera_status(state: AppState = Depends(get_state)):
	return _require_camera(state).get_status()
