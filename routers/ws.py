"""WebSocket endpoint, ConnectionManager and the broadcast visualization sink. Route: /ws."""
import asyncio
import json
import logging
from typing import Any, Dict, Set

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from depthpose.session import FrameReport

logger = logging.getLogger(__name__)

router = APIRouter(tags=["ws"])


class ConnectionManager:
	def __init__(self) -> None:
		self._clients: Set[WebSocket] = set()
		self._lock = asyncio.Lock()

	async def connect(self, websocket: WebSocket) -> None:
		await websocket.accept()
		async with self._lock:
			self._clients.add(websocket)

	async def disconnect(self, websocket: WebSocket) -> None:
		async with self._lock:
			self._clients.discard(websocket)

	def client_count(self) -> int:
		return len(self._clients)

	async def broadcast_json(self, message: Dict[str, Any]) -> None:
		payload = json.dumps(message, separators=(",", ":"))
		async with self._lock:
			if not self._clients:
				return
			send_tasks = []
			for ws in list(self._clients):
				send_tasks.append(self._send(ws, payload))
			await asyncio.gather(*send_tasks, return_exceptions=True)

	@staticmethod
	async def _send(ws: WebSocket, payload: str) -> None:
		try:
			await ws.send_text(payload)
		except Exception:
			logger.debug("websocket send failed; closing client", exc_info=True)
			try:
				await ws.close()
			except RuntimeError:
				pass


class BroadcastSink:
	"""
	Session sink that forwards every FrameReport to WebSocket clients.

	Safe to call from any thread: the broadcast is scheduled on the server loop.
	"""

	def __init__(self, manager: ConnectionManager, loop: asyncio.AbstractEventLoop) -> None:
		self._manager = manager
		self._loop = loop

	def __call__(self, report: FrameReport) -> None:
		message = {"type": "frame"}
		message.update(report.as_dict())
		asyncio.run_coroutine_threadsafe(self._manager.broadcast_json(message), self._loop)


manager = ConnectionManager()


@router.websocket("/ws")
async def ws_endpoint(websocket: WebSocket):
	await manager.connect(websocket)
	try:
		while True:
			await websocket.receive_text()
	except WebSocketDisconnect:
		pass
	finally:
		await manager.disconnect(websocket)
