"""
Explicit app state: single source of truth for runtime lifecycle.
Created in lifespan, attached to app.state.state; injected into routes via Depends(get_state).
"""
from typing import Any, Optional

from depthpose.config import AppConfig
from depthpose.session import TrackingSession


class AppState:
	"""
	Holds all runtime state for the app. Populated in server lifespan; the consumer
	task and routes receive this instance instead of reaching for globals.
	"""
	cfg: Optional[AppConfig] = None

	# WebSocket broadcast manager (visualization sink transport)
	manager: Any = None

	# Tracking pipeline
	session: Optional[TrackingSession] = None
	camera: Any = None

	# Task refs (set in lifespan; used for cleanup)
	consumer_task: Any = None

	def require_session(self) -> TrackingSession:
		if self.session is None:
			raise RuntimeError("tracking session not initialized")
		return self.session
