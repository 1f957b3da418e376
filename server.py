import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app_state import AppState
from depthpose import __version__
from depthpose.config import AppConfig, get_config
from depthpose.oakd_stream import OakdDepthSource
from depthpose.session import TrackingSession, build_session
from routers import camera, tracking, ws
from routers.ws import BroadcastSink

logger = logging.getLogger("depthpose.server")

# How long the consumer waits for a finished inference before re-checking for shutdown.
CONSUMER_POLL_SECONDS = 0.2


def _configure_logging(cfg: AppConfig) -> None:
	level = getattr(logging, cfg.logging.level, logging.INFO)
	logging.basicConfig(
		level=level,
		format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
	)


async def _consumer_loop(state: AppState) -> None:
	"""
	Fuse finished inferences in order, one at a time. Blocking waits run off the
	event loop; the session publishes each report to the broadcast sink. A frame
	that fails to fuse is logged and skipped.
	"""
	session = state.require_session()
	while True:
		try:
			await asyncio.to_thread(session.process_next, CONSUMER_POLL_SECONDS)
		except Exception:
			logger.exception("frame fusion failed; continuing with the next outcome")


def create_app(cfg: Optional[AppConfig] = None, session: Optional[TrackingSession] = None) -> FastAPI:
	"""
	Build the FastAPI app. A ConfigError while building the session (unknown model
	type, bad counters) aborts startup.
	"""

	@asynccontextmanager
	async def lifespan(app: FastAPI):
		conf = cfg or get_config()
		_configure_logging(conf)

		state = AppState()
		state.cfg = conf
		state.manager = ws.manager
		state.session = session or build_session(conf)
		if state.session.sink is None:
			state.session.sink = BroadcastSink(ws.manager, asyncio.get_running_loop())

		if conf.camera.backend == "oakd":
			state.camera = OakdDepthSource(
				on_frame=state.session.on_frame,
				rgb_size=conf.camera.rgb_size,
				fps=conf.camera.fps,
			)

		state.session.start()
		state.consumer_task = asyncio.create_task(_consumer_loop(state))
		if state.camera is not None:
			state.camera.start()
		app.state.state = state
		logger.info("depthpose %s started (model=%s)", __version__, conf.pose.model_type)
		try:
			yield
		finally:
			if state.camera is not None:
				state.camera.stop()
			state.consumer_task.cancel()
			try:
				await state.consumer_task
			except asyncio.CancelledError:
				pass
			state.session.stop()
			logger.info("depthpose stopped")

	app = FastAPI(title="depthpose", version=__version__, lifespan=lifespan)
	app.add_middleware(
		CORSMiddleware,
		allow_origins=["*"],
		allow_methods=["*"],
		allow_headers=["*"],
	)
	app.include_router(tracking.router)
	app.include_router(camera.router)
	app.include_router(ws.router)
	return app


app = create_app()
