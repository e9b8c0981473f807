"""FastAPI application entrypoint."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from rallypoint.api import admin, ops, rooms
from rallypoint.api.errors import install_error_handlers
from rallypoint.domain.rooms import RoomReaper, RoomService, RoomsNamespace, RoomStore
from rallypoint.obs import init as obs_init
from rallypoint.settings import settings

logger = logging.getLogger(__name__)

DEV_ORIGINS = [
	"http://localhost:3000",
	"http://127.0.0.1:3000",
	"http://localhost:5173",
	"http://127.0.0.1:5173",
]


def _allowed_origins() -> list[str]:
	allow_origins = list(settings.cors_allow_origins)
	if not allow_origins:
		return DEV_ORIGINS if settings.is_dev() else []
	# Starlette disallows wildcard '*' with allow_credentials=True.
	if "*" in allow_origins:
		return DEV_ORIGINS if settings.is_dev() else []
	return allow_origins


@asynccontextmanager
async def lifespan(app: FastAPI):
	reaper: RoomReaper | None = None
	if settings.reaper_enabled:
		reaper = RoomReaper(
			app.state.room_store,
			retention_seconds=settings.room_retention_seconds,
			interval_seconds=settings.reaper_interval_seconds,
			events=app.state.rooms_namespace,
		)
		reaper.start()
	app.state.room_reaper = reaper
	try:
		yield
	finally:
		if reaper is not None:
			reaper.stop()


def create_app(store: Optional[RoomStore] = None) -> FastAPI:
	"""Build the HTTP app; the Socket.IO server hangs off ``app.state.sio``."""
	store = store or RoomStore(
		code_length=settings.room_code_length,
		history_limit=settings.location_history_limit,
	)
	app = FastAPI(title="Rallypoint", lifespan=lifespan)
	install_error_handlers(app)

	allow_origins = _allowed_origins()
	app.add_middleware(
		CORSMiddleware,
		allow_origins=allow_origins,
		allow_credentials=True,
		allow_methods=["*"],
		allow_headers=["*"],
	)

	# Use the same allowed origins for Socket.IO as for the REST API
	sio = socketio.AsyncServer(async_mode="asgi", cors_allowed_origins=allow_origins)
	rooms_namespace = RoomsNamespace(store)
	sio.register_namespace(rooms_namespace)

	app.state.room_store = store
	app.state.rooms_namespace = rooms_namespace
	app.state.room_service = RoomService(store, rooms_namespace)
	app.state.sio = sio
	app.state.room_reaper = None
	obs_init(app)

	app.include_router(rooms.router)
	app.include_router(admin.router)
	app.include_router(ops.router)
	logger.debug("application created origins=%s", allow_origins)
	return app


app = create_app()
socket_app = socketio.ASGIApp(app.state.sio, other_asgi_app=app)
