"""FastAPI application entrypoint."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import List, Optional, Tuple

import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from careerlink.api import chat, internal, notifications, ops
from careerlink.api.errors import install_error_handlers
from careerlink.domain.chat.store import ChatStore, InMemoryChatStore, PostgresChatStore
from careerlink.domain.notifications.store import (
	InMemoryNotificationStore,
	NotificationStore,
	PostgresNotificationStore,
)
from careerlink.domain.realtime.gateway import Gateway, RealtimeNamespace
from careerlink.infra import postgres
from careerlink.infra.schema import ensure_schema
from careerlink.maintenance.retention import RetentionScheduler, schedule_retention
from careerlink.obs import init as obs_init
from careerlink.obs.tracing import shutdown_tracing
from careerlink.settings import settings


def build_stores() -> Tuple[ChatStore, NotificationStore]:
	backend = settings.store_backend.lower()
	if backend == "memory":
		return InMemoryChatStore(), InMemoryNotificationStore()
	if backend == "postgres":
		return PostgresChatStore(), PostgresNotificationStore()
	raise RuntimeError(f"unknown store backend: {settings.store_backend}")


def create_gateway() -> Gateway:
	chat_store, notification_store = build_stores()
	return Gateway(chat_store, notification_store)


@asynccontextmanager
async def lifespan(app: FastAPI):
	if settings.store_backend.lower() == "postgres":
		pool = await postgres.init_pool()
		await ensure_schema(pool)
	scheduler: RetentionScheduler | None = None
	if settings.maintenance_enabled:
		scheduler = RetentionScheduler()
		schedule_retention(scheduler, app.state.gateway.notifications)
		scheduler.start()
		app.state.retention_scheduler = scheduler
	try:
		yield
	finally:
		if scheduler is not None:
			scheduler.shutdown()
		await app.state.gateway.shutdown()
		await postgres.close_pool()
		shutdown_tracing()


def _allowed_origins() -> List[str]:
	allow_origins = list(settings.cors_allow_origins)
	if not allow_origins:
		allow_origins = ["http://localhost:3000"]
	# Starlette disallows wildcard '*' with allow_credentials=True
	if "*" in allow_origins:
		allow_origins = ["http://localhost:3000", "http://127.0.0.1:3000"] if settings.is_dev() else []
	return allow_origins


def create_app(gateway: Optional[Gateway] = None) -> FastAPI:
	"""Build the REST app with its Socket.IO server; the gateway lives on app.state."""
	gateway = gateway or create_gateway()
	app = FastAPI(title="CareerLink Realtime", lifespan=lifespan)
	app.state.gateway = gateway
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
	sio.register_namespace(RealtimeNamespace(gateway))
	app.state.sio = sio
	app.state.socket_app = socketio.ASGIApp(sio, other_asgi_app=app)
	obs_init(app)

	app.include_router(chat.router, tags=["chat"])
	app.include_router(notifications.router, tags=["notifications"])
	app.include_router(internal.router, tags=["internal"])
	app.include_router(ops.router, tags=["ops"])
	return app


app = create_app()
socket_app = app.state.socket_app
