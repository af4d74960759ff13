"""Observability package bootstrap."""

from __future__ import annotations

from fastapi import FastAPI

from careerlink.obs import logging as obs_logging
from careerlink.obs import middleware, tracing
from careerlink.settings import settings

_initialised = False


def init(app: FastAPI) -> None:
	"""Install request middleware on every app; logging and tracing are process-wide."""
	global _initialised
	if not settings.obs_enabled:
		return
	middleware.install(app)
	if _initialised:
		return
	obs_logging.configure_logging()
	tracing.init_tracing(app)
	_initialised = True


__all__ = ["init"]
