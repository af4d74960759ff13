"""Shared FastAPI dependencies."""

from __future__ import annotations

from fastapi import Request

from careerlink.domain.realtime.gateway import Gateway


def get_gateway(request: Request) -> Gateway:
	return request.app.state.gateway
