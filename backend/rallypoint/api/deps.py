"""Request-scoped accessors for services held on ``app.state``."""

from __future__ import annotations

from fastapi import Request

from rallypoint.domain.rooms import RoomService


def get_room_service(request: Request) -> RoomService:
	return request.app.state.room_service
