"""Authorization and argument checks applied before room mutations."""

from __future__ import annotations

from typing import Optional

from rallypoint.domain.rooms import models
from rallypoint.domain.rooms.errors import (
	ConflictError,
	DuplicateCodeError,
	InvalidArgumentError,
	NotFoundError,
	RoomPolicyError,
	UnauthorizedError,
)

__all__ = [
	"ConflictError",
	"DuplicateCodeError",
	"InvalidArgumentError",
	"NotFoundError",
	"RoomPolicyError",
	"UnauthorizedError",
	"ensure_admin_room",
	"ensure_index",
	"ensure_leader",
	"ensure_member",
	"ensure_name_available",
	"ensure_room",
]


def ensure_room(room: Optional[models.Room]) -> models.Room:
	if room is None:
		raise NotFoundError("room_not_found", message="Room not found")
	return room


def ensure_admin_room(room: Optional[models.Room]) -> models.Room:
	if room is None or not room.is_admin_created:
		raise NotFoundError("admin_room_not_found", message="Admin room not found")
	return room


def ensure_member(room: models.Room, user_id: Optional[str]) -> models.Member:
	member = room.get_user(user_id) if user_id else None
	if member is None:
		raise NotFoundError("user_not_found", message="User not in room")
	return member


def ensure_leader(room: models.Room, user_id: Optional[str], action: str) -> None:
	"""Reject leader-only mutations from anyone outside ``room.leader_ids``."""
	if not user_id or not room.is_leader(user_id):
		raise UnauthorizedError("not_leader", message=f"Only leader can {action}")


def ensure_index(room: models.Room, index: int) -> int:
	if not 0 <= index < len(room.destination_path):
		raise InvalidArgumentError("invalid_index", message=f"No destination at position {index + 1}")
	return index


def ensure_name_available(existing: Optional[models.Member], *, connected: bool) -> None:
	"""Names identify members on rejoin, so a name held by a live socket is taken."""
	if existing is not None and connected:
		raise ConflictError("name_taken", message=f"Name {existing.name} is already in use in this room")
