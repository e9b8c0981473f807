"""Room lifecycle service layer shared by the public and admin routers."""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

import ulid

from rallypoint.domain.rooms import export, gpx, models, policy, schemas
from rallypoint.domain.rooms.sockets import RoomsNamespace, path_payload
from rallypoint.domain.rooms.store import RoomStore
from rallypoint.obs import metrics as obs_metrics
from rallypoint.settings import settings

logger = logging.getLogger(__name__)

DEFAULT_LEADER_COLOR = "#667eea"
DEFAULT_LEADER_ICON = "👤"


def new_user_id() -> str:
	return str(ulid.new())


class RoomService:
	def __init__(self, store: RoomStore, events: RoomsNamespace | None = None) -> None:
		self._store = store
		self._events = events

	def _is_connected(self, code: str, user_id: str) -> bool:
		return self._events is not None and self._events.has_session(code, user_id)

	@property
	def store(self) -> RoomStore:
		return self._store

	# Public room flows

	async def create_room(self, payload: schemas.RoomCreateRequest) -> Tuple[models.Room, str]:
		user_id = new_user_id()
		room = self._create_with_fresh_code(
			initial_leader_id=user_id,
			leader_data=payload.model_dump(),
		)
		obs_metrics.inc_room_created("member")
		logger.info("room created code=%s leader=%s", room.code, user_id)
		return room, user_id

	async def join_room(self, code: str, payload: schemas.RoomJoinRequest) -> Tuple[models.Room, str, bool]:
		"""Add a member, or hand back the id of a same-named member with no live socket."""
		room = self._store.require(code)
		existing = room.find_by_name(payload.name)
		if existing is not None:
			policy.ensure_name_available(existing, connected=self._is_connected(code, existing.id))
			self._store.map_user_to_room(existing.id, code)
			obs_metrics.inc_room_reconnect("http")
			logger.info("member rejoining by name room=%s user=%s", code, existing.id)
			return room, existing.id, True

		user_id = new_user_id()
		room.add_user(user_id, payload.name, payload.color, payload.icon)
		promoted = not room.leader_ids
		if promoted:
			room.add_leader(user_id)
		self._store.map_user_to_room(user_id, code)
		obs_metrics.inc_room_join()
		logger.info("member joined room=%s user=%s promoted=%s", code, user_id, promoted)
		if promoted:
			await self._emit(code, "leader-role-updated", self._leader_payload(room, user_id, True))
		return room, user_id, False

	async def get_room(self, code: str) -> models.Room:
		return self._store.require(code)

	async def leave_room(self, code: str, user_id: str) -> None:
		room = self._store.require(code)
		if not room.has_user(user_id):
			if self._store.room_code_for_user(user_id) == code:
				self._store.unmap_user(user_id)
			return
		await self._remove_member(room, user_id, removed=False)

	async def export_path(self, code: str, fmt: Optional[str]) -> export.ExportedPath:
		room = self._store.require(code)
		return export.export_path(room, fmt)

	async def list_public_rooms(self) -> List[dict]:
		return [
			room.to_summary()
			for room in self._store.rooms()
			if room.is_public and room.is_admin_created
		]

	# Admin flows

	async def create_admin_room(self, payload: schemas.AdminRoomCreateRequest) -> models.Room:
		room = self._create_with_fresh_code(
			room_name=payload.room_name,
			is_public=payload.is_public,
			is_admin_created=True,
		)
		obs_metrics.inc_room_created("admin")
		logger.info("admin room created code=%s", room.code)
		return room

	async def list_admin_rooms(self) -> List[dict]:
		items: List[dict] = []
		for room in self._store.rooms():
			if not room.is_admin_created:
				continue
			summary = room.to_summary()
			summary["users"] = [
				{
					"id": member.id,
					"name": member.name,
					"isLeader": room.is_leader(member.id),
					"online": member.online,
				}
				for member in room.users.values()
			]
			items.append(summary)
		return items

	async def update_room(self, code: str, payload: schemas.AdminRoomUpdateRequest) -> models.Room:
		room = policy.ensure_admin_room(self._store.get(code))
		if payload.room_name is not None:
			room.room_name = payload.room_name
		if payload.is_public is not None:
			room.is_public = payload.is_public
		room.touch()
		await self._emit(
			code,
			"room-updated",
			{"roomCode": code, "roomName": room.room_name, "isPublic": room.is_public},
		)
		return room

	async def delete_admin_room(self, code: str) -> None:
		policy.ensure_admin_room(self._store.get(code))
		await self._delete_room(code, reason="deleted_by_admin")

	async def assign_leader(self, code: str, payload: schemas.AssignLeaderRequest) -> models.Room:
		room = self._store.require(code)
		user_id = payload.user_id
		if user_id is None and payload.user_name:
			match = room.find_by_name(payload.user_name)
			user_id = match.id if match else None
		if user_id is None or not room.has_user(user_id):
			if not payload.user_name:
				raise policy.InvalidArgumentError("user_name_required", message="userName is required for new members")
			user_id = user_id or new_user_id()
			room.add_user(
				user_id,
				payload.user_name,
				payload.color or DEFAULT_LEADER_COLOR,
				payload.icon or DEFAULT_LEADER_ICON,
				online=False,
			)
			self._store.map_user_to_room(user_id, code)
		room.add_leader(user_id)
		logger.info("leader assigned room=%s user=%s", code, user_id)
		await self._emit(code, "leader-role-updated", self._leader_payload(room, user_id, True))
		return room

	async def remove_leader(self, code: str, user_id: str) -> models.Room:
		room = self._store.require(code)
		if not room.remove_leader(user_id):
			raise policy.ConflictError("last_leader", message="Cannot remove last leader")
		logger.info("leader removed room=%s user=%s", code, user_id)
		await self._emit(code, "leader-role-updated", self._leader_payload(room, user_id, False))
		return room

	async def remove_user(self, code: str, user_id: str) -> None:
		room = self._store.require(code)
		policy.ensure_member(room, user_id)
		await self._remove_member(room, user_id, removed=True)

	async def import_gpx(self, code: str, raw: bytes) -> Tuple[models.Room, int]:
		"""Replace the path with the points of an uploaded GPX document.

		Validation and parsing finish before the room is touched, so a bad
		upload leaves the existing path as it was.
		"""
		room = self._store.require(code)
		if len(raw) > settings.gpx_max_bytes:
			raise policy.InvalidArgumentError(
				"file_too_large",
				message=f"GPX file exceeds {settings.gpx_max_bytes} bytes",
			)
		points = gpx.parse_gpx(gpx.decode(raw))
		count = room.replace_destination_path(points)
		obs_metrics.inc_path_mutation("import")
		logger.info("gpx imported room=%s points=%s", code, count)
		await self._emit(
			code,
			"destination-path-updated",
			path_payload(room, f"Route imported ({count} destinations)"),
		)
		return room, count

	# Internals

	def _create_with_fresh_code(self, **kwargs) -> models.Room:
		for _ in range(max(1, settings.room_code_attempts)):
			code = self._store.generate_code()
			try:
				return self._store.create(code, **kwargs)
			except policy.DuplicateCodeError:
				logger.debug("room code collision code=%s", code)
		raise policy.ConflictError("code_exhausted", message="Could not allocate a room code")

	async def _remove_member(self, room: models.Room, user_id: str, *, removed: bool) -> None:
		name = room.users[user_id].name
		successor = room.remove_user(user_id)
		if self._store.room_code_for_user(user_id) == room.code:
			self._store.unmap_user(user_id)
		logger.info("member left room=%s user=%s removed=%s", room.code, user_id, removed)
		body = {"userId": user_id, "name": name}
		if removed:
			body["removed"] = True
		await self._emit(room.code, "user-left", body)
		if self._events is not None:
			await self._events.evict_user(room.code, user_id)
		if successor is not None:
			await self._emit(room.code, "leader-role-updated", self._leader_payload(room, successor, True))
		if not room.users and not room.is_admin_created:
			await self._delete_room(room.code, reason="empty")

	async def _delete_room(self, code: str, *, reason: str) -> None:
		if self._store.delete(code) is None:
			return
		obs_metrics.inc_room_deleted(reason)
		logger.info("room deleted code=%s reason=%s", code, reason)
		await self._emit(code, "room-deleted", {"roomCode": code, "reason": reason, "message": "Room was deleted"})
		if self._events is not None:
			await self._events.close(code)

	@staticmethod
	def _leader_payload(room: models.Room, user_id: str, is_leader: bool) -> dict:
		member = room.get_user(user_id)
		return {
			"userId": user_id,
			"userName": member.name if member else None,
			"isLeader": is_leader,
		}

	async def _emit(self, code: str, event: str, payload: dict) -> None:
		if self._events is None:
			return
		await self._events.broadcast(code, event, payload)
