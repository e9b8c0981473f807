"""Socket.IO namespace carrying the room event protocol."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import socketio
from pydantic import ValidationError

from rallypoint.domain.rooms import models, policy, schemas
from rallypoint.domain.rooms.store import RoomStore
from rallypoint.obs import metrics as obs_metrics
from rallypoint.settings import settings

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SocketSession:
	room_code: str
	user_id: str


def path_payload(room: models.Room, message: str) -> dict:
	"""Full path plus pointer; clients replace their copy rather than patching it."""
	return {
		"roomCode": room.code,
		"destinationPath": room.path_to_list(),
		"currentDestinationIndex": room.current_destination_index,
		"message": message,
	}


def _validation_message(exc: ValidationError) -> str:
	errors = exc.errors()
	if not errors:
		return "Invalid payload"
	first = errors[0]
	where = ".".join(str(part) for part in first.get("loc", ()))
	return f"Invalid payload: {where} {first.get('msg', '')}".strip()


class RoomsNamespace(socketio.AsyncNamespace):
	"""Applies client intents to rooms and fans the results out per room channel.

	Wire events use hyphenated names (``add-destination-to-path``); they are
	dispatched to the matching ``on_add_destination_to_path`` handler. Leader
	checks live here so the room model stays free of authorization policy.
	Failed intents are answered with an ``error`` event to the sender only.
	"""

	def __init__(self, store: RoomStore, namespace: str = "/") -> None:
		super().__init__(namespace)
		self._store = store
		self._sessions: Dict[str, SocketSession] = {}

	async def trigger_event(self, event: str, *args):
		return await super().trigger_event(event.replace("-", "_"), *args)

	@staticmethod
	def room_channel(code: str) -> str:
		return f"room:{code}"

	@staticmethod
	def user_channel(code: str, user_id: str) -> str:
		return f"user:{code}:{user_id}"

	def session_count(self) -> int:
		return len(self._sessions)

	def get_session(self, sid: str) -> Optional[SocketSession]:
		return self._sessions.get(sid)

	def has_session(self, code: str, user_id: str) -> bool:
		"""True while at least one socket is joined to the room as ``user_id``."""
		return any(
			session.room_code == code and session.user_id == user_id
			for session in self._sessions.values()
		)

	# Connection lifecycle

	async def on_connect(self, sid: str, environ: dict, auth: Optional[dict] = None) -> None:
		obs_metrics.socket_connected(self.namespace)
		logger.debug("socket connected sid=%s", sid)

	async def on_disconnect(self, sid: str, reason: Any = None) -> None:
		obs_metrics.socket_disconnected(self.namespace)
		session = self._sessions.pop(sid, None)
		if session is None:
			return
		offline = self._release(sid, session)
		if offline is not None:
			await self.emit("user-offline", offline, room=self.room_channel(session.room_code), skip_sid=sid)

	def _release(self, sid: str, session: SocketSession) -> Optional[dict]:
		"""Mark the member offline once its last socket in the room is gone."""
		if self._has_other_session(sid, session.room_code, session.user_id):
			return None
		room = self._store.get(session.room_code)
		if room is None or not room.mark_offline(session.user_id):
			return None
		member = room.users[session.user_id]
		logger.info("member offline room=%s user=%s", room.code, session.user_id)
		return {"userId": session.user_id, "name": member.name}

	def _has_other_session(self, sid: str, code: str, user_id: str) -> bool:
		return any(
			other_sid != sid and other.room_code == code and other.user_id == user_id
			for other_sid, other in self._sessions.items()
		)

	# Inbound intents

	async def on_join_room(self, sid: str, data: Optional[dict] = None) -> None:
		obs_metrics.socket_event(self.namespace, "join-room")
		try:
			payload = schemas.JoinRoomPayload.model_validate(data or {})
			room = policy.ensure_room(self._store.get(payload.room_code))
		except (policy.RoomPolicyError, ValidationError) as exc:
			await self._reject(sid, "join-room", exc)
			return

		code, user_id = payload.room_code, payload.user_id
		previous = self._sessions.pop(sid, None)
		switched = previous is not None and (previous.room_code, previous.user_id) != (code, user_id)
		repeated = previous is not None and not switched
		offline = self._release(sid, previous) if switched else None

		member = room.get_user(user_id)
		announce: Optional[str] = None
		if member is not None:
			if not member.online:
				room.reconnect(user_id)
				announce = "user-reconnected"
				obs_metrics.inc_room_reconnect("socket")
			elif not repeated and not self._has_other_session(sid, code, user_id):
				announce = "user-joined"
			self._store.map_user_to_room(user_id, code)
		self._sessions[sid] = SocketSession(room_code=code, user_id=user_id)
		snapshot = room.to_dict()
		announced_member = room.member_to_dict(user_id) if announce else None

		if switched:
			if previous.room_code != code:
				await self.leave_room(sid, self.room_channel(previous.room_code))
			await self.leave_room(sid, self.user_channel(previous.room_code, previous.user_id))
			if offline is not None:
				await self.emit("user-offline", offline, room=self.room_channel(previous.room_code), skip_sid=sid)
		await self.enter_room(sid, self.room_channel(code))
		await self.enter_room(sid, self.user_channel(code, user_id))
		await self.emit("room-state", {"room": snapshot}, room=sid)
		if announce is not None:
			logger.info("%s room=%s user=%s", announce, code, user_id)
			await self.emit(
				announce,
				{"userId": user_id, "user": announced_member},
				room=self.room_channel(code),
				skip_sid=sid,
			)

	async def on_location_update(self, sid: str, data: Optional[dict] = None) -> None:
		obs_metrics.socket_event(self.namespace, "location-update")
		try:
			session = self._require_session(sid)
			payload = schemas.LocationUpdatePayload.model_validate(data or {})
			if payload.user_id and payload.user_id != session.user_id:
				raise policy.UnauthorizedError(
					"identity_mismatch", message="Cannot update another member's location"
				)
			room = self._store.room_for_user(session.user_id)
			if room is None:
				raise policy.NotFoundError("not_in_room", message="User not in any room")
			policy.ensure_member(room, session.user_id)
			location = room.update_location(session.user_id, **payload.location.model_dump())
		except (policy.RoomPolicyError, ValidationError) as exc:
			await self._reject(sid, "location-update", exc)
			return
		obs_metrics.inc_location_update()
		await self.emit(
			"location-updated",
			{"userId": session.user_id, "location": location.to_dict()},
			room=self.room_channel(room.code),
		)

	async def on_set_destination(self, sid: str, data: Optional[dict] = None) -> None:
		obs_metrics.socket_event(self.namespace, "set-destination")
		try:
			_, room = self._require_leader(sid, "set destinations")
			payload = schemas.SetDestinationPayload.model_validate(data or {})
			destination = room.set_destination(payload.target_user_id, **payload.destination.model_dump())
		except (policy.RoomPolicyError, ValidationError) as exc:
			await self._reject(sid, "set-destination", exc)
			return
		body = destination.to_dict()
		await self.emit(
			"destination-set",
			{"targetUserId": payload.target_user_id, "destination": body},
			room=self.room_channel(room.code),
		)
		await self.emit(
			"destination-assigned",
			{
				"message": "Leader assigned you a destination",
				"destination": body,
				"targetUserId": payload.target_user_id,
			},
			room=self.user_channel(room.code, payload.target_user_id),
		)

	async def on_remove_destination(self, sid: str, data: Optional[dict] = None) -> None:
		obs_metrics.socket_event(self.namespace, "remove-destination")
		try:
			_, room = self._require_leader(sid, "remove destinations")
			payload = schemas.TargetUserPayload.model_validate(data or {})
			room.remove_destination(payload.target_user_id)
		except (policy.RoomPolicyError, ValidationError) as exc:
			await self._reject(sid, "remove-destination", exc)
			return
		await self.emit(
			"destination-removed",
			{"targetUserId": payload.target_user_id},
			room=self.room_channel(room.code),
		)

	async def on_get_location_history(self, sid: str, data: Optional[dict] = None) -> None:
		obs_metrics.socket_event(self.namespace, "get-location-history")
		try:
			session = self._require_session(sid)
			room = self._require_room(session)
			payload = schemas.LocationHistoryRequest.model_validate(data or {})
		except (policy.RoomPolicyError, ValidationError) as exc:
			await self._reject(sid, "get-location-history", exc)
			return
		if payload.time_range is not None:
			window = payload.time_range / 1000.0
		else:
			window = settings.location_history_window_seconds
		history = room.get_location_history(payload.user_id, window)
		await self.emit(
			"location-history",
			{"userId": payload.user_id, "locations": [loc.to_dict() for loc in history]},
			room=sid,
		)

	async def on_add_destination_to_path(self, sid: str, data: Optional[dict] = None) -> None:
		obs_metrics.socket_event(self.namespace, "add-destination-to-path")
		try:
			_, room = self._require_leader(sid, "add destinations to path")
			payload = schemas.AddPathPointPayload.model_validate(data or {})
			index = room.add_destination_to_path(**payload.destination.model_dump())
		except (policy.RoomPolicyError, ValidationError) as exc:
			await self._reject(sid, "add-destination-to-path", exc)
			return
		obs_metrics.inc_path_mutation("add")
		logger.info("path point added room=%s index=%s", room.code, index)
		await self._broadcast_path(room, "New destination added to path")

	async def on_update_destination_in_path(self, sid: str, data: Optional[dict] = None) -> None:
		obs_metrics.socket_event(self.namespace, "update-destination-in-path")
		try:
			_, room = self._require_leader(sid, "update destinations in path")
			payload = schemas.UpdatePathPointPayload.model_validate(data or {})
			index = policy.ensure_index(room, payload.index)
			room.update_destination_in_path(index, payload.updates.model_dump(exclude_unset=True))
		except (policy.RoomPolicyError, ValidationError) as exc:
			await self._reject(sid, "update-destination-in-path", exc)
			return
		obs_metrics.inc_path_mutation("update")
		await self._broadcast_path(room, f"Destination {index + 1} updated")

	async def on_remove_destination_from_path(self, sid: str, data: Optional[dict] = None) -> None:
		obs_metrics.socket_event(self.namespace, "remove-destination-from-path")
		try:
			_, room = self._require_leader(sid, "remove destinations from path")
			payload = schemas.PathIndexPayload.model_validate(data or {})
			index = policy.ensure_index(room, payload.index)
			room.remove_destination_from_path(index)
		except (policy.RoomPolicyError, ValidationError) as exc:
			await self._reject(sid, "remove-destination-from-path", exc)
			return
		obs_metrics.inc_path_mutation("remove")
		logger.info("path point removed room=%s index=%s", room.code, index)
		await self._broadcast_path(room, "Destination removed from path")

	async def on_clear_destination_path(self, sid: str, data: Optional[dict] = None) -> None:
		obs_metrics.socket_event(self.namespace, "clear-destination-path")
		try:
			_, room = self._require_leader(sid, "clear destination path")
			room.clear_destination_path()
		except policy.RoomPolicyError as exc:
			await self._reject(sid, "clear-destination-path", exc)
			return
		obs_metrics.inc_path_mutation("clear")
		await self._broadcast_path(room, "Destination path cleared")

	async def on_set_current_destination_index(self, sid: str, data: Optional[dict] = None) -> None:
		obs_metrics.socket_event(self.namespace, "set-current-destination-index")
		try:
			_, room = self._require_leader(sid, "set current destination")
			payload = schemas.PathIndexPayload.model_validate(data or {})
			index = policy.ensure_index(room, payload.index)
			room.set_current_destination_index(index)
		except (policy.RoomPolicyError, ValidationError) as exc:
			await self._reject(sid, "set-current-destination-index", exc)
			return
		obs_metrics.inc_path_mutation("select")
		current = room.current_destination()
		body = path_payload(room, f"Now navigating to destination {index + 1}")
		body["currentDestination"] = current.to_dict() if current else None
		await self.emit("current-destination-updated", body, room=self.room_channel(room.code))

	# Server-originated fanout used by the HTTP gateway

	async def broadcast(self, code: str, event: str, payload: dict) -> None:
		obs_metrics.socket_event(self.namespace, event)
		await self.emit(event, payload, room=self.room_channel(code))

	async def evict_user(self, code: str, user_id: str) -> None:
		"""Detach every socket of a member that is no longer part of the room."""
		sids = [
			sid
			for sid, session in self._sessions.items()
			if session.room_code == code and session.user_id == user_id
		]
		for sid in sids:
			self._sessions.pop(sid, None)
		for sid in sids:
			await self.leave_room(sid, self.room_channel(code))
			await self.leave_room(sid, self.user_channel(code, user_id))

	async def close(self, code: str) -> None:
		"""Forget all sockets of a deleted room and close its channel."""
		closed: List[Tuple[str, SocketSession]] = [
			(sid, session) for sid, session in self._sessions.items() if session.room_code == code
		]
		for sid, _ in closed:
			self._sessions.pop(sid, None)
		await self.close_room(self.room_channel(code))
		for _, session in closed:
			await self.close_room(self.user_channel(code, session.user_id))

	# Helpers

	async def _broadcast_path(self, room: models.Room, message: str) -> None:
		await self.emit(
			"destination-path-updated",
			path_payload(room, message),
			room=self.room_channel(room.code),
		)

	def _require_session(self, sid: str) -> SocketSession:
		session = self._sessions.get(sid)
		if session is None:
			raise policy.UnauthorizedError("not_in_room", message="Not in any room")
		return session

	def _require_room(self, session: SocketSession) -> models.Room:
		return policy.ensure_room(self._store.get(session.room_code))

	def _require_leader(self, sid: str, action: str) -> Tuple[SocketSession, models.Room]:
		session = self._require_session(sid)
		room = self._require_room(session)
		policy.ensure_leader(room, session.user_id, action)
		return session, room

	async def _reject(self, sid: str, event: str, exc: Exception) -> None:
		if isinstance(exc, ValidationError):
			code, message = "invalid_payload", _validation_message(exc)
		elif isinstance(exc, policy.RoomPolicyError):
			code, message = exc.code, exc.detail
		else:  # pragma: no cover - handlers only pass the two types above
			code, message = "internal_error", "Request failed"
		obs_metrics.socket_reject(event, code)
		logger.info("socket intent rejected event=%s code=%s", event, code)
		await self.emit("error", {"event": event, "code": code, "message": message}, room=sid)
