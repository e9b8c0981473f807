"""Process-wide in-memory registry of rooms."""

from __future__ import annotations

import secrets
import string
from datetime import datetime
from typing import Callable, Dict, List, Optional

from rallypoint.domain.rooms import models
from rallypoint.domain.rooms.errors import DuplicateCodeError, NotFoundError
from rallypoint.obs import metrics as obs_metrics

CODE_ALPHABET = string.ascii_uppercase + string.digits


class RoomStore:
	"""Maps room codes to rooms and user ids to the code of their room.

	The user index lets location updates, which only carry a user id, find
	their room without scanning. Entries in it always point at a stored room.
	"""

	def __init__(
		self,
		*,
		code_length: int = 6,
		history_limit: int = models.DEFAULT_HISTORY_LIMIT,
		clock: Callable[[], datetime] = models.utcnow,
	) -> None:
		self._rooms: Dict[str, models.Room] = {}
		self._user_rooms: Dict[str, str] = {}
		self._code_length = code_length
		self._history_limit = history_limit
		self._clock = clock

	def __len__(self) -> int:
		return len(self._rooms)

	def __contains__(self, code: object) -> bool:
		return code in self._rooms

	def generate_code(self) -> str:
		return "".join(secrets.choice(CODE_ALPHABET) for _ in range(self._code_length))

	def create(
		self,
		code: str,
		initial_leader_id: Optional[str] = None,
		leader_data: Optional[dict] = None,
		*,
		room_name: Optional[str] = None,
		is_public: bool = False,
		is_admin_created: bool = False,
	) -> models.Room:
		if code in self._rooms:
			raise DuplicateCodeError(code)
		room = models.Room(
			code,
			room_name=room_name,
			is_public=is_public,
			is_admin_created=is_admin_created,
			history_limit=self._history_limit,
			clock=self._clock,
		)
		if initial_leader_id is not None:
			data = leader_data or {}
			room.add_user(
				initial_leader_id,
				data.get("name") or "Leader",
				data.get("color"),
				data.get("icon"),
			)
			room.add_leader(initial_leader_id)
		self._rooms[code] = room
		if initial_leader_id is not None:
			self._user_rooms[initial_leader_id] = code
		obs_metrics.set_rooms_active(len(self._rooms))
		return room

	def get(self, code: str) -> Optional[models.Room]:
		return self._rooms.get(code)

	def require(self, code: str) -> models.Room:
		room = self._rooms.get(code)
		if room is None:
			raise NotFoundError("room_not_found", message="Room not found")
		return room

	def delete(self, code: str) -> Optional[models.Room]:
		room = self._rooms.pop(code, None)
		if room is None:
			return None
		stale = [uid for uid, mapped in self._user_rooms.items() if mapped == code]
		for uid in stale:
			del self._user_rooms[uid]
		obs_metrics.set_rooms_active(len(self._rooms))
		return room

	def map_user_to_room(self, user_id: str, code: str) -> None:
		if code not in self._rooms:
			raise NotFoundError("room_not_found", message="Room not found")
		self._user_rooms[user_id] = code

	def unmap_user(self, user_id: str) -> None:
		self._user_rooms.pop(user_id, None)

	def room_code_for_user(self, user_id: str) -> Optional[str]:
		return self._user_rooms.get(user_id)

	def room_for_user(self, user_id: str) -> Optional[models.Room]:
		code = self._user_rooms.get(user_id)
		return self._rooms.get(code) if code else None

	def codes(self) -> List[str]:
		return list(self._rooms.keys())

	def rooms(self) -> List[models.Room]:
		return list(self._rooms.values())
