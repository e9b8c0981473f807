"""Periodic deletion of rooms nobody has been present in for a while."""

from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import TYPE_CHECKING, Callable, List, Optional

from rallypoint.domain.rooms.models import Room
from rallypoint.domain.rooms.store import RoomStore
from rallypoint.infra.scheduler import JobScheduler
from rallypoint.obs import metrics as obs_metrics

if TYPE_CHECKING:
	from rallypoint.domain.rooms.sockets import RoomsNamespace

logger = logging.getLogger(__name__)

JOB_NAME = "room_reaper"

# (room_code, user_id) -> whether a socket is currently joined as that member.
ConnectedCheck = Callable[[str, str], bool]


def _release_detached_members(room: Room, is_connected: ConnectedCheck) -> int:
	released = 0
	for member in list(room.users.values()):
		if member.online and not is_connected(room.code, member.id):
			room.mark_offline(member.id, touch=False)
			released += 1
	return released


def sweep_inactive_rooms(
	store: RoomStore,
	retention_seconds: float,
	*,
	now: Optional[datetime] = None,
	is_connected: Optional[ConnectedCheck] = None,
) -> List[str]:
	"""Delete rooms with no online member and no activity within the window.

	Iterates over a snapshot of codes; a room deleted by someone else while
	the sweep runs is skipped. With ``is_connected``, members of an idle room
	that are flagged online but hold no socket (joined over HTTP and never
	connected) are marked offline first, so the room can expire.
	"""
	deleted: List[str] = []
	for code in store.codes():
		room = store.get(code)
		if room is None:
			continue
		if is_connected is not None and room.is_idle(retention_seconds, now=now):
			released = _release_detached_members(room, is_connected)
			if released:
				logger.info("reaper released detached members room=%s count=%s", code, released)
		if not room.should_reap(retention_seconds, now=now):
			continue
		if store.delete(code) is not None:
			deleted.append(code)
	if deleted:
		obs_metrics.inc_room_deleted("inactive", count=len(deleted))
		logger.info("reaper removed %s inactive rooms", len(deleted), extra={"codes": deleted})
	return deleted


class RoomReaper:
	def __init__(
		self,
		store: RoomStore,
		*,
		retention_seconds: float,
		interval_seconds: float,
		events: "RoomsNamespace | None" = None,
		scheduler: JobScheduler | None = None,
	) -> None:
		self._store = store
		self._retention_seconds = retention_seconds
		self._interval_seconds = interval_seconds
		self._events = events
		self._scheduler = scheduler or JobScheduler()

	@property
	def scheduler(self) -> JobScheduler:
		return self._scheduler

	def start(self) -> None:
		self._scheduler.start()
		self._scheduler.schedule_interval(JOB_NAME, self.run_once, seconds=self._interval_seconds)
		logger.info(
			"room reaper scheduled interval=%ss retention=%ss",
			self._interval_seconds,
			self._retention_seconds,
		)

	def stop(self) -> None:
		self._scheduler.shutdown()

	async def run_once(self) -> List[str]:
		start = time.perf_counter()
		try:
			is_connected = self._events.has_session if self._events is not None else None
			deleted = sweep_inactive_rooms(self._store, self._retention_seconds, is_connected=is_connected)
			if self._events is not None:
				for code in deleted:
					await self._events.close(code)
		except Exception:
			obs_metrics.record_job_run(JOB_NAME, result="error")
			logger.exception("room reaper iteration failed")
			raise
		obs_metrics.record_job_run(JOB_NAME, result="ok", duration_seconds=time.perf_counter() - start)
		return deleted


__all__ = ["JOB_NAME", "RoomReaper", "sweep_inactive_rooms"]
