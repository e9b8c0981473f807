"""Room aggregate: membership, leadership, locations and the shared path."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Set

from rallypoint.domain.rooms.errors import ConflictError, NotFoundError

DEFAULT_HISTORY_LIMIT = 50

# Fields a leader may change on an existing path point.
POINT_PATCH_FIELDS = ("note", "color", "size")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass(slots=True)
class Member:
    id: str
    name: str
    color: Optional[str]
    icon: Optional[str]
    online: bool
    joined_at: datetime
    last_seen: datetime

    def to_dict(self, *, is_leader: bool) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "color": self.color,
            "icon": self.icon,
            "isLeader": is_leader,
            "online": self.online,
            "joinedAt": _iso(self.joined_at),
            "lastSeen": _iso(self.last_seen),
        }


@dataclass(slots=True)
class Location:
    lat: float
    lng: float
    timestamp: datetime
    accuracy: Optional[float] = None
    altitude: Optional[float] = None
    bearing: Optional[float] = None
    speed: Optional[float] = None

    def to_dict(self) -> dict:
        payload: Dict[str, Any] = {"lat": self.lat, "lng": self.lng}
        for key in ("accuracy", "altitude", "bearing", "speed"):
            value = getattr(self, key)
            if value is not None:
                payload[key] = value
        payload["timestamp"] = _iso(self.timestamp)
        return payload


@dataclass(slots=True)
class Destination:
    """Ad hoc point a leader assigns to one member."""

    lat: float
    lng: float
    set_at: datetime
    note: Optional[str] = None

    def to_dict(self) -> dict:
        return {"lat": self.lat, "lng": self.lng, "note": self.note, "setAt": _iso(self.set_at)}


@dataclass(slots=True)
class DestinationPoint:
    lat: float
    lng: float
    added_at: datetime
    order: int = 0
    note: Optional[str] = None
    color: Optional[str] = None
    size: Optional[str] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "lat": self.lat,
            "lng": self.lng,
            "note": self.note,
            "color": self.color,
            "size": self.size,
            "order": self.order,
            "addedAt": _iso(self.added_at),
            "updatedAt": _iso(self.updated_at),
        }


class Room:
    """In-memory room state.

    Every method runs to completion without awaiting, so callers on the event
    loop see each mutation atomically. Leadership lives only in ``leader_ids``;
    the ``isLeader`` flag is derived when members are serialised.
    """

    def __init__(
        self,
        code: str,
        *,
        room_name: Optional[str] = None,
        is_public: bool = False,
        is_admin_created: bool = False,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._clock = clock
        now = clock()
        self.code = code
        self.room_name = room_name or f"Room {code}"
        self.is_public = is_public
        self.is_admin_created = is_admin_created
        self.history_limit = max(1, int(history_limit))
        self.created_at = now
        self.last_activity = now
        self.leader_ids: Set[str] = set()
        self.users: Dict[str, Member] = {}
        self.locations: Dict[str, Location] = {}
        self.location_history: Dict[str, List[Location]] = {}
        self.destinations: Dict[str, Destination] = {}
        self.destination_path: List[DestinationPoint] = []
        self.current_destination_index = 0

    def touch(self) -> None:
        self.last_activity = self._clock()

    # Membership

    def add_user(
        self,
        user_id: str,
        name: str,
        color: Optional[str] = None,
        icon: Optional[str] = None,
        *,
        online: bool = True,
    ) -> Member:
        if user_id in self.users:
            raise ConflictError("user_exists", message="User already in room")
        now = self._clock()
        member = Member(
            id=user_id,
            name=name,
            color=color,
            icon=icon,
            online=online,
            joined_at=now,
            last_seen=now,
        )
        self.users[user_id] = member
        self.location_history[user_id] = []
        self.touch()
        return member

    def remove_user(self, user_id: str) -> Optional[str]:
        """Drop a member and everything keyed by it.

        Returns the id of the member promoted in its place when the departing
        member was the only leader and others remain, otherwise None.
        """
        if user_id not in self.users:
            return None
        was_sole_leader = self.leader_ids == {user_id}
        del self.users[user_id]
        self.locations.pop(user_id, None)
        self.location_history.pop(user_id, None)
        self.destinations.pop(user_id, None)
        self.leader_ids.discard(user_id)
        successor: Optional[str] = None
        if was_sole_leader and self.users:
            successor = min(self.users.values(), key=lambda m: m.joined_at).id
            self.leader_ids.add(successor)
        self.touch()
        return successor

    def get_user(self, user_id: str) -> Optional[Member]:
        return self.users.get(user_id)

    def has_user(self, user_id: str) -> bool:
        return user_id in self.users

    def mark_offline(self, user_id: str, *, touch: bool = True) -> bool:
        member = self.users.get(user_id)
        if member is None:
            return False
        member.online = False
        member.last_seen = self._clock()
        if touch:
            self.touch()
        return True

    def reconnect(self, user_id: str) -> bool:
        member = self.users.get(user_id)
        if member is None:
            return False
        member.online = True
        member.last_seen = self._clock()
        self.touch()
        return True

    def find_by_name(self, name: str) -> Optional[Member]:
        wanted = (name or "").strip().casefold()
        if not wanted:
            return None
        for member in self.users.values():
            if member.name.strip().casefold() == wanted:
                return member
        return None

    def online_count(self) -> int:
        return sum(1 for member in self.users.values() if member.online)

    # Leadership

    def is_leader(self, user_id: str) -> bool:
        return user_id in self.leader_ids

    def add_leader(self, user_id: str) -> None:
        if user_id not in self.users:
            raise NotFoundError("user_not_found", message="User not in room")
        self.leader_ids.add(user_id)
        self.touch()

    def remove_leader(self, user_id: str) -> bool:
        if user_id not in self.leader_ids:
            raise NotFoundError("not_leader", message="User is not a leader")
        if len(self.leader_ids) <= 1:
            return False
        self.leader_ids.discard(user_id)
        self.touch()
        return True

    def leader_ids_sorted(self) -> List[str]:
        return sorted(self.leader_ids, key=lambda uid: (self.users[uid].joined_at, uid))

    # Locations

    def update_location(
        self,
        user_id: str,
        *,
        lat: float,
        lng: float,
        accuracy: Optional[float] = None,
        altitude: Optional[float] = None,
        bearing: Optional[float] = None,
        speed: Optional[float] = None,
    ) -> Location:
        if user_id not in self.users:
            raise NotFoundError("user_not_found", message="User not in room")
        location = Location(
            lat=lat,
            lng=lng,
            timestamp=self._clock(),
            accuracy=accuracy,
            altitude=altitude,
            bearing=bearing,
            speed=speed,
        )
        self.locations[user_id] = location
        history = self.location_history.setdefault(user_id, [])
        history.append(location)
        if len(history) > self.history_limit:
            del history[: len(history) - self.history_limit]
        return location

    def get_location_history(
        self,
        user_id: str,
        window_seconds: float,
        *,
        now: Optional[datetime] = None,
    ) -> List[Location]:
        cutoff = (now or self._clock()) - timedelta(seconds=window_seconds)
        return [loc for loc in self.location_history.get(user_id, []) if loc.timestamp > cutoff]

    # Ad hoc destinations

    def set_destination(self, user_id: str, *, lat: float, lng: float, note: Optional[str] = None) -> Destination:
        if user_id not in self.users:
            raise NotFoundError("user_not_found", message="Target user not in room")
        destination = Destination(lat=lat, lng=lng, note=note, set_at=self._clock())
        self.destinations[user_id] = destination
        self.touch()
        return destination

    def remove_destination(self, user_id: str) -> bool:
        removed = self.destinations.pop(user_id, None) is not None
        if removed:
            self.touch()
        return removed

    # Shared destination path

    def add_destination_to_path(
        self,
        *,
        lat: float,
        lng: float,
        note: Optional[str] = None,
        color: Optional[str] = None,
        size: Optional[str] = None,
    ) -> int:
        point = DestinationPoint(
            lat=lat,
            lng=lng,
            note=note,
            color=color,
            size=size,
            added_at=self._clock(),
            order=len(self.destination_path),
        )
        self.destination_path.append(point)
        self.current_destination_index = len(self.destination_path) - 1
        self.touch()
        return self.current_destination_index

    def update_destination_in_path(self, index: int, patch: Mapping[str, Any]) -> bool:
        if not 0 <= index < len(self.destination_path):
            return False
        point = self.destination_path[index]
        for key in POINT_PATCH_FIELDS:
            if key in patch:
                setattr(point, key, patch[key])
        point.updated_at = self._clock()
        self.touch()
        return True

    def remove_destination_from_path(self, index: int) -> bool:
        if not 0 <= index < len(self.destination_path):
            return False
        del self.destination_path[index]
        for position in range(index, len(self.destination_path)):
            self.destination_path[position].order = position
        self._clamp_index()
        self.touch()
        return True

    def clear_destination_path(self) -> None:
        self.destination_path.clear()
        self.current_destination_index = 0
        self.touch()

    def replace_destination_path(self, points: Iterable[tuple[float, float]]) -> int:
        """Clear the path, then append each point as ``add_destination_to_path`` would.

        The pointer ends on the last imported point, or 0 for an empty import.
        """
        now = self._clock()
        path = [
            DestinationPoint(lat=lat, lng=lng, added_at=now, order=position)
            for position, (lat, lng) in enumerate(points)
        ]
        self.destination_path = path
        self.current_destination_index = max(len(path) - 1, 0)
        self.touch()
        return len(path)

    def set_current_destination_index(self, index: int) -> bool:
        if not 0 <= index < len(self.destination_path):
            return False
        self.current_destination_index = index
        self.touch()
        return True

    def current_destination(self) -> Optional[DestinationPoint]:
        if not self.destination_path:
            return None
        return self.destination_path[self.current_destination_index]

    def _clamp_index(self) -> None:
        if not self.destination_path:
            self.current_destination_index = 0
        else:
            self.current_destination_index = min(
                max(self.current_destination_index, 0), len(self.destination_path) - 1
            )

    # Housekeeping

    def is_idle(self, inactivity_seconds: float, *, now: Optional[datetime] = None) -> bool:
        idle = (now or self._clock()) - self.last_activity
        return idle > timedelta(seconds=inactivity_seconds)

    def should_reap(self, inactivity_seconds: float, *, now: Optional[datetime] = None) -> bool:
        if self.online_count() > 0:
            return False
        return self.is_idle(inactivity_seconds, now=now)

    # Serialisation

    def path_to_list(self) -> List[dict]:
        return [point.to_dict() for point in self.destination_path]

    def member_to_dict(self, user_id: str) -> dict:
        member = self.users[user_id]
        payload = member.to_dict(is_leader=user_id in self.leader_ids)
        location = self.locations.get(user_id)
        destination = self.destinations.get(user_id)
        payload["location"] = location.to_dict() if location else None
        payload["destination"] = destination.to_dict() if destination else None
        return payload

    def to_summary(self) -> dict:
        return {
            "code": self.code,
            "roomName": self.room_name,
            "isPublic": self.is_public,
            "isAdminCreated": self.is_admin_created,
            "leaderIds": self.leader_ids_sorted(),
            "userCount": len(self.users),
            "onlineCount": self.online_count(),
            "createdAt": _iso(self.created_at),
        }

    def to_dict(self) -> dict:
        payload = self.to_summary()
        payload.update(
            {
                "lastActivity": _iso(self.last_activity),
                "users": [self.member_to_dict(uid) for uid in self.users],
                "destinationPath": self.path_to_list(),
                "currentDestinationIndex": self.current_destination_index,
            }
        )
        return payload
