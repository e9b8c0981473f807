"""Rooms domain exports."""

from .models import Room
from .reaper import RoomReaper, sweep_inactive_rooms
from .service import RoomService
from .sockets import RoomsNamespace
from .store import RoomStore

__all__ = ["Room", "RoomReaper", "RoomService", "RoomStore", "RoomsNamespace", "sweep_inactive_rooms"]
