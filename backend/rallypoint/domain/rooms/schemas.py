"""Pydantic schemas for the rooms API and real-time payloads.

Field names are snake_case in Python and camelCase on the wire.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

EXPORT_FORMATS = ("json", "gpx", "csv")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MemberProfile(CamelModel):
    name: str = Field(..., min_length=1, max_length=40)
    color: Optional[str] = Field(default=None, max_length=32)
    icon: Optional[str] = Field(default=None, max_length=16)


class RoomCreateRequest(MemberProfile):
    pass


class RoomJoinRequest(MemberProfile):
    pass


class LeaveRequest(CamelModel):
    user_id: str = Field(..., min_length=1)


class RoomResponse(CamelModel):
    success: bool = True
    room: Dict[str, Any]


class RoomJoinResponse(RoomResponse):
    user_id: str
    reconnected: bool = False


class MessageResponse(CamelModel):
    success: bool = True
    message: str


class RoomListResponse(CamelModel):
    success: bool = True
    rooms: List[Dict[str, Any]]


class AdminRoomCreateRequest(CamelModel):
    room_name: Optional[str] = Field(default=None, max_length=80)
    is_public: bool = True


class AdminRoomUpdateRequest(CamelModel):
    room_name: Optional[str] = Field(default=None, max_length=80)
    is_public: Optional[bool] = None


class AssignLeaderRequest(CamelModel):
    user_id: Optional[str] = None
    user_name: Optional[str] = Field(default=None, max_length=40)
    color: Optional[str] = Field(default=None, max_length=32)
    icon: Optional[str] = Field(default=None, max_length=16)


class GpxImportResponse(RoomResponse):
    imported: int


# Real-time payloads


class JoinRoomPayload(CamelModel):
    room_code: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)


class LocationPayload(CamelModel):
    lat: float = Field(..., ge=-90.0, le=90.0)
    lng: float = Field(..., ge=-180.0, le=180.0)
    accuracy: Optional[float] = Field(default=None, ge=0)
    altitude: Optional[float] = None
    bearing: Optional[float] = Field(default=None, validation_alias=AliasChoices("bearing", "heading"))
    speed: Optional[float] = None


class LocationUpdatePayload(CamelModel):
    user_id: Optional[str] = None
    location: LocationPayload


class DestinationPayload(CamelModel):
    lat: float = Field(..., ge=-90.0, le=90.0)
    lng: float = Field(..., ge=-180.0, le=180.0)
    note: Optional[str] = Field(default=None, max_length=500)


class SetDestinationPayload(CamelModel):
    target_user_id: str = Field(..., min_length=1)
    destination: DestinationPayload


class TargetUserPayload(CamelModel):
    target_user_id: str = Field(..., min_length=1)


class PathPointPayload(DestinationPayload):
    color: Optional[str] = Field(default=None, max_length=32)
    size: Optional[str] = Field(default=None, max_length=16)


class AddPathPointPayload(CamelModel):
    destination: PathPointPayload


class PathPointPatch(CamelModel):
    """Fields a leader may change on an existing point; anything else is dropped."""

    note: Optional[str] = Field(default=None, max_length=500)
    color: Optional[str] = Field(default=None, max_length=32)
    size: Optional[str] = Field(default=None, max_length=16)


class UpdatePathPointPayload(CamelModel):
    index: int
    updates: PathPointPatch


class PathIndexPayload(CamelModel):
    index: int


class LocationHistoryRequest(CamelModel):
    user_id: str = Field(..., min_length=1)
    time_range: Optional[int] = Field(default=None, ge=0, description="Window in milliseconds")
