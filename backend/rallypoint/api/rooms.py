"""FastAPI routes for creating, joining and leaving rooms."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from rallypoint.api.deps import get_room_service
from rallypoint.domain.rooms import RoomService, policy, schemas

router = APIRouter(prefix="/api", tags=["rooms"])


def _as_http_error(exc: Exception) -> HTTPException:
	if isinstance(exc, policy.RoomPolicyError):
		return HTTPException(status_code=exc.status_code, detail=exc.detail)
	return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


@router.post("/rooms", response_model=schemas.RoomJoinResponse, status_code=status.HTTP_201_CREATED)
async def create_room_endpoint(
	payload: schemas.RoomCreateRequest,
	service: RoomService = Depends(get_room_service),
) -> schemas.RoomJoinResponse:
	try:
		room, user_id = await service.create_room(payload)
	except policy.RoomPolicyError as exc:
		raise _as_http_error(exc) from exc
	return schemas.RoomJoinResponse(room=room.to_dict(), user_id=user_id)


@router.post("/rooms/{code}/join", response_model=schemas.RoomJoinResponse)
async def join_room_endpoint(
	code: str,
	payload: schemas.RoomJoinRequest,
	service: RoomService = Depends(get_room_service),
) -> schemas.RoomJoinResponse:
	try:
		room, user_id, reconnected = await service.join_room(code, payload)
	except policy.RoomPolicyError as exc:
		raise _as_http_error(exc) from exc
	return schemas.RoomJoinResponse(room=room.to_dict(), user_id=user_id, reconnected=reconnected)


@router.get("/rooms/{code}", response_model=schemas.RoomResponse)
async def get_room_endpoint(
	code: str,
	service: RoomService = Depends(get_room_service),
) -> schemas.RoomResponse:
	try:
		room = await service.get_room(code)
	except policy.RoomPolicyError as exc:
		raise _as_http_error(exc) from exc
	return schemas.RoomResponse(room=room.to_dict())


@router.post("/rooms/{code}/leave", response_model=schemas.MessageResponse)
async def leave_room_endpoint(
	code: str,
	payload: schemas.LeaveRequest,
	service: RoomService = Depends(get_room_service),
) -> schemas.MessageResponse:
	try:
		await service.leave_room(code, payload.user_id)
	except policy.RoomPolicyError as exc:
		raise _as_http_error(exc) from exc
	return schemas.MessageResponse(message="Left room")


@router.get("/rooms/{code}/export")
async def export_path_endpoint(
	code: str,
	format: Optional[str] = Query(default="json"),  # noqa: A002 - public query name
	service: RoomService = Depends(get_room_service),
) -> Response:
	try:
		exported = await service.export_path(code, format)
	except policy.RoomPolicyError as exc:
		raise _as_http_error(exc) from exc
	return Response(
		content=exported.content,
		media_type=exported.media_type,
		headers={"Content-Disposition": f'attachment; filename="{exported.filename}"'},
	)


@router.get("/public-rooms", response_model=schemas.RoomListResponse)
async def list_public_rooms_endpoint(
	service: RoomService = Depends(get_room_service),
) -> schemas.RoomListResponse:
	return schemas.RoomListResponse(rooms=await service.list_public_rooms())
