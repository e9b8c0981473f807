"""Admin routes for managing pre-provisioned rooms."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, File, Header, HTTPException, UploadFile, status

from rallypoint.api.deps import get_room_service
from rallypoint.domain.rooms import RoomService, policy, schemas
from rallypoint.settings import settings


def _resolve_token(x_admin_token: Optional[str], authorization: Optional[str]) -> Optional[str]:
	if x_admin_token:
		return x_admin_token
	if authorization and authorization.lower().startswith("bearer "):
		return authorization.split(" ", 1)[1]
	return None


async def require_admin(
	X_Admin_Token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
	authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> None:
	token = settings.admin_token
	if not token:
		# Fail closed: without a configured token no admin access is allowed.
		raise HTTPException(status.HTTP_403_FORBIDDEN, detail="admin_token_not_configured")
	provided = _resolve_token(X_Admin_Token, authorization)
	if provided != token:
		raise HTTPException(status.HTTP_403_FORBIDDEN, detail="forbidden")


router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)])


def _as_http_error(exc: policy.RoomPolicyError) -> HTTPException:
	return HTTPException(status_code=exc.status_code, detail=exc.detail)


@router.post("/rooms", response_model=schemas.RoomResponse, status_code=status.HTTP_201_CREATED)
async def create_admin_room_endpoint(
	payload: schemas.AdminRoomCreateRequest,
	service: RoomService = Depends(get_room_service),
) -> schemas.RoomResponse:
	try:
		room = await service.create_admin_room(payload)
	except policy.RoomPolicyError as exc:
		raise _as_http_error(exc) from exc
	return schemas.RoomResponse(room=room.to_dict())


@router.get("/rooms", response_model=schemas.RoomListResponse)
async def list_admin_rooms_endpoint(
	service: RoomService = Depends(get_room_service),
) -> schemas.RoomListResponse:
	return schemas.RoomListResponse(rooms=await service.list_admin_rooms())


@router.get("/rooms/{code}", response_model=schemas.RoomResponse)
async def get_admin_room_endpoint(
	code: str,
	service: RoomService = Depends(get_room_service),
) -> schemas.RoomResponse:
	try:
		room = await service.get_room(code)
	except policy.RoomPolicyError as exc:
		raise _as_http_error(exc) from exc
	return schemas.RoomResponse(room=room.to_dict())


@router.put("/rooms/{code}", response_model=schemas.RoomResponse)
async def update_admin_room_endpoint(
	code: str,
	payload: schemas.AdminRoomUpdateRequest,
	service: RoomService = Depends(get_room_service),
) -> schemas.RoomResponse:
	try:
		room = await service.update_room(code, payload)
	except policy.RoomPolicyError as exc:
		raise _as_http_error(exc) from exc
	return schemas.RoomResponse(room=room.to_dict())


@router.delete("/rooms/{code}", response_model=schemas.MessageResponse)
async def delete_admin_room_endpoint(
	code: str,
	service: RoomService = Depends(get_room_service),
) -> schemas.MessageResponse:
	try:
		await service.delete_admin_room(code)
	except policy.RoomPolicyError as exc:
		raise _as_http_error(exc) from exc
	return schemas.MessageResponse(message="Room deleted")


@router.post("/rooms/{code}/leaders", response_model=schemas.RoomResponse)
async def assign_leader_endpoint(
	code: str,
	payload: schemas.AssignLeaderRequest,
	service: RoomService = Depends(get_room_service),
) -> schemas.RoomResponse:
	try:
		room = await service.assign_leader(code, payload)
	except policy.RoomPolicyError as exc:
		raise _as_http_error(exc) from exc
	return schemas.RoomResponse(room=room.to_dict())


@router.delete("/rooms/{code}/leaders/{user_id}", response_model=schemas.RoomResponse)
async def remove_leader_endpoint(
	code: str,
	user_id: str,
	service: RoomService = Depends(get_room_service),
) -> schemas.RoomResponse:
	try:
		room = await service.remove_leader(code, user_id)
	except policy.RoomPolicyError as exc:
		raise _as_http_error(exc) from exc
	return schemas.RoomResponse(room=room.to_dict())


@router.delete("/rooms/{code}/users/{user_id}", response_model=schemas.MessageResponse)
async def remove_user_endpoint(
	code: str,
	user_id: str,
	service: RoomService = Depends(get_room_service),
) -> schemas.MessageResponse:
	try:
		await service.remove_user(code, user_id)
	except policy.RoomPolicyError as exc:
		raise _as_http_error(exc) from exc
	return schemas.MessageResponse(message="User removed")


@router.post("/rooms/{code}/upload-gpx", response_model=schemas.GpxImportResponse)
async def upload_gpx_endpoint(
	code: str,
	gpx_file: UploadFile = File(..., alias="gpxFile"),
	service: RoomService = Depends(get_room_service),
) -> schemas.GpxImportResponse:
	# One byte past the limit is enough to detect an oversized upload.
	raw = await gpx_file.read(settings.gpx_max_bytes + 1)
	try:
		room, imported = await service.import_gpx(code, raw)
	except policy.RoomPolicyError as exc:
		raise _as_http_error(exc) from exc
	finally:
		await gpx_file.close()
	return schemas.GpxImportResponse(room=room.to_dict(), imported=imported)
