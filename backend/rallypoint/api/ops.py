"""Operations endpoints providing health checks and metrics."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Header, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from rallypoint.api.admin import require_admin
from rallypoint.settings import settings

router = APIRouter(prefix="", tags=["ops"])


async def require_metrics_access(
	X_Admin_Token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
	authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> None:
	if settings.obs_metrics_public:
		return
	await require_admin(X_Admin_Token=X_Admin_Token, authorization=authorization)


@router.get("/health/live")
async def health_live() -> dict[str, str]:
	return {"status": "ok"}


@router.get("/health/ready")
async def health_ready(request: Request) -> dict:
	store = request.app.state.room_store
	namespace = request.app.state.rooms_namespace
	reaper = getattr(request.app.state, "room_reaper", None)
	return {
		"status": "ok",
		"service": settings.service_name,
		"version": settings.git_commit,
		"rooms": len(store),
		"connections": namespace.session_count(),
		"reaper": bool(reaper and reaper.scheduler.running),
	}


@router.get("/metrics")
async def prometheus_metrics(_: None = Depends(require_metrics_access)) -> Response:
	payload = generate_latest()
	return Response(content=payload, media_type=CONTENT_TYPE_LATEST)
