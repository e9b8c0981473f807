import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from rallypoint.domain.rooms import RoomStore
from rallypoint.main import create_app
from rallypoint.settings import settings

ADMIN_TOKEN = "test-admin-token"


class FakeClock:
	"""Deterministic clock handed to rooms so tests can move time forward."""

	def __init__(self, start: datetime | None = None) -> None:
		self.now = start or datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

	def __call__(self) -> datetime:
		return self.now

	def advance(self, seconds: float) -> datetime:
		self.now += timedelta(seconds=seconds)
		return self.now


@pytest.fixture
def clock() -> FakeClock:
	return FakeClock()


@pytest.fixture
def room_store(clock) -> RoomStore:
	return RoomStore(clock=clock)


@pytest.fixture
def admin_token(monkeypatch) -> str:
	monkeypatch.setattr(settings, "admin_token", ADMIN_TOKEN)
	return ADMIN_TOKEN


@pytest.fixture
def admin_headers(admin_token) -> dict:
	return {"X-Admin-Token": admin_token}


@pytest.fixture
def app(room_store):
	application = create_app(room_store)
	namespace = application.state.rooms_namespace
	namespace.emit = AsyncMock()
	namespace.enter_room = AsyncMock()
	namespace.leave_room = AsyncMock()
	namespace.close_room = AsyncMock()
	return application


@pytest_asyncio.fixture
async def api_client(app):
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client
