from unittest.mock import AsyncMock, Mock

import pytest

from rallypoint.domain.rooms.reaper import JOB_NAME, RoomReaper, sweep_inactive_rooms

RETENTION = 24 * 3600


def test_idle_room_without_online_members_is_swept(room_store, clock):
    room = room_store.create("IDLE01", "leader", {"name": "Lea"})
    room.mark_offline("leader")
    clock.advance(RETENTION + 1)

    deleted = sweep_inactive_rooms(room_store, RETENTION)

    assert deleted == ["IDLE01"]
    assert room_store.get("IDLE01") is None
    assert room_store.room_code_for_user("leader") is None


def test_room_with_online_member_is_never_swept(room_store, clock):
    room_store.create("LIVE01", "leader", {"name": "Lea"})
    clock.advance(RETENTION * 10)

    assert sweep_inactive_rooms(room_store, RETENTION) == []
    assert room_store.get("LIVE01") is not None


def test_recently_active_room_is_kept(room_store, clock):
    room = room_store.create("RECENT", "leader", {"name": "Lea"})
    clock.advance(RETENTION - 60)
    room.mark_offline("leader")
    clock.advance(120)

    assert sweep_inactive_rooms(room_store, RETENTION) == []


def test_empty_admin_room_expires(room_store, clock):
    room_store.create("ADMIN1", is_admin_created=True)
    clock.advance(RETENTION + 1)
    assert sweep_inactive_rooms(room_store, RETENTION) == ["ADMIN1"]


@pytest.mark.asyncio
async def test_run_once_closes_channels_of_deleted_rooms(room_store, clock):
    room = room_store.create("IDLE01", "leader", {"name": "Lea"})
    room.mark_offline("leader")
    clock.advance(RETENTION + 1)
    events = AsyncMock()
    reaper = RoomReaper(room_store, retention_seconds=RETENTION, interval_seconds=3600, events=events)

    deleted = await reaper.run_once()

    assert deleted == ["IDLE01"]
    events.close.assert_awaited_once_with("IDLE01")


@pytest.mark.asyncio
async def test_start_schedules_interval_job(room_store):
    reaper = RoomReaper(room_store, retention_seconds=RETENTION, interval_seconds=60)
    reaper.start()
    try:
        assert reaper.scheduler.running
        assert reaper.scheduler.job_ids() == [JOB_NAME]
    finally:
        reaper.stop()
    assert not reaper.scheduler.running


def test_room_deleted_elsewhere_during_sweep_is_skipped(room_store, clock, monkeypatch):
    for code in ("GONE01", "IDLE01"):
        room = room_store.create(code, f"leader-{code}", {"name": "Lea"})
        room.mark_offline(f"leader-{code}")
    clock.advance(RETENTION + 1)
    stale_codes = list(room_store.codes())
    room_store.delete("GONE01")
    monkeypatch.setattr(room_store, "codes", lambda: stale_codes)

    assert sweep_inactive_rooms(room_store, RETENTION) == ["IDLE01"]


def test_room_removed_by_racing_delete_is_not_reported(room_store, clock, monkeypatch):
    room = room_store.create("RACE01", "leader", {"name": "Lea"})
    room.mark_offline("leader")
    clock.advance(RETENTION + 1)
    original_delete = room_store.delete

    def racing_delete(code):
        original_delete(code)
        return original_delete(code)

    monkeypatch.setattr(room_store, "delete", racing_delete)

    assert sweep_inactive_rooms(room_store, RETENTION) == []
    assert room_store.get("RACE01") is None


def test_idle_room_with_members_that_never_connected_is_swept(room_store, clock):
    room_store.create("HTTP01", "leader", {"name": "Lea"})
    clock.advance(RETENTION + 1)

    deleted = sweep_inactive_rooms(room_store, RETENTION, is_connected=lambda code, user_id: False)

    assert deleted == ["HTTP01"]


def test_connected_member_keeps_idle_room_alive(room_store, clock):
    room = room_store.create("LIVE01", "leader", {"name": "Lea"})
    clock.advance(RETENTION + 1)

    deleted = sweep_inactive_rooms(room_store, RETENTION, is_connected=lambda code, user_id: True)

    assert deleted == []
    assert room.users["leader"].online is True


def test_detached_members_of_active_room_stay_online(room_store, clock):
    room = room_store.create("BUSY01", "leader", {"name": "Lea"})
    clock.advance(60)

    assert sweep_inactive_rooms(room_store, RETENTION, is_connected=lambda code, user_id: False) == []
    assert room.users["leader"].online is True


@pytest.mark.asyncio
async def test_run_once_releases_members_without_sockets(room_store, clock):
    room_store.create("HTTP01", "leader", {"name": "Lea"})
    clock.advance(RETENTION + 1)
    events = AsyncMock()
    events.has_session = Mock(return_value=False)
    reaper = RoomReaper(room_store, retention_seconds=RETENTION, interval_seconds=3600, events=events)

    assert await reaper.run_once() == ["HTTP01"]
    events.has_session.assert_called_once_with("HTTP01", "leader")
    events.close.assert_awaited_once_with("HTTP01")
