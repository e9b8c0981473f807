from unittest.mock import AsyncMock, Mock

import pytest

from rallypoint.domain.rooms import policy
from rallypoint.domain.rooms.schemas import (
    AdminRoomCreateRequest,
    AdminRoomUpdateRequest,
    AssignLeaderRequest,
    RoomCreateRequest,
    RoomJoinRequest,
)
from rallypoint.domain.rooms.service import RoomService
from rallypoint.settings import settings

TRACK_GPX = b"""<?xml version="1.0"?>
<gpx version="1.1" creator="test"><trk><trkseg>
<trkpt lat="10.0" lon="20.0"></trkpt><trkpt lat="11.0" lon="21.0"></trkpt>
</trkseg></trk></gpx>"""


@pytest.fixture
def events():
    events = AsyncMock()
    events.has_session = Mock(return_value=False)
    return events


@pytest.fixture
def service(room_store, events):
    return RoomService(room_store, events)


def _broadcasts(events, name):
    return [call.args[2] for call in events.broadcast.await_args_list if call.args[1] == name]


@pytest.mark.asyncio
async def test_create_room_makes_creator_sole_leader(service, room_store):
    room, user_id = await service.create_room(RoomCreateRequest(name="Lea", color="#f00"))
    assert room.leader_ids == {user_id}
    assert room.users[user_id].name == "Lea"
    assert room_store.room_code_for_user(user_id) == room.code
    assert len(room.code) == settings.room_code_length


@pytest.mark.asyncio
async def test_create_room_retries_on_code_collision(service, room_store, monkeypatch):
    room_store.create("TAKEN1", "someone", {"name": "Someone"})
    codes = iter(["TAKEN1", "FRESH1"])
    monkeypatch.setattr(room_store, "generate_code", lambda: next(codes))

    room, _ = await service.create_room(RoomCreateRequest(name="Lea"))

    assert room.code == "FRESH1"


@pytest.mark.asyncio
async def test_create_room_gives_up_when_codes_exhausted(service, room_store, monkeypatch):
    room_store.create("TAKEN1", "someone", {"name": "Someone"})
    monkeypatch.setattr(room_store, "generate_code", lambda: "TAKEN1")
    with pytest.raises(policy.ConflictError) as excinfo:
        await service.create_room(RoomCreateRequest(name="Lea"))
    assert excinfo.value.code == "code_exhausted"


@pytest.mark.asyncio
async def test_join_adds_member_without_leadership(service):
    room, leader_id = await service.create_room(RoomCreateRequest(name="Lea"))
    _, user_id, reconnected = await service.join_room(room.code, RoomJoinRequest(name="Max"))
    assert reconnected is False
    assert room.has_user(user_id)
    assert room.leader_ids == {leader_id}


@pytest.mark.asyncio
async def test_join_unknown_room_is_not_found(service):
    with pytest.raises(policy.NotFoundError):
        await service.join_room("NOPE00", RoomJoinRequest(name="Max"))


@pytest.mark.asyncio
async def test_join_with_name_of_connected_member_conflicts(service, events):
    room, leader_id = await service.create_room(RoomCreateRequest(name="Lea"))
    events.has_session.return_value = True
    with pytest.raises(policy.ConflictError) as excinfo:
        await service.join_room(room.code, RoomJoinRequest(name=" lea "))
    assert excinfo.value.code == "name_taken"
    events.has_session.assert_called_once_with(room.code, leader_id)


@pytest.mark.asyncio
async def test_join_reclaims_name_of_member_that_never_connected(service, events):
    room, leader_id = await service.create_room(RoomCreateRequest(name="Lea"))
    assert room.users[leader_id].online

    _, user_id, reconnected = await service.join_room(room.code, RoomJoinRequest(name="Lea"))

    assert (user_id, reconnected) == (leader_id, True)
    assert len(room.users) == 1
    events.has_session.assert_called_once_with(room.code, leader_id)


@pytest.mark.asyncio
async def test_join_with_name_of_offline_member_reconnects(service):
    room, leader_id = await service.create_room(RoomCreateRequest(name="Lea"))
    room.mark_offline(leader_id)

    _, user_id, reconnected = await service.join_room(room.code, RoomJoinRequest(name="LEA"))

    assert reconnected is True
    assert user_id == leader_id
    assert len(room.users) == 1


@pytest.mark.asyncio
async def test_first_joiner_of_admin_room_is_promoted(service, events):
    room = await service.create_admin_room(AdminRoomCreateRequest(room_name="Harbour walk"))
    assert room.leader_ids == set()

    _, first_id, _ = await service.join_room(room.code, RoomJoinRequest(name="Ann"))
    _, second_id, _ = await service.join_room(room.code, RoomJoinRequest(name="Ben"))

    assert room.leader_ids == {first_id}
    assert _broadcasts(events, "leader-role-updated") == [
        {"userId": first_id, "userName": "Ann", "isLeader": True}
    ]


@pytest.mark.asyncio
async def test_sole_leader_leaving_promotes_successor(service, events, clock):
    room, leader_id = await service.create_room(RoomCreateRequest(name="Lea"))
    clock.advance(1)
    _, member_id, _ = await service.join_room(room.code, RoomJoinRequest(name="Max"))

    await service.leave_room(room.code, leader_id)

    assert room.leader_ids == {member_id}
    assert _broadcasts(events, "user-left") == [{"userId": leader_id, "name": "Lea"}]
    assert _broadcasts(events, "leader-role-updated")[-1]["userId"] == member_id
    events.evict_user.assert_awaited_once_with(room.code, leader_id)


@pytest.mark.asyncio
async def test_last_member_leaving_deletes_room(service, room_store, events):
    room, leader_id = await service.create_room(RoomCreateRequest(name="Lea"))

    await service.leave_room(room.code, leader_id)

    assert room_store.get(room.code) is None
    assert room_store.room_code_for_user(leader_id) is None
    assert _broadcasts(events, "room-deleted")[0]["reason"] == "empty"
    events.close.assert_awaited_once_with(room.code)


@pytest.mark.asyncio
async def test_emptied_admin_room_is_kept(service, room_store):
    room = await service.create_admin_room(AdminRoomCreateRequest())
    _, user_id, _ = await service.join_room(room.code, RoomJoinRequest(name="Ann"))

    await service.leave_room(room.code, user_id)

    assert room_store.get(room.code) is room
    assert room.leader_ids == set()


@pytest.mark.asyncio
async def test_leave_for_unknown_user_is_a_noop(service):
    room, leader_id = await service.create_room(RoomCreateRequest(name="Lea"))
    await service.leave_room(room.code, "ghost")
    assert room.has_user(leader_id)


@pytest.mark.asyncio
async def test_service_without_events_still_mutates(room_store):
    service = RoomService(room_store)
    room, leader_id = await service.create_room(RoomCreateRequest(name="Lea"))
    await service.leave_room(room.code, leader_id)
    assert room_store.get(room.code) is None


@pytest.mark.asyncio
async def test_public_listing_only_shows_public_admin_rooms(service):
    await service.create_room(RoomCreateRequest(name="Lea"))
    public = await service.create_admin_room(AdminRoomCreateRequest(room_name="Open"))
    await service.create_admin_room(AdminRoomCreateRequest(room_name="Hidden", is_public=False))

    listing = await service.list_public_rooms()

    assert [item["code"] for item in listing] == [public.code]


@pytest.mark.asyncio
async def test_update_room_broadcasts_settings(service, events):
    room = await service.create_admin_room(AdminRoomCreateRequest(room_name="Old"))
    await service.update_room(room.code, AdminRoomUpdateRequest(room_name="New", is_public=False))
    assert room.room_name == "New"
    assert room.is_public is False
    assert _broadcasts(events, "room-updated") == [
        {"roomCode": room.code, "roomName": "New", "isPublic": False}
    ]


@pytest.mark.asyncio
async def test_admin_operations_reject_member_rooms(service):
    room, _ = await service.create_room(RoomCreateRequest(name="Lea"))
    with pytest.raises(policy.NotFoundError):
        await service.delete_admin_room(room.code)


@pytest.mark.asyncio
async def test_delete_admin_room_notifies_and_closes(service, room_store, events):
    room = await service.create_admin_room(AdminRoomCreateRequest())
    await service.delete_admin_room(room.code)
    assert room_store.get(room.code) is None
    assert _broadcasts(events, "room-deleted")[0]["reason"] == "deleted_by_admin"
    events.close.assert_awaited_once_with(room.code)


@pytest.mark.asyncio
async def test_assign_leader_creates_offline_member(service, room_store):
    room = await service.create_admin_room(AdminRoomCreateRequest())

    await service.assign_leader(room.code, AssignLeaderRequest(user_name="Guide"))

    guide = room.find_by_name("Guide")
    assert guide is not None
    assert guide.online is False
    assert room.leader_ids == {guide.id}
    assert room_store.room_code_for_user(guide.id) == room.code

    _, user_id, reconnected = await service.join_room(room.code, RoomJoinRequest(name="guide"))
    assert (user_id, reconnected) == (guide.id, True)


@pytest.mark.asyncio
async def test_assign_leader_promotes_existing_member(service):
    room, leader_id = await service.create_room(RoomCreateRequest(name="Lea"))
    _, member_id, _ = await service.join_room(room.code, RoomJoinRequest(name="Max"))
    await service.assign_leader(room.code, AssignLeaderRequest(user_id=member_id))
    assert room.leader_ids == {leader_id, member_id}


@pytest.mark.asyncio
async def test_assign_leader_needs_a_name_for_new_members(service):
    room = await service.create_admin_room(AdminRoomCreateRequest())
    with pytest.raises(policy.InvalidArgumentError):
        await service.assign_leader(room.code, AssignLeaderRequest(user_id="unknown"))


@pytest.mark.asyncio
async def test_remove_last_leader_conflicts(service):
    room, leader_id = await service.create_room(RoomCreateRequest(name="Lea"))
    with pytest.raises(policy.ConflictError) as excinfo:
        await service.remove_leader(room.code, leader_id)
    assert excinfo.value.code == "last_leader"
    assert room.leader_ids == {leader_id}


@pytest.mark.asyncio
async def test_remove_user_marks_removal(service, events):
    room, _ = await service.create_room(RoomCreateRequest(name="Lea"))
    _, member_id, _ = await service.join_room(room.code, RoomJoinRequest(name="Max"))

    await service.remove_user(room.code, member_id)

    assert not room.has_user(member_id)
    assert _broadcasts(events, "user-left") == [{"userId": member_id, "name": "Max", "removed": True}]


@pytest.mark.asyncio
async def test_import_gpx_replaces_path(service, events):
    room, _ = await service.create_room(RoomCreateRequest(name="Lea"))
    room.add_destination_to_path(lat=1.0, lng=1.0)

    _, imported = await service.import_gpx(room.code, TRACK_GPX)

    assert imported == 2
    assert [(p.lat, p.lng) for p in room.destination_path] == [(10.0, 20.0), (11.0, 21.0)]
    assert room.current_destination_index == 1
    body = _broadcasts(events, "destination-path-updated")[0]
    assert len(body["destinationPath"]) == 2


@pytest.mark.asyncio
async def test_failed_import_leaves_path_untouched(service, monkeypatch):
    room, _ = await service.create_room(RoomCreateRequest(name="Lea"))
    room.add_destination_to_path(lat=1.0, lng=1.0)

    with pytest.raises(policy.InvalidArgumentError):
        await service.import_gpx(room.code, b"<gpx></gpx>")
    monkeypatch.setattr(settings, "gpx_max_bytes", 10)
    with pytest.raises(policy.InvalidArgumentError) as excinfo:
        await service.import_gpx(room.code, TRACK_GPX)

    assert excinfo.value.code == "file_too_large"
    assert [(p.lat, p.lng) for p in room.destination_path] == [(1.0, 1.0)]
