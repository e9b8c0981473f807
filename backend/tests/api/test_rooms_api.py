import pytest


async def _create(api_client, name="Lea"):
    response = await api_client.post("/api/rooms", json={"name": name, "color": "#ff0000", "icon": "🚶"})
    assert response.status_code == 201
    return response.json()


@pytest.mark.asyncio
async def test_create_room_returns_creator_as_leader(api_client):
    body = await _create(api_client)
    assert body["success"] is True
    assert body["room"]["leaderIds"] == [body["userId"]]
    assert body["room"]["users"][0]["isLeader"] is True
    assert len(body["room"]["code"]) == 6


@pytest.mark.asyncio
async def test_create_room_validates_name(api_client):
    response = await api_client.post("/api/rooms", json={"name": ""})
    assert response.status_code == 422
    assert response.json()["detail"] == "validation_error"


@pytest.mark.asyncio
async def test_join_and_fetch_room(api_client):
    created = await _create(api_client)
    code = created["room"]["code"]

    joined = await api_client.post(f"/api/rooms/{code}/join", json={"name": "Max"})
    assert joined.status_code == 200
    body = joined.json()
    assert body["reconnected"] is False
    assert body["userId"] != created["userId"]

    fetched = await api_client.get(f"/api/rooms/{code}")
    assert fetched.status_code == 200
    assert fetched.json()["room"]["userCount"] == 2


@pytest.mark.asyncio
async def test_join_with_name_of_connected_member_conflicts(api_client, app):
    created = await _create(api_client)
    code = created["room"]["code"]
    namespace = app.state.rooms_namespace
    await namespace.trigger_event("connect", "sid-1", {})
    await namespace.trigger_event("join-room", "sid-1", {"roomCode": code, "userId": created["userId"]})

    response = await api_client.post(f"/api/rooms/{code}/join", json={"name": "LEA"})

    assert response.status_code == 409


@pytest.mark.asyncio
async def test_join_reclaims_name_when_creator_never_connected(api_client):
    created = await _create(api_client)
    code = created["room"]["code"]

    response = await api_client.post(f"/api/rooms/{code}/join", json={"name": "lea"})

    assert response.status_code == 200
    body = response.json()
    assert body["userId"] == created["userId"]
    assert body["reconnected"] is True
    assert len(body["room"]["users"]) == 1


@pytest.mark.asyncio
async def test_join_as_offline_member_reconnects(api_client, room_store):
    created = await _create(api_client)
    code = created["room"]["code"]
    room_store.get(code).mark_offline(created["userId"])

    response = await api_client.post(f"/api/rooms/{code}/join", json={"name": "Lea"})

    body = response.json()
    assert body["reconnected"] is True
    assert body["userId"] == created["userId"]


@pytest.mark.asyncio
async def test_unknown_room_is_404_with_request_id(api_client):
    response = await api_client.get("/api/rooms/NOPE00", headers={"X-Request-Id": "req-123"})
    assert response.status_code == 404
    assert response.json() == {"detail": "Room not found", "request_id": "req-123"}
    assert response.headers["X-Request-Id"] == "req-123"


@pytest.mark.asyncio
async def test_leave_last_member_deletes_room(api_client, room_store):
    created = await _create(api_client)
    code = created["room"]["code"]

    response = await api_client.post(f"/api/rooms/{code}/leave", json={"userId": created["userId"]})

    assert response.status_code == 200
    assert response.json()["success"] is True
    assert room_store.get(code) is None
    assert (await api_client.get(f"/api/rooms/{code}")).status_code == 404


@pytest.mark.asyncio
async def test_export_formats(api_client, room_store):
    created = await _create(api_client)
    code = created["room"]["code"]
    room = room_store.get(code)
    room.add_destination_to_path(lat=1.5, lng=2.5)
    room.add_destination_to_path(lat=3.5, lng=4.5)

    csv_response = await api_client.get(f"/api/rooms/{code}/export", params={"format": "csv"})
    assert csv_response.status_code == 200
    assert csv_response.headers["content-type"].startswith("text/csv")
    assert csv_response.headers["content-disposition"] == (
        f'attachment; filename="destination-path-{code}.csv"'
    )
    assert csv_response.text.splitlines()[0] == "Order,Latitude,Longitude,Added At"

    gpx_response = await api_client.get(f"/api/rooms/{code}/export", params={"format": "gpx"})
    assert gpx_response.text.count("<rtept") == 2

    fallback = await api_client.get(f"/api/rooms/{code}/export", params={"format": "kml"})
    assert fallback.headers["content-type"].startswith("application/json")
    assert len(fallback.json()["destinations"]) == 2


@pytest.mark.asyncio
async def test_public_rooms_lists_only_public_admin_rooms(api_client, room_store):
    await _create(api_client)
    room_store.create("PUBLIC", room_name="Open walk", is_public=True, is_admin_created=True)
    room_store.create("HIDDEN", room_name="Private", is_public=False, is_admin_created=True)

    response = await api_client.get("/api/public-rooms")

    assert response.status_code == 200
    assert [room["code"] for room in response.json()["rooms"]] == ["PUBLIC"]
