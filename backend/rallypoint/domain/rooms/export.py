"""Serialisers for exporting a room's destination path."""

from __future__ import annotations

import csv
import io
import json
from dataclasses import dataclass
from datetime import datetime, timezone

from rallypoint.domain.rooms import gpx, models
from rallypoint.domain.rooms.schemas import EXPORT_FORMATS

CSV_HEADER = ("Order", "Latitude", "Longitude", "Added At")


@dataclass(slots=True)
class ExportedPath:
    content: str
    media_type: str
    filename: str


def normalise_format(value: str | None) -> str:
    fmt = (value or "json").strip().lower()
    return fmt if fmt in EXPORT_FORMATS else "json"


def path_to_json(room: models.Room) -> str:
    payload = {
        "roomCode": room.code,
        "roomName": room.room_name,
        "exportedAt": datetime.now(timezone.utc).isoformat(),
        "currentDestinationIndex": room.current_destination_index,
        "destinations": room.path_to_list(),
    }
    return json.dumps(payload, indent=2)


def path_to_csv(room: models.Room) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(CSV_HEADER)
    for point in room.destination_path:
        writer.writerow([point.order, point.lat, point.lng, point.added_at.isoformat()])
    return buffer.getvalue()


def path_to_gpx(room: models.Room) -> str:
    return gpx.build_gpx(
        [(point.lat, point.lng) for point in room.destination_path],
        name=room.room_name,
        notes=[point.note for point in room.destination_path],
    )


def export_path(room: models.Room, fmt: str | None) -> ExportedPath:
    """Serialise the path; unknown formats fall back to JSON."""
    fmt = normalise_format(fmt)
    stem = f"destination-path-{room.code}"
    if fmt == "gpx":
        return ExportedPath(path_to_gpx(room), "application/gpx+xml", f"{stem}.gpx")
    if fmt == "csv":
        return ExportedPath(path_to_csv(room), "text/csv", f"{stem}.csv")
    return ExportedPath(path_to_json(room), "application/json", f"{stem}.json")
