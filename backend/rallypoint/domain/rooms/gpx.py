"""GPX import and export for destination paths."""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence, Tuple

import gpxpy
import gpxpy.gpx

from rallypoint.domain.rooms.errors import InvalidArgumentError

Coordinate = Tuple[float, float]

_POINT_TAGS = ("<rtept", "<trkpt", "<wpt")


def is_valid_gpx(content: str) -> bool:
	"""Cheap structural check done before handing the document to the parser."""
	if "<gpx" not in content:
		return False
	return any(tag in content for tag in _POINT_TAGS)


def decode(raw: bytes) -> str:
	try:
		return raw.decode("utf-8-sig")
	except UnicodeDecodeError as exc:
		raise InvalidArgumentError("invalid_gpx", message="GPX file must be UTF-8 encoded") from exc


def parse_gpx(content: str) -> List[Coordinate]:
	"""Return route points, else track points, else waypoints, in document order."""
	if not is_valid_gpx(content):
		raise InvalidArgumentError("invalid_gpx", message="Invalid GPX file: no <gpx> root or points")
	try:
		document = gpxpy.parse(content)
	except (gpxpy.gpx.GPXException, ValueError) as exc:
		raise InvalidArgumentError("invalid_gpx", message=f"Failed to parse GPX file: {exc}") from exc

	points: List[Coordinate] = [
		(p.latitude, p.longitude) for route in document.routes for p in route.points
	]
	if not points:
		points = [
			(p.latitude, p.longitude)
			for track in document.tracks
			for segment in track.segments
			for p in segment.points
		]
	if not points:
		points = [(p.latitude, p.longitude) for p in document.waypoints]
	if not points:
		raise InvalidArgumentError("invalid_gpx", message="GPX file contains no points")
	return [(float(lat), float(lng)) for lat, lng in points]


def build_gpx(
	points: Iterable[Coordinate],
	*,
	name: Optional[str] = None,
	notes: Optional[Sequence[Optional[str]]] = None,
) -> str:
	"""Render coordinates as a single ``<rte>`` document."""
	document = gpxpy.gpx.GPX()
	document.creator = "rallypoint"
	route = gpxpy.gpx.GPXRoute(name=name)
	for position, (lat, lng) in enumerate(points):
		note = notes[position] if notes and position < len(notes) else None
		route.points.append(
			gpxpy.gpx.GPXRoutePoint(
				latitude=lat,
				longitude=lng,
				name=note or f"Destination {position + 1}",
			)
		)
	document.routes.append(route)
	return document.to_xml()
