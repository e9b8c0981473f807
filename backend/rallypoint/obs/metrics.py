"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram


REQUEST_COUNTER = Counter(
	"rallypoint_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"rallypoint_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

SOCKET_CLIENTS = Gauge(
	"rallypoint_socketio_clients",
	"Active Socket.IO clients per namespace",
	["namespace"],
)

SOCKET_EVENTS = Counter(
	"rallypoint_socketio_events_total",
	"Socket.IO events handled per namespace",
	["namespace", "event"],
)

SOCKET_REJECTS = Counter(
	"rallypoint_socketio_rejects_total",
	"Socket.IO intents rejected with an error event",
	["event", "reason"],
)

ROOMS_CREATED = Counter(
	"rallypoint_rooms_created_total",
	"Rooms created",
	["kind"],
)

ROOMS_JOIN = Counter(
	"rallypoint_rooms_join_total",
	"Room joins over HTTP",
)

ROOMS_RECONNECT = Counter(
	"rallypoint_rooms_reconnect_total",
	"Returning members recognised by the gateway or the channel",
	["via"],
)

ROOMS_DELETED = Counter(
	"rallypoint_rooms_deleted_total",
	"Rooms removed from the store",
	["reason"],
)

ROOMS_ACTIVE = Gauge(
	"rallypoint_rooms_active",
	"Rooms currently held in memory",
)

LOCATION_UPDATES = Counter(
	"rallypoint_location_updates_total",
	"Location updates applied",
)

PATH_MUTATIONS = Counter(
	"rallypoint_path_mutations_total",
	"Destination path mutations applied",
	["action"],
)

BACKGROUND_RUNS = Counter(
	"rallypoint_background_runs_total",
	"Background job executions",
	["name", "result"],
)

BACKGROUND_DURATION = Histogram(
	"rallypoint_background_duration_seconds",
	"Background job duration in seconds",
	["name"],
	buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0),
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def socket_connected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).inc()


def socket_disconnected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).dec()


def socket_event(namespace: str, event: str) -> None:
	SOCKET_EVENTS.labels(namespace=namespace, event=event).inc()


def socket_reject(event: str, reason: str) -> None:
	SOCKET_REJECTS.labels(event=event, reason=reason).inc()


def inc_room_created(kind: str = "member") -> None:
	ROOMS_CREATED.labels(kind=kind).inc()


def inc_room_join() -> None:
	ROOMS_JOIN.inc()


def inc_room_reconnect(via: str) -> None:
	ROOMS_RECONNECT.labels(via=via).inc()


def inc_room_deleted(reason: str, count: int = 1) -> None:
	ROOMS_DELETED.labels(reason=reason).inc(count)


def set_rooms_active(count: int) -> None:
	ROOMS_ACTIVE.set(float(count))


def inc_location_update() -> None:
	LOCATION_UPDATES.inc()


def inc_path_mutation(action: str) -> None:
	PATH_MUTATIONS.labels(action=action).inc()


def record_job_run(name: str, *, result: str, duration_seconds: float | None = None) -> None:
	BACKGROUND_RUNS.labels(name=name, result=result).inc()
	if duration_seconds is not None:
		BACKGROUND_DURATION.labels(name=name).observe(duration_seconds)
