"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

REQUEST_COUNTER = Counter(
	"careerlink_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"careerlink_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

SOCKET_CLIENTS = Gauge(
	"careerlink_socketio_clients",
	"Active Socket.IO clients per namespace",
	["namespace"],
)

SOCKET_EVENTS = Counter(
	"careerlink_socketio_events_total",
	"Socket.IO events handled or emitted per namespace",
	["namespace", "event"],
)

SOCKET_AUTH_REJECTS = Counter(
	"careerlink_socketio_auth_rejects_total",
	"Socket.IO handshakes refused",
	["reason"],
)

PRESENCE_ONLINE_USERS = Gauge(
	"careerlink_presence_online_users",
	"Users with at least one live connection",
)

PRESENCE_TRANSITIONS = Counter(
	"careerlink_presence_transitions_total",
	"Online/offline transitions observed by the presence registry",
	["state"],
)

EVENT_DELIVERY = Counter(
	"careerlink_event_delivery_total",
	"Live event deliveries to individual connections",
	["event", "result"],
)

CHAT_SEND = Counter(
	"careerlink_chat_messages_sent_total",
	"Chat messages persisted",
	["kind"],
)

CHAT_FANOUT = Counter(
	"careerlink_chat_fanout_total",
	"Live chat deliveries attempted",
	["result"],
)

CHAT_READ_RECEIPTS = Counter(
	"careerlink_chat_read_receipts_total",
	"Read receipts appended",
)

CHAT_REJECTS = Counter(
	"careerlink_chat_rejects_total",
	"Chat operations rejected",
	["reason"],
)

NOTIFICATION_WRITES = Counter(
	"careerlink_notifications_total",
	"Notifications persisted",
	["type", "result"],
)

NOTIFICATION_PUSH = Counter(
	"careerlink_notification_push_total",
	"Live notification pushes",
	["result"],
)

NOTIFICATION_READS = Counter(
	"careerlink_notification_reads_total",
	"Notification read-state transitions",
	["scope"],
)

RATE_LIMITED_EVENTS = Counter(
	"careerlink_rate_limited_total",
	"Events dropped due to rate limiting",
	["kind"],
)

JOB_RUNS = Counter(
	"careerlink_job_runs_total",
	"Background job executions",
	["job", "result"],
)

JOB_DURATION = Histogram(
	"careerlink_job_duration_seconds",
	"Background job durations",
	["job"],
)

REDIS_UP = Gauge("careerlink_redis_up", "Redis readiness state")
POSTGRES_UP = Gauge("careerlink_postgres_up", "Postgres readiness state")


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def socket_connected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).inc()


def socket_disconnected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).dec()


def socket_event(namespace: str, event: str) -> None:
	SOCKET_EVENTS.labels(namespace=namespace, event=event).inc()


def socket_auth_reject(reason: str) -> None:
	SOCKET_AUTH_REJECTS.labels(reason=reason).inc()


def presence_online(count: int) -> None:
	PRESENCE_ONLINE_USERS.set(count)


def presence_transition(state: str) -> None:
	PRESENCE_TRANSITIONS.labels(state=state).inc()


def event_delivery(event: str, result: str) -> None:
	EVENT_DELIVERY.labels(event=event, result=result).inc()


def inc_chat_send(kind: str) -> None:
	CHAT_SEND.labels(kind=kind).inc()


def inc_chat_fanout(result: str) -> None:
	CHAT_FANOUT.labels(result=result).inc()


def inc_chat_read(count: int = 1) -> None:
	if count > 0:
		CHAT_READ_RECEIPTS.inc(count)


def inc_chat_reject(reason: str) -> None:
	CHAT_REJECTS.labels(reason=reason).inc()


def notification_persisted(type_: str, result: str) -> None:
	NOTIFICATION_WRITES.labels(type=type_, result=result).inc()


def notification_push(result: str) -> None:
	NOTIFICATION_PUSH.labels(result=result).inc()


def notification_read(scope: str, count: int = 1) -> None:
	if count > 0:
		NOTIFICATION_READS.labels(scope=scope).inc(count)


def inc_rate_limited(kind: str) -> None:
	RATE_LIMITED_EVENTS.labels(kind=kind).inc()


def record_job_run(name: str, *, result: str, duration_seconds: float | None = None) -> None:
	JOB_RUNS.labels(job=name, result=result).inc()
	if duration_seconds is not None:
		JOB_DURATION.labels(job=name).observe(duration_seconds)


def mark_redis(ok: bool) -> None:
	REDIS_UP.set(1 if ok else 0)


def mark_postgres(ok: bool) -> None:
	POSTGRES_UP.set(1 if ok else 0)
