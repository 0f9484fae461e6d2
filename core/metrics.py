"""Prometheus metrics for monitoring."""

from prometheus_client import Counter, Gauge, Histogram

# Auth metrics
registrations_total = Counter("registrations_total", "Total number of accounts registered")

logins_total = Counter("logins_total", "Total number of login attempts", ["status"])

# Matching metrics
likes_total = Counter("likes_total", "Total number of likes recorded")

dislikes_total = Counter("dislikes_total", "Total number of dislikes recorded")

matches_created_total = Counter("matches_created_total", "Total number of mutual-like matches created")

unmatches_total = Counter("unmatches_total", "Total number of matches deactivated by a participant")

match_retries_total = Counter(
    "match_retries_total", "Match-creation transactions retried after a concurrent pair write"
)

# Messaging metrics
messages_sent_total = Counter("messages_sent_total", "Total number of chat messages persisted", ["message_type"])

notifications_failed_total = Counter("notifications_failed_total", "Notifications that failed to persist", ["kind"])

# Realtime hub metrics
ws_sessions_active = Gauge("ws_sessions_active", "Number of live WebSocket sessions in the registry")

ws_frames_delivered_total = Counter("ws_frames_delivered_total", "Frames queued for delivery to sessions")

ws_evictions_total = Counter("ws_evictions_total", "Sessions evicted because their outbound queue was full")

ws_protocol_errors_total = Counter("ws_protocol_errors_total", "Sessions torn down after a malformed frame")

# Safety & moderation
reports_total = Counter("reports_total", "Total number of user reports created")

blocks_total = Counter("blocks_total", "Total number of user blocks executed")

# Response time metrics
api_request_duration = Histogram(
    "api_request_duration_seconds", "API request duration in seconds", ["method", "endpoint", "status"]
)
