"""Application constants."""

USER_AGENT = "dashsync/1.0 (+dashboard sync client)"
WORK_ORDERS = "work_orders"
LOCATES = "locates"
COLLECTIONS = (WORK_ORDERS, LOCATES)

DEFAULT_MIRROR_TTL_SECONDS = 8.0
DEFAULT_STALE_AFTER_SECONDS = 5.0
DEFAULT_POLL_INTERVAL_SECONDS = 10.0
DEFAULT_PUSH_RECONNECT_SECONDS = 5.0
DEFAULT_READ_RETRIES = 2
DEFAULT_WINDOW_DAYS = 30
DRAWER_LIMIT = 10

EXIT_SUCCESS = 0
EXIT_PARTIAL = 10
EXIT_HARD_FAIL = 20
JSON_LOG_FIELDS = (
    "timestamp",
    "session_id",
    "component",
    "collection",
    "trigger",
    "event",
    "status",
    "attempt",
    "duration_ms",
    "record_count",
    "error_code",
    "message",
)
