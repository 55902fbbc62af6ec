"""Process-wide defaults. Every value here can be overridden per call or via config."""

# Timeouts (milliseconds)
DEFAULT_TIMEOUT_MS = 30_000
DEFAULT_ELICITATION_TIMEOUT_MS = 120_000
DEFAULT_POLL_INTERVAL_MS = 3_000
DEFAULT_POLL_TIMEOUT_MS = 300_000

# Response shaping
MAX_RESPONSE_SIZE_BYTES = 20 * 1024
DEFAULT_SUMMARY_MAX_TOKENS = 800

MINIMAL_ITEM_LIMIT = 5
MINIMAL_FIELDS = ("name", "id", "key", "title", "status", "type", "count", "message")
PREVIEW_ITEM_LIMIT = 10
HISTORY_ITEM_LIMIT = 5
ERRORS_ITEM_LIMIT = 10

# Pagination
DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200

# Backend trace headers, checked in order for a correlation id
REQUEST_ID_HEADERS = ("x-ms-request-id", "x-request-id", "request-id")
