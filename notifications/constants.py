"""Constants used throughout the notification dispatch service."""

# HTTP Headers
REQUEST_ID_HEADER = "X-Request-ID"
PROCESS_TIME_HEADER = "X-Process-Time"
WEBHOOK_SIGNATURE_HEADER = "X-Webhook-Signature"

# Performance Thresholds
SLOW_REQUEST_THRESHOLD = 1.0  # Log requests slower than 1 second

# Business-level retry defaults
DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_RETRY_DELAY_MS = 60_000

# Queue-level retry: total delivery attempts per job and backoff base
QUEUE_MAX_ATTEMPTS = 3
QUEUE_BACKOFF_BASE_MS = 1_000

# Queue retention windows
COMPLETED_JOB_RETENTION_SECONDS = 24 * 60 * 60
FAILED_JOB_RETENTION_SECONDS = 7 * 24 * 60 * 60

# Log query paging
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

# Admin operation defaults
DEFAULT_BULK_RETRY_LIMIT = 50
DEFAULT_CLEANUP_DAYS = 30
DEFAULT_CLEANUP_LIMIT = 1000
DEFAULT_STATS_DAYS = 30
