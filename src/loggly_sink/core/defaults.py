from __future__ import annotations

from typing import Final

# Buffering defaults used when the caller does not override them
DEFAULT_BUFFERING_INTERVAL_SECONDS: Final[float] = 30.0
DEFAULT_BUFFERING_COUNT: Final[int] = 1000
DEFAULT_MAX_BUFFER_SIZE: Final[int] = 30_000

DEFAULT_REQUEST_TIMEOUT_SECONDS: Final[float] = 30.0

# Backoff applied by the default publisher after a publish raises
MIN_PUBLISH_BACKOFF_SECONDS: Final[float] = 1.0

# Bounded join for the publisher worker thread on dispose
WORKER_JOIN_TIMEOUT_SECONDS: Final[float] = 5.0

BULK_SERVICE_OPERATION_PATH: Final[str] = "/bulk/{token}/tag/{tag}/"
