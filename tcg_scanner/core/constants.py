from typing import Final, List

# Per-user scan quota
RATE_LIMIT_WINDOW_S: Final[int] = 60
RATE_LIMIT_MAX_SCANS: Final[int] = 5

# Provider retry schedule (seconds)
BACKOFF_S: Final[List[float]] = [0.2, 1.0, 3.0]
RETRYABLE_STATUSES: Final[tuple] = (500, 502, 503, 504)

# Candidate handling
MAX_CANDIDATES: Final[int] = 5
CATALOG_PAGE_SIZE: Final[int] = 15
DEFAULT_VISION_CONFIDENCE: Final[float] = 0.9
DEFAULT_RECOGNITION_CONFIDENCE: Final[float] = 0.8

# CardKey layout
KEY_DELIMITER: Final[str] = ":"
PID_MARKER: Final[str] = "pid"
STORAGE_DELIMITER: Final[str] = "__"

# Object storage
DEFAULT_EXTENSION: Final[str] = "jpg"
SCANS_PREFIX: Final[str] = "scans"
