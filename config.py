"""Application configuration driven by environment variables.

All settings have sensible defaults for local development.
"""

import os

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

# ---------------------------------------------------------------------------
# Data
# ---------------------------------------------------------------------------

# JSON dataset loaded into the in-memory stores by the CLI.
DATASET_PATH: str = os.getenv("DATASET_PATH", "dataset.json")

# ---------------------------------------------------------------------------
# Recommendations
# ---------------------------------------------------------------------------

DEFAULT_RECOMMENDATION_LIMIT: int = int(os.getenv("DEFAULT_RECOMMENDATION_LIMIT", "10"))

# Calls slower than this are logged at WARNING by the service facade.
SLOW_CALL_WARN_THRESHOLD_MS: float = float(os.getenv("SLOW_CALL_WARN_THRESHOLD_MS", "450"))

# ---------------------------------------------------------------------------
# Offline evaluation
# ---------------------------------------------------------------------------

EVALUATION_MAX_USERS: int = int(os.getenv("EVALUATION_MAX_USERS", "100"))

# Users are evaluated in parallel; each worker handles one user at a time.
EVALUATION_MAX_WORKERS: int = int(os.getenv("EVALUATION_MAX_WORKERS", "4"))

# ---------------------------------------------------------------------------
# Profile maintenance
# ---------------------------------------------------------------------------

# Profiles not recomputed within this many days are refreshed by refresh-stale.
PROFILE_STALENESS_DAYS: int = int(os.getenv("PROFILE_STALENESS_DAYS", "7"))

PROFILE_REFRESH_MAX_WORKERS: int = int(os.getenv("PROFILE_REFRESH_MAX_WORKERS", "4"))
