"""Centralized constants for lingolift.

Scheduling numbers and sync defaults live here so every layer imports
from a single source of truth.
"""

# ---------- Time ----------
MS_PER_DAY = 86_400_000

# ---------- SRS (SuperMemo-2) ----------
DEFAULT_EFACTOR = 2.5
MIN_EFACTOR = 1.3
FIRST_INTERVAL_DAYS = 1
SECOND_INTERVAL_DAYS = 6

# Preview multipliers shown on the grade buttons
HARD_PREVIEW_FACTOR = 0.8
EASY_PREVIEW_FACTOR = 1.3

# ---------- Sync ----------
DEFAULT_SERVER_URL = "http://localhost:8080"
SYNC_ENDPOINT = "/api/sync"
INITIAL_WATERMARK = 0

# ---------- Local store ----------
WATERMARK_KEY = "last_sync_timestamp"
