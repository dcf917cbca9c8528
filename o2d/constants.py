"""Shared constants for the follow-up engine."""

STEP_COUNT = 8
FIRST_STEP = 1

DEFAULT_TAT_VALUE = 1
DEFAULT_TAT_UNIT = "hours"

# ``datetime.weekday()`` numbering
SUNDAY = 6

# Differences within this window classify as on time
ON_TIME_TOLERANCE_SECONDS = 60

DEFAULT_SYNC_INTERVAL_SECONDS = 5.0
