"""Constants and defaults.

Note: Keep constants here to avoid magic numbers spread across code.
"""

from datetime import time

DEFAULT_BREAK_DURATION_MINUTES = 15
DEFAULT_LUNCH_DURATION_MINUTES = 60
DEFAULT_OVERTIME_THRESHOLD_MINUTES = 480
DEFAULT_MAX_OVERTIME_MINUTES = 240
DEFAULT_STANDARD_WORK_HOURS = 8
DEFAULT_LATE_GRACE_MINUTES = 15
DEFAULT_WORKDAY_START = time(9, 0)

EARTH_RADIUS_METERS = 6_371_000

DEFAULT_HISTORY_PAGE_SIZE = 20
