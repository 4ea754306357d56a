"""Constants for quietblocks.

This module centralizes all magic numbers and default values used throughout the application.
"""

# Quiet block duration bounds
MIN_BLOCK_DURATION_MIN = 15
MAX_BLOCK_DURATION_MIN = 8 * 60

# Reminder defaults
DEFAULT_REMINDER_MINUTES_BEFORE = 15
MIN_REMINDER_MINUTES_BEFORE = 1
MAX_REMINDER_MINUTES_BEFORE = 24 * 60

# Reminder polling: the trigger fires every 90s-5min, so the due window
# must stay open at least one full poll interval.
DEFAULT_REMINDER_TOLERANCE_MINUTES = 5
DEFAULT_REMINDER_LOOKAHEAD_MINUTES = 5

# Default display timezone when the user has not configured one
DEFAULT_DISPLAY_TIMEZONE = "UTC"

# Error kind surfaced to API clients on overlap
SCHEDULE_CONFLICT = "SCHEDULE_CONFLICT"
