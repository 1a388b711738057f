"""
Application constants and defaults.
"""
from decimal import Decimal

# Storage / logging locations
DEFAULT_DB_DIRECTORY = "/var/lib/points-tracker"
DEFAULT_DB_DIRECTORY_DEV = "."
DEFAULT_DB_FILE = "points.db"
DEFAULT_LOG_DIRECTORY_PROD = "/var/log/points-tracker"
DEFAULT_LOG_DIRECTORY_DEV = "./logs"
DEFAULT_LOG_FILE = "points.log"

# Day defaults
DEFAULT_DAY_TARGET = 5
DEFAULT_DAY_START_TIME = "04:00"
DEFAULT_ROLLOVER_TIME = "00:05"

# Task defaults
DEFAULT_TASK_POINTS = Decimal("1.0")
DEFAULT_TASK_TARGET = 3
DEFAULT_TASK_MAX = 8
DEFAULT_MAX_OFFSET = 2  # max_count = target + offset when not given

# Scoring
STREAK_BONUS_PER_DAY = Decimal("0.10")
MAX_STREAK_BONUS = Decimal("1.00")
TARGET_COMPLETION_BONUS = Decimal("0.20")
OVERSHOOT_BONUS_MAX = Decimal("0.10")
MAX_STREAK_LOOKBACK_DAYS = 366

# Decimal storage
POINTS_PRECISION = 12
POINTS_SCALE = 4

# Starter routines: (title, points, target)
DEFAULT_TASKS = [
    ("Meditate", DEFAULT_TASK_POINTS, DEFAULT_TASK_TARGET),
    ("Shower", DEFAULT_TASK_POINTS * Decimal("0.8"), 1),
    ("Exercise", DEFAULT_TASK_POINTS * Decimal("1.5"), 1),
    ("Produce", DEFAULT_TASK_POINTS * Decimal("1.2"), 2),
    ("Study", DEFAULT_TASK_POINTS * Decimal("1.3"), 2),
]

TIME_FORMAT_PATTERN = r"^([0-1][0-9]|2[0-3]):[0-5][0-9]$"
