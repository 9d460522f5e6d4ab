"""Centralized constants for the lingosrs scheduling engine.

All model weights, thresholds and defaults live here so every layer
imports from a single source of truth.
"""

# ---------- FSRS ----------
FSRS_WEIGHTS: tuple[float, ...] = (
    0.4, 0.6, 2.4, 5.8, 4.93, 0.94, 0.86, 0.01, 1.49,
    0.14, 0.94, 2.18, 0.05, 0.34, 1.26, 0.29, 2.61,
)
EASY_BONUS = 1.3
MIN_STABILITY = 0.01
MIN_DIFFICULTY = 0.1
MAX_DIFFICULTY = 10.0
DECAY_FACTOR = 9.0  # R = (1 + t / (9 * S))^-1

# ---------- New memory items ----------
DEFAULT_STABILITY = 0.4
DEFAULT_DIFFICULTY = 5.0
DEFAULT_RESPONSE_TIME_MS = 3000

# ---------- Lesson heuristic ----------
# (minimum score, interval multiplier), checked top-down
LESSON_MULTIPLIER_BANDS: tuple[tuple[int, float], ...] = (
    (90, 2.8),
    (80, 2.5),
    (70, 2.0),
    (60, 1.5),
)
LESSON_BASE_MULTIPLIER = 1.2
DEFAULT_LESSON_INTERVAL_DAYS = 1
MIN_SCORE = 0
MAX_SCORE = 100

# ---------- Due queue ----------
HIGH_PRIORITY_SCORE_THRESHOLD = 70
ITEM_REVIEW_SECONDS = 15
LESSON_REVIEW_SECONDS = 180
URGENT_DUE_ITEMS = 50
HIGH_DUE_ITEMS = 20
DEFAULT_DAILY_NEW_CAP = 20
DEFAULT_DAILY_REVIEW_CAP = 200

# ---------- Progress ----------
MASTERY_MIN_REPS = 5
LEVELS: tuple[str, ...] = ("A1", "A2", "B1", "B2", "C1", "C2")
DEFAULT_LEVEL = "A1"
WEEKLY_WINDOW_DAYS = 7
PROGRESS_SAMPLE_SIZE = 10

# ---------- Study recommendations ----------
WEAK_ITEM_MIN_LAPSES = 2  # weak when lapses exceed this
WEAK_ITEM_RESPONSE_MS = 5000  # or when the average response is slower
STRONG_ITEM_MIN_STABILITY = 10.0
FOCUS_AREA_LIMIT = 5
REVIEW_FIRST_LIMIT = 3
SKIP_TODAY_LIMIT = 2
MINUTES_PER_FOCUS_AREA = 2
MIN_STUDY_MINUTES = 5
MAX_STUDY_MINUTES = 15
INCREASE_DIFFICULTY_STREAK = 7  # streak above this raises difficulty
NEW_WORDS_LIMIT = 15
NEW_WORDS_LIMIT_ON_STREAK = 25
NEW_WORDS_STREAK = 5  # streak above this unlocks the higher limit
