"""Keyword tables and clinical thresholds used by the analytics modules.

Matching is always case-insensitive substring matching against the
lower-cased name or symptom text. Edit the tables here; aggregation code
only refers to them by name.
"""

# ---------------------------------------------------------------------------
# Medication classification
# ---------------------------------------------------------------------------

TRIPTAN_KEYWORDS = (
    "triptan",
    "sumatriptan",
    "rizatriptan",
    "zolmitriptan",
    "naratriptan",
    "almotriptan",
    "frovatriptan",
    "eletriptan",
)

# Brand name logged without its generic name
PRODUCT_NSAID_KEYWORD = "naxdom"

NSAID_KEYWORDS = (
    PRODUCT_NSAID_KEYWORD,
    "naproxen",
    "ibuprofen",
    "diclofenac",
    "ketorolac",
    "indomethacin",
    "celecoxib",
    "aspirin",
)

# Medication-use sub-record types that count as rescue doses
RESCUE_TYPE_KEYWORDS = ("rescue", "abortive")

# ---------------------------------------------------------------------------
# Symptom / impact flags
# ---------------------------------------------------------------------------

IMPAIRMENT_FLAGS = ("Missed work/school", "Bed rest required")

FOCAL_SYMPTOM_KEYWORDS = (
    "weakness",
    "numbness",
    "speech",
    "vision loss",
    "double vision",
    "facial droop",
    "confusion",
    "seizure",
)

VOMIT_KEYWORDS = ("vomit", "vomiting")

WOKE_FROM_SLEEP_KEYWORD = "woke from sleep"
SUDDEN_ONSET_KEYWORD = "sudden"
POOR_SLEEP_KEYWORD = "poor"
GOOD_RELIEF_KEYWORDS = ("Good", "Complete")

# ---------------------------------------------------------------------------
# Thresholds
# ---------------------------------------------------------------------------

# Migraine-day predicate: severity >= 5 or aura present
MIGRAINE_SEVERITY_MIN = 5

# Doctor summary (two-tier)
CHRONIC_HEADACHE_DAYS = 15
CHRONIC_MIGRAINE_DAYS = 8
CHRONIC_CRITERIA_TEXT = "Chronic if ≥15 headache days AND ≥8 migraine days per 30 days."

# Medical report (three-tier, trailing 30 days)
REPORT_CHRONIC_DAYS = 15
REPORT_AT_RISK_DAYS = 10
REPORT_TRAILING_DAYS = 30
RESCUE_OVERUSE_LIMIT = 10  # risk when strictly greater

# Medication-overuse screening, distinct days per 30
TRIPTAN_DAYS_THRESHOLD = 10
NSAID_DAYS_THRESHOLD = 15

# Red flags
RED_FLAG_SEVERITY_MIN = 8
RED_FLAG_AURA_MINUTES = 60

# Report recommendations
POOR_SLEEP_RECOMMEND_PERCENT = 40
PRIMARY_TRIGGER_SHARE = 0.5

# ---------------------------------------------------------------------------
# Transformation tracker
# ---------------------------------------------------------------------------

WEEKLY_WORKOUT_TARGET = 5
PROTEIN_PROXY_MEALS_MIN = 3
PROTEIN_PROXY_DAYS = 7
MEAL_SLOTS = ("breakfast_completed", "lunch_completed", "post_workout_completed", "dinner_completed")

SCORE_WEIGHTS = {
    "workout": 0.25,
    "protein": 0.25,
    "habits": 0.35,
    "checkin": 0.15,
}

TRACKED_HABITS = (
    "skin_am_done",
    "skin_pm_done",
    "sunscreen_done",
    "retinol_done",
    "hair_wash_done",
    "conditioner_done",
    "beard_oil_done",
    "supplements_morning_done",
    "supplements_postworkout_done",
    "supplements_night_done",
    "workout_done",
    "ketoconazole_done",
    "microneedling_done",
)

HABIT_CATEGORIES = {
    "skin_am": {"label": "Skin (AM)", "fields": ("skin_am_done", "sunscreen_done")},
    "skin_pm": {"label": "Skin (PM)", "fields": ("skin_pm_done", "retinol_done")},
    "hair": {
        "label": "Hair",
        "fields": ("hair_wash_done", "conditioner_done", "ketoconazole_done", "microneedling_done"),
    },
    "supplements": {
        "label": "Supplements",
        "fields": ("supplements_morning_done", "supplements_postworkout_done", "supplements_night_done"),
    },
    "activity": {"label": "Activity", "fields": ("steps_done", "workout_done")},
}

COMPLETED_EVENT_TYPES = ("taken", "done")

PLATEAU_WEEKS = 2
PLATEAU_TOLERANCE_KG = 0.3
PLATEAU_SUGGESTION = (
    "Weight unchanged for 2 weeks. Consider reducing carbs by 20-30g if fat loss is the goal."
)
