"""Canonical record and summary schema.

Storage rows arrive as loosely-typed dicts; the normalizer maps them to the
record dataclasses below. Every field is Optional: a missing column becomes
None, a missing list becomes an empty list.

Summary dataclasses are frozen and rebuilt on every call. Numeric fields are
None when the underlying sample is empty, never 0 or -1.
"""

from dataclasses import dataclass, field, asdict
from typing import Optional


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MedicationUse:
    name: str
    category: Optional[str] = None  # "Rescue/Abortive", "Preventive", ...
    minutes_from_onset: Optional[float] = None
    relief_at_2hr: Optional[str] = None  # "None", "Partial", "Good", "Complete"


@dataclass(frozen=True)
class Episode:
    id: str
    started_at: Optional[int] = None  # epoch ms
    ended_at: Optional[int] = None  # epoch ms, None = ongoing
    duration_min: Optional[int] = None  # None when ongoing or ended_at <= started_at
    severity: Optional[float] = None  # 0-10
    onset_speed: Optional[str] = None
    time_to_peak: Optional[str] = None
    aura_present: bool = False
    aura_duration_min: Optional[float] = None
    aura_types: tuple = ()
    symptoms: tuple = ()
    triggers: tuple = ()
    food_triggers: tuple = ()
    sleep_relation: tuple = ()
    sensory_avoidance: tuple = ()
    functional_impact: tuple = ()
    abortive_timing: Optional[str] = None
    relief: Optional[str] = None
    note: Optional[str] = None
    # Medical report fields
    took_medication: bool = False
    medications: tuple = ()  # tuple[MedicationUse]
    relief_at_2hr: Optional[str] = None
    sleep_hours: Optional[float] = None
    sleep_quality: Optional[str] = None
    meets_ichd3_criteria: bool = False
    midas_score: Optional[float] = None
    midas_grade: Optional[str] = None
    pain_laterality: Optional[str] = None
    could_not_work: bool = False
    bed_bound_hours: Optional[float] = None


@dataclass(frozen=True)
class BPReading:
    id: Optional[str] = None
    systolic: Optional[float] = None
    diastolic: Optional[float] = None
    pulse: Optional[float] = None
    measured_at: Optional[int] = None


@dataclass(frozen=True)
class MedicationLog:
    name: Optional[str] = None
    dosage: Optional[str] = None
    taken_at: Optional[int] = None


@dataclass(frozen=True)
class Medication:
    id: Optional[str] = None
    name: Optional[str] = None
    dosage: Optional[str] = None
    is_active: bool = False


@dataclass(frozen=True)
class DoseSchedule:
    parent_type: Optional[str] = None  # "medication" | "supplement"
    parent_id: Optional[str] = None
    time_of_day: Optional[str] = None  # HH:MM
    days_of_week: tuple = ()  # 0-6, Sunday = 0
    dosage: Optional[str] = None


@dataclass(frozen=True)
class TrackingEvent:
    parent_type: Optional[str] = None
    parent_id: Optional[str] = None
    schedule_id: Optional[str] = None
    event_type: Optional[str] = None  # "taken", "done", "skipped", "missed"
    event_date: Optional[int] = None


# ---------------------------------------------------------------------------
# Doctor summary
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SummaryWindow:
    start_ms: int
    end_ms: int
    days: int


@dataclass(frozen=True)
class Classification:
    type: str  # "episodic", "chronic", "insufficient-data"
    headache_days: int
    migraine_days: int
    criteria_text: str


@dataclass(frozen=True)
class MigraineStats:
    avg_severity: Optional[int] = None
    max_severity: Optional[float] = None
    avg_duration_min: Optional[int] = None
    ongoing_percent: Optional[int] = None
    aura_rate_percent: Optional[int] = None
    top_aura_types: tuple = ()
    impairment_rate_percent: Optional[int] = None


@dataclass(frozen=True)
class RedFlag:
    id: str
    started_at: Optional[int]
    reasons: tuple


@dataclass(frozen=True)
class PreventiveMedication:
    id: Optional[str]
    name: Optional[str]
    dosage: Optional[str] = None
    schedule_text: Optional[str] = None
    is_active: bool = False


@dataclass(frozen=True)
class AbortiveUsage:
    name: str
    count: int
    category: str  # "triptan", "nsaid", "other"


@dataclass(frozen=True)
class OveruseRisk:
    triptan_days: int
    nsaid_days: int
    triptan_threshold: int
    nsaid_threshold: int
    triptan_per_30: int
    nsaid_per_30: int
    has_risk: bool


@dataclass(frozen=True)
class MedicationSummary:
    current_preventives: tuple
    previous_preventives: tuple
    abortive_usage_by_med: tuple
    overuse_risk: OveruseRisk


@dataclass(frozen=True)
class BPAverage:
    s: int
    d: int


@dataclass(frozen=True)
class BPSummary:
    avg_systolic: Optional[int] = None
    avg_diastolic: Optional[int] = None
    min_systolic: Optional[float] = None
    max_systolic: Optional[float] = None
    min_diastolic: Optional[float] = None
    max_diastolic: Optional[float] = None
    last_readings: tuple = ()
    migraine_day_avg: Optional[BPAverage] = None
    non_migraine_day_avg: Optional[BPAverage] = None


@dataclass(frozen=True)
class MeditationOverlap:
    migraine_days: int
    meditation_days: int
    overlap_days: int


HISTOGRAM_FIELDS = (
    "trigger_counts", "sleep_relation_counts", "sensory_avoidance_counts",
    "time_of_day_counts", "abortive_timing_counts", "relief_counts",
)


@dataclass(frozen=True)
class DoctorSummary:
    window: SummaryWindow
    classification: Classification
    migraine_stats: MigraineStats
    episodes: tuple
    red_flags: tuple
    # Histograms are ((label, count), ...) in first-seen order
    trigger_counts: tuple
    sleep_relation_counts: tuple
    sensory_avoidance_counts: tuple
    time_of_day_counts: tuple
    abortive_timing_counts: tuple
    relief_counts: tuple
    medication: MedicationSummary
    bp: BPSummary
    meditation: MeditationOverlap

    def to_dict(self):
        data = asdict(self)
        for name in HISTOGRAM_FIELDS:
            data[name] = dict(data[name])
        return data


# ---------------------------------------------------------------------------
# Medical report analysis
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TriggerCorrelation:
    trigger: str
    count: int
    avg_severity: Optional[int]
    attack_rate: int  # % of episodes


@dataclass(frozen=True)
class MedicationEffectiveness:
    name: str
    times_used: int
    avg_minutes_to_medication: Optional[int]
    success_rate: int
    avg_severity_before: Optional[int]
    avg_severity_after: Optional[int]  # estimate: severity / 2 on success


@dataclass(frozen=True)
class SleepPatterns:
    avg_hours_on_migraine_day: Optional[float] = None
    poor_sleep_percent: int = 0


@dataclass(frozen=True)
class TimePatterns:
    most_common_hour: Optional[int] = None
    most_common_day: Optional[str] = None


@dataclass(frozen=True)
class MidasScore:
    score: float
    grade: Optional[str] = None


@dataclass(frozen=True)
class FunctionalImpact:
    could_not_work_percent: int = 0
    avg_bed_bound_hours: Optional[float] = None


@dataclass(frozen=True)
class MigraineAnalysis:
    total_episodes: int = 0
    avg_severity: Optional[int] = None
    aura_count: int = 0
    aura_rate_percent: int = 0
    ichd3_count: int = 0
    ichd3_rate_percent: int = 0
    headache_days_last_30: int = 0
    chronic_status: str = "episodic"  # "episodic", "at-risk", "chronic"
    midas: Optional[MidasScore] = None
    trigger_correlations: tuple = ()
    medication_effectiveness: tuple = ()
    sleep_patterns: SleepPatterns = field(default_factory=SleepPatterns)
    time_patterns: TimePatterns = field(default_factory=TimePatterns)
    rescue_episodes_last_30: int = 0
    medication_overuse_risk: bool = False
    functional_impact: FunctionalImpact = field(default_factory=FunctionalImpact)

    def to_dict(self):
        return asdict(self)


# ---------------------------------------------------------------------------
# Adherence
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TrackingStats:
    streak: int = 0
    adherence: int = 0
    total_days: int = 0
    days_since_started: int = 0
    days_since_last_done: Optional[int] = None

    def to_dict(self):
        return asdict(self)


@dataclass(frozen=True)
class TransformationScore:
    score: int
    workout_pct: int
    protein_pct: int
    habit_pct: int
    checkin_pct: int

    def to_dict(self):
        return asdict(self)


@dataclass(frozen=True)
class WeeklyAdherenceSummary:
    workout_pct: int
    protein_pct: int
    habit_pct: int
    checkin_done: bool
    score: int

    def to_dict(self):
        return asdict(self)


@dataclass(frozen=True)
class WeightPlateau:
    is_plateau: bool
    suggestion: Optional[str]
    recent_weights: tuple

    def to_dict(self):
        return asdict(self)


@dataclass(frozen=True)
class CheckinGoalComparison:
    current_weight: Optional[float] = None
    target_weight_min: Optional[float] = None
    target_weight_max: Optional[float] = None
    current_body_fat: Optional[float] = None
    target_body_fat_min: Optional[float] = None
    target_body_fat_max: Optional[float] = None
    weight_on_track: Optional[bool] = None
    body_fat_on_track: Optional[bool] = None

    def to_dict(self):
        return asdict(self)
