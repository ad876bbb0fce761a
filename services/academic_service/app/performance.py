"""Derived performance metrics for submitted term results."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Literal, Protocol, Sequence

DOING_WELL = "Doing Well"
NEEDS_SUPPORT = "Needs Support"
AT_RISK = "At Risk"

DOING_WELL_THRESHOLD = 70.0
NEEDS_SUPPORT_THRESHOLD = 50.0
STABLE_CHANGE_PERCENT = 5.0
ACADEMIC_YEAR_START_MONTH = 7

# Achievement level -> inclusive final percentage band.
LEVEL_PERCENTAGE_RANGES: dict[int, tuple[float, float]] = {
    7: (80.0, 100.0),
    6: (70.0, 79.0),
    5: (60.0, 69.0),
    4: (50.0, 59.0),
    3: (40.0, 49.0),
    2: (30.0, 39.0),
    1: (0.0, 29.0),
}

Trend = Literal["improving", "declining", "stable", "insufficient_data"]


class SubjectLike(Protocol):
    name: str
    level: str | None
    final_percentage: float | None
    grade_average: float | None


@dataclass(slots=True)
class SubjectBreakdown:
    doing_well: list[str] = field(default_factory=list)
    needs_support: list[str] = field(default_factory=list)
    at_risk: list[str] = field(default_factory=list)

    def as_categories(self) -> dict[str, list[str]]:
        return {
            "doing_well": list(self.doing_well),
            "needs_support": list(self.needs_support),
            "at_risk": list(self.at_risk),
        }


def _as_number(value: float | None) -> float | None:
    if value is None:
        return None
    number = float(value)
    if math.isnan(number):
        return None
    return number


def calculate_average(subjects: Sequence[SubjectLike]) -> float:
    """Mean final percentage rounded to two places; unusable values count as zero."""

    if not subjects:
        return 0.0
    total = sum(_as_number(subject.final_percentage) or 0.0 for subject in subjects)
    return round(total / len(subjects), 2)


def determine_performance_status(average: float) -> str:
    if average >= DOING_WELL_THRESHOLD:
        return DOING_WELL
    if average >= NEEDS_SUPPORT_THRESHOLD:
        return NEEDS_SUPPORT
    return AT_RISK


def validate_subjects(subjects: Sequence[SubjectLike]) -> list[str]:
    """Return human readable problems with a term submission, empty when valid."""

    if not subjects:
        return ["At least one subject is required"]

    errors: list[str] = []
    seen: set[str] = set()
    for index, subject in enumerate(subjects, start=1):
        percentage = _as_number(subject.final_percentage)
        grade_average = _as_number(subject.grade_average)
        name = (subject.name or "").strip()
        if not name:
            errors.append(f"Subject {index} name is required")
        elif name.lower() in seen:
            errors.append(f"Subject {index} ({name}) is listed more than once")
        seen.add(name.lower())
        if not (subject.level or "").strip():
            errors.append(f"Subject {index} level is required")
        if percentage is None or not 0 <= percentage <= 100:
            errors.append(f"Subject {index} percentage must be between 0 and 100")
        if grade_average is None or not 0 <= grade_average <= 100:
            errors.append(f"Subject {index} grade average must be between 0 and 100")
        mismatch = level_mismatch(subject.level, percentage)
        if mismatch is not None:
            errors.append(f"Subject {index}: {mismatch}")
    return errors


def level_mismatch(level: str | None, percentage: float | None) -> str | None:
    """Describe a final percentage outside its achievement level band, if any."""

    if level is None or percentage is None:
        return None
    try:
        band = LEVEL_PERCENTAGE_RANGES.get(int(level.strip()))
    except ValueError:
        return None
    if band is None:
        return None
    low, high = band
    if low <= percentage <= high:
        return None
    return f"for level {int(level)}, percentage must be {low:g}-{high:g}%"


def subject_breakdown(subjects: Iterable[SubjectLike]) -> SubjectBreakdown:
    breakdown = SubjectBreakdown()
    for subject in subjects:
        percentage = _as_number(subject.final_percentage) or 0.0
        if percentage >= DOING_WELL_THRESHOLD:
            breakdown.doing_well.append(subject.name)
        elif percentage >= NEEDS_SUPPORT_THRESHOLD:
            breakdown.needs_support.append(subject.name)
        else:
            breakdown.at_risk.append(subject.name)
    return breakdown


def performance_trend(term_averages: Sequence[float | None]) -> tuple[Trend, float | None]:
    """Compare the first and last known term averages.

    Returns the trend label and the relative change in percent. Fewer than two
    known averages, or a zero starting average, gives ``insufficient_data``.
    """

    known = [value for value in term_averages if value is not None]
    if len(known) < 2 or known[0] == 0:
        return "insufficient_data", None

    first, last = known[0], known[-1]
    change = (last - first) / first * 100
    if abs(change) < STABLE_CHANGE_PERCENT:
        return "stable", change
    return ("improving" if change > 0 else "declining"), change


def performance_feedback(status: str, breakdown: SubjectBreakdown) -> str:
    if status == DOING_WELL:
        parts = ["Excellent work! You are performing well overall."]
    elif status == NEEDS_SUPPORT:
        parts = ["You are making progress, but there is room for improvement."]
    else:
        parts = ["Your performance needs immediate attention."]

    if breakdown.doing_well:
        parts.append(f"You are excelling in: {', '.join(breakdown.doing_well)}. Keep up the good work!")
    if breakdown.needs_support:
        parts.append(
            f"You need additional support in: {', '.join(breakdown.needs_support)}. "
            "Consider seeking help from teachers or tutors."
        )
    if breakdown.at_risk:
        parts.append(
            f"You are at risk in: {', '.join(breakdown.at_risk)}. Immediate intervention is recommended."
        )
    return " ".join(parts)


def current_academic_year(today: date | None = None) -> str:
    """Academic years run July to June, e.g. ``2025/2026``."""

    today = today or date.today()
    if today.month < ACADEMIC_YEAR_START_MONTH:
        return f"{today.year - 1}/{today.year}"
    return f"{today.year}/{today.year + 1}"
