"""Response shaping shared by the academic routes."""

from __future__ import annotations

from datetime import datetime, timezone

from ..models import AcademicResult, PerformanceSummary, Profile
from ..schemas import AcademicResultResponse, BreakdownSubject, PerformanceSummaryResponse, ProfileResponse

BREAKDOWN_CATEGORIES = ("doing_well", "needs_support", "at_risk")


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def serialize_profile(profile: Profile) -> ProfileResponse:
    return ProfileResponse.model_validate(
        {
            "id": profile.id,
            "email": profile.email,
            "first_name": profile.first_name,
            "last_name": profile.last_name,
            "role": profile.role,
            "current_grade": profile.current_grade,
            "selected_school": profile.selected_school,
            "created_at": _utc(profile.created_at),
            "updated_at": _utc(profile.updated_at),
        }
    )


def serialize_result(result: AcademicResult) -> AcademicResultResponse:
    return AcademicResultResponse.model_validate(
        {
            "id": result.id,
            "subject_name": result.subject_name,
            "level": result.level,
            "final_percentage": result.final_percentage,
            "grade_average": result.grade_average,
            "term": result.term,
            "academic_year": result.academic_year,
            "updated_at": _utc(result.updated_at),
        }
    )


def serialize_summary(summary: PerformanceSummary) -> PerformanceSummaryResponse:
    grouped: dict[str, list[BreakdownSubject]] = {}
    for row in summary.breakdowns:
        grouped.setdefault(row.category, []).append(
            BreakdownSubject(
                subject_name=row.subject_name,
                level=row.level,
                final_percentage=row.final_percentage,
                grade_average=row.grade_average,
            )
        )
    ordered = {category: grouped[category] for category in BREAKDOWN_CATEGORIES if category in grouped}
    return PerformanceSummaryResponse.model_validate(
        {
            "id": summary.id,
            "student_id": summary.student_id,
            "term": summary.term,
            "academic_year": summary.academic_year,
            "average_score": summary.average_score,
            "performance_status": summary.performance_status,
            "feedback": summary.feedback,
            "school": summary.school,
            "breakdowns": ordered,
            "submitted_at": _utc(summary.submitted_at),
            "updated_at": _utc(summary.updated_at),
        }
    )
