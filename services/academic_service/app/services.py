"""Service layer for academic results and performance summaries."""

from __future__ import annotations

import logging
from collections import Counter
from typing import Any

from sqlalchemy.exc import IntegrityError

from .metrics import (
    PERFORMANCE_STATUS_TOTAL,
    TERM_AVERAGE_SCORE,
    TERM_SUBMISSION_REJECTIONS_TOTAL,
    TERM_SUBMISSIONS_TOTAL,
)
from .models import AcademicResult, PerformanceSummary, Profile
from .overview_cache import OverviewCache
from .performance import (
    AT_RISK,
    DOING_WELL,
    NEEDS_SUPPORT,
    Trend,
    calculate_average,
    current_academic_year,
    determine_performance_status,
    performance_feedback,
    performance_trend,
    subject_breakdown,
    validate_subjects,
)
from .repository import AcademicRepository
from .schemas import ProfileUpsert, SubjectEntry, TermSubmission

logger = logging.getLogger(__name__)


class ProfileNotFound(Exception):
    """Raised when the caller has no profile yet."""


class ProfileConflict(Exception):
    """Raised when a concurrent request created the same profile first."""


class ResultNotFound(Exception):
    """Raised when a result does not exist or belongs to someone else."""


class ValidationFailed(Exception):
    """Raised when a term submission fails subject validation."""

    def __init__(self, errors: list[str]) -> None:
        super().__init__("; ".join(errors))
        self.errors = errors


class AcademicService:
    """High-level orchestration for profiles, term submissions and summaries."""

    def __init__(self, repository: AcademicRepository, overview_cache: OverviewCache | None = None) -> None:
        self.repository = repository
        self.overview_cache = overview_cache or OverviewCache(None)
        self._overview_stale = False

    async def upsert_profile(self, user_id: str, payload: ProfileUpsert) -> tuple[Profile, bool]:
        """Create the caller's profile or refresh its identity fields."""

        fields = {
            "email": payload.email,
            "first_name": payload.first_name,
            "last_name": payload.last_name,
            "role": payload.role,
        }
        profile = await self.repository.get_profile(user_id)
        if profile is None:
            try:
                created = await self.repository.create_profile(id=user_id, **fields)
            except IntegrityError as exc:
                await self.repository.rollback()
                raise ProfileConflict(user_id) from exc
            logger.info("Created %s profile %s", payload.role, user_id)
            self._overview_stale = True
            return created, True
        return await self.repository.update_profile(profile, fields), False

    async def get_profile(self, user_id: str) -> Profile | None:
        return await self.repository.get_profile(user_id)

    async def get_student(self, student_id: str) -> Profile | None:
        profile = await self.repository.get_profile(student_id)
        if profile is None or profile.role != "student":
            return None
        return profile

    async def require_profile(self, user_id: str) -> Profile:
        profile = await self.repository.get_profile(user_id)
        if profile is None:
            raise ProfileNotFound(user_id)
        return profile

    async def submit_term(self, user_id: str, payload: TermSubmission) -> PerformanceSummary:
        """Validate and store a term's subjects, then rebuild its summary."""

        profile = await self.require_profile(user_id)
        errors = validate_subjects(payload.subjects)
        if errors:
            TERM_SUBMISSION_REJECTIONS_TOTAL.labels(term=str(payload.term)).inc()
            raise ValidationFailed(errors)

        academic_year = payload.academic_year or current_academic_year()
        await self.repository.replace_results(
            student_id=user_id,
            term=payload.term,
            academic_year=academic_year,
            rows=[_result_row(subject) for subject in payload.subjects],
        )

        updates: dict[str, Any] = {"current_grade": payload.grade}
        if payload.school is not None:
            updates["selected_school"] = payload.school
        await self.repository.update_profile(profile, updates)

        summary = await self._store_summary(
            user_id,
            term=payload.term,
            academic_year=academic_year,
            subjects=payload.subjects,
            school=profile.selected_school,
        )
        average = summary.average_score
        status = summary.performance_status

        TERM_SUBMISSIONS_TOTAL.labels(term=str(payload.term)).inc()
        PERFORMANCE_STATUS_TOTAL.labels(status=status).inc()
        TERM_AVERAGE_SCORE.observe(average)
        logger.info(
            "Stored term %s %s results for %s: average=%.2f status=%s",
            payload.term,
            academic_year,
            user_id,
            average,
            status,
        )
        return summary

    async def list_results(
        self,
        user_id: str,
        *,
        term: int | None,
        academic_year: str | None,
    ) -> list[AcademicResult]:
        return await self.repository.list_results(user_id, term=term, academic_year=academic_year)

    async def delete_result(self, user_id: str, result_id: int) -> bool:
        """Delete one of the caller's results; False when already gone."""

        result = await self.repository.get_result(result_id)
        if result is None:
            return False
        if result.student_id != user_id:
            raise ResultNotFound(result_id)
        term, academic_year = result.term, result.academic_year
        await self.repository.delete_result(result)

        remaining = await self.repository.list_results(user_id, term=term, academic_year=academic_year)
        if remaining:
            await self._store_summary(
                user_id,
                term=term,
                academic_year=academic_year,
                subjects=[_subject_entry(item) for item in remaining],
            )
        else:
            await self.repository.delete_summary(user_id, term=term, academic_year=academic_year)
            self._overview_stale = True
        logger.info("Deleted result %s for %s; %d subjects left in term %s", result_id, user_id, len(remaining), term)
        return True

    async def get_summary(self, user_id: str, *, term: int, academic_year: str | None) -> PerformanceSummary | None:
        return await self.repository.get_summary(
            user_id, term=term, academic_year=academic_year or current_academic_year()
        )

    async def list_summaries(self, user_id: str) -> list[PerformanceSummary]:
        return await self.repository.list_summaries(user_id)

    async def term_trend(
        self,
        user_id: str,
        *,
        academic_year: str | None,
    ) -> tuple[str, dict[int, float | None], Trend, float | None]:
        year = academic_year or current_academic_year()
        summaries = await self.repository.list_summaries(user_id, academic_year=year)
        averages: dict[int, float | None] = {term: None for term in range(1, 5)}
        for summary in summaries:
            averages[summary.term] = summary.average_score
        trend, change = performance_trend([averages[term] for term in range(1, 5)])
        return year, averages, trend, change

    async def list_students(self, *, limit: int, offset: int) -> tuple[list[tuple[Profile, PerformanceSummary | None]], int]:
        students, total = await self.repository.list_students(limit=limit, offset=offset)
        latest = await self.repository.latest_summaries([student.id for student in students])
        return [(student, latest.get(student.id)) for student in students], total

    async def publish_changes(self) -> None:
        """Drop the cached overview once the unit of work has committed."""

        if self._overview_stale:
            self._overview_stale = False
            await self.overview_cache.invalidate()

    async def coordinator_overview(self) -> dict[str, Any]:
        cached = await self.overview_cache.get()
        if cached is not None:
            return cached

        student_count = await self.repository.count_students()
        latest = await self.repository.latest_summaries()
        statuses = Counter(summary.performance_status for summary in latest.values())
        averages = [summary.average_score for summary in latest.values()]
        overview = {
            "studentCount": student_count,
            "reportingCount": len(latest),
            "statusCounts": {status: statuses.get(status, 0) for status in (DOING_WELL, NEEDS_SUPPORT, AT_RISK)},
            "meanAverage": round(sum(averages) / len(averages), 2) if averages else None,
        }
        await self.overview_cache.set(overview)
        return overview

    async def _store_summary(
        self,
        user_id: str,
        *,
        term: int,
        academic_year: str,
        subjects: list[SubjectEntry],
        school: str | None = None,
    ) -> PerformanceSummary:
        average = calculate_average(subjects)
        status = determine_performance_status(average)
        fields: dict[str, Any] = {
            "average_score": average,
            "performance_status": status,
            "feedback": performance_feedback(status, subject_breakdown(subjects)),
        }
        if school is not None:
            fields["school"] = school
        summary = await self.repository.replace_summary(
            student_id=user_id,
            term=term,
            academic_year=academic_year,
            fields=fields,
            breakdowns=_breakdown_rows(subjects),
        )
        self._overview_stale = True
        return summary


def _subject_entry(result: AcademicResult) -> SubjectEntry:
    return SubjectEntry(
        name=result.subject_name,
        level=result.level,
        final_percentage=result.final_percentage,
        grade_average=result.grade_average,
    )


def _result_row(subject: SubjectEntry) -> dict[str, Any]:
    return {
        "subject_name": subject.name,
        "level": subject.level,
        "final_percentage": subject.final_percentage,
        "grade_average": subject.grade_average,
    }


def _breakdown_rows(subjects: list[SubjectEntry]) -> list[dict[str, Any]]:
    breakdown = subject_breakdown(subjects)
    by_name = {subject.name: subject for subject in subjects}
    rows: list[dict[str, Any]] = []
    for category, names in breakdown.as_categories().items():
        for name in names:
            subject = by_name[name]
            rows.append(
                {
                    "category": category,
                    "subject_name": name,
                    "level": subject.level,
                    "final_percentage": subject.final_percentage,
                    "grade_average": subject.grade_average,
                }
            )
    return rows
