"""Persistence helpers for the academic service."""

from __future__ import annotations

from typing import Any, Sequence

from sqlalchemy import Select, and_, delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import AcademicResult, PerformanceBreakdown, PerformanceSummary, Profile


class AcademicRepository:
    """Database access helpers for profiles, results and summaries."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # Profiles ---------------------------------------------------------------------------------
    async def get_profile(self, profile_id: str) -> Profile | None:
        return await self.session.get(Profile, profile_id)

    async def rollback(self) -> None:
        await self.session.rollback()

    async def create_profile(self, **fields: Any) -> Profile:
        profile = Profile(**fields)
        self.session.add(profile)
        await self.session.flush()
        await self.session.refresh(profile, attribute_names=["created_at", "updated_at"])
        return profile

    async def update_profile(self, profile: Profile, updates: dict[str, Any]) -> Profile:
        for field, value in updates.items():
            setattr(profile, field, value)
        await self.session.flush()
        await self.session.refresh(profile, attribute_names=["updated_at"])
        return profile

    async def list_students(self, *, limit: int, offset: int) -> tuple[list[Profile], int]:
        clause = Profile.role == "student"
        total = (await self.session.execute(select(func.count(Profile.id)).where(clause))).scalar_one()
        result = await self.session.execute(
            select(Profile)
            .where(clause)
            .order_by(Profile.last_name, Profile.first_name, Profile.id)
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars()), total

    # Results ----------------------------------------------------------------------------------
    async def replace_results(
        self,
        *,
        student_id: str,
        term: int,
        academic_year: str,
        rows: Sequence[dict[str, Any]],
    ) -> list[AcademicResult]:
        """Make ``rows`` the term's full subject list; names match case-insensitively."""

        existing = {
            result.subject_name.lower(): result
            for result in await self.list_results(student_id, term=term, academic_year=academic_year)
        }
        submitted = {row["subject_name"].lower() for row in rows}
        for key, result in existing.items():
            if key not in submitted:
                await self.session.delete(result)
        await self.session.flush()

        saved: list[AcademicResult] = []
        for row in rows:
            result = existing.get(row["subject_name"].lower())
            if result is None:
                result = AcademicResult(student_id=student_id, term=term, academic_year=academic_year, **row)
                self.session.add(result)
            else:
                for field, value in row.items():
                    setattr(result, field, value)
            saved.append(result)
        await self.session.flush()
        for result in saved:
            await self.session.refresh(result, attribute_names=["created_at", "updated_at"])
        return saved

    async def list_results(
        self,
        student_id: str,
        *,
        term: int | None = None,
        academic_year: str | None = None,
    ) -> list[AcademicResult]:
        filters = [AcademicResult.student_id == student_id]
        if term is not None:
            filters.append(AcademicResult.term == term)
        if academic_year is not None:
            filters.append(AcademicResult.academic_year == academic_year)
        result = await self.session.execute(
            select(AcademicResult)
            .where(and_(*filters))
            .order_by(AcademicResult.subject_name, AcademicResult.term)
        )
        return list(result.scalars())

    async def get_result(self, result_id: int) -> AcademicResult | None:
        return await self.session.get(AcademicResult, result_id)

    async def delete_result(self, result: AcademicResult) -> None:
        await self.session.delete(result)
        await self.session.flush()

    # Summaries --------------------------------------------------------------------------------
    async def replace_summary(
        self,
        *,
        student_id: str,
        term: int,
        academic_year: str,
        fields: dict[str, Any],
        breakdowns: Sequence[dict[str, Any]],
    ) -> PerformanceSummary:
        summary = await self.get_summary(student_id, term=term, academic_year=academic_year)
        if summary is None:
            summary = PerformanceSummary(student_id=student_id, term=term, academic_year=academic_year, **fields)
            self.session.add(summary)
            await self.session.flush()
        else:
            for field, value in fields.items():
                setattr(summary, field, value)
            await self.session.execute(
                delete(PerformanceBreakdown).where(PerformanceBreakdown.summary_id == summary.id)
            )
        for row in breakdowns:
            self.session.add(PerformanceBreakdown(summary_id=summary.id, **row))
        await self.session.flush()
        await self.session.refresh(summary, attribute_names=["breakdowns", "submitted_at", "updated_at"])
        return summary

    async def get_summary(
        self,
        student_id: str,
        *,
        term: int,
        academic_year: str,
    ) -> PerformanceSummary | None:
        result = await self.session.execute(
            select(PerformanceSummary).where(
                PerformanceSummary.student_id == student_id,
                PerformanceSummary.term == term,
                PerformanceSummary.academic_year == academic_year,
            )
        )
        return result.scalar_one_or_none()

    async def delete_summary(self, student_id: str, *, term: int, academic_year: str) -> bool:
        summary = await self.get_summary(student_id, term=term, academic_year=academic_year)
        if summary is None:
            return False
        await self.session.delete(summary)
        await self.session.flush()
        return True

    async def list_summaries(
        self,
        student_id: str,
        *,
        academic_year: str | None = None,
    ) -> list[PerformanceSummary]:
        query: Select[tuple[PerformanceSummary]] = select(PerformanceSummary).where(
            PerformanceSummary.student_id == student_id
        )
        if academic_year is not None:
            query = query.where(PerformanceSummary.academic_year == academic_year)
        result = await self.session.execute(
            query.order_by(PerformanceSummary.academic_year.desc(), PerformanceSummary.term.desc())
        )
        return list(result.scalars())

    async def latest_summaries(self, student_ids: Sequence[str] | None = None) -> dict[str, PerformanceSummary]:
        """Return each student's most recent summary keyed by student id."""

        query = select(PerformanceSummary).join(Profile, Profile.id == PerformanceSummary.student_id).where(
            Profile.role == "student"
        )
        if student_ids is not None:
            if not student_ids:
                return {}
            query = query.where(PerformanceSummary.student_id.in_(student_ids))
        result = await self.session.execute(
            query.order_by(
                PerformanceSummary.student_id,
                PerformanceSummary.academic_year.desc(),
                PerformanceSummary.term.desc(),
            )
        )
        latest: dict[str, PerformanceSummary] = {}
        for summary in result.scalars():
            latest.setdefault(summary.student_id, summary)
        return latest

    async def count_students(self) -> int:
        result = await self.session.execute(select(func.count(Profile.id)).where(Profile.role == "student"))
        return result.scalar_one()
