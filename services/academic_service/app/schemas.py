"""Pydantic schemas for the academic service."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

_ACADEMIC_YEAR = re.compile(r"^\d{4}/\d{4}$")


def parse_academic_year(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = value.strip()
    if not _ACADEMIC_YEAR.match(cleaned):
        raise ValueError("academic year must look like 2024/2025")
    start, end = (int(part) for part in cleaned.split("/"))
    if end != start + 1:
        raise ValueError("academic year must span consecutive years")
    return cleaned


class ProfileUpsert(BaseModel):
    email: str = Field(min_length=3, max_length=255)
    first_name: str = Field(alias="firstName", max_length=128)
    last_name: str = Field(alias="lastName", max_length=128)
    role: Literal["student", "coordinator"] = Field(default="student", alias="userType")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        cleaned = value.strip().lower()
        local, _, domain = cleaned.partition("@")
        if not local or "." not in domain:
            raise ValueError("invalid email format")
        return cleaned

    @field_validator("first_name", "last_name")
    @classmethod
    def _require_name(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("name is required")
        return cleaned


class ProfileResponse(BaseModel):
    id: str
    email: str
    first_name: str = Field(alias="firstName")
    last_name: str = Field(alias="lastName")
    role: str
    current_grade: str | None = Field(default=None, alias="currentGrade")
    selected_school: str | None = Field(default=None, alias="selectedSchool")
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


class SubjectEntry(BaseModel):
    name: str = Field(default="", max_length=128)
    level: str = Field(default="", max_length=16)
    final_percentage: float | None = Field(default=None, alias="finalPercentage")
    grade_average: float | None = Field(default=None, alias="gradeAverage")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("name", "level")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()


class TermSubmission(BaseModel):
    grade: str = Field(min_length=1, max_length=16)
    term: int = Field(ge=1, le=4)
    school: str | None = Field(default=None, max_length=255)
    academic_year: str | None = Field(default=None, alias="academicYear")
    subjects: list[SubjectEntry] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("academic_year")
    @classmethod
    def _validate_year(cls, value: str | None) -> str | None:
        return parse_academic_year(value)


class AcademicResultResponse(BaseModel):
    id: int
    subject_name: str = Field(alias="subjectName")
    level: str
    final_percentage: float = Field(alias="finalPercentage")
    grade_average: float = Field(alias="gradeAverage")
    term: int
    academic_year: str = Field(alias="academicYear")
    updated_at: datetime = Field(alias="updatedAt")

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


class AcademicResultListResponse(BaseModel):
    items: list[AcademicResultResponse]
    total: int


class BreakdownSubject(BaseModel):
    subject_name: str = Field(alias="subjectName")
    level: str | None = None
    final_percentage: float | None = Field(default=None, alias="finalPercentage")
    grade_average: float | None = Field(default=None, alias="gradeAverage")

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


class PerformanceSummaryResponse(BaseModel):
    id: int
    student_id: str = Field(alias="studentId")
    term: int
    academic_year: str = Field(alias="academicYear")
    average_score: float = Field(alias="averageScore")
    performance_status: str = Field(alias="performanceStatus")
    feedback: str | None = None
    school: str | None = None
    breakdowns: dict[str, list[BreakdownSubject]] = Field(default_factory=dict)
    submitted_at: datetime = Field(alias="submittedAt")
    updated_at: datetime = Field(alias="updatedAt")

    model_config = ConfigDict(populate_by_name=True)


class PerformanceSummaryListResponse(BaseModel):
    items: list[PerformanceSummaryResponse]
    total: int


class TrendResponse(BaseModel):
    academic_year: str = Field(alias="academicYear")
    term_averages: dict[int, float | None] = Field(alias="termAverages")
    trend: Literal["improving", "declining", "stable", "insufficient_data"]
    percentage_change: float | None = Field(default=None, alias="percentageChange")

    model_config = ConfigDict(populate_by_name=True)


class StudentOverviewResponse(BaseModel):
    profile: ProfileResponse
    latest_summary: PerformanceSummaryResponse | None = Field(default=None, alias="latestSummary")

    model_config = ConfigDict(populate_by_name=True)


class StudentListResponse(BaseModel):
    items: list[StudentOverviewResponse]
    total: int


class CoordinatorOverviewResponse(BaseModel):
    student_count: int = Field(alias="studentCount")
    reporting_count: int = Field(alias="reportingCount")
    status_counts: dict[str, int] = Field(alias="statusCounts")
    mean_average: float | None = Field(default=None, alias="meanAverage")

    model_config = ConfigDict(populate_by_name=True)
