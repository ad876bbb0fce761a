"""Coordinator dashboard routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status

from services.common import RequestIdentity

from ..dependencies import get_academic_service, get_coordinator
from ..schemas import (
    CoordinatorOverviewResponse,
    PerformanceSummaryListResponse,
    StudentListResponse,
    StudentOverviewResponse,
)
from ..services import AcademicService
from .serialization import serialize_profile, serialize_summary

router = APIRouter(prefix="/coordinator", tags=["coordinator"])


@router.get("/overview", response_model=CoordinatorOverviewResponse)
async def get_overview(
    _: RequestIdentity = Depends(get_coordinator),
    service: AcademicService = Depends(get_academic_service),
) -> CoordinatorOverviewResponse:
    overview = await service.coordinator_overview()
    return CoordinatorOverviewResponse.model_validate(overview)


@router.get("/students", response_model=StudentListResponse)
async def list_students(
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    _: RequestIdentity = Depends(get_coordinator),
    service: AcademicService = Depends(get_academic_service),
) -> StudentListResponse:
    rows, total = await service.list_students(limit=limit, offset=offset)
    items = [
        StudentOverviewResponse(
            profile=serialize_profile(profile),
            latest_summary=serialize_summary(summary) if summary is not None else None,
        )
        for profile, summary in rows
    ]
    return StudentListResponse(items=items, total=total)


@router.get("/students/{student_id}/summaries", response_model=PerformanceSummaryListResponse)
async def list_student_summaries(
    student_id: str,
    _: RequestIdentity = Depends(get_coordinator),
    service: AcademicService = Depends(get_academic_service),
) -> PerformanceSummaryListResponse:
    if await service.get_student(student_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Student not found")
    summaries = await service.list_summaries(student_id)
    items = [serialize_summary(summary) for summary in summaries]
    return PerformanceSummaryListResponse(items=items, total=len(items))
