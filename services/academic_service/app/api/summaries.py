"""Performance summary and trend routes for the authenticated student."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Path, status

from services.common import RequestIdentity, get_identity

from ..dependencies import get_academic_service, get_academic_year
from ..schemas import PerformanceSummaryListResponse, PerformanceSummaryResponse, TrendResponse
from ..services import AcademicService
from .serialization import serialize_summary

router = APIRouter(prefix="/performance-summaries", tags=["performance-summaries"])


@router.get("", response_model=PerformanceSummaryListResponse)
async def list_summaries(
    identity: RequestIdentity = Depends(get_identity),
    service: AcademicService = Depends(get_academic_service),
) -> PerformanceSummaryListResponse:
    summaries = await service.list_summaries(identity.user_id)
    items = [serialize_summary(summary) for summary in summaries]
    return PerformanceSummaryListResponse(items=items, total=len(items))


@router.get("/trend", response_model=TrendResponse)
async def get_trend(
    academic_year: str | None = Depends(get_academic_year),
    identity: RequestIdentity = Depends(get_identity),
    service: AcademicService = Depends(get_academic_service),
) -> TrendResponse:
    year, averages, trend, change = await service.term_trend(identity.user_id, academic_year=academic_year)
    return TrendResponse(
        academic_year=year,
        term_averages=averages,
        trend=trend,
        percentage_change=round(change, 2) if change is not None else None,
    )


@router.get("/{term}", response_model=PerformanceSummaryResponse)
async def get_summary(
    term: int = Path(ge=1, le=4),
    academic_year: str | None = Depends(get_academic_year),
    identity: RequestIdentity = Depends(get_identity),
    service: AcademicService = Depends(get_academic_service),
) -> PerformanceSummaryResponse:
    summary = await service.get_summary(identity.user_id, term=term, academic_year=academic_year)
    if summary is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Summary not found")
    return serialize_summary(summary)
