"""HTTP routes for term result submission and retrieval."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from services.common import RequestIdentity, get_identity

from ..dependencies import get_academic_service, get_academic_year
from ..schemas import (
    AcademicResultListResponse,
    PerformanceSummaryResponse,
    TermSubmission,
)
from ..services import AcademicService, ProfileNotFound, ResultNotFound, ValidationFailed
from .serialization import serialize_result, serialize_summary

router = APIRouter(prefix="/academic-results", tags=["academic-results"])


@router.post("", response_model=PerformanceSummaryResponse, status_code=status.HTTP_201_CREATED)
async def submit_term(
    payload: TermSubmission,
    identity: RequestIdentity = Depends(get_identity),
    service: AcademicService = Depends(get_academic_service),
) -> PerformanceSummaryResponse:
    try:
        summary = await service.submit_term(identity.user_id, payload)
    except ProfileNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Profile not found")
    except ValidationFailed as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": "Invalid subject data", "errors": exc.errors},
        )
    return serialize_summary(summary)


@router.get("", response_model=AcademicResultListResponse)
async def list_results(
    term: int | None = Query(default=None, ge=1, le=4),
    academic_year: str | None = Depends(get_academic_year),
    identity: RequestIdentity = Depends(get_identity),
    service: AcademicService = Depends(get_academic_service),
) -> AcademicResultListResponse:
    results = await service.list_results(
        identity.user_id,
        term=term,
        academic_year=academic_year,
    )
    items = [serialize_result(result) for result in results]
    return AcademicResultListResponse(items=items, total=len(items))


@router.delete("/{result_id}")
async def delete_result(
    result_id: int,
    identity: RequestIdentity = Depends(get_identity),
    service: AcademicService = Depends(get_academic_service),
) -> Response:
    try:
        await service.delete_result(identity.user_id, result_id)
    except ResultNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Result not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
