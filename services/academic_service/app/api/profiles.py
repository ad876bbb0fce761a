"""Profile routes for the authenticated caller."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response, status

from services.common import RequestIdentity, get_identity

from ..dependencies import get_academic_service
from ..schemas import ProfileResponse, ProfileUpsert
from ..services import AcademicService, ProfileConflict
from .serialization import serialize_profile

router = APIRouter(prefix="/profiles", tags=["profiles"])


@router.post("", response_model=ProfileResponse)
async def upsert_profile(
    payload: ProfileUpsert,
    response: Response,
    identity: RequestIdentity = Depends(get_identity),
    service: AcademicService = Depends(get_academic_service),
) -> ProfileResponse:
    try:
        profile, created = await service.upsert_profile(identity.user_id, payload)
    except ProfileConflict:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Profile already exists")
    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
    return serialize_profile(profile)


@router.get("/me", response_model=ProfileResponse)
async def get_my_profile(
    identity: RequestIdentity = Depends(get_identity),
    service: AcademicService = Depends(get_academic_service),
) -> ProfileResponse:
    profile = await service.get_profile(identity.user_id)
    if profile is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Profile not found")
    return serialize_profile(profile)
