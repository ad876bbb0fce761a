"""Dependency helpers for the academic service."""

from __future__ import annotations

from collections.abc import AsyncIterator

from fastapi import Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from services.common import RequestIdentity, get_identity, lifespan_session, require_coordinator

from .overview_cache import OverviewCache
from .repository import AcademicRepository
from .schemas import parse_academic_year
from .services import AcademicService


def get_overview_cache(request: Request) -> OverviewCache | None:
    return getattr(request.app.state, "overview_cache", None)


async def get_academic_service(
    request: Request,
    overview_cache: OverviewCache | None = Depends(get_overview_cache),
) -> AsyncIterator[AcademicService]:
    """Yield a service bound to one unit of work; cache changes publish after commit."""

    session_factory: async_sessionmaker[AsyncSession] = request.app.state.session_factory
    async with lifespan_session(session_factory) as session:
        service = AcademicService(AcademicRepository(session), overview_cache=overview_cache)
        yield service
    await service.publish_changes()


def get_coordinator(identity: RequestIdentity = Depends(get_identity)) -> RequestIdentity:
    return require_coordinator(identity)


def get_academic_year(
    academic_year: str | None = Query(default=None, alias="academicYear"),
) -> str | None:
    try:
        return parse_academic_year(academic_year)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
