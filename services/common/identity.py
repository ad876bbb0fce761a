"""Request identity forwarded by the authenticating gateway."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from fastapi import Header, HTTPException, status

Role = Literal["student", "coordinator"]

USER_ID_HEADER = "X-User-Id"
USER_ROLE_HEADER = "X-User-Role"


@dataclass(slots=True, frozen=True)
class RequestIdentity:
    user_id: str
    role: Role

    @property
    def is_coordinator(self) -> bool:
        return self.role == "coordinator"


def get_identity(
    user_id: str | None = Header(default=None, alias=USER_ID_HEADER),
    role: str | None = Header(default=None, alias=USER_ROLE_HEADER),
) -> RequestIdentity:
    """Resolve the caller from gateway headers, rejecting anonymous requests."""

    cleaned = (user_id or "").strip()
    if not cleaned:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    normalized = (role or "student").strip().lower()
    if normalized not in ("student", "coordinator"):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Unknown role")
    return RequestIdentity(user_id=cleaned, role=normalized)  # type: ignore[arg-type]


def require_coordinator(identity: RequestIdentity) -> RequestIdentity:
    if not identity.is_coordinator:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Coordinator access required")
    return identity
