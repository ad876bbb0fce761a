"""Async HTTP client for the academic service."""

from __future__ import annotations

from time import perf_counter
from typing import Any, Mapping, Sequence

import httpx

from services.common.identity import USER_ID_HEADER, USER_ROLE_HEADER

from .config import ClientSettings
from .metrics import PORTAL_REQUEST_ERRORS_TOTAL, PORTAL_REQUEST_LATENCY_SECONDS


class PortalAPIError(RuntimeError):
    """Raised when the academic service answers with an error status."""

    def __init__(self, status_code: int, detail: Any, *, operation: str) -> None:
        self.status_code = status_code
        self.detail = detail
        self.operation = operation
        super().__init__(f"{operation} failed with {status_code}: {self.message}")

    @property
    def message(self) -> str:
        if isinstance(self.detail, Mapping):
            return str(self.detail.get("message") or self.detail)
        if isinstance(self.detail, list):
            # FastAPI request validation errors
            return "; ".join(str(item.get("msg", item)) if isinstance(item, Mapping) else str(item) for item in self.detail)
        return str(self.detail)

    @property
    def errors(self) -> list[str]:
        if isinstance(self.detail, Mapping):
            return [str(error) for error in self.detail.get("errors", [])]
        return []

    @property
    def is_auth_failure(self) -> bool:
        return self.status_code in (401, 403)


class PortalClient:
    """Thin wrapper over the academic service routes, one method per route."""

    def __init__(
        self,
        settings: ClientSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {USER_ROLE_HEADER: settings.role}
        if settings.user_id:
            headers[USER_ID_HEADER] = settings.user_id
        self._client = httpx.AsyncClient(
            base_url=settings.base_url,
            headers=headers,
            timeout=settings.timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> "PortalClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, operation: str, method: str, url: str, **kwargs: Any) -> Any:
        started = perf_counter()
        try:
            response = await self._client.request(method, url, **kwargs)
        finally:
            PORTAL_REQUEST_LATENCY_SECONDS.labels(operation=operation).observe(perf_counter() - started)
        if response.is_error:
            PORTAL_REQUEST_ERRORS_TOTAL.labels(operation=operation, status=str(response.status_code)).inc()
            try:
                detail = response.json().get("detail", response.text)
            except ValueError:
                detail = response.text or response.reason_phrase
            raise PortalAPIError(response.status_code, detail, operation=operation)
        if response.status_code == httpx.codes.NO_CONTENT:
            return None
        return response.json()

    async def save_profile(
        self,
        *,
        email: str,
        first_name: str,
        last_name: str,
        role: str = "student",
    ) -> dict[str, Any]:
        payload = {"email": email, "firstName": first_name, "lastName": last_name, "userType": role}
        return await self._request("save_profile", "POST", "/profiles", json=payload)

    async def get_profile(self) -> dict[str, Any]:
        return await self._request("get_profile", "GET", "/profiles/me")

    async def submit_term(
        self,
        *,
        term: int,
        grade: str,
        subjects: Sequence[Mapping[str, Any]],
        school: str | None = None,
        academic_year: str | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"term": term, "grade": grade, "subjects": list(subjects)}
        if school is not None:
            payload["school"] = school
        if academic_year is not None:
            payload["academicYear"] = academic_year
        return await self._request("submit_term", "POST", "/academic-results", json=payload)

    async def list_results(self, *, term: int | None = None, academic_year: str | None = None) -> list[dict[str, Any]]:
        params = _params(term=term, academicYear=academic_year)
        body = await self._request("list_results", "GET", "/academic-results", params=params)
        return body["items"]

    async def delete_result(self, result_id: int) -> None:
        await self._request("delete_result", "DELETE", f"/academic-results/{result_id}")

    async def get_summary(self, term: int, *, academic_year: str | None = None) -> dict[str, Any]:
        params = _params(academicYear=academic_year)
        return await self._request("get_summary", "GET", f"/performance-summaries/{term}", params=params)

    async def list_summaries(self) -> list[dict[str, Any]]:
        body = await self._request("list_summaries", "GET", "/performance-summaries")
        return body["items"]

    async def get_trend(self, *, academic_year: str | None = None) -> dict[str, Any]:
        params = _params(academicYear=academic_year)
        return await self._request("get_trend", "GET", "/performance-summaries/trend", params=params)

    async def coordinator_overview(self) -> dict[str, Any]:
        return await self._request("coordinator_overview", "GET", "/coordinator/overview")

    async def list_students(self, *, limit: int = 50, offset: int = 0) -> dict[str, Any]:
        return await self._request(
            "list_students", "GET", "/coordinator/students", params={"limit": limit, "offset": offset}
        )


def _params(**values: Any) -> dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}
