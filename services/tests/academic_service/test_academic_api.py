import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient
from prometheus_client import REGISTRY
from sqlalchemy import func, select

from services.common import ServiceSettings
from services.academic_service.app.main import create_app
from services.academic_service.app.models import AcademicResult, Profile
from services.academic_service.app.overview_cache import OverviewCache

YEAR = "2024/2025"


def _run(coro):
    return asyncio.run(coro)


@asynccontextmanager
async def _app_client(tmp_path) -> AsyncIterator[tuple[Any, AsyncClient]]:
    settings = ServiceSettings(
        app_name="Academic Service Test",
        enable_metrics=False,
        enable_tracing=False,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'academic.db'}",
    )
    app = create_app(settings)
    async with app.router.lifespan_context(app):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield app, client


@asynccontextmanager
async def _client(tmp_path) -> AsyncIterator[AsyncClient]:
    async with _app_client(tmp_path) as (_, client):
        yield client


def _student(user_id: str = "student-1") -> dict[str, str]:
    return {"X-User-Id": user_id, "X-User-Role": "student"}


def _coordinator(user_id: str = "coordinator-1") -> dict[str, str]:
    return {"X-User-Id": user_id, "X-User-Role": "coordinator"}


def _profile_payload(**overrides: Any) -> dict[str, Any]:
    payload = {"email": "ada@example.com", "firstName": "Ada", "lastName": "Lovelace"}
    payload.update(overrides)
    return payload


def _subject(name: str, level: str, percentage: float, grade_average: float = 60.0) -> dict[str, Any]:
    return {"name": name, "level": level, "finalPercentage": percentage, "gradeAverage": grade_average}


def _term_one() -> dict[str, Any]:
    return {
        "grade": "10",
        "term": 1,
        "school": "Hillside High",
        "academicYear": YEAR,
        "subjects": [
            _subject("Mathematics", "6", 75),
            _subject("English", "5", 65),
            _subject("Science", "3", 40),
        ],
    }


def _term_two() -> dict[str, Any]:
    return {
        "grade": "10",
        "term": 2,
        "academicYear": YEAR,
        "subjects": [
            _subject("Mathematics", "7", 85),
            _subject("English", "6", 75),
            _subject("Science", "4", 50),
        ],
    }


def _metric(name: str, labels: dict[str, str]) -> float:
    value = REGISTRY.get_sample_value(name, labels)
    return float(value) if value is not None else 0.0


class _CommitAwareRedis:
    """Records the committed row counts another session sees when the key is deleted."""

    def __init__(self, session_factory) -> None:
        self._session_factory = session_factory
        self.store: dict[str, str] = {}
        self.visible_at_delete: list[tuple[int, int]] = []

    async def get(self, key: str) -> str | None:
        return self.store.get(key)

    async def set(self, key: str, value: str, ex: int | None = None) -> bool:
        self.store[key] = value
        return True

    async def delete(self, key: str) -> int:
        async with self._session_factory() as session:
            profiles = (await session.execute(select(func.count(Profile.id)))).scalar_one()
            results = (await session.execute(select(func.count(AcademicResult.id)))).scalar_one()
        self.visible_at_delete.append((profiles, results))
        return 1 if self.store.pop(key, None) is not None else 0


def test_requests_without_identity_are_rejected(tmp_path) -> None:
    async def body() -> None:
        async with _client(tmp_path) as client:
            anonymous = await client.get("/profiles/me")
            unknown_role = await client.get("/profiles/me", headers={"X-User-Id": "u1", "X-User-Role": "admin"})

        assert anonymous.status_code == 401
        assert anonymous.json()["detail"] == "Unauthorized"
        assert unknown_role.status_code == 403

    _run(body())


def test_profile_create_then_update(tmp_path) -> None:
    async def body() -> None:
        async with _client(tmp_path) as client:
            missing = await client.get("/profiles/me", headers=_student())
            created = await client.post(
                "/profiles",
                json=_profile_payload(email="  Ada@Example.COM "),
                headers=_student(),
            )
            updated = await client.post(
                "/profiles",
                json=_profile_payload(lastName="King"),
                headers=_student(),
            )
            fetched = await client.get("/profiles/me", headers=_student())
            invalid = await client.post(
                "/profiles",
                json=_profile_payload(email="not-an-email"),
                headers=_student("student-2"),
            )

        assert missing.status_code == 404
        assert created.status_code == 201
        assert created.json()["email"] == "ada@example.com"
        assert created.json()["role"] == "student"
        assert updated.status_code == 200
        assert fetched.json()["lastName"] == "King"
        assert fetched.json()["id"] == "student-1"
        assert invalid.status_code == 422

    _run(body())


def test_submit_term_builds_summary(tmp_path) -> None:
    async def body() -> None:
        async with _client(tmp_path) as client:
            await client.post("/profiles", json=_profile_payload(), headers=_student())
            response = await client.post("/academic-results", json=_term_one(), headers=_student())
            profile = await client.get("/profiles/me", headers=_student())

        assert response.status_code == 201
        summary = response.json()
        assert summary["term"] == 1
        assert summary["academicYear"] == YEAR
        assert summary["averageScore"] == 60.0
        assert summary["performanceStatus"] == "Needs Support"
        assert summary["school"] == "Hillside High"
        assert list(summary["breakdowns"]) == ["doing_well", "needs_support", "at_risk"]
        assert summary["breakdowns"]["doing_well"][0]["subjectName"] == "Mathematics"
        assert summary["breakdowns"]["at_risk"][0]["subjectName"] == "Science"
        assert "You are excelling in: Mathematics." in summary["feedback"]
        assert "You are at risk in: Science." in summary["feedback"]
        assert profile.json()["currentGrade"] == "10"
        assert profile.json()["selectedSchool"] == "Hillside High"

    _run(body())


def test_submit_without_profile_returns_404(tmp_path) -> None:
    async def body() -> None:
        async with _client(tmp_path) as client:
            response = await client.post("/academic-results", json=_term_one(), headers=_student())

        assert response.status_code == 404

    _run(body())


def test_invalid_subjects_are_rejected_with_messages(tmp_path) -> None:
    async def body() -> None:
        payload = _term_one()
        payload["subjects"] = [
            _subject("Math", "7", 65, 70),
            _subject("math", "5", 62, 101),
        ]
        rejections = _metric("academic_term_submission_rejections_total", {"term": "1"})
        async with _client(tmp_path) as client:
            await client.post("/profiles", json=_profile_payload(), headers=_student())
            invalid = await client.post("/academic-results", json=payload, headers=_student())
            empty = await client.post(
                "/academic-results",
                json={**_term_one(), "subjects": []},
                headers=_student(),
            )
            stored = await client.get("/academic-results", headers=_student())

        assert invalid.status_code == 422
        detail = invalid.json()["detail"]
        assert detail["message"] == "Invalid subject data"
        assert detail["errors"] == [
            "Subject 1: for level 7, percentage must be 80-100%",
            "Subject 2 (math) is listed more than once",
            "Subject 2 grade average must be between 0 and 100",
        ]
        assert empty.json()["detail"]["errors"] == ["At least one subject is required"]
        assert stored.json()["total"] == 0
        assert _metric("academic_term_submission_rejections_total", {"term": "1"}) - rejections == 2

    _run(body())


def test_resubmitting_term_replaces_results_and_summary(tmp_path) -> None:
    async def body() -> None:
        revised = _term_one()
        revised["subjects"] = [_subject("Mathematics", "7", 90), _subject("History", "6", 70)]
        async with _client(tmp_path) as client:
            await client.post("/profiles", json=_profile_payload(), headers=_student())
            await client.post("/academic-results", json=_term_one(), headers=_student())
            second = await client.post("/academic-results", json=revised, headers=_student())
            results = await client.get(
                "/academic-results",
                params={"term": 1, "academicYear": YEAR},
                headers=_student(),
            )
            summaries = await client.get("/performance-summaries", headers=_student())

        assert second.status_code == 201
        assert second.json()["averageScore"] == 80.0
        assert second.json()["performanceStatus"] == "Doing Well"
        assert list(second.json()["breakdowns"]) == ["doing_well"]
        by_subject = {item["subjectName"]: item for item in results.json()["items"]}
        assert set(by_subject) == {"History", "Mathematics"}
        assert by_subject["Mathematics"]["finalPercentage"] == 90.0
        assert results.json()["total"] == 2
        assert summaries.json()["total"] == 1

    _run(body())


def test_results_are_scoped_to_their_owner(tmp_path) -> None:
    async def body() -> None:
        async with _client(tmp_path) as client:
            for user in ("student-1", "student-2"):
                await client.post("/profiles", json=_profile_payload(), headers=_student(user))
            await client.post("/academic-results", json=_term_one(), headers=_student("student-1"))
            listed = await client.get("/academic-results", headers=_student("student-1"))
            result_id = listed.json()["items"][0]["id"]

            foreign = await client.delete(f"/academic-results/{result_id}", headers=_student("student-2"))
            own = await client.delete(f"/academic-results/{result_id}", headers=_student("student-1"))
            after = await client.get("/academic-results", headers=_student("student-1"))
            other = await client.get("/academic-results", headers=_student("student-2"))

        assert listed.json()["total"] == 3
        assert foreign.status_code == 404
        assert own.status_code == 204
        assert after.json()["total"] == 2
        assert other.json()["total"] == 0

    _run(body())


def test_resubmitting_matches_subject_names_case_insensitively(tmp_path) -> None:
    async def body() -> None:
        revised = _term_one()
        revised["subjects"] = [
            _subject("mathematics", "7", 80),
            _subject("ENGLISH", "5", 65),
            _subject("Science", "3", 40),
        ]
        async with _client(tmp_path) as client:
            await client.post("/profiles", json=_profile_payload(), headers=_student())
            await client.post("/academic-results", json=_term_one(), headers=_student())
            before = await client.get("/academic-results", headers=_student())
            await client.post("/academic-results", json=revised, headers=_student())
            after = await client.get("/academic-results", headers=_student())

        assert after.json()["total"] == 3
        assert {item["id"] for item in after.json()["items"]} == {item["id"] for item in before.json()["items"]}
        names = {item["subjectName"]: item["finalPercentage"] for item in after.json()["items"]}
        assert names == {"ENGLISH": 65.0, "Science": 40.0, "mathematics": 80.0}

    _run(body())


def test_deleting_a_result_rebuilds_the_term_summary(tmp_path) -> None:
    async def body() -> None:
        payload = _term_one()
        payload["subjects"] = [_subject("Mathematics", "7", 90), _subject("English", "3", 40)]
        async with _client(tmp_path) as client:
            await client.post("/profiles", json=_profile_payload(), headers=_student())
            submitted = await client.post("/academic-results", json=payload, headers=_student())
            listed = await client.get("/academic-results", headers=_student())
            ids = {item["subjectName"]: item["id"] for item in listed.json()["items"]}

            await client.delete(f"/academic-results/{ids['English']}", headers=_student())
            rebuilt = await client.get(
                "/performance-summaries/1", params={"academicYear": YEAR}, headers=_student()
            )
            await client.delete(f"/academic-results/{ids['Mathematics']}", headers=_student())
            emptied = await client.get(
                "/performance-summaries/1", params={"academicYear": YEAR}, headers=_student()
            )
            summaries = await client.get("/performance-summaries", headers=_student())

        assert submitted.json()["averageScore"] == 65.0
        assert submitted.json()["performanceStatus"] == "Needs Support"

        assert rebuilt.status_code == 200
        summary = rebuilt.json()
        assert summary["averageScore"] == 90.0
        assert summary["performanceStatus"] == "Doing Well"
        assert list(summary["breakdowns"]) == ["doing_well"]
        assert "at_risk" not in summary["breakdowns"]
        assert summary["school"] == "Hillside High"

        assert emptied.status_code == 404
        assert summaries.json()["total"] == 0

    _run(body())


def test_overview_cache_is_invalidated_after_commit(tmp_path) -> None:
    async def body() -> None:
        async with _app_client(tmp_path) as (app, client):
            redis = _CommitAwareRedis(app.state.session_factory)
            app.state.overview_cache = OverviewCache(redis, ttl_seconds=60)

            await client.post("/profiles", json=_profile_payload(), headers=_student())
            await client.post("/academic-results", json=_term_one(), headers=_student())
            overview = await client.get("/coordinator/overview", headers=_coordinator())
            cached = dict(redis.store)
            listed = await client.get("/academic-results", headers=_student())
            await client.delete(f"/academic-results/{listed.json()['items'][0]['id']}", headers=_student())
            rejected = await client.post(
                "/academic-results", json={**_term_one(), "subjects": []}, headers=_student()
            )

        assert overview.json()["reportingCount"] == 1
        assert list(cached) == ["academic:coordinator_overview"]
        assert rejected.status_code == 422
        # Each delete saw the rows its own request wrote.
        assert redis.visible_at_delete == [(1, 0), (1, 3), (1, 2)]
        assert redis.store == {}

    _run(body())


def test_summary_lookup_and_trend(tmp_path) -> None:
    async def body() -> None:
        async with _client(tmp_path) as client:
            await client.post("/profiles", json=_profile_payload(), headers=_student())
            await client.post("/academic-results", json=_term_one(), headers=_student())
            early = await client.get(
                "/performance-summaries/trend", params={"academicYear": YEAR}, headers=_student()
            )
            await client.post("/academic-results", json=_term_two(), headers=_student())

            summary = await client.get(
                "/performance-summaries/2", params={"academicYear": YEAR}, headers=_student()
            )
            missing = await client.get(
                "/performance-summaries/3", params={"academicYear": YEAR}, headers=_student()
            )
            out_of_range = await client.get("/performance-summaries/5", headers=_student())
            bad_year = await client.get(
                "/performance-summaries/1", params={"academicYear": "2024-25"}, headers=_student()
            )
            trend = await client.get(
                "/performance-summaries/trend", params={"academicYear": YEAR}, headers=_student()
            )
            listing = await client.get("/performance-summaries", headers=_student())

        assert early.json()["trend"] == "insufficient_data"
        assert early.json()["percentageChange"] is None
        assert summary.status_code == 200
        assert summary.json()["performanceStatus"] == "Doing Well"
        assert missing.status_code == 404
        assert out_of_range.status_code == 422
        assert bad_year.status_code == 422
        body_json = trend.json()
        assert body_json["academicYear"] == YEAR
        assert body_json["termAverages"] == {"1": 60.0, "2": 70.0, "3": None, "4": None}
        assert body_json["trend"] == "improving"
        assert body_json["percentageChange"] == pytest.approx(16.67)
        assert [item["term"] for item in listing.json()["items"]] == [2, 1]

    _run(body())


def test_coordinator_routes_require_coordinator_role(tmp_path) -> None:
    async def body() -> None:
        async with _client(tmp_path) as client:
            overview = await client.get("/coordinator/overview", headers=_student())
            students = await client.get("/coordinator/students", headers=_student())

        assert overview.status_code == 403
        assert overview.json()["detail"] == "Coordinator access required"
        assert students.status_code == 403

    _run(body())


def test_coordinator_overview_and_student_list(tmp_path) -> None:
    async def body() -> None:
        async with _client(tmp_path) as client:
            await client.post(
                "/profiles",
                json=_profile_payload(firstName="Ada", lastName="Lovelace"),
                headers=_student("student-1"),
            )
            await client.post(
                "/profiles",
                json=_profile_payload(email="alan@example.com", firstName="Alan", lastName="Turing"),
                headers=_student("student-2"),
            )
            await client.post(
                "/profiles",
                json=_profile_payload(email="grace@example.com", userType="coordinator"),
                headers=_coordinator(),
            )
            await client.post("/academic-results", json=_term_one(), headers=_student("student-1"))
            await client.post("/academic-results", json=_term_two(), headers=_student("student-1"))

            overview = await client.get("/coordinator/overview", headers=_coordinator())
            students = await client.get("/coordinator/students", params={"limit": 10}, headers=_coordinator())
            history = await client.get("/coordinator/students/student-1/summaries", headers=_coordinator())
            unknown = await client.get("/coordinator/students/coordinator-1/summaries", headers=_coordinator())

        assert overview.status_code == 200
        assert overview.json() == {
            "studentCount": 2,
            "reportingCount": 1,
            "statusCounts": {"Doing Well": 1, "Needs Support": 0, "At Risk": 0},
            "meanAverage": 70.0,
        }
        listing = students.json()
        assert listing["total"] == 2
        assert [item["profile"]["lastName"] for item in listing["items"]] == ["Lovelace", "Turing"]
        assert listing["items"][0]["latestSummary"]["term"] == 2
        assert listing["items"][1]["latestSummary"] is None
        assert history.json()["total"] == 2
        assert unknown.status_code == 404

    _run(body())
