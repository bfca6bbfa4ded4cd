import asyncio
import json

import httpx
import pytest

from progress_wizard.schemas.objective import BinaryObjective, TrialObjective
from progress_wizard.schemas.session import ObjectiveProgress, SessionLogEntry
from progress_wizard.services.api_client import MiraeClient
from progress_wizard.services.errors import ApiError


def make_client(handler, token="secret"):
    return MiraeClient(token, base_url="http://mirae.test", transport=httpx.MockTransport(handler))


def call(client, method, *args):
    async def scenario():
        async with client:
            return await getattr(client, method)(*args)

    return asyncio.run(scenario())


def test_requests_carry_bearer_token():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=[{"id": "s1", "name": "Sam", "grade_level": 2}])

    students = call(make_client(handler), "get_students")

    assert [s.name for s in students] == ["Sam"]
    assert seen[0].url.path == "/students/students"
    assert seen[0].headers["Authorization"] == "Bearer secret"

def test_subject_areas_parse_nested_objectives():
    def handler(request):
        assert request.url.path == "/subject-areas/student/s1"
        return httpx.Response(200, json=[{
            "id": "sa",
            "name": "Math",
            "objective": [
                {"id": "o1", "description": "Adds", "objective_type": "binary"},
                {"id": "o2", "description": "Counts", "objective_type": "general"},
            ],
        }])

    areas = call(make_client(handler), "get_subject_areas_for_student", "s1")

    first, second = areas[0].objectives
    assert isinstance(first, BinaryObjective)
    assert isinstance(second, TrialObjective)

def test_get_objective_returns_first_row_or_none():
    rows = {"/objectives/objective/o1": [{"id": "o1", "description": "Adds"}], "/objectives/objective/o2": []}

    def handler(request):
        return httpx.Response(200, json=rows[request.url.path])

    assert call(make_client(handler), "get_objective", "o1").id == "o1"
    assert call(make_client(handler), "get_objective", "o2") is None

def test_error_status_raises_api_error():
    def handler(request):
        return httpx.Response(404, json={"detail": "Student not found"})

    with pytest.raises(ApiError) as raised:
        call(make_client(handler), "get_subject_areas_for_student", "missing")
    assert raised.value.status_code == 404
    assert raised.value.detail == "Student not found"

def test_transport_failure_raises_api_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ApiError) as raised:
        call(make_client(handler), "get_students")
    assert raised.value.status_code is None

def test_unexpected_shape_raises_api_error():
    def handler(request):
        return httpx.Response(200, json={"not": "a list"})

    with pytest.raises(ApiError):
        call(make_client(handler), "get_students")

def test_log_sessions_posts_one_array():
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"status": "success", "session_ids": ["a", "b"]})

    entries = [
        SessionLogEntry(
            student_id="s1",
            objective_id=f"o{i}",
            timestamp="2024-05-01T15:30:00+00:00",
            objective_progress=ObjectiveProgress(trials_completed=i, trials_total=2),
        )
        for i in range(2)
    ]

    response = call(make_client(handler), "log_sessions", entries)

    assert response.session_ids == ["a", "b"]
    assert len(bodies) == 1
    assert [b["objective_id"] for b in bodies[0]] == ["o0", "o1"]
    assert bodies[0][0]["created_at"] == "2024-05-01T15:30:00+00:00"
    assert "timestamp" not in bodies[0][0]
    assert "raw_input" not in bodies[0][0]

def test_log_sessions_accepts_empty_success_body():
    def handler(request):
        return httpx.Response(201)

    entry = SessionLogEntry(
        student_id="s1",
        objective_id="o1",
        timestamp="2024-05-01T15:30:00+00:00",
        objective_progress=ObjectiveProgress(trials_completed=1, trials_total=1),
    )
    assert call(make_client(handler), "log_sessions", [entry]).status == "success"

def test_analyze_transcript_parses_sessions():
    def handler(request):
        assert json.loads(request.content) == {"transcript": "Sam read 7 of 10 words"}
        return httpx.Response(200, json=[{
            "parsed_session_id": "p1",
            "raw_input": "Sam read 7 of 10 words",
            "memo": "",
            "objective_progress": {"trials_completed": 7, "trials_total": 10},
            "matches": [{"student": {"id": "s1", "name": "Sam"}, "objectives": []}],
        }])

    sessions = call(make_client(handler), "analyze_transcript", "Sam read 7 of 10 words")
    assert sessions[0].match_for("s1").student.name == "Sam"

def test_missing_base_url_is_a_configuration_error(monkeypatch):
    monkeypatch.delenv("MIRAE_API_URL", raising=False)
    with pytest.raises(ValueError):
        MiraeClient("secret")

def test_goals_and_objectives_endpoints():
    def handler(request):
        if request.url.path == "/goals/student/s1/subject-area/sa":
            return httpx.Response(200, json=[{
                "id": "g",
                "title": "Reading fluency",
                "objectives": [{"id": "o1", "description": "Reads", "objective_type": "binary"}],
            }])
        assert request.url.path == "/objectives/student/s1"
        return httpx.Response(200, json=[{"id": "o2", "description": "Counts", "objective_type": "trial", "target_accuracy": 0.8}])

    goals = call(make_client(handler), "get_goals", "s1", "sa")
    assert goals[0].title == "Reading fluency"
    assert isinstance(goals[0].objectives[0], BinaryObjective)

    objectives = call(make_client(handler), "get_objectives_for_student", "s1")
    assert objectives[0].target_accuracy == 0.8
