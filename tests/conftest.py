import asyncio
import pytest

from progress_wizard.schemas.session import LogSessionsResponse
from progress_wizard.schemas.student import Student
from progress_wizard.schemas.subject_area import SubjectArea
from progress_wizard.schemas.transcript import ParsedSession
from progress_wizard.services.errors import ApiError
from progress_wizard.services.manual_wizard import SelectionWizardController


def objective_row(id, description, objective_type="trial", goal=None, student_id=None, **extra):
    row = {
        "id": id,
        "description": description,
        "objective_type": objective_type,
        "student_id": student_id,
    }
    if goal is not None:
        row["goal"] = {"id": goal, "title": f"Goal {goal}"}
    row.update(extra)
    return row


SUBJECT_AREA_ROWS = {
    "bobby": [
        {
            "id": "sa-reading",
            "name": "Reading",
            "objective": [
                objective_row("obj-read", "Reads aloud", "binary", goal="g-read", student_id="bobby"),
                objective_row("obj-fluency", "Reads 90 words per minute", "trial", goal="g-read", student_id="bobby", target_accuracy=0.8),
                objective_row("obj-spell", "Spells CVC words", "trial", goal="g-spell", student_id="bobby"),
            ],
        },
    ],
    "alice": [
        {
            "id": "sa-math",
            "name": "Math",
            "objective": [
                objective_row("obj-add", "Adds two digit numbers", "trial", goal="g-math", student_id="alice"),
                objective_row("obj-sub", "Subtracts two digit numbers", "general", goal="g-math", student_id="alice"),
            ],
        },
        {
            "id": "sa-writing",
            "name": "Writing",
            "objective": [
                objective_row("obj-write", "Writes a full sentence", "binary", student_id="alice"),
            ],
        },
    ],
    "carl": [],
}


class FakeClient:
    """Stands in for MiraeClient; fetches can be held open with gates."""

    def __init__(self, subject_area_rows=None):
        rows = SUBJECT_AREA_ROWS if subject_area_rows is None else subject_area_rows
        self.subject_areas = {
            student_id: [SubjectArea.model_validate(r) for r in areas]
            for student_id, areas in rows.items()
        }
        self.fail_for = set()
        self.gates = {}
        self.subject_area_calls = []
        self.logged = []
        self.log_error = None
        self.log_gate = None
        self.students = []
        self.analyzed = []
        self.closed = False

    async def get_subject_areas_for_student(self, student_id):
        self.subject_area_calls.append(student_id)
        gate = self.gates.get(student_id)
        if gate is not None:
            await gate.wait()
        if student_id in self.fail_for:
            raise ApiError(500, "boom")
        return self.subject_areas.get(student_id, [])

    async def get_students(self):
        return self.students

    async def analyze_transcript(self, transcript):
        return self.analyzed

    async def log_sessions(self, entries):
        if self.log_gate is not None:
            await self.log_gate.wait()
        if self.log_error is not None:
            raise self.log_error
        self.logged.append(list(entries))
        return LogSessionsResponse(session_ids=[f"session-{i}" for i in range(len(entries))])

    async def aclose(self):
        self.closed = True


@pytest.fixture
def client():
    return FakeClient()


@pytest.fixture
def roster():
    return [
        Student(id="bobby", name="Bobby", grade_level=3, disability_type="SLD"),
        Student(id="alice", name="Alice", grade_level=4),
        Student(id="carl", name="Carl"),
    ]


@pytest.fixture
def wizard(roster, client):
    return SelectionWizardController(roster, client)


@pytest.fixture
def run():
    return asyncio.run


def match(student_id, name, objectives):
    return {
        "student": {"id": student_id, "name": name, "similarity": 0.9},
        "objectives": [
            {
                "id": objective_id,
                "description": f"Objective {objective_id}",
                "objective_type": objective_type,
                "queried_objective_description": "working on it",
                "goal": {"id": f"goal-{objective_id}", "title": "Goal"},
                "subject_area": {"id": "sa", "name": "Area"},
            }
            for objective_id, objective_type in objectives
        ],
    }


def parsed_session(session_id, matches, progress=None, memo="memo"):
    return ParsedSession.model_validate({
        "parsed_session_id": session_id,
        "raw_input": f"transcript for {session_id}",
        "memo": memo,
        "objective_progress": progress,
        "matches": matches,
    })


@pytest.fixture
def two_candidate_session():
    # Student A offers [X, Y], student B offers [Z]
    return parsed_session("s-1", [
        match("A", "Avery", [("X", "trial"), ("Y", "trial")]),
        match("B", "Blake", [("Z", "binary")]),
    ], progress={"trials_completed": 7, "trials_total": 10})


@pytest.fixture
def make_match():
    return match


@pytest.fixture
def make_session():
    return parsed_session


@pytest.fixture
def fake_client_class():
    return FakeClient
