"""Manual progress-logging wizard: students → objectives → progress.

State lives in one `WizardState` keyed by student id. Every mutation is a
reducer `(state, ...) -> state` that returns a fresh copy; the controller
only applies reducers, drives the subject-area fetches and keeps the
progress drafts in step with the selection.
"""

import logging
from pydantic import BaseModel, Field
from typing import Dict, Iterable, List, Literal, Optional, Tuple

from progress_wizard.schemas.student import Student
from progress_wizard.schemas.subject_area import SubjectArea
from progress_wizard.services.errors import ApiError, StepBlockedError
from progress_wizard.services.hierarchy import (
    GoalGroup,
    GoalSelection,
    common_goal_ids,
    count_selected,
    filter_objectives,
    goal_id_of,
    goal_selection_state,
    group_by_goal,
    objectives_in,
)
from progress_wizard.services.progress_form import ProgressFormEngine

logger = logging.getLogger(__name__)

STUDENTS = "students"
OBJECTIVES = "objectives"
PROGRESS = "progress"
STEPS = (STUDENTS, OBJECTIVES, PROGRESS)

Step = Literal["students", "objectives", "progress"]


# ---------- State ----------
class StudentSelection(BaseModel):
    student: Student
    subject_areas: List[SubjectArea] = Field(default_factory=list)
    selected_subject_area_ids: List[str] = Field(default_factory=list)
    selected_objective_ids: List[str] = Field(default_factory=list)
    loading: bool = False
    fetch_token: int = 0
    error: Optional[str] = None

    def selected_subject_areas(self) -> List[SubjectArea]:
        return [a for a in self.subject_areas if a.id in self.selected_subject_area_ids]

    def available_objectives(self) -> list:
        return objectives_in(self.selected_subject_areas())

    def selected_objectives(self) -> list:
        by_id = {o.id: o for o in self.available_objectives()}
        return [by_id[i] for i in self.selected_objective_ids if i in by_id]

class WizardState(BaseModel):
    step: Step = STUDENTS
    students: Dict[str, StudentSelection] = Field(default_factory=dict)
    focused_student_id: Optional[str] = None
    focused_subject_area_id: Optional[str] = None
    search: str = ""
    include_binary: bool = True
    include_trial: bool = True
    last_token: int = 0

class FetchNotice(BaseModel):
    student_id: str
    message: str
    retryable: bool = True


# ---------- Reducers ----------
def _with_student(state: WizardState, student_id: str, selection: Optional[StudentSelection]) -> WizardState:
    students = dict(state.students)
    if selection is None:
        students.pop(student_id, None)
    else:
        students[student_id] = selection
    return state.model_copy(update={"students": students})


def _slice(state: WizardState, student_id: str) -> StudentSelection:
    selection = state.students.get(student_id)
    if selection is None:
        raise ValueError(f"Student '{student_id}' is not selected")
    return selection


def select_student(state: WizardState, student: Student) -> WizardState:
    if student.id in state.students:
        return state
    token = state.last_token + 1
    if student.subject_areas is not None:
        selection = StudentSelection(student=student, subject_areas=list(student.subject_areas), fetch_token=token)
    else:
        selection = StudentSelection(student=student, loading=True, fetch_token=token)
    state = state.model_copy(update={"last_token": token})
    return _with_student(state, student.id, selection)


def deselect_student(state: WizardState, student_id: str) -> WizardState:
    if student_id not in state.students:
        return state
    state = _with_student(state, student_id, None)
    if state.focused_student_id == student_id:
        state = state.model_copy(update={"focused_student_id": None, "focused_subject_area_id": None})
    return _ensure_focus(state)


def begin_fetch(state: WizardState, student_id: str) -> WizardState:
    selection = _slice(state, student_id)
    token = state.last_token + 1
    selection = selection.model_copy(update={"loading": True, "error": None, "fetch_token": token})
    state = state.model_copy(update={"last_token": token})
    return _with_student(state, student_id, selection)


def subject_areas_loaded(state: WizardState, student_id: str, token: int, subject_areas: List[SubjectArea]) -> WizardState:
    """Apply a fetch result; a result for a deselected or re-fetched student is dropped."""
    selection = state.students.get(student_id)
    if selection is None or selection.fetch_token != token:
        return state
    ids = {a.id for a in subject_areas}
    selection = selection.model_copy(update={
        "subject_areas": list(subject_areas),
        "selected_subject_area_ids": [i for i in selection.selected_subject_area_ids if i in ids],
        "loading": False,
        "error": None,
    })
    return _prune_objectives(_with_student(state, student_id, selection), student_id)


def subject_areas_failed(state: WizardState, student_id: str, token: int, message: str) -> WizardState:
    selection = state.students.get(student_id)
    if selection is None or selection.fetch_token != token:
        return state
    selection = selection.model_copy(update={
        "subject_areas": [],
        "selected_subject_area_ids": [],
        "selected_objective_ids": [],
        "loading": False,
        "error": message,
    })
    return _with_student(state, student_id, selection)


def _prune_objectives(state: WizardState, student_id: str) -> WizardState:
    selection = state.students[student_id]
    available = {o.id for o in selection.available_objectives()}
    kept = [i for i in selection.selected_objective_ids if i in available]
    if kept == selection.selected_objective_ids:
        return state
    return _with_student(state, student_id, selection.model_copy(update={"selected_objective_ids": kept}))


def toggle_subject_area(state: WizardState, student_id: str, subject_area_id: str) -> WizardState:
    selection = _slice(state, student_id)
    if not any(a.id == subject_area_id for a in selection.subject_areas):
        raise ValueError(f"Subject area '{subject_area_id}' is not available for {selection.student.name}")
    if subject_area_id in selection.selected_subject_area_ids:
        ids = [i for i in selection.selected_subject_area_ids if i != subject_area_id]
    else:
        ids = selection.selected_subject_area_ids + [subject_area_id]
    state = _with_student(state, student_id, selection.model_copy(update={"selected_subject_area_ids": ids}))
    state = _prune_objectives(state, student_id)
    if state.focused_student_id == student_id and state.focused_subject_area_id not in ids:
        state = state.model_copy(update={"focused_subject_area_id": ids[0] if ids else None})
    return state


def toggle_objective(state: WizardState, student_id: str, objective_id: str) -> WizardState:
    selection = _slice(state, student_id)
    if not any(o.id == objective_id for o in selection.available_objectives()):
        raise ValueError(f"Objective '{objective_id}' is not available for {selection.student.name}")
    if objective_id in selection.selected_objective_ids:
        ids = [i for i in selection.selected_objective_ids if i != objective_id]
    else:
        ids = selection.selected_objective_ids + [objective_id]
    return _with_student(state, student_id, selection.model_copy(update={"selected_objective_ids": ids}))


def toggle_goal(state: WizardState, student_id: str, goal_id: str) -> WizardState:
    """Select every objective under the goal, or deselect them all if all were selected."""
    selection = _slice(state, student_id)
    in_goal = [o.id for o in selection.available_objectives() if goal_id_of(o) == goal_id]
    if not in_goal:
        return state
    current = selection.selected_objective_ids
    if all(i in current for i in in_goal):
        ids = [i for i in current if i not in in_goal]
    else:
        ids = current + [i for i in in_goal if i not in current]
    return _with_student(state, student_id, selection.model_copy(update={"selected_objective_ids": ids}))


def mirror_common_goals(state: WizardState) -> WizardState:
    """Give students with nothing picked yet the objectives others picked in shared goals."""
    common = common_goal_ids({sid: s.selected_subject_areas() for sid, s in state.students.items()})
    if not common:
        return state
    picks = [(sid, o) for sid, s in state.students.items() for o in s.selected_objectives()]
    for student_id, selection in list(state.students.items()):
        if selection.selected_objective_ids:
            continue
        ids = []
        for objective in selection.available_objectives():
            goal_id = goal_id_of(objective)
            if goal_id not in common:
                continue
            if any(
                other != student_id and goal_id_of(o) == goal_id and o.description == objective.description
                for other, o in picks
            ):
                ids.append(objective.id)
        if ids:
            state = _with_student(state, student_id, selection.model_copy(update={"selected_objective_ids": ids}))
    return state


def focus(state: WizardState, student_id: str, subject_area_id: Optional[str] = None) -> WizardState:
    selection = _slice(state, student_id)
    if subject_area_id is None:
        ids = selection.selected_subject_area_ids
        subject_area_id = ids[0] if ids else None
    elif subject_area_id not in selection.selected_subject_area_ids:
        raise ValueError(f"Subject area '{subject_area_id}' is not selected for {selection.student.name}")
    return state.model_copy(update={"focused_student_id": student_id, "focused_subject_area_id": subject_area_id})


def _ensure_focus(state: WizardState) -> WizardState:
    if state.focused_student_id in state.students or not state.students:
        return state
    return focus(state, next(iter(state.students)))


def set_filters(state: WizardState, search: Optional[str] = None, include_binary: Optional[bool] = None,
                include_trial: Optional[bool] = None) -> WizardState:
    update = {}
    if search is not None:
        update["search"] = search
    if include_binary is not None:
        update["include_binary"] = include_binary
    if include_trial is not None:
        update["include_trial"] = include_trial
    return state.model_copy(update=update)


def exit_blocker(state: WizardState, step: str) -> Optional[str]:
    """Why the wizard can't move past step yet, or None."""
    if step == STUDENTS:
        if not state.students:
            return "Select at least one student"
        for selection in state.students.values():
            if selection.loading:
                return f"Subject areas for {selection.student.name} are still loading"
            # No subject areas at all is allowed here and flagged at submission
            if selection.subject_areas and not selection.selected_subject_area_ids:
                return f"Select at least one subject area for {selection.student.name}"
        return None
    if step == OBJECTIVES:
        if not any(s.selected_objective_ids for s in state.students.values()):
            return "Select at least one objective"
        return None
    if step == PROGRESS:
        return "Progress is the last step; submit instead"
    raise ValueError(f"Unknown step '{step}'")


def go_to_step(state: WizardState, step: str) -> WizardState:
    if step not in STEPS:
        raise ValueError(f"Unknown step '{step}'")
    current = STEPS.index(state.step)
    target = STEPS.index(step)
    for passing in STEPS[current:target]:
        reason = exit_blocker(state, passing)
        if reason:
            raise StepBlockedError(passing, reason)
    state = state.model_copy(update={"step": step})
    if step == OBJECTIVES:
        state = _ensure_focus(state)
    return state


# ---------- Controller ----------
class SelectionWizardController:
    def __init__(self, roster: Iterable[Student] = (), client=None, progress: Optional[ProgressFormEngine] = None):
        self.roster: Dict[str, Student] = {s.id: s for s in roster}
        self.client = client
        self.progress = progress or ProgressFormEngine()
        self.state = WizardState()

    def _apply(self, state: WizardState) -> WizardState:
        self.state = state
        entries = self.selected_entries()
        self.progress.retain(objective.id for _, objective in entries)
        for _, objective in entries:
            self.progress.ensure_draft(objective.id, objective.objective_type)
        return state

    def _student(self, student_id: str) -> Student:
        student = self.roster.get(student_id)
        if student is None:
            raise ValueError(f"Student '{student_id}' is not on the roster")
        return student

    @property
    def step(self) -> str:
        return self.state.step

    # ---------- Students ----------
    async def toggle_student(self, student_id: str) -> Optional[FetchNotice]:
        student = self._student(student_id)
        if student_id in self.state.students:
            self._apply(deselect_student(self.state, student_id))
            logger.info(f"Deselected student {student_id}")
            return None

        self._apply(select_student(self.state, student))
        logger.info(f"Selected student {student_id}")
        if not self.state.students[student_id].loading:
            return None
        return await self._load_subject_areas(student_id)

    async def retry_student(self, student_id: str) -> Optional[FetchNotice]:
        selection = _slice(self.state, student_id)
        if selection.loading:
            return None
        self._apply(begin_fetch(self.state, student_id))
        return await self._load_subject_areas(student_id)

    async def _load_subject_areas(self, student_id: str) -> Optional[FetchNotice]:
        student = self.state.students[student_id].student
        token = self.state.students[student_id].fetch_token
        try:
            if self.client is None:
                raise ApiError(None, "No API client configured")
            subject_areas = await self.client.get_subject_areas_for_student(student_id)
        except ApiError as e:
            logger.warning(f"Failed to fetch subject areas for student {student_id}: {e}")
            message = f"Failed to load subject areas for {student.name}"
            before = self.state
            self._apply(subject_areas_failed(self.state, student_id, token, message))
            if self.state is before:
                return None
            return FetchNotice(student_id=student_id, message=message)

        before = self.state
        self._apply(subject_areas_loaded(self.state, student_id, token, subject_areas))
        if self.state is before:
            logger.warning(f"Discarding stale subject areas for student {student_id}")
        return None

    def toggle_subject_area(self, student_id: str, subject_area_id: str):
        return self._apply(toggle_subject_area(self.state, student_id, subject_area_id))

    def students_without_subject_areas(self) -> List[Student]:
        return [
            s.student for s in self.state.students.values()
            if not s.loading and not s.subject_areas
        ]

    # ---------- Objectives ----------
    def toggle_objective(self, student_id: str, objective_id: str):
        return self._apply(toggle_objective(self.state, student_id, objective_id))

    def toggle_goal(self, student_id: str, goal_id: str):
        return self._apply(toggle_goal(self.state, student_id, goal_id))

    def mirror_common_goals(self):
        return self._apply(mirror_common_goals(self.state))

    def focus(self, student_id: str, subject_area_id: Optional[str] = None):
        return self._apply(focus(self.state, student_id, subject_area_id))

    def set_filters(self, search: Optional[str] = None, include_binary: Optional[bool] = None,
                    include_trial: Optional[bool] = None):
        return self._apply(set_filters(self.state, search, include_binary, include_trial))

    def visible_objectives(self, student_id: Optional[str] = None) -> list:
        """Objectives of the focused subject area (or all selected ones), after search and type filters."""
        student_id = student_id or self.state.focused_student_id
        if student_id is None:
            return []
        selection = _slice(self.state, student_id)
        if student_id == self.state.focused_student_id and self.state.focused_subject_area_id:
            areas = [a for a in selection.selected_subject_areas() if a.id == self.state.focused_subject_area_id]
        else:
            areas = selection.selected_subject_areas()
        return filter_objectives(
            objectives_in(areas),
            self.state.search,
            self.state.include_binary,
            self.state.include_trial,
        )

    def goal_groups(self, student_id: Optional[str] = None) -> Dict[str, GoalGroup]:
        return group_by_goal(self.visible_objectives(student_id))

    def goal_state(self, student_id: str, goal_id: str) -> GoalSelection:
        selection = _slice(self.state, student_id)
        return goal_selection_state(goal_id, selection.available_objectives(), selection.selected_objective_ids)

    def goal_count(self, student_id: str, goal_id: str):
        selection = _slice(self.state, student_id)
        return count_selected(goal_id, selection.available_objectives(), selection.selected_objective_ids)

    def selected_count(self, student_id: Optional[str] = None) -> int:
        if student_id is not None:
            return len(_slice(self.state, student_id).selected_objectives())
        return sum(len(s.selected_objectives()) for s in self.state.students.values())

    def selected_entries(self) -> List[Tuple[Student, object]]:
        return [
            (selection.student, objective)
            for selection in self.state.students.values()
            for objective in selection.selected_objectives()
        ]

    # ---------- Progress ----------
    def progress_summary(self, student_id: Optional[str] = None) -> Tuple[int, int]:
        keys = [
            objective.id for student, objective in self.selected_entries()
            if student_id is None or student.id == student_id
        ]
        return self.progress.completion(keys)

    def is_complete(self, student_id: str) -> bool:
        filled, total = self.progress_summary(student_id)
        return total > 0 and filled == total

    # ---------- Navigation ----------
    def next(self) -> str:
        current = STEPS.index(self.state.step)
        if current == len(STEPS) - 1:
            raise StepBlockedError(PROGRESS, exit_blocker(self.state, PROGRESS))
        self._apply(go_to_step(self.state, STEPS[current + 1]))
        logger.info(f"Wizard moved to {self.state.step}")
        return self.state.step

    def back(self) -> str:
        current = STEPS.index(self.state.step)
        if current > 0:
            self._apply(self.state.model_copy(update={"step": STEPS[current - 1]}))
        return self.state.step

    def go_to(self, step: str) -> str:
        self._apply(go_to_step(self.state, step))
        return self.state.step

    def reset(self):
        self.state = WizardState()
        self.progress.reset()
