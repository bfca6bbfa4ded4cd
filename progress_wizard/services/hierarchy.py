"""Grouping helpers shared by manual selection and match review.

Everything here is a pure function over the read-only roster snapshots:
objectives are grouped under their goal, goals under their student, and
selection counts are derived rather than stored.
"""

from pydantic import BaseModel, Field
from typing import Any, Dict, Iterable, List, Literal, Mapping, Optional, Sequence

from progress_wizard.schemas.objective import BINARY, GoalRef
from progress_wizard.schemas.subject_area import SubjectArea

UNKNOWN_GOAL_ID = "unknown"

GoalSelection = Literal["none", "some", "all"]


class GoalGroup(BaseModel):
    goal: GoalRef
    objectives: list = Field(default_factory=list)

class SelectionCount(BaseModel):
    selected: int
    total: int

class StudentGroup(BaseModel):
    student: Any
    goals: Dict[str, GoalGroup] = Field(default_factory=dict)


def _goal_of(objective) -> Optional[GoalRef]:
    goal = getattr(objective, "goal", None)
    if goal is not None:
        return goal
    goal_id = getattr(objective, "goal_id", None)
    if goal_id:
        return GoalRef(id=goal_id)
    return None


def goal_id_of(objective) -> str:
    goal = _goal_of(objective)
    return goal.id if goal is not None else UNKNOWN_GOAL_ID


def group_by_goal(objectives: Iterable) -> Dict[str, GoalGroup]:
    # dicts keep insertion order, so groups come out in first-seen order
    groups: Dict[str, GoalGroup] = {}
    for objective in objectives:
        goal = _goal_of(objective) or GoalRef(id=UNKNOWN_GOAL_ID, title="Unknown goal")
        group = groups.get(goal.id)
        if group is None:
            group = groups[goal.id] = GoalGroup(goal=goal)
        group.objectives.append(objective)
    return groups


def count_selected(goal_id: str, objectives: Iterable, selected_ids: Iterable[str]) -> SelectionCount:
    selected = set(selected_ids)
    in_goal = [o for o in objectives if goal_id_of(o) == goal_id]
    return SelectionCount(
        selected=sum(1 for o in in_goal if o.id in selected),
        total=len(in_goal),
    )


def goal_selection_state(goal_id: str, objectives: Iterable, selected_ids: Iterable[str]) -> GoalSelection:
    count = count_selected(goal_id, objectives, selected_ids)
    if count.total == 0 or count.selected == 0:
        return "none"
    if count.selected == count.total:
        return "all"
    return "some"


def objectives_in(subject_areas: Iterable[SubjectArea]) -> list:
    """Flatten subject areas into their objectives, first-seen order, no duplicates."""
    seen = set()
    objectives = []
    for area in subject_areas:
        for objective in area.objectives:
            if objective.id in seen:
                continue
            seen.add(objective.id)
            objectives.append(objective)
    return objectives


def group_by_student_and_goal(entries: Iterable) -> Dict[str, StudentGroup]:
    """Group (student, objective) pairs for the progress step."""
    grouped: Dict[str, StudentGroup] = {}
    for student, objective in entries:
        group = grouped.get(student.id)
        if group is None:
            group = grouped[student.id] = StudentGroup(student=student)
        goal_id = goal_id_of(objective)
        goal_group = group.goals.get(goal_id)
        if goal_group is None:
            goal = _goal_of(objective) or GoalRef(id=UNKNOWN_GOAL_ID, title="Unknown goal")
            goal_group = group.goals[goal_id] = GoalGroup(goal=goal)
        goal_group.objectives.append(objective)
    return grouped


def filter_objectives(
    objectives: Iterable,
    search: str = "",
    include_binary: bool = True,
    include_trial: bool = True,
) -> list:
    term = (search or "").strip().lower()
    results = []
    for objective in objectives:
        if term and term not in objective.description.lower():
            continue
        is_binary = objective.objective_type == BINARY
        if is_binary and not include_binary:
            continue
        if not is_binary and not include_trial:
            continue
        results.append(objective)
    return results


def common_goal_ids(subject_areas_by_student: Mapping[str, Sequence[SubjectArea]]) -> List[str]:
    """Goal ids that show up for every student, in the first student's order."""
    per_student = []
    for areas in subject_areas_by_student.values():
        ids = []
        for objective in objectives_in(areas):
            goal = _goal_of(objective)
            if goal is not None and goal.id not in ids:
                ids.append(goal.id)
        per_student.append(ids)
    if not per_student:
        return []
    common = per_student[0]
    for ids in per_student[1:]:
        common = [goal_id for goal_id in common if goal_id in ids]
    return common
