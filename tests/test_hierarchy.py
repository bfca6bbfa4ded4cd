from progress_wizard.schemas.objective import BinaryObjective, TrialObjective, parse_objective
from progress_wizard.schemas.subject_area import SubjectArea
from progress_wizard.services.hierarchy import (
    UNKNOWN_GOAL_ID,
    common_goal_ids,
    count_selected,
    filter_objectives,
    goal_id_of,
    goal_selection_state,
    group_by_goal,
    group_by_student_and_goal,
    objectives_in,
)


def make(id, goal=None, objective_type="trial", description=None):
    data = {"id": id, "description": description or f"Objective {id}", "objective_type": objective_type}
    if goal:
        data["goal"] = {"id": goal, "title": goal.upper()}
    return parse_objective(data)


def test_objective_types_are_tagged():
    assert isinstance(make("a", objective_type="binary"), BinaryObjective)
    assert isinstance(make("b", objective_type="trial"), TrialObjective)
    # legacy / missing types are logged as trials
    legacy = parse_objective({"id": "c", "description": "old", "objective_type": "general"})
    assert isinstance(legacy, TrialObjective)
    assert legacy.objective_type == "trial"
    assert isinstance(parse_objective({"id": "d", "description": "none"}), TrialObjective)

def test_subject_area_reads_embedded_objective_key():
    area = SubjectArea.model_validate({
        "id": "sa",
        "name": "Math",
        "objective": [{"id": "o1", "description": "Adds", "objective_type": "binary", "goal": {"id": "g", "title": "G"}}],
    })
    assert [o.id for o in area.objectives] == ["o1"]
    assert goal_id_of(area.objectives[0]) == "g"

def test_group_by_goal_keeps_first_seen_order():
    objectives = [make("1", "zeta"), make("2", "alpha"), make("3", "zeta"), make("4")]
    groups = group_by_goal(objectives)
    assert list(groups) == ["zeta", "alpha", UNKNOWN_GOAL_ID]
    assert [o.id for o in groups["zeta"].objectives] == ["1", "3"]
    assert [o.id for o in groups[UNKNOWN_GOAL_ID].objectives] == ["4"]

def test_group_by_goal_uses_goal_id_when_goal_not_embedded():
    objective = parse_objective({"id": "x", "description": "x", "goal_id": "g-9"})
    assert list(group_by_goal([objective])) == ["g-9"]

def test_count_selected_and_tri_state():
    objectives = [make("1", "g"), make("2", "g"), make("3", "h")]
    assert count_selected("g", objectives, ["1"]).model_dump() == {"selected": 1, "total": 2}
    assert goal_selection_state("g", objectives, []) == "none"
    assert goal_selection_state("g", objectives, ["1"]) == "some"
    assert goal_selection_state("g", objectives, ["1", "2", "3"]) == "all"

def test_empty_goal_is_always_none():
    assert goal_selection_state("missing", [make("1", "g")], ["1"]) == "none"
    assert count_selected("missing", [], []).total == 0

def test_objectives_in_dedupes_across_subject_areas():
    shared = {"id": "o1", "description": "shared"}
    areas = [
        SubjectArea.model_validate({"id": "a", "name": "A", "objective": [shared, {"id": "o2", "description": "two"}]}),
        SubjectArea.model_validate({"id": "b", "name": "B", "objective": [shared]}),
    ]
    assert [o.id for o in objectives_in(areas)] == ["o1", "o2"]

def test_filter_objectives_by_search_and_type():
    objectives = [
        make("1", objective_type="binary", description="Reads aloud"),
        make("2", objective_type="trial", description="Reads silently"),
        make("3", objective_type="trial", description="Adds numbers"),
    ]
    assert [o.id for o in filter_objectives(objectives, "READS")] == ["1", "2"]
    assert [o.id for o in filter_objectives(objectives, include_binary=False)] == ["2", "3"]
    assert [o.id for o in filter_objectives(objectives, "reads", include_trial=False)] == ["1"]

def test_common_goal_ids():
    def area(*objectives):
        return SubjectArea(id="sa", name="A", objective=list(objectives))

    by_student = {
        "a": [area(make("1", "g1"), make("2", "g2"))],
        "b": [area(make("3", "g2"), make("4", "g3"))],
    }
    assert common_goal_ids(by_student) == ["g2"]
    assert common_goal_ids({}) == []

def test_group_by_student_and_goal():
    class S:
        def __init__(self, id):
            self.id = id

    a, b = S("a"), S("b")
    grouped = group_by_student_and_goal([(a, make("1", "g")), (b, make("2", "g")), (a, make("3"))])
    assert list(grouped) == ["a", "b"]
    assert list(grouped["a"].goals) == ["g", UNKNOWN_GOAL_ID]
