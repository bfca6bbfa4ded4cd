from fastapi import APIRouter, Depends, HTTPException
from typing import Optional
from progress_wizard.dependencies.auth import user_api_context
from progress_wizard.schemas.wizard import (
    FilterRequest,
    FocusRequest,
    ProgressInput,
    StartManualWizard,
    SubmitRequest,
)
from progress_wizard.services.hierarchy import goal_selection_state, group_by_goal, group_by_student_and_goal
from progress_wizard.services.manual_wizard import PROGRESS, SelectionWizardController, exit_blocker
from progress_wizard.services.wizard_store import ManualWizardSession, get_wizard_store
from progress_wizard.utils.http_errors import wizard_errors
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


def _session(store, context) -> ManualWizardSession:
    session = store.manual(context["owner"])
    if session is None:
        raise HTTPException(status_code=404, detail="No manual logging wizard open")
    return session


def _view(session: ManualWizardSession, notice=None) -> dict:
    wizard = session.wizard
    state = wizard.state
    students = []
    for student_id, selection in state.students.items():
        selected = selection.selected_objective_ids
        goals = []
        for goal_id, group in group_by_goal(selection.available_objectives()).items():
            goals.append({
                "goal": group.goal.model_dump(),
                "state": goal_selection_state(goal_id, group.objectives, selected),
                "selected": sum(1 for o in group.objectives if o.id in selected),
                "total": len(group.objectives),
                "objectives": [
                    {
                        "id": o.id,
                        "description": o.description,
                        "objective_type": o.objective_type,
                        "selected": o.id in selected,
                    }
                    for o in group.objectives
                ],
            })
        students.append({
            "student": selection.student.model_dump(exclude={"subject_areas"}),
            "loading": selection.loading,
            "error": selection.error,
            "subject_areas": [
                {"id": a.id, "name": a.name, "selected": a.id in selection.selected_subject_area_ids}
                for a in selection.subject_areas
            ],
            "selected_objective_ids": list(selected),
            "selected_count": len(selection.selected_objectives()),
            "goals": goals,
        })

    blocked = None
    if state.step != PROGRESS:
        blocked = exit_blocker(state, state.step)
    filled, total = wizard.progress_summary()
    # progress step renders student -> goal -> objective
    progress_groups = [
        {
            "student_id": student_id,
            "goals": [
                {"goal": g.goal.model_dump(), "objective_ids": [o.id for o in g.objectives]}
                for g in group.goals.values()
            ],
        }
        for student_id, group in group_by_student_and_goal(wizard.selected_entries()).items()
    ]
    focused = state.focused_student_id
    return {
        "step": state.step,
        "blocked_reason": blocked,
        "roster": [s.model_dump(exclude={"subject_areas"}) for s in wizard.roster.values()],
        "students": students,
        "focused_student_id": focused,
        "focused_subject_area_id": state.focused_subject_area_id,
        "visible_objective_ids": [o.id for o in wizard.visible_objectives()] if focused else [],
        "total_selected": wizard.selected_count(),
        "progress": {"filled": filled, "total": total},
        "progress_groups": progress_groups,
        "drafts": {key: wizard.progress.get(key).model_dump() for key in wizard.progress.keys()},
        "notice": notice.model_dump() if notice else None,
    }


# -------- Open / view / cancel --------
@router.post("")
async def start_manual_wizard(
    payload: Optional[StartManualWizard] = None,
    context=Depends(user_api_context),
    store=Depends(get_wizard_store),
):
    client = context["new_client"]()
    roster = payload.students if payload else None
    if roster is None:
        try:
            with wizard_errors():
                roster = await client.get_students()
        except HTTPException:
            await client.aclose()
            raise

    session = await store.open_manual(
        context["owner"],
        ManualWizardSession(client, SelectionWizardController(roster, client)),
    )
    logger.info(f"Opened manual wizard with {len(roster)} students")
    return _view(session)

@router.get("")
def get_manual_wizard(context=Depends(user_api_context), store=Depends(get_wizard_store)):
    return _view(_session(store, context))

@router.delete("")
async def cancel_manual_wizard(context=Depends(user_api_context), store=Depends(get_wizard_store)):
    if not await store.close_manual(context["owner"]):
        raise HTTPException(status_code=404, detail="No manual logging wizard open")
    return {"message": "Cancelled"}


# -------- Students & subject areas --------
@router.post("/students/{student_id}/toggle")
async def toggle_student(student_id: str, context=Depends(user_api_context), store=Depends(get_wizard_store)):
    session = _session(store, context)
    with wizard_errors():
        notice = await session.wizard.toggle_student(student_id)
    return _view(session, notice)

@router.post("/students/{student_id}/retry")
async def retry_student(student_id: str, context=Depends(user_api_context), store=Depends(get_wizard_store)):
    session = _session(store, context)
    with wizard_errors():
        notice = await session.wizard.retry_student(student_id)
    return _view(session, notice)

@router.post("/students/{student_id}/subject-areas/{subject_area_id}/toggle")
def toggle_subject_area(student_id: str, subject_area_id: str, context=Depends(user_api_context), store=Depends(get_wizard_store)):
    session = _session(store, context)
    with wizard_errors():
        session.wizard.toggle_subject_area(student_id, subject_area_id)
    return _view(session)

@router.post("/students/{student_id}/focus")
def focus_student(student_id: str, payload: Optional[FocusRequest] = None, context=Depends(user_api_context), store=Depends(get_wizard_store)):
    session = _session(store, context)
    with wizard_errors():
        session.wizard.focus(student_id, payload.subject_area_id if payload else None)
    return _view(session)

@router.put("/filters")
def set_filters(payload: FilterRequest, context=Depends(user_api_context), store=Depends(get_wizard_store)):
    session = _session(store, context)
    session.wizard.set_filters(payload.search, payload.include_binary, payload.include_trial)
    return _view(session)


# -------- Objectives --------
@router.post("/students/{student_id}/objectives/{objective_id}/toggle")
def toggle_objective(student_id: str, objective_id: str, context=Depends(user_api_context), store=Depends(get_wizard_store)):
    session = _session(store, context)
    with wizard_errors():
        session.wizard.toggle_objective(student_id, objective_id)
    return _view(session)

@router.post("/students/{student_id}/goals/{goal_id}/toggle")
def toggle_goal(student_id: str, goal_id: str, context=Depends(user_api_context), store=Depends(get_wizard_store)):
    session = _session(store, context)
    with wizard_errors():
        session.wizard.toggle_goal(student_id, goal_id)
    return _view(session)

@router.post("/mirror-common-goals")
def mirror_common_goals(context=Depends(user_api_context), store=Depends(get_wizard_store)):
    session = _session(store, context)
    session.wizard.mirror_common_goals()
    return _view(session)


# -------- Navigation --------
@router.post("/next")
def next_step(context=Depends(user_api_context), store=Depends(get_wizard_store)):
    session = _session(store, context)
    with wizard_errors():
        session.wizard.next()
    return _view(session)

@router.post("/back")
def previous_step(context=Depends(user_api_context), store=Depends(get_wizard_store)):
    session = _session(store, context)
    session.wizard.back()
    return _view(session)


# -------- Progress --------
@router.put("/progress/{objective_id}")
def update_progress(objective_id: str, payload: ProgressInput, context=Depends(user_api_context), store=Depends(get_wizard_store)):
    session = _session(store, context)
    progress = session.wizard.progress
    if progress.get(objective_id) is None:
        raise HTTPException(status_code=404, detail="Objective is not selected")

    with wizard_errors():
        if payload.answer is not None or payload.clear_answer:
            progress.set_answer(objective_id, payload.answer)
        if payload.trials_completed is not None or payload.trials_total is not None:
            progress.set_trial_input(objective_id, payload.trials_completed, payload.trials_total)
        if payload.memo is not None:
            progress.set_memo(objective_id, payload.memo)
        if payload.commit:
            progress.commit(objective_id)
    return _view(session)

@router.post("/submit")
async def submit_manual_wizard(
    payload: Optional[SubmitRequest] = None,
    context=Depends(user_api_context),
    store=Depends(get_wizard_store),
):
    session = _session(store, context)
    result = await session.coordinator.submit_manual(session.wizard, payload.timestamp if payload else None)

    if result.status == "busy":
        raise HTTPException(status_code=409, detail=result.error)
    if result.status == "invalid":
        raise HTTPException(status_code=422, detail=result.issue.model_dump())
    if result.status == "failed":
        raise HTTPException(status_code=502, detail=f"Failed to log progress: {result.error}")

    await store.close_manual(context["owner"])
    return {
        "status": "success",
        "session_ids": result.session_ids,
        "warnings": result.warnings,
        "entries": [entry.to_wire() for entry in result.entries],
    }
