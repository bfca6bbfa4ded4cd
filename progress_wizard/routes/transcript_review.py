from fastapi import APIRouter, Depends, HTTPException
from typing import Optional
from progress_wizard.dependencies.auth import user_api_context
from progress_wizard.schemas.wizard import (
    ProgressInput,
    SelectObjectiveRequest,
    SelectStudentRequest,
    StartTranscriptReview,
    SubmitRequest,
)
from progress_wizard.services.transcript_review import TranscriptReview
from progress_wizard.services.wizard_store import TranscriptReviewSession, get_wizard_store
from progress_wizard.utils.http_errors import wizard_errors
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


def _session(store, context) -> TranscriptReviewSession:
    session = store.transcript(context["owner"])
    if session is None:
        raise HTTPException(status_code=404, detail="No transcript review open")
    return session


def _view(session: TranscriptReviewSession) -> dict:
    review = session.review
    resolver = review.resolver
    sessions = []
    for session_id in review.session_ids:
        parsed = resolver.session(session_id)
        draft = review.progress.get(session_id)
        objective = resolver.selected_objective(session_id)
        sessions.append({
            "parsed_session_id": session_id,
            "raw_input": parsed.raw_input,
            "memo": parsed.memo,
            "matches": [m.model_dump() for m in parsed.matches],
            "resolution": resolver.resolution(session_id).model_dump(),
            "objective_type": objective.objective_type if objective else None,
            "queried_objective_description": objective.queried_objective_description if objective else None,
            "valid": resolver.validate(session_id),
            "issue": resolver.issue(session_id),
            "draft": draft.model_dump() if draft else None,
            "complete": review.is_complete(session_id),
        })
    filled, total = review.progress_summary()
    return {
        "active_index": resolver.active_index,
        "sessions": sessions,
        "progress": {"filled": filled, "total": total},
    }


# -------- Open / view / cancel --------
@router.post("")
async def start_transcript_review(
    payload: StartTranscriptReview,
    context=Depends(user_api_context),
    store=Depends(get_wizard_store),
):
    if payload.sessions is None and not (payload.transcript or "").strip():
        raise HTTPException(status_code=422, detail="Please provide a transcript or analyzed sessions")

    client = context["new_client"]()
    sessions = payload.sessions
    if sessions is None:
        try:
            with wizard_errors():
                sessions = await client.analyze_transcript(payload.transcript)
        except HTTPException:
            await client.aclose()
            raise
    if not sessions:
        await client.aclose()
        raise HTTPException(
            status_code=422,
            detail="No valid session data found in transcript. Try rephrasing or using manual form."
        )

    try:
        with wizard_errors():
            review = TranscriptReview(sessions)
    except HTTPException:
        await client.aclose()
        raise
    session = await store.open_transcript(context["owner"], TranscriptReviewSession(client, review))
    logger.info(f"Opened transcript review with {len(sessions)} parsed sessions")
    return _view(session)

@router.get("")
def get_transcript_review(context=Depends(user_api_context), store=Depends(get_wizard_store)):
    return _view(_session(store, context))

@router.delete("")
async def cancel_transcript_review(context=Depends(user_api_context), store=Depends(get_wizard_store)):
    if not await store.close_transcript(context["owner"]):
        raise HTTPException(status_code=404, detail="No transcript review open")
    return {"message": "Cancelled"}


# -------- Resolution --------
@router.post("/active/{index}")
def activate_session(index: int, context=Depends(user_api_context), store=Depends(get_wizard_store)):
    session = _session(store, context)
    with wizard_errors():
        session.review.activate(index)
    return _view(session)

@router.post("/sessions/{session_id}/student")
def select_student(session_id: str, payload: SelectStudentRequest, context=Depends(user_api_context), store=Depends(get_wizard_store)):
    session = _session(store, context)
    with wizard_errors():
        session.review.select_student(session_id, payload.student_id)
    return _view(session)

@router.post("/sessions/{session_id}/objective")
def select_objective(session_id: str, payload: SelectObjectiveRequest, context=Depends(user_api_context), store=Depends(get_wizard_store)):
    session = _session(store, context)
    with wizard_errors():
        session.review.select_objective(session_id, payload.objective_id)
    return _view(session)


# -------- Progress --------
@router.put("/sessions/{session_id}/progress")
def update_progress(session_id: str, payload: ProgressInput, context=Depends(user_api_context), store=Depends(get_wizard_store)):
    session = _session(store, context)
    review = session.review
    if review.progress.get(session_id) is None:
        raise HTTPException(status_code=404, detail="No progress form for this session")

    with wizard_errors():
        if payload.answer is not None or payload.clear_answer:
            review.set_answer(session_id, payload.answer)
        if payload.trials_completed is not None or payload.trials_total is not None:
            review.set_trial_input(session_id, payload.trials_completed, payload.trials_total)
        if payload.memo is not None:
            review.set_memo(session_id, payload.memo)
        if payload.commit:
            review.commit(session_id)
    return _view(session)

@router.post("/submit")
async def submit_transcript_review(
    payload: Optional[SubmitRequest] = None,
    context=Depends(user_api_context),
    store=Depends(get_wizard_store),
):
    session = _session(store, context)
    result = await session.coordinator.submit_transcript(session.review, payload.timestamp if payload else None)

    if result.status == "busy":
        raise HTTPException(status_code=409, detail=result.error)
    if result.status == "invalid":
        raise HTTPException(status_code=422, detail=result.issue.model_dump())
    if result.status == "failed":
        raise HTTPException(status_code=502, detail=f"Failed to log progress: {result.error}")

    await store.close_transcript(context["owner"])
    return {
        "status": "success",
        "session_ids": result.session_ids,
        "entries": [entry.to_wire() for entry in result.entries],
    }
