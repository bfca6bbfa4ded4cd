import pytest

from progress_wizard.services.progress_form import BinaryDraft, TrialDraft
from progress_wizard.services.transcript_review import TranscriptReview


def test_drafts_are_seeded_from_analyzer_guess(two_candidate_session):
    review = TranscriptReview([two_candidate_session])
    draft = review.progress.get("s-1")
    assert isinstance(draft, TrialDraft)
    assert (draft.trials_completed, draft.trials_total) == (7, 10)
    assert draft.memo == "memo"
    assert review.is_complete("s-1")
    assert review.progress_summary() == (1, 1)

def test_switching_to_binary_objective_reshapes_draft(two_candidate_session):
    review = TranscriptReview([two_candidate_session])
    review.set_memo("s-1", "edited")

    review.select_student("s-1", "B")

    draft = review.progress.get("s-1")
    assert isinstance(draft, BinaryDraft)
    assert draft.answer == "no"
    assert draft.memo == "edited"

    review.set_answer("s-1", "yes")
    assert review.progress.finalize("s-1").model_dump() == {"trials_completed": 1, "trials_total": 1}

def test_switching_between_same_type_objectives_keeps_draft(two_candidate_session):
    review = TranscriptReview([two_candidate_session])
    review.set_trial_input("s-1", completed="3")
    review.commit("s-1")

    review.select_objective("s-1", "Y")

    assert review.progress.finalize("s-1").model_dump() == {"trials_completed": 3, "trials_total": 10}

def test_failed_inference_clamps_total(make_match, make_session):
    session = make_session("s-1", [make_match("A", "Avery", [("X", "trial")])], progress={"trials_completed": 0, "trials_total": 0})
    review = TranscriptReview([session])
    assert review.progress.finalize("s-1").model_dump() == {"trials_completed": 0, "trials_total": 1}

def test_stale_objective_is_incomplete_until_activated(make_match, make_session):
    sessions = [
        make_session("s-1", [make_match("A", "Avery", [("X", "trial")])], progress={"trials_completed": 1, "trials_total": 2}),
        make_session("s-2", [make_match("B", "Blake", [("Z", "binary")])], progress={"trials_completed": 1, "trials_total": 1}),
    ]
    review = TranscriptReview(sessions)
    review.select_objective("s-2", "gone")
    assert not review.is_complete("s-2")
    assert review.progress_summary() == (1, 2)

    review.next_session()
    assert review.resolver.resolution("s-2").objective_id == "Z"
    assert review.is_complete("s-2")
    assert review.progress.get("s-2").answer == "yes"

def test_session_without_matches_has_no_draft(make_session):
    review = TranscriptReview([make_session("s-1", [])])
    assert review.progress.get("s-1") is None
    assert not review.is_complete("s-1")
    with pytest.raises(ValueError):
        review.set_answer("s-1", "yes")

def test_reset_drops_sessions_and_drafts(two_candidate_session):
    review = TranscriptReview([two_candidate_session])
    review.reset()
    assert review.session_ids == []
    assert review.progress.keys() == []
