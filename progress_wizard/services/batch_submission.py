"""Assemble and post one atomic batch of session logs.

Either every prepared entry is valid and the whole array goes out in one
request, or nothing is sent. A failed request leaves the wizard untouched
so the user can retry; a successful one resets it.
"""

import logging
from datetime import datetime, timezone
from pydantic import BaseModel, Field
from typing import Callable, List, Literal, Optional

from progress_wizard.schemas.session import SessionLogEntry
from progress_wizard.services.errors import ApiError, DraftInputError
from progress_wizard.services.manual_wizard import OBJECTIVES, PROGRESS, SelectionWizardController
from progress_wizard.services.transcript_review import TranscriptReview

logger = logging.getLogger(__name__)


class SubmissionIssue(BaseModel):
    message: str
    index: Optional[int] = None
    step: Optional[str] = None
    student_id: Optional[str] = None
    objective_id: Optional[str] = None
    session_id: Optional[str] = None

class SubmissionResult(BaseModel):
    status: Literal["success", "invalid", "failed", "busy"]
    session_ids: List[str] = Field(default_factory=list)
    entries: List[SessionLogEntry] = Field(default_factory=list)
    issue: Optional[SubmissionIssue] = None
    warnings: List[str] = Field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == "success"


def submission_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class BatchSubmissionCoordinator:
    def __init__(self, client, on_complete: Optional[Callable[[SubmissionResult], None]] = None):
        self.client = client
        self.on_complete = on_complete
        self._in_flight = False

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    # ---------- Manual path ----------
    def validate_manual(self, wizard: SelectionWizardController) -> Optional[SubmissionIssue]:
        entries = wizard.selected_entries()
        if not entries:
            return SubmissionIssue(message="Select at least one objective", step=OBJECTIVES)
        for index, (student, objective) in enumerate(entries):
            if objective.student_id and objective.student_id != student.id:
                return SubmissionIssue(
                    message=f"'{objective.description}' does not belong to {student.name}",
                    index=index,
                    step=OBJECTIVES,
                    student_id=student.id,
                    objective_id=objective.id,
                )
            if not wizard.progress.is_complete(objective.id):
                return SubmissionIssue(
                    message=f"Progress for '{objective.description}' ({student.name}) is incomplete",
                    index=index,
                    step=PROGRESS,
                    student_id=student.id,
                    objective_id=objective.id,
                )
        return None

    def build_manual_entries(self, wizard: SelectionWizardController, timestamp: Optional[str] = None) -> List[SessionLogEntry]:
        timestamp = timestamp or submission_timestamp()
        return [
            SessionLogEntry(
                student_id=student.id,
                objective_id=objective.id,
                memo=wizard.progress.memo(objective.id),
                timestamp=timestamp,
                objective_progress=wizard.progress.finalize(objective.id),
            )
            for student, objective in wizard.selected_entries()
        ]

    async def submit_manual(self, wizard: SelectionWizardController, timestamp: Optional[str] = None) -> SubmissionResult:
        if self._in_flight:
            return self._busy()
        warnings = [
            f"{student.name} has no subject areas to log progress against"
            for student in wizard.students_without_subject_areas()
        ]
        issue = self.validate_manual(wizard)
        if issue is None:
            issue, entries = self._build(
                lambda: self.build_manual_entries(wizard, timestamp),
                lambda key: self._locate_manual(wizard, key),
            )
        if issue is not None:
            logger.info(f"Manual submission blocked: {issue.message}")
            return SubmissionResult(status="invalid", issue=issue, warnings=warnings)
        return await self._submit(entries, wizard.reset, warnings)

    # ---------- Transcript path ----------
    def validate_transcript(self, review: TranscriptReview) -> Optional[SubmissionIssue]:
        """First blocking session in order; later problems are not reported."""
        session_ids = review.session_ids
        if not session_ids:
            return SubmissionIssue(message="No sessions to submit")
        for index, session_id in enumerate(session_ids):
            problem = review.resolver.issue(session_id)
            if problem:
                return SubmissionIssue(message=problem, index=index, session_id=session_id)
            if not review.progress.is_complete(session_id):
                return SubmissionIssue(
                    message=f"Progress for session {index + 1} is incomplete",
                    index=index,
                    session_id=session_id,
                )
        return None

    def build_transcript_entries(self, review: TranscriptReview, timestamp: Optional[str] = None) -> List[SessionLogEntry]:
        timestamp = timestamp or submission_timestamp()
        entries = []
        for session_id in review.session_ids:
            student, objective = review.resolver.resolved(session_id)
            entries.append(SessionLogEntry(
                student_id=student.id,
                objective_id=objective.id,
                memo=review.progress.memo(session_id),
                timestamp=timestamp,
                objective_progress=review.progress.finalize(session_id),
                raw_input=review.resolver.session(session_id).raw_input or None,
            ))
        return entries

    async def submit_transcript(self, review: TranscriptReview, timestamp: Optional[str] = None) -> SubmissionResult:
        if self._in_flight:
            return self._busy()
        issue = self.validate_transcript(review)
        if issue is None:
            issue, entries = self._build(
                lambda: self.build_transcript_entries(review, timestamp),
                lambda key: self._locate_transcript(review, key),
            )
        if issue is not None:
            logger.info(f"Transcript submission blocked at session {issue.index}: {issue.message}")
            return SubmissionResult(status="invalid", issue=issue)
        return await self._submit(entries, review.reset, [])

    # ---------- Shared ----------
    def _busy(self) -> SubmissionResult:
        return SubmissionResult(status="busy", error="A submission is already in progress")

    def _locate_manual(self, wizard: SelectionWizardController, objective_id: str) -> dict:
        for index, (student, objective) in enumerate(wizard.selected_entries()):
            if objective.id == objective_id:
                return {"index": index, "step": PROGRESS, "student_id": student.id, "objective_id": objective_id}
        return {"step": PROGRESS, "objective_id": objective_id}

    def _locate_transcript(self, review: TranscriptReview, session_id: str) -> dict:
        # transcript drafts are keyed by parsed session id
        resolution = review.resolver.resolution(session_id)
        return {
            "index": review.session_ids.index(session_id),
            "session_id": session_id,
            "student_id": resolution.student_id,
            "objective_id": resolution.objective_id,
        }

    def _build(self, build, locate):
        try:
            return None, build()
        except DraftInputError as e:
            return SubmissionIssue(message=str(e), **locate(e.key)), []

    async def _submit(self, entries: List[SessionLogEntry], reset: Callable[[], None], warnings: List[str]) -> SubmissionResult:
        self._in_flight = True
        try:
            logger.info(f"Logging {len(entries)} session(s)")
            response = await self.client.log_sessions(entries)
        except ApiError as e:
            logger.error(f"Failed to log progress: {str(e)}")
            return SubmissionResult(status="failed", entries=entries, warnings=warnings, error=str(e))
        finally:
            self._in_flight = False

        reset()
        result = SubmissionResult(
            status="success",
            session_ids=response.session_ids,
            entries=entries,
            warnings=warnings,
        )
        logger.info(f"Logged {len(entries)} session(s)")
        if self.on_complete:
            self.on_complete(result)
        return result
