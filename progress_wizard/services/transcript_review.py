import logging
from typing import Iterable, Optional, Tuple

from progress_wizard.schemas.transcript import ParsedSession
from progress_wizard.services.match_resolver import SessionResolution, TranscriptMatchResolver
from progress_wizard.services.progress_form import Answer, ProgressFormEngine

logger = logging.getLogger(__name__)


class TranscriptReview:
    """Review of analyzed sessions: one resolution and one progress draft per parsed session."""

    def __init__(self, sessions: Iterable[ParsedSession] = (), progress: Optional[ProgressFormEngine] = None):
        self.resolver = TranscriptMatchResolver()
        self.progress = progress or ProgressFormEngine()
        self.load(sessions)

    def load(self, sessions: Iterable[ParsedSession]):
        self.progress.reset()
        self.resolver.load(sessions)
        for session_id in self.resolver.session_ids:
            self._sync_draft(session_id)

    def reset(self):
        self.load(())

    def _sync_draft(self, session_id: str):
        # drafts follow the chosen objective's measurement type
        objective = self.resolver.selected_objective(session_id)
        if objective is None:
            return
        session = self.resolver.session(session_id)
        self.progress.ensure_draft(
            session_id,
            objective.objective_type,
            guess=session.objective_progress,
            memo=session.memo,
        )

    @property
    def session_ids(self):
        return self.resolver.session_ids

    # ---------- Navigation ----------
    def activate(self, index: int) -> bool:
        valid = self.resolver.activate(index)
        self._sync_draft(self.resolver.session_ids[index])
        return valid

    def next_session(self) -> Optional[ParsedSession]:
        session = self.resolver.next_session()
        if session is not None:
            self._sync_draft(session.parsed_session_id)
        return session

    def previous_session(self) -> Optional[ParsedSession]:
        session = self.resolver.previous_session()
        if session is not None:
            self._sync_draft(session.parsed_session_id)
        return session

    # ---------- Choices ----------
    def select_student(self, session_id: str, student_id: str) -> SessionResolution:
        resolution = self.resolver.select_student(session_id, student_id)
        self._sync_draft(session_id)
        return resolution

    def select_objective(self, session_id: str, objective_id: str) -> SessionResolution:
        resolution = self.resolver.select_objective(session_id, objective_id)
        self._sync_draft(session_id)
        return resolution

    # ---------- Progress ----------
    def set_answer(self, session_id: str, answer: Optional[Answer]):
        return self.progress.set_answer(session_id, answer)

    def set_trial_input(self, session_id: str, completed: Optional[str] = None, total: Optional[str] = None):
        return self.progress.set_trial_input(session_id, completed=completed, total=total)

    def commit(self, session_id: str):
        return self.progress.commit(session_id)

    def set_memo(self, session_id: str, memo: Optional[str]):
        self.progress.set_memo(session_id, memo)

    def is_complete(self, session_id: str) -> bool:
        return self.resolver.validate(session_id) and self.progress.is_complete(session_id)

    def progress_summary(self) -> Tuple[int, int]:
        ids = self.session_ids
        return sum(1 for i in ids if self.is_complete(i)), len(ids)
