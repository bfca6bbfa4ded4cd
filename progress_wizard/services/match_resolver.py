"""Pick a {student, objective} pair for every parsed session.

The analyzer already orders its candidates, so the default is simply the
first student match and that student's first objective. Nothing here
re-ranks. `validate` only checks; `repair` re-applies the default and is
run whenever a session becomes the active one.
"""

import logging
from pydantic import BaseModel
from typing import Dict, Iterable, List, Optional, Tuple

from progress_wizard.schemas.transcript import MatchObjective, MatchStudent, ParsedSession

logger = logging.getLogger(__name__)

NO_STUDENT = "no student selected"
NO_OBJECTIVES = "no objectives available for selected student"
STALE_OBJECTIVE = "selected objective is not offered for the selected student"


class SessionResolution(BaseModel):
    student_id: Optional[str] = None
    objective_id: Optional[str] = None


def default_resolution(session: ParsedSession, student_id: Optional[str] = None) -> SessionResolution:
    """First match (or the given student's match) and its first objective."""
    if student_id is None:
        if not session.matches:
            return SessionResolution()
        match = session.matches[0]
    else:
        match = session.match_for(student_id)
        if match is None:
            return SessionResolution()
    objective_id = match.objectives[0].id if match.objectives else None
    return SessionResolution(student_id=match.student.id, objective_id=objective_id)


class TranscriptMatchResolver:
    def __init__(self, sessions: Iterable[ParsedSession] = ()):
        self.load(sessions)

    def load(self, sessions: Iterable[ParsedSession]):
        self.sessions: Dict[str, ParsedSession] = {}
        self.resolutions: Dict[str, SessionResolution] = {}
        self.active_index = 0
        for session in sessions:
            if session.parsed_session_id in self.sessions:
                raise ValueError(f"Duplicate parsed session '{session.parsed_session_id}'")
            self.sessions[session.parsed_session_id] = session
            self.resolutions[session.parsed_session_id] = default_resolution(session)
        if self.sessions:
            self.activate(0)

    def reset(self):
        self.load(())

    @property
    def session_ids(self) -> List[str]:
        return list(self.sessions.keys())

    def session(self, session_id: str) -> ParsedSession:
        session = self.sessions.get(session_id)
        if session is None:
            raise ValueError(f"Unknown parsed session '{session_id}'")
        return session

    def resolution(self, session_id: str) -> SessionResolution:
        self.session(session_id)
        return self.resolutions[session_id]

    @property
    def active_session(self) -> Optional[ParsedSession]:
        ids = self.session_ids
        if not ids:
            return None
        return self.sessions[ids[self.active_index]]

    # ---------- Choices ----------
    def select_student(self, session_id: str, student_id: str) -> SessionResolution:
        """Switch student; the objective always falls back to that student's first candidate."""
        session = self.session(session_id)
        if session.match_for(student_id) is None:
            raise ValueError(f"Student '{student_id}' is not a candidate for session '{session_id}'")
        resolution = default_resolution(session, student_id)
        self.resolutions[session_id] = resolution
        logger.info(f"Session {session_id} now resolves to student {student_id}, objective {resolution.objective_id}")
        return resolution

    def select_objective(self, session_id: str, objective_id: str) -> SessionResolution:
        resolution = self.resolution(session_id).model_copy(update={"objective_id": objective_id})
        self.resolutions[session_id] = resolution
        return resolution

    # ---------- Validation ----------
    def _candidates(self, session: ParsedSession, resolution: SessionResolution):
        match = session.match_for(resolution.student_id) if resolution.student_id else None
        if match is None:
            return None, None
        objective = next((o for o in match.objectives if o.id == resolution.objective_id), None)
        return match, objective

    def issue(self, session_id: str) -> Optional[str]:
        """Why the session can't be submitted as resolved, or None."""
        session = self.session(session_id)
        resolution = self.resolutions[session_id]
        # no candidates at all reads the same as a student with no objectives
        if not session.matches:
            return NO_OBJECTIVES
        if resolution.student_id is None:
            return NO_STUDENT
        match, objective = self._candidates(session, resolution)
        if match is None:
            return NO_STUDENT
        if not match.objectives:
            return NO_OBJECTIVES
        if objective is None:
            return STALE_OBJECTIVE
        return None

    def validate(self, session_id: str) -> bool:
        return self.issue(session_id) is None

    def repair(self, session_id: str) -> bool:
        if self.validate(session_id):
            return True
        session = self.session(session_id)
        resolution = self.resolutions[session_id]
        match, _ = self._candidates(session, resolution)
        if match is not None:
            repaired = default_resolution(session, match.student.id)
        else:
            repaired = default_resolution(session)
        if repaired != resolution:
            logger.info(f"Repaired session {session_id}: {resolution} -> {repaired}")
            self.resolutions[session_id] = repaired
        return self.validate(session_id)

    def activate(self, index: int) -> bool:
        """Make the session at index active, repair it, then verify the repair held."""
        ids = self.session_ids
        if not 0 <= index < len(ids):
            raise ValueError(f"No parsed session at index {index}")
        self.active_index = index
        session_id = ids[index]
        self.repair(session_id)
        return self.validate(session_id)

    def next_session(self) -> Optional[ParsedSession]:
        if self.active_index + 1 < len(self.sessions):
            self.activate(self.active_index + 1)
        return self.active_session

    def previous_session(self) -> Optional[ParsedSession]:
        if self.active_index > 0:
            self.activate(self.active_index - 1)
        return self.active_session

    # ---------- Output ----------
    def resolved(self, session_id: str) -> Tuple[MatchStudent, MatchObjective]:
        problem = self.issue(session_id)
        if problem:
            raise ValueError(f"Session '{session_id}' is unresolved: {problem}")
        match, objective = self._candidates(self.sessions[session_id], self.resolutions[session_id])
        return match.student, objective

    def selected_objective(self, session_id: str) -> Optional[MatchObjective]:
        _, objective = self._candidates(self.session(session_id), self.resolutions[session_id])
        return objective

    def first_invalid(self) -> Optional[Tuple[int, str, str]]:
        for index, session_id in enumerate(self.session_ids):
            problem = self.issue(session_id)
            if problem:
                return index, session_id, problem
        return None
