from pydantic import BaseModel, Field, field_validator
from typing import List, Literal, Optional
from progress_wizard.schemas.objective import BINARY, TRIAL, GoalRef, SubjectAreaRef

# ---------- Shapes returned by POST /transcript/analyze ----------
class MatchStudent(BaseModel):
    id: str
    name: str
    similarity: float = 0.0
    summary: str = ""
    disability_type: str = ""
    grade_level: Optional[int] = None

class MatchObjective(BaseModel):
    id: str
    description: str
    similarity: float = 0.0
    queried_objective_description: str = ""
    objective_type: Literal["binary", "trial"] = TRIAL
    target_accuracy: Optional[float] = None
    subject_area: Optional[SubjectAreaRef] = None
    goal: Optional[GoalRef] = None

    @field_validator("objective_type", mode="before")
    @classmethod
    def _coerce_type(cls, value):
        return BINARY if value == BINARY else TRIAL

class StudentWithObjectives(BaseModel):
    student: MatchStudent
    objectives: List[MatchObjective] = Field(default_factory=list)

# The analyzer's guess may be 0/0 when inference failed, so no bounds here
class ProgressGuess(BaseModel):
    trials_completed: int = 0
    trials_total: int = 0

class ParsedSession(BaseModel):
    parsed_session_id: str
    raw_input: str = ""
    memo: Optional[str] = ""
    objective_progress: Optional[ProgressGuess] = None
    matches: List[StudentWithObjectives] = Field(default_factory=list)

    def match_for(self, student_id: str) -> Optional[StudentWithObjectives]:
        return next((m for m in self.matches if m.student.id == student_id), None)
