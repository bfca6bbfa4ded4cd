from pydantic import BaseModel
from typing import List, Literal, Optional
from progress_wizard.schemas.student import Student
from progress_wizard.schemas.transcript import ParsedSession

# --- Manual wizard ---
class StartManualWizard(BaseModel):
    # omitted -> roster fetched from GET /students/students
    students: Optional[List[Student]] = None

class FocusRequest(BaseModel):
    subject_area_id: Optional[str] = None

class FilterRequest(BaseModel):
    search: Optional[str] = None
    include_binary: Optional[bool] = None
    include_trial: Optional[bool] = None

class ProgressInput(BaseModel):
    answer: Optional[Literal["yes", "no"]] = None
    clear_answer: bool = False
    trials_completed: Optional[str] = None
    trials_total: Optional[str] = None
    memo: Optional[str] = None
    # False while the user is still typing; True on blur
    commit: bool = True

class SubmitRequest(BaseModel):
    timestamp: Optional[str] = None

# --- Transcript review ---
class StartTranscriptReview(BaseModel):
    transcript: Optional[str] = None
    sessions: Optional[List[ParsedSession]] = None

class SelectStudentRequest(BaseModel):
    student_id: str

class SelectObjectiveRequest(BaseModel):
    objective_id: str
