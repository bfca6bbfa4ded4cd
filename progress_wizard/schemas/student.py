from pydantic import BaseModel
from typing import List, Optional
from progress_wizard.schemas.subject_area import SubjectArea

# --- Students ---
class Student(BaseModel):
    id: str
    name: str
    grade_level: Optional[int] = None
    disability_type: Optional[str] = None
    # Only present when the roster is delivered pre-nested
    subject_areas: Optional[List[SubjectArea]] = None
