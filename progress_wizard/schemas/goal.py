from pydantic import Field
from typing import List
from progress_wizard.schemas.objective import GoalRef, Objective

# --- Goals (GET /goals/student/{id}/subject-area/{id}) ---
class Goal(GoalRef):
    objectives: List[Objective] = Field(default_factory=list)
