from pydantic import AliasChoices, Field
from typing import List
from progress_wizard.schemas.objective import SubjectAreaRef, Objective

# --- Subject Areas ---
# GET /subject-areas/student/{id} embeds the student's objectives under "objective"
class SubjectArea(SubjectAreaRef):
    objectives: List[Objective] = Field(
        default_factory=list,
        validation_alias=AliasChoices("objective", "objectives"),
    )
