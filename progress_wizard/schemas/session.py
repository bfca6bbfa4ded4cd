from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from typing import List, Optional

# --- Sessions with Progress ---
class ObjectiveProgress(BaseModel):
    trials_completed: int = Field(..., ge=0)
    trials_total: int = Field(..., ge=1)

class SessionLogEntry(BaseModel):
    """One finalized progress record, as accepted by POST /sessions/session/log."""

    model_config = ConfigDict(populate_by_name=True)

    student_id: str
    objective_id: str
    memo: str = ""
    # The API stores this as the session's created_at
    timestamp: str = Field(
        ...,
        validation_alias=AliasChoices("timestamp", "created_at"),
        serialization_alias="created_at",
    )
    objective_progress: ObjectiveProgress
    raw_input: Optional[str] = None

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)

class LogSessionsResponse(BaseModel):
    status: str = "success"
    session_ids: List[str] = Field(default_factory=list)
