from pydantic import BaseModel, Discriminator, Field, Tag, TypeAdapter, field_validator
from typing import Annotated, List, Literal, Optional, Union

BINARY = "binary"
TRIAL = "trial"


def measurement_type(value) -> str:
    """Anything that is not explicitly binary is logged as trials."""
    if isinstance(value, dict):
        kind = value.get("objective_type")
    else:
        kind = getattr(value, "objective_type", None)
    return BINARY if kind == BINARY else TRIAL


# --- Nested references (as embedded by the API's select joins) ---
class GoalRef(BaseModel):
    id: str
    title: Optional[str] = None

class SubjectAreaRef(BaseModel):
    id: str
    name: Optional[str] = None


# --- Objectives ---
class ObjectiveBase(BaseModel):
    id: str
    description: str
    student_id: Optional[str] = None
    goal_id: Optional[str] = None
    subject_area_id: Optional[str] = None
    goal: Optional[GoalRef] = None
    subject_area: Optional[SubjectAreaRef] = None
    target_consistency_successes: Optional[int] = Field(None, ge=0, description="Successes required for consistency")
    target_consistency_trials: Optional[int] = Field(None, ge=0, description="Trials the successes are counted over")

class BinaryObjective(ObjectiveBase):
    objective_type: Literal["binary"] = BINARY

class TrialObjective(ObjectiveBase):
    objective_type: Literal["trial"] = TRIAL
    target_accuracy: Optional[float] = Field(None, ge=0.0, le=1.0, description="Required accuracy threshold (0.0 - 1.0)")

    # Legacy rows carry "general" or nothing at all
    @field_validator("objective_type", mode="before")
    @classmethod
    def _coerce_legacy_type(cls, value):
        return TRIAL


Objective = Annotated[
    Union[
        Annotated[BinaryObjective, Tag(BINARY)],
        Annotated[TrialObjective, Tag(TRIAL)],
    ],
    Discriminator(measurement_type),
]

objective_adapter = TypeAdapter(Objective)
objective_list_adapter = TypeAdapter(List[Objective])


def parse_objective(data) -> Union[BinaryObjective, TrialObjective]:
    return objective_adapter.validate_python(data)
