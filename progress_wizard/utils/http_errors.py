from contextlib import contextmanager
from fastapi import HTTPException

from progress_wizard.services.errors import ApiError, StepBlockedError


@contextmanager
def wizard_errors():
    """Turn wizard usage errors into 4xx and upstream API failures into 502."""
    try:
        yield
    except StepBlockedError as e:
        raise HTTPException(status_code=422, detail={"step": e.step, "reason": e.reason})
    except ApiError as e:
        raise HTTPException(status_code=502, detail=f"Mirae API error: {e.detail}")
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
