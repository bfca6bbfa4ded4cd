from typing import Optional


class WizardError(Exception):
    pass


class StepBlockedError(WizardError):
    """Raised when a forward step transition is attempted before its exit condition holds."""

    def __init__(self, step: str, reason: str):
        self.step = step
        self.reason = reason
        super().__init__(f"Cannot leave {step}: {reason}")


class DraftInputError(WizardError, ValueError):
    def __init__(self, key: str, field: str, value, message: Optional[str] = None):
        self.key = key
        self.field = field
        self.value = value
        super().__init__(message or f"'{value}' is not a whole number for {field}")


class ApiError(WizardError):
    """Non-2xx response or transport failure talking to the Mirae API."""

    def __init__(self, status_code: Optional[int], detail: str):
        self.status_code = status_code
        self.detail = detail
        if status_code is None:
            super().__init__(detail)
        else:
            super().__init__(f"{status_code}: {detail}")
