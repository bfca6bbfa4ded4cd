import logging
import os
from typing import List, Optional

import httpx
from pydantic import TypeAdapter, ValidationError

from progress_wizard.schemas.goal import Goal
from progress_wizard.schemas.objective import objective_list_adapter
from progress_wizard.schemas.session import LogSessionsResponse, SessionLogEntry
from progress_wizard.schemas.student import Student
from progress_wizard.schemas.subject_area import SubjectArea
from progress_wizard.schemas.transcript import ParsedSession
from progress_wizard.services.errors import ApiError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0

_students = TypeAdapter(List[Student])
_subject_areas = TypeAdapter(List[SubjectArea])
_goals = TypeAdapter(List[Goal])
_parsed_sessions = TypeAdapter(List[ParsedSession])


class MiraeClient:
    """Async client for the Mirae API; every call carries the caller's bearer token."""

    def __init__(
        self,
        token: str,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        base_url = base_url or os.getenv("MIRAE_API_URL")
        if not base_url:
            raise ValueError("MIRAE_API_URL not found in environment variables")
        if timeout is None:
            timeout = float(os.getenv("MIRAE_API_TIMEOUT") or DEFAULT_TIMEOUT)

        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={"Authorization": f"Bearer {token}"},
        )

    async def aclose(self):
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def _request(self, method: str, url: str, **kwargs):
        logger.info(f"{method} {url}")
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"{method} {url} failed: {str(e)}")
            raise ApiError(None, f"Request to {url} failed: {str(e)}") from e

        if not response.is_success:
            try:
                detail = response.json().get("detail") or response.text
            except (ValueError, AttributeError):
                detail = response.text
            logger.warning(f"{method} {url} returned {response.status_code}")
            raise ApiError(response.status_code, str(detail))

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise ApiError(response.status_code, f"Response from {url} was not valid JSON") from e

    async def _get(self, url: str, adapter):
        data = await self._request("GET", url)
        try:
            return adapter.validate_python(data)
        except ValidationError as e:
            raise ApiError(None, f"Unexpected response shape from {url}: {str(e)}") from e

    # -------- Roster --------
    async def get_students(self) -> List[Student]:
        return await self._get("/students/students", _students)

    async def get_subject_areas_for_student(self, student_id: str) -> List[SubjectArea]:
        return await self._get(f"/subject-areas/student/{student_id}", _subject_areas)

    async def get_goals(self, student_id: str, subject_area_id: str) -> List[Goal]:
        return await self._get(f"/goals/student/{student_id}/subject-area/{subject_area_id}", _goals)

    async def get_objectives_for_student(self, student_id: str) -> list:
        return await self._get(f"/objectives/student/{student_id}", objective_list_adapter)

    async def get_objective(self, objective_id: str):
        # the API answers with a list of zero or one rows
        objectives = await self._get(f"/objectives/objective/{objective_id}", objective_list_adapter)
        return objectives[0] if objectives else None

    # -------- Transcript --------
    async def analyze_transcript(self, transcript: str) -> List[ParsedSession]:
        data = await self._request("POST", "/transcript/analyze", json={"transcript": transcript})
        try:
            return _parsed_sessions.validate_python(data)
        except ValidationError as e:
            raise ApiError(None, f"Unexpected transcript analysis shape: {str(e)}") from e

    # -------- Sessions --------
    async def log_sessions(self, entries: List[SessionLogEntry]) -> LogSessionsResponse:
        data = await self._request(
            "POST",
            "/sessions/session/log",
            json=[entry.to_wire() for entry in entries],
        )
        if data is None:
            return LogSessionsResponse()
        try:
            return LogSessionsResponse.model_validate(data)
        except ValidationError:
            # A 2xx is success even if the body is not the usual shape
            return LogSessionsResponse()
