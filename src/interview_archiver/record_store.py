"""HTTP client for the interview record store."""

import logging
from datetime import date
from typing import Any, Dict, Optional

import httpx

from .errors import (
    ConfigurationError,
    ErrorKind,
    InterviewNotFoundError,
    RecordingAlreadyExistsError,
    RecordStoreError,
    kind_for_status,
)
from .queue.backends import RecordStore
from .queue.models import InterviewDetails

logger = logging.getLogger(__name__)

JOB_TYPE_UNIQUE_ID = "bot_interview_recording_uploader"


def candidate_name_from(data: Dict[str, Any]) -> str:
    """Resolve the candidate's name from the nested or flat response shapes."""
    candidate = data.get("candidate") or {}
    if isinstance(candidate, dict) and candidate.get("full_name"):
        return candidate["full_name"]
    if data.get("candidate_name"):
        return data["candidate_name"]
    if data.get("full_name"):
        return data["full_name"]
    return "Unknown"


def details_from_response(data: Dict[str, Any]) -> InterviewDetails:
    return InterviewDetails(
        id=data["id"],
        candidate_id=data.get("candidate_id"),
        candidate_name=candidate_name_from(data),
        company=data.get("company") or "",
        interview_type=data.get("type_of_interview") or "",
        interview_date=str(data.get("interview_date") or ""),
        recording_link=data.get("recording_link"),
        backup_recording_url=data.get("backup_recording_url"),
    )


def _error_detail(response: httpx.Response, fallback: str) -> str:
    try:
        body = response.json()
    except ValueError:
        return f"{fallback}: {response.status_code}"
    if isinstance(body, dict) and body.get("detail"):
        return str(body["detail"])
    return f"{fallback}: {response.status_code}"


class RecordStoreClient(RecordStore):
    """Record store over REST.

    Endpoints:
        GET  /api/interviews/{id}
        PUT  /api/interviews/{id}
        GET  /api/interviews              (connection test)
        GET  /api/job-types
        POST /api/job_activity_logs
    """

    def __init__(
        self,
        base_url: Optional[str],
        token: Optional[str] = None,
        employee_id: Optional[int] = None,
        timeout_s: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/") if base_url else None
        self.token = token
        self.employee_id = employee_id
        self.timeout_s = timeout_s
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        if not self.base_url:
            raise ConfigurationError("API base URL not configured")
        if self._client is None:
            headers = {"Content-Type": "application/json"}
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=self.timeout_s,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "RecordStoreClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            return await self.client.request(method, url, **kwargs)
        except httpx.TransportError as e:
            raise RecordStoreError(f"Record store unreachable: {e}", ErrorKind.TRANSIENT)

    async def fetch_interview(self, interview_id: int) -> Optional[Dict[str, Any]]:
        """Raw interview JSON, or None when the id does not exist."""
        response = await self._request("GET", f"/api/interviews/{interview_id}")
        if response.status_code == 404:
            return None
        if not response.is_success:
            raise RecordStoreError(
                _error_detail(response, "API request failed"),
                kind_for_status(response.status_code),
            )
        return response.json()

    async def get_details(self, interview_id: int) -> InterviewDetails:
        logger.info("Fetching interview details for ID %s", interview_id)
        data = await self.fetch_interview(interview_id)
        if data is None:
            raise InterviewNotFoundError(interview_id)

        details = details_from_response(data)
        logger.debug("Interview %s: %s", interview_id, details)
        if details.has_recording:
            raise RecordingAlreadyExistsError(details.recording_link, details.backup_recording_url)
        return details

    async def write_back(
        self,
        interview_id: int,
        primary_link: str,
        backup_link: Optional[str],
        transcript_link: Optional[str],
        filename: str,
    ) -> None:
        payload: Dict[str, Any] = {
            "recording_link": primary_link,
            "backup_recording_url": backup_link,
        }
        if transcript_link:
            payload["transcript"] = transcript_link

        response = await self._request("PUT", f"/api/interviews/{interview_id}", json=payload)
        if response.status_code == 404:
            raise RecordStoreError("Interview not found", ErrorKind.NOT_FOUND)
        if not response.is_success:
            raise RecordStoreError(
                _error_detail(response, "API update failed"),
                kind_for_status(response.status_code),
            )
        logger.info("Recording links updated for interview %s", interview_id)

        await self.log_job_activity(interview_id, filename)

    async def log_job_activity(self, interview_id: int, filename: Optional[str] = None,
                               today: Optional[date] = None) -> bool:
        """Record an activity-log entry for the upload. Never raises.

        Returns:
            True if the entry was created.
        """
        try:
            response = await self._request("GET", "/api/job-types")
            if not response.is_success:
                logger.warning("Could not fetch job types for logging")
                return False
            job_type = next(
                (jt for jt in response.json() if jt.get("unique_id") == JOB_TYPE_UNIQUE_ID),
                None,
            )
            if job_type is None:
                logger.warning('Job type "%s" not found', JOB_TYPE_UNIQUE_ID)
                return False

            interview = await self.fetch_interview(interview_id)
            if interview is None:
                logger.warning("Could not fetch interview %s for logging", interview_id)
                return False

            activity = {
                "job_id": job_type["id"],
                "candidate_id": interview.get("candidate_id"),
                "employee_id": self.employee_id,
                "activity_date": (today or date.today()).isoformat(),
                "activity_count": 1,
                "notes": filename or f"Interview ID {interview_id} recording uploaded",
            }
            response = await self._request("POST", "/api/job_activity_logs", json=activity)
            if not response.is_success:
                logger.warning(
                    "Failed to log job activity: %s",
                    _error_detail(response, "Failed to log activity"),
                )
                return False
            logger.info("Job activity logged for interview %s", interview_id)
            return True
        except Exception as e:
            logger.warning("Failed to log job activity: %s", e)
            return False

    async def test_connection(self) -> bool:
        try:
            response = await self._request("GET", "/api/interviews")
            return response.is_success
        except Exception as e:
            logger.error("Connection test failed: %s", e)
            return False
