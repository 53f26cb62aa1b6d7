"""
Job-log API client
Talks to the StoreHub REST API with a bearer token.
"""
from datetime import date, datetime
from typing import Any, Dict, List, Optional

import httpx
import structlog

from ..config import settings
from ..schemas.joblogs import CalendarEventResponse, CommentResponse, JobLogResponse, StaffResponse, StoreResponse
from .schedule import format_slot


logger = structlog.get_logger(__name__)


class JobLogApiError(Exception):
    """Non-2xx response or transport failure. ``status_code`` is None for the latter."""

    def __init__(self, status_code: Optional[int], detail: str):
        super().__init__(f"{status_code}: {detail}" if status_code else detail)
        self.status_code = status_code
        self.detail = detail


class JobLogClient:
    """Client for the job-log, store and staff endpoints"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = (base_url or settings.joblog_api_base_url).rstrip("/")
        self.token = token or settings.joblog_api_token
        self.timeout = timeout or settings.joblog_api_timeout
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or response.reason_phrase
        if isinstance(body, dict) and "detail" in body:
            detail = body["detail"]
            return detail if isinstance(detail, str) else str(detail)
        return str(body)

    def _request(self, method: str, endpoint: str, **kwargs) -> Any:
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        headers = self._headers()
        headers.update(kwargs.pop("headers", {}))
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("joblog_api_transport_error", method=method, url=url, error=str(exc))
            raise JobLogApiError(None, str(exc)) from exc
        if response.status_code >= 400:
            detail = self._error_detail(response)
            logger.warning("joblog_api_error", method=method, url=url, status=response.status_code, detail=detail)
            raise JobLogApiError(response.status_code, detail)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    # Auth
    def login(self, identifier: str, password: str) -> str:
        data = self._request("POST", "/auth/login", json={"identifier": identifier, "password": password})
        self.token = data["access_token"]
        return self.token

    # Jobs
    def list_jobs(self, store_id: Optional[int] = None, recent_completed_only: bool = False) -> List[JobLogResponse]:
        params: Dict[str, Any] = {}
        if store_id is not None:
            params["storeId"] = store_id
        if recent_completed_only:
            params["recentCompletedOnly"] = "true"
        return [JobLogResponse.model_validate(item) for item in self._request("GET", "/jobs", params=params)]

    def get_job(self, job_id: int) -> JobLogResponse:
        return JobLogResponse.model_validate(self._request("GET", f"/jobs/{job_id}"))

    def create_job(self, **fields) -> JobLogResponse:
        return JobLogResponse.model_validate(self._request("POST", "/jobs", json=fields))

    def update_job(self, job_id: int, **fields) -> JobLogResponse:
        return JobLogResponse.model_validate(self._request("PATCH", f"/jobs/{job_id}", json=fields))

    def reschedule(self, job_id: int, new_start: Optional[datetime]) -> JobLogResponse:
        """PATCH only logDate and logTime; ``None`` unschedules."""
        log_date, log_time = format_slot(new_start)
        return self.update_job(job_id, logDate=log_date, logTime=log_time)

    def move_to_tomorrow(self, job_id: int) -> JobLogResponse:
        return JobLogResponse.model_validate(self._request("POST", f"/jobs/{job_id}/move-tomorrow"))

    # Comments
    def list_comments(self, job_id: int) -> List[CommentResponse]:
        return [CommentResponse.model_validate(item) for item in self._request("GET", f"/jobs/{job_id}/comments")]

    def add_comment(self, job_id: int, comment: str, mentioned_users: Optional[List[int]] = None) -> CommentResponse:
        body = {"comment": comment, "mentionedUsers": list(mentioned_users or [])}
        return CommentResponse.model_validate(self._request("POST", f"/jobs/{job_id}/comments", json=body))

    # Lookups
    def list_stores(self) -> List[StoreResponse]:
        return [StoreResponse.model_validate(item) for item in self._request("GET", "/stores")]

    def list_staff(self, q: Optional[str] = None) -> List[StaffResponse]:
        params = {"q": q} if q else {}
        return [StaffResponse.model_validate(item) for item in self._request("GET", "/staff", params=params)]

    def calendar_events(self, current_date: Optional[date] = None, store_id: Optional[int] = None) -> List[CalendarEventResponse]:
        params: Dict[str, Any] = {}
        if current_date is not None:
            params["date"] = current_date.isoformat()
        if store_id is not None:
            params["storeId"] = store_id
        return [CalendarEventResponse.model_validate(item) for item in self._request("GET", "/calendar/events", params=params)]
