"""
Client-side schedule board.

Holds the job lists fetched from the API in a cache keyed by query identity
and drives rescheduling as two steps: a pure patch applied to the cache up
front, then the persist call. When persisting fails the patch is reversed,
so the cache never shows a state the server did not store.
"""
import itertools
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Callable, Dict, List, Optional, Tuple

import structlog

from ..schemas.joblogs import JobLogResponse, StoreResponse
from .joblog_client import JobLogApiError, JobLogClient
from .permissions import PrincipalContext, can_edit_job, filter_visible_jobs, visible_store_scope
from .schedule import (
    CalendarEvent,
    apply_reschedule,
    apply_slot,
    move_to_tomorrow_target,
    project_events,
    unscheduled_jobs,
)


logger = structlog.get_logger(__name__)

QueryKey = Tuple[str, Optional[int]]
PersistFn = Callable[[int, Optional[datetime]], JobLogResponse]

_notice_ids = itertools.count(1)


def joblogs_key(store_id: Optional[int] = None) -> QueryKey:
    return ("joblogs", store_id)


class JobCache:
    """Job lists keyed by query identity; every list holding a job sees its patches."""

    def __init__(self):
        self._entries: Dict[QueryKey, List[JobLogResponse]] = {}

    def get(self, key: QueryKey) -> Optional[List[JobLogResponse]]:
        entry = self._entries.get(key)
        return list(entry) if entry is not None else None

    def set(self, key: QueryKey, jobs: List[JobLogResponse]) -> None:
        self._entries[key] = list(jobs)

    def invalidate(self, key: Optional[QueryKey] = None) -> None:
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def keys(self) -> List[QueryKey]:
        return list(self._entries)

    def find(self, job_id: int) -> Optional[JobLogResponse]:
        for jobs in self._entries.values():
            for job in jobs:
                if job.id == job_id:
                    return job
        return None

    def keys_holding(self, job_id: int) -> List[QueryKey]:
        return [key for key, jobs in self._entries.items() if any(job.id == job_id for job in jobs)]

    def replace_job(self, job: JobLogResponse) -> None:
        for key in self.keys_holding(job.id):
            self._entries[key] = [job if item.id == job.id else item for item in self._entries[key]]


@dataclass
class Notice:
    title: str
    detail: Optional[str] = None
    id: int = field(default_factory=lambda: next(_notice_ids))
    dismissed: bool = False


@dataclass
class RescheduleResult:
    ok: bool
    job: Optional[JobLogResponse] = None
    error: Optional[str] = None


class ScheduleBoard:
    """Calendar, unscheduled panel and list all read the same cached jobs."""

    def __init__(
        self,
        client: JobLogClient,
        principal: PrincipalContext,
        store_id: Optional[int] = None,
        cache: Optional[JobCache] = None,
        persist: Optional[PersistFn] = None,
    ):
        self.client = client
        self.principal = principal
        self.store_id = visible_store_scope(principal, store_id)
        self.cache = cache or JobCache()
        self.persist: PersistFn = persist or client.reschedule
        self.stores: List[StoreResponse] = []
        self.notices: List[Notice] = []
        self.pending_move: Optional[int] = None

    @property
    def key(self) -> QueryKey:
        return joblogs_key(self.store_id)

    def refresh(self) -> List[JobLogResponse]:
        jobs = self.client.list_jobs(store_id=self.store_id)
        self.cache.set(self.key, jobs)
        if not self.stores:
            self.stores = self.client.list_stores()
        return jobs

    @property
    def jobs(self) -> List[JobLogResponse]:
        cached = self.cache.get(self.key)
        if cached is None:
            return []
        return filter_visible_jobs(self.principal, cached, self.store_id)

    def events(self, current_date: Optional[date] = None) -> List[CalendarEvent]:
        return project_events(self.jobs, self.stores, current_date=current_date)

    def unscheduled(self) -> List[JobLogResponse]:
        return unscheduled_jobs(self.jobs)

    # ----- Notices -----
    def _notify(self, title: str, detail: Optional[str] = None) -> Notice:
        notice = Notice(title=title, detail=detail)
        self.notices.append(notice)
        return notice

    def active_notices(self) -> List[Notice]:
        return [n for n in self.notices if not n.dismissed]

    def dismiss(self, notice_id: int) -> None:
        for notice in self.notices:
            if notice.id == notice_id:
                notice.dismissed = True

    # ----- Drag gesture -----
    def start_move(self, job_id: int) -> None:
        job = self._known_job(job_id)
        if not can_edit_job(self.principal, job):
            raise PermissionError("You cannot move jobs for this store")
        self.pending_move = job_id

    def cancel_move(self) -> None:
        """Abandon a drag before it lands. Nothing is sent to the server."""
        self.pending_move = None

    def drop_on_slot(self, start: datetime) -> RescheduleResult:
        if self.pending_move is None:
            raise RuntimeError("No job is being moved")
        job_id, self.pending_move = self.pending_move, None
        return self.reschedule(job_id, start)

    # ----- Rescheduling -----
    def _known_job(self, job_id: int) -> JobLogResponse:
        job = self.cache.find(job_id)
        if job is None:
            raise KeyError(job_id)
        return job

    def reschedule(self, job_id: int, new_start: Optional[datetime]) -> RescheduleResult:
        previous = self._known_job(job_id)
        if not can_edit_job(self.principal, previous):
            self._notify("Failed to reschedule job", "You do not have permission to edit this job")
            return RescheduleResult(ok=False, job=previous, error="forbidden")

        keys = self.cache.keys_holding(job_id)
        for key in keys:
            self.cache.set(key, apply_reschedule(self.cache.get(key), job_id, new_start))

        try:
            saved = self.persist(job_id, new_start)
        except Exception as exc:
            # Undo the optimistic patch on any failure
            for key in keys:
                current = self.cache.get(key)
                if current is not None and any(job.id == job_id for job in current):
                    self.cache.set(key, apply_slot(current, job_id, previous.log_date, previous.log_time))
            if isinstance(exc, JobLogApiError):
                status, detail = exc.status_code, exc.detail
            else:
                status, detail = None, str(exc) or type(exc).__name__
            logger.warning("reschedule_rolled_back", job_id=job_id, status=status, detail=detail, error_type=type(exc).__name__)
            self._notify("Failed to reschedule job", detail)
            return RescheduleResult(ok=False, job=previous, error=detail)

        self.cache.replace_job(saved)
        logger.info("reschedule_saved", job_id=job_id, log_date=saved.log_date, log_time=saved.log_time)
        return RescheduleResult(ok=True, job=saved)

    def unschedule(self, job_id: int) -> RescheduleResult:
        return self.reschedule(job_id, None)

    def move_to_tomorrow(self, job_id: int, today: Optional[date] = None) -> RescheduleResult:
        job = self._known_job(job_id)
        return self.reschedule(job_id, move_to_tomorrow_target(job, today))

    # ----- Other mutations -----
    def set_flag(self, job_id: int, flag: str) -> RescheduleResult:
        job = self._known_job(job_id)
        if not can_edit_job(self.principal, job):
            self._notify("Failed to update job", "You do not have permission to edit this job")
            return RescheduleResult(ok=False, job=job, error="forbidden")
        try:
            saved = self.client.update_job(job_id, flag=flag)
        except JobLogApiError as exc:
            self._notify("Failed to update job", exc.detail)
            return RescheduleResult(ok=False, job=job, error=exc.detail)
        self.cache.replace_job(saved)
        return RescheduleResult(ok=True, job=saved)

    def add_comment(self, job_id: int, body: str, mentioned_users: Optional[List[int]] = None):
        self._known_job(job_id)
        try:
            return self.client.add_comment(job_id, body, mentioned_users)
        except JobLogApiError as exc:
            self._notify("Failed to add comment", exc.detail)
            return None
