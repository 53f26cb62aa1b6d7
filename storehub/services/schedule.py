"""
Job-log calendar logic.
Projects jobs onto calendar events, computes reschedule targets and
patches job collections, and guards the calendar view mode.
"""
import enum
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import pytz
import structlog

from ..config import settings
from .permissions import PrincipalContext, can_use_month_view


logger = structlog.get_logger(__name__)

UNKNOWN_STORE = "Unknown Store"
NO_DESCRIPTION = "No description"
UNKNOWN_AUTHOR = "Unknown"
DATE_FORMAT = "%Y-%m-%d"
TIME_FORMAT = "%H:%M"


def parse_log_date(value: str) -> date:
    """Parse a YYYY-MM-DD job date. Raises ValueError on anything else."""
    if not isinstance(value, str):
        raise ValueError(f"Invalid log date: {value!r}")
    return datetime.strptime(value.strip(), DATE_FORMAT).date()


def parse_log_time(value: str) -> time:
    """Parse an HH:MM job time, tolerating a trailing :SS."""
    if not isinstance(value, str):
        raise ValueError(f"Invalid log time: {value!r}")
    raw = value.strip()
    for fmt in (TIME_FORMAT, "%H:%M:%S"):
        try:
            return datetime.strptime(raw, fmt).time()
        except ValueError:
            continue
    raise ValueError(f"Invalid log time: {value!r}")


def format_slot(start: Optional[datetime]) -> Tuple[Optional[str], Optional[str]]:
    if start is None:
        return None, None
    return start.strftime(DATE_FORMAT), start.strftime(TIME_FORMAT)


def is_scheduled(job) -> bool:
    return bool(job.log_date) and bool(job.log_time)


def unscheduled_jobs(jobs: Iterable[Any]) -> List[Any]:
    """Jobs that cannot be placed on the grid: missing a date, a time, or both."""
    return [job for job in jobs if not is_scheduled(job)]


def parse_job_start(job) -> datetime:
    return datetime.combine(parse_log_date(job.log_date), parse_log_time(job.log_time))


def event_duration() -> timedelta:
    return timedelta(minutes=settings.event_duration_min)


@dataclass
class CalendarEvent:
    id: int
    title: str
    start: datetime
    end: datetime
    store_id: int
    store_name: str
    flag: str
    description: str
    logged_by: str
    job: Any = field(default=None, repr=False, compare=False)


def _store_names(stores: Optional[Iterable[Any]]) -> Dict[int, str]:
    names: Dict[int, str] = {}
    for store in stores or []:
        if store is None:
            continue
        if isinstance(store, dict):
            store_id, name = store.get("id"), store.get("name")
        else:
            store_id, name = getattr(store, "id", None), getattr(store, "name", None)
        if store_id is not None and name:
            names[store_id] = name
    return names


def project_events(
    jobs: Iterable[Any],
    stores: Optional[Iterable[Any]] = None,
    current_date: Optional[date] = None,
    duration: Optional[timedelta] = None,
) -> List[CalendarEvent]:
    """
    Turn jobs into calendar events.

    Jobs without both a date and a time are left out. A job whose date or
    time does not parse is logged and skipped; the rest still project.
    ``current_date`` is the calendar's focus date and never filters.
    """
    names = _store_names(stores)
    span = duration or event_duration()
    events: List[CalendarEvent] = []
    for job in jobs:
        if not is_scheduled(job):
            continue
        try:
            start = parse_job_start(job)
        except ValueError as exc:
            logger.warning(
                "calendar_projection_skipped",
                job_id=getattr(job, "id", None),
                log_date=job.log_date,
                log_time=job.log_time,
                error=str(exc),
            )
            continue
        description = job.description or NO_DESCRIPTION
        events.append(
            CalendarEvent(
                id=job.id,
                title=description,
                start=start,
                end=start + span,
                store_id=job.store_id,
                store_name=names.get(job.store_id, UNKNOWN_STORE),
                flag=job.flag or "normal",
                description=description,
                logged_by=job.logged_by or UNKNOWN_AUTHOR,
                job=job,
            )
        )
    return events


def today_local(tz_name: Optional[str] = None) -> date:
    tz = pytz.timezone(tz_name or settings.tz_default)
    return datetime.now(tz).date()


def default_job_time() -> time:
    return parse_log_time(settings.default_job_time)


def move_to_tomorrow_target(job, today: Optional[date] = None) -> datetime:
    """
    Tomorrow at the job's existing time, or at the default time when the job
    has none (or an unreadable one).
    """
    base = today or today_local()
    slot_time = default_job_time()
    if job.log_time:
        try:
            slot_time = parse_log_time(job.log_time)
        except ValueError:
            logger.info("move_to_tomorrow_default_time", job_id=job.id, log_time=job.log_time)
    return datetime.combine(base + timedelta(days=1), slot_time)


def apply_slot(jobs: Sequence[Any], job_id: int, log_date: Optional[str], log_time: Optional[str]) -> List[Any]:
    """
    Return a new job list where only ``job_id`` carries the given date and time.
    Jobs are pydantic models; nothing in ``jobs`` is mutated.
    """
    patched: List[Any] = []
    found = False
    for job in jobs:
        if job.id == job_id:
            job = job.model_copy(update={"log_date": log_date, "log_time": log_time})
            found = True
        patched.append(job)
    if not found:
        raise KeyError(job_id)
    return patched


def apply_reschedule(jobs: Sequence[Any], job_id: int, new_start: Optional[datetime]) -> List[Any]:
    """Pure reschedule step; ``new_start=None`` unschedules the job."""
    log_date, log_time = format_slot(new_start)
    return apply_slot(jobs, job_id, log_date, log_time)


# ----- View mode -----

class CalendarView(str, enum.Enum):
    MONTH = "month"
    WEEK = "week"
    DAY = "day"


class DisplayMode(str, enum.Enum):
    LIST = "list"
    CALENDAR = "calendar"


MONTH_VIEW_DENIED = "Month view is only available to admin and regional managers."


@dataclass(frozen=True)
class ViewTransition:
    view: CalendarView
    redirected: bool = False
    message: Optional[str] = None


def initial_view(role: str) -> CalendarView:
    return CalendarView.DAY if role == "maintenance" else CalendarView.MONTH


def select_view(principal: PrincipalContext, requested: CalendarView) -> ViewTransition:
    requested = CalendarView(requested)
    if requested == CalendarView.MONTH and not can_use_month_view(principal):
        return ViewTransition(view=CalendarView.WEEK, redirected=True, message=MONTH_VIEW_DENIED)
    return ViewTransition(view=requested)


@dataclass
class ScheduleViewState:
    """Calendar granularity plus the independent list/calendar page toggle."""

    principal: PrincipalContext
    view: CalendarView = CalendarView.WEEK
    display_mode: DisplayMode = DisplayMode.CALENDAR

    @classmethod
    def for_principal(cls, principal: PrincipalContext) -> "ScheduleViewState":
        # The guard runs on the initial view too, silently
        start = select_view(principal, initial_view(principal.role)).view
        return cls(principal=principal, view=start)

    def select_view(self, requested: CalendarView) -> ViewTransition:
        transition = select_view(self.principal, requested)
        self.view = transition.view
        return transition

    def set_display_mode(self, mode: DisplayMode) -> None:
        self.display_mode = DisplayMode(mode)
