from datetime import datetime
from typing import Annotated, List, Literal, Optional

from pydantic import AfterValidator, AliasChoices, BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel

from ..services.schedule import CalendarView, DisplayMode, DATE_FORMAT, TIME_FORMAT, parse_log_date, parse_log_time


Flag = Literal["normal", "urgent", "long_standing"]
Category = Literal["electrical", "plumbing", "building", "other"]
Status = Literal["pending", "in_progress", "completed"]


class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


def _check_date(value: Optional[str]) -> Optional[str]:
    if value is None or value == "":
        return None
    # Normalise 2025-4-1 to 2025-04-01
    return parse_log_date(value).strftime(DATE_FORMAT)


def _check_time(value: Optional[str]) -> Optional[str]:
    if value is None or value == "":
        return None
    # Normalise HH:MM:SS to HH:MM
    return parse_log_time(value).strftime(TIME_FORMAT)


LogDate = Annotated[Optional[str], AfterValidator(_check_date)]
LogTime = Annotated[Optional[str], AfterValidator(_check_time)]


class StoreResponse(CamelModel):
    id: int
    name: str
    address: Optional[str] = None
    store_code: Optional[str] = None


class JobLogCreate(CamelModel):
    store_id: int
    title: Optional[str] = Field(default=None, max_length=255)
    description: str = Field(min_length=5)
    category: Category = "other"
    flag: Flag = "normal"
    logged_by: Optional[str] = None
    log_date: LogDate = None
    log_time: LogTime = None
    attachments: List[str] = Field(default_factory=list)


class JobLogUpdate(CamelModel):
    """Partial update; only fields present in the body are applied."""

    title: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = Field(default=None, min_length=5)
    category: Optional[Category] = None
    flag: Optional[Flag] = None
    status: Optional[Status] = None
    log_date: LogDate = None
    log_time: LogTime = None
    attachments: Optional[List[str]] = None

    @field_validator("description", "category", "flag", "status", "attachments")
    @classmethod
    def _not_null(cls, value):
        # Omit a field to leave it unchanged; only title, logDate and logTime may be cleared
        if value is None:
            raise ValueError("Field cannot be null")
        return value


class JobLogResponse(CamelModel):
    id: int
    store_id: int
    store_name: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = "other"
    flag: Optional[str] = "normal"
    logged_by: Optional[str] = None
    log_date: Optional[str] = None
    log_time: Optional[str] = None
    attachments: List[str] = Field(default_factory=list)
    status: Optional[str] = "pending"
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("attachments", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return value or []


class CommentCreate(CamelModel):
    comment: str = Field(min_length=1)
    mentioned_users: List[int] = Field(default_factory=list)

    @field_validator("comment")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Comment cannot be empty")
        return value


class CommentResponse(CamelModel):
    id: int
    job_id: int = Field(validation_alias=AliasChoices("joblog_id", "jobId", "job_id"), serialization_alias="jobId")
    user_id: Optional[int] = None
    author_name: Optional[str] = None
    comment: str
    mentioned_users: List[int] = Field(default_factory=list)
    created_at: Optional[datetime] = None

    @field_validator("mentioned_users", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return value or []


class CalendarEventResponse(CamelModel):
    id: int
    title: str
    start: datetime
    end: datetime
    store_id: int
    store_name: str
    flag: str
    description: str
    logged_by: str


class ViewRequest(CamelModel):
    view: CalendarView


class ViewStateResponse(CamelModel):
    view: CalendarView
    redirected: bool = False
    message: Optional[str] = None
    display_modes: List[DisplayMode] = Field(default_factory=lambda: [DisplayMode.LIST, DisplayMode.CALENDAR])
    can_filter_by_store: bool = False
    show_unscheduled_panel: bool = False


class CalendarConfigResponse(CamelModel):
    event_duration_minutes: int
    default_job_time: str
    now_refresh_seconds: int
    week_starts_on: int
    timezone: str


class StaffResponse(CamelModel):
    id: int
    name: str
    role: str
