from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth.security import get_principal
from ..config import settings
from ..db import get_db
from ..models.models import Store
from ..schemas.joblogs import (
    CalendarConfigResponse,
    CalendarEventResponse,
    ViewRequest,
    ViewStateResponse,
)
from ..services import joblog_service
from ..services.permissions import PrincipalContext, can_filter_by_store, can_see_unscheduled_panel
from ..services.schedule import ScheduleViewState, ViewTransition, project_events, select_view


router = APIRouter(prefix="/calendar", tags=["calendar"])


def _view_state(principal: PrincipalContext, transition: ViewTransition) -> ViewStateResponse:
    return ViewStateResponse(
        view=transition.view,
        redirected=transition.redirected,
        message=transition.message,
        can_filter_by_store=can_filter_by_store(principal),
        show_unscheduled_panel=can_see_unscheduled_panel(principal),
    )


@router.get("/events", response_model=List[CalendarEventResponse])
def calendar_events(
    current_date: Optional[date] = Query(default=None, alias="date"),
    store_id: Optional[int] = Query(default=None, alias="storeId"),
    db: Session = Depends(get_db),
    principal: PrincipalContext = Depends(get_principal),
):
    # Visibility is applied by list_jobs before anything is projected
    jobs = joblog_service.list_jobs(db, principal, store_id=store_id)
    stores = db.query(Store).all()
    events = project_events(jobs, stores, current_date=current_date)
    return [CalendarEventResponse.model_validate(event) for event in events]


@router.get("/view", response_model=ViewStateResponse)
def calendar_initial_view(principal: PrincipalContext = Depends(get_principal)):
    state = ScheduleViewState.for_principal(principal)
    return _view_state(principal, ViewTransition(view=state.view))


@router.post("/view", response_model=ViewStateResponse)
def calendar_select_view(req: ViewRequest, principal: PrincipalContext = Depends(get_principal)):
    return _view_state(principal, select_view(principal, req.view))


@router.get("/config", response_model=CalendarConfigResponse)
def calendar_config(principal: PrincipalContext = Depends(get_principal)):
    return CalendarConfigResponse(
        event_duration_minutes=settings.event_duration_min,
        default_job_time=settings.default_job_time,
        now_refresh_seconds=settings.now_refresh_seconds,
        week_starts_on=settings.week_starts_on,
        timezone=settings.tz_default,
    )
