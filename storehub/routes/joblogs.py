from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session

from ..auth.security import get_principal, require_roles
from ..db import get_db
from ..models.models import JobLog
from ..schemas.joblogs import (
    CommentCreate,
    CommentResponse,
    JobLogCreate,
    JobLogResponse,
    JobLogUpdate,
)
from ..services import joblog_service
from ..services.audit import get_audit_logs
from ..services.permissions import PrincipalContext, can_delete_job, can_view_job
from ..services.schedule import format_slot, move_to_tomorrow_target, unscheduled_jobs


router = APIRouter(prefix="/jobs", tags=["jobs"])


def _get_job(job_id: int, db: Session, principal: PrincipalContext) -> JobLog:
    job = joblog_service.find_job(db, job_id)
    # Jobs outside the principal's stores are reported as missing
    if job is None or not can_view_job(principal, job):
        raise HTTPException(status_code=404, detail="Job log not found")
    return job


@router.get("", response_model=List[JobLogResponse])
def list_jobs(
    store_id: Optional[int] = Query(default=None, alias="storeId"),
    status_filter: Optional[str] = Query(default=None, alias="status"),
    flag: Optional[str] = None,
    recent_completed_only: bool = Query(default=False, alias="recentCompletedOnly"),
    db: Session = Depends(get_db),
    principal: PrincipalContext = Depends(get_principal),
):
    jobs = joblog_service.list_jobs(
        db,
        principal,
        store_id=store_id,
        status=status_filter,
        flag=flag,
        recent_completed_only=recent_completed_only,
    )
    return [joblog_service.serialize_job(job) for job in jobs]


@router.get("/unscheduled", response_model=List[JobLogResponse])
def list_unscheduled_jobs(
    store_id: Optional[int] = Query(default=None, alias="storeId"),
    db: Session = Depends(get_db),
    principal: PrincipalContext = Depends(get_principal),
):
    jobs = joblog_service.list_jobs(db, principal, store_id=store_id)
    return [joblog_service.serialize_job(job) for job in unscheduled_jobs(jobs)]


@router.post("", response_model=JobLogResponse, status_code=status.HTTP_201_CREATED)
def create_job(
    payload: JobLogCreate,
    db: Session = Depends(get_db),
    principal: PrincipalContext = Depends(get_principal),
):
    try:
        job = joblog_service.create_job(db, principal, payload)
    except PermissionError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return joblog_service.serialize_job(job)


@router.get("/{job_id}", response_model=JobLogResponse)
def get_job(job_id: int, db: Session = Depends(get_db), principal: PrincipalContext = Depends(get_principal)):
    return joblog_service.serialize_job(_get_job(job_id, db, principal))


@router.patch("/{job_id}", response_model=JobLogResponse)
def update_job(
    job_id: int,
    payload: JobLogUpdate,
    db: Session = Depends(get_db),
    principal: PrincipalContext = Depends(get_principal),
):
    """Partial update. A body of {"logDate": null, "logTime": null} unschedules the job."""
    job = _get_job(job_id, db, principal)
    changes = payload.model_dump(exclude_unset=True)
    try:
        job = joblog_service.update_job(db, job, changes, principal)
    except PermissionError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    return joblog_service.serialize_job(job)


@router.post("/{job_id}/move-tomorrow", response_model=JobLogResponse)
def move_job_to_tomorrow(job_id: int, db: Session = Depends(get_db), principal: PrincipalContext = Depends(get_principal)):
    job = _get_job(job_id, db, principal)
    log_date, log_time = format_slot(move_to_tomorrow_target(job))
    try:
        job = joblog_service.reschedule_job(db, job, log_date, log_time, principal)
    except PermissionError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    return joblog_service.serialize_job(job)


@router.delete("/{job_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_job(job_id: int, db: Session = Depends(get_db), principal: PrincipalContext = Depends(get_principal)):
    job = _get_job(job_id, db, principal)
    if not can_delete_job(principal):
        raise HTTPException(status_code=403, detail="Only admin and regional managers can delete jobs")
    joblog_service.soft_delete_job(db, job, principal)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{job_id}/history")
def job_history(
    job_id: int,
    db: Session = Depends(get_db),
    principal: PrincipalContext = Depends(require_roles("admin", "regional")),
):
    job = _get_job(job_id, db, principal)
    rows = get_audit_logs(db, entity_type="joblog", entity_id=job.id)
    return [
        {
            "id": row.id,
            "action": row.action,
            "actorId": row.actor_id,
            "actorRole": row.actor_role,
            "changes": row.changes_json,
            "timestamp": row.timestamp_utc.isoformat() if row.timestamp_utc else None,
        }
        for row in rows
    ]


# ----- Comments -----
@router.get("/{job_id}/comments", response_model=List[CommentResponse])
def list_comments(job_id: int, db: Session = Depends(get_db), principal: PrincipalContext = Depends(get_principal)):
    job = _get_job(job_id, db, principal)
    return [CommentResponse.model_validate(c) for c in joblog_service.list_comments(db, job)]


@router.post("/{job_id}/comments", response_model=CommentResponse, status_code=status.HTTP_201_CREATED)
def add_comment(
    job_id: int,
    payload: CommentCreate,
    db: Session = Depends(get_db),
    principal: PrincipalContext = Depends(get_principal),
):
    job = _get_job(job_id, db, principal)
    comment = joblog_service.add_comment(db, job, principal, payload.comment, payload.mentioned_users)
    return CommentResponse.model_validate(comment)
