from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload

from ..config import settings
from ..models.models import JobLog, JobLogComment, Store, User
from ..schemas.joblogs import JobLogCreate, JobLogResponse
from .audit import compute_diff, record_audit
from .mentions import notify_mentions
from .permissions import PrincipalContext, can_create_job, can_edit_job, scope_job_query


logger = structlog.get_logger(__name__)

SCHEDULE_FIELDS = ("log_date", "log_time")
AUDITED_FIELDS = (
    "store_id", "title", "description", "category", "flag", "logged_by",
    "log_date", "log_time", "attachments", "status",
)


def serialize_job(job: JobLog) -> JobLogResponse:
    payload = JobLogResponse.model_validate(job)
    payload.store_name = job.store.name if job.store else None
    return payload


def _snapshot(job: JobLog) -> Dict[str, Any]:
    return {name: getattr(job, name) for name in AUDITED_FIELDS}


def _start_of_day(dt: datetime) -> datetime:
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


def list_jobs(
    db: Session,
    principal: PrincipalContext,
    store_id: Optional[int] = None,
    status: Optional[str] = None,
    flag: Optional[str] = None,
    recent_completed_only: bool = False,
) -> List[JobLog]:
    """Visible, non-deleted jobs, newest first."""
    query = db.query(JobLog).options(joinedload(JobLog.store)).filter(JobLog.deleted_at.is_(None))
    query = scope_job_query(query, principal, store_id)
    if status:
        query = query.filter(JobLog.status == status)
    if flag:
        query = query.filter(JobLog.flag == flag)
    if recent_completed_only:
        cutoff = _start_of_day(datetime.utcnow() - timedelta(days=settings.recent_completed_days))
        query = query.filter(
            or_(
                JobLog.status != "completed",
                JobLog.completed_at >= cutoff,
            )
        )
    return query.order_by(JobLog.created_at.desc(), JobLog.id.desc()).all()


def find_job(db: Session, job_id: int) -> Optional[JobLog]:
    return (
        db.query(JobLog)
        .options(joinedload(JobLog.store))
        .filter(JobLog.id == job_id, JobLog.deleted_at.is_(None))
        .first()
    )


def create_job(db: Session, principal: PrincipalContext, data: JobLogCreate) -> JobLog:
    if not can_create_job(principal, data.store_id):
        raise PermissionError("You cannot create jobs for this store")
    if db.query(Store).filter(Store.id == data.store_id).first() is None:
        raise ValueError("Store not found")
    now = datetime.utcnow()
    job = JobLog(
        store_id=data.store_id,
        title=(data.title or "").strip() or None,
        description=data.description.strip(),
        category=data.category,
        flag=data.flag,
        logged_by=(data.logged_by or "").strip() or principal.name,
        log_date=data.log_date,
        log_time=data.log_time,
        attachments=list(data.attachments),
        status="pending",
        created_at=now,
        updated_at=now,
    )
    db.add(job)
    db.flush()
    record_audit(db, "joblog", job.id, "CREATE", principal, changes_json={"after": _snapshot(job)})
    db.commit()
    db.refresh(job)
    logger.info("joblog_created", job_id=job.id, store_id=job.store_id, flag=job.flag)
    return job


def _audit_action(changed: Dict[str, Any], job: JobLog) -> str:
    if changed and set(changed) <= set(SCHEDULE_FIELDS):
        if not job.log_date and not job.log_time:
            return "UNSCHEDULE"
        return "RESCHEDULE"
    return "UPDATE"


def update_job(db: Session, job: JobLog, changes: Dict[str, Any], principal: PrincipalContext) -> JobLog:
    """
    Apply a partial update. Only keys present in ``changes`` are touched.
    Moving to ``completed`` stamps completed_at; moving away clears it.
    """
    if not can_edit_job(principal, job):
        raise PermissionError("You cannot edit jobs for this store")
    before = _snapshot(job)
    for name, value in changes.items():
        if name not in AUDITED_FIELDS:
            continue
        setattr(job, name, value)
    if "status" in changes:
        if job.status == "completed" and before["status"] != "completed":
            job.completed_at = datetime.utcnow()
        elif job.status != "completed":
            job.completed_at = None
    diff = compute_diff(before, _snapshot(job))
    if not diff:
        return job
    job.updated_at = datetime.utcnow()
    action = _audit_action(diff, job)
    record_audit(db, "joblog", job.id, action, principal, changes_json=diff)
    db.commit()
    db.refresh(job)
    logger.info("joblog_updated", job_id=job.id, action=action, fields=sorted(diff))
    return job


def reschedule_job(
    db: Session,
    job: JobLog,
    log_date: Optional[str],
    log_time: Optional[str],
    principal: PrincipalContext,
) -> JobLog:
    """
    Set a job's date and time, nothing else. Clearing both unschedules it.
    Other jobs in the same slot are not checked; double-booking is allowed.
    """
    return update_job(db, job, {"log_date": log_date, "log_time": log_time}, principal)


def soft_delete_job(db: Session, job: JobLog, principal: PrincipalContext) -> None:
    job.deleted_at = datetime.utcnow()
    record_audit(db, "joblog", job.id, "DELETE", principal)
    db.commit()
    logger.info("joblog_deleted", job_id=job.id)


def list_comments(db: Session, job: JobLog) -> List[JobLogComment]:
    return (
        db.query(JobLogComment)
        .filter(JobLogComment.joblog_id == job.id)
        .order_by(JobLogComment.created_at.asc(), JobLogComment.id.asc())
        .all()
    )


def add_comment(
    db: Session,
    job: JobLog,
    principal: PrincipalContext,
    body: str,
    mentioned_users: List[int],
) -> JobLogComment:
    """Store a comment; mentioned ids that are not real users are dropped."""
    wanted = list(dict.fromkeys(mentioned_users or []))
    known = set()
    if wanted:
        known = {row.id for row in db.query(User.id).filter(User.id.in_(wanted)).all()}
    mentioned = [user_id for user_id in wanted if user_id in known]
    comment = JobLogComment(
        joblog_id=job.id,
        user_id=principal.user_id,
        author_name=principal.name,
        comment=body,
        mentioned_users=mentioned,
        created_at=datetime.utcnow(),
    )
    db.add(comment)
    db.flush()
    notify_mentions(db, comment, job, mentioned)
    record_audit(db, "comment", comment.id, "COMMENT", principal, context={"joblog_id": job.id})
    db.commit()
    db.refresh(comment)
    return comment
