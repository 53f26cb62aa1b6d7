"""
Permission checking service for job logs.
Every check takes an explicit PrincipalContext instead of reading the session.
"""
from dataclasses import dataclass
from typing import Iterable, List, Optional

from ..models.models import JobLog


CROSS_STORE_ROLES = ("admin", "regional", "maintenance")
STORE_FILTER_ROLES = ("admin", "regional")
CREATE_ROLES = ("admin", "regional", "store", "maintenance")
DELETE_ROLES = ("admin", "regional")
MONTH_VIEW_ROLES = ("admin", "regional")


@dataclass(frozen=True)
class PrincipalContext:
    role: str
    store_id: Optional[int] = None
    user_id: Optional[int] = None
    name: Optional[str] = None

    @classmethod
    def from_user(cls, user) -> "PrincipalContext":
        return cls(
            role=(user.role or "staff").lower(),
            store_id=user.store_id,
            user_id=user.id,
            name=user.display_name,
        )


def is_cross_store(principal: PrincipalContext) -> bool:
    """Check if principal sees every store (admin, regional, maintenance)."""
    return principal.role in CROSS_STORE_ROLES


def can_filter_by_store(principal: PrincipalContext) -> bool:
    """Only admin and regional managers get the store picker."""
    return principal.role in STORE_FILTER_ROLES


def can_see_unscheduled_panel(principal: PrincipalContext) -> bool:
    """The unscheduled side panel and drag affordances are maintenance-only."""
    return principal.role == "maintenance"


def can_use_month_view(principal: PrincipalContext) -> bool:
    return principal.role in MONTH_VIEW_ROLES


def visible_store_scope(principal: PrincipalContext, requested_store_id: Optional[int] = None) -> Optional[int]:
    """
    Resolve which store a principal's query is limited to.

    Returns None when every store is visible. Cross-store roles may narrow
    to one store. That includes maintenance: it gets no store picker, but
    narrowing never widens what it may see. Store-bound principals are
    pinned to their own store whatever they request. A principal with no
    cross-store role and no bound store gets -1, which matches no store.
    """
    if is_cross_store(principal):
        return requested_store_id
    if principal.store_id is None:
        return -1
    return principal.store_id


def can_view_job(principal: PrincipalContext, job: JobLog) -> bool:
    scope = visible_store_scope(principal)
    return scope is None or job.store_id == scope


def can_edit_job(principal: PrincipalContext, job: JobLog) -> bool:
    """
    Check if principal can change a job (reschedule, flag, status).
    - admin, regional and maintenance can edit any job
    - store managers only within their bound store
    - staff are read-only
    """
    if is_cross_store(principal):
        return True
    if principal.role != "store":
        return False
    return principal.store_id is not None and job.store_id == principal.store_id


def can_create_job(principal: PrincipalContext, store_id: int) -> bool:
    if principal.role not in CREATE_ROLES:
        return False
    if principal.role == "store":
        return principal.store_id == store_id
    return True


def can_delete_job(principal: PrincipalContext) -> bool:
    return principal.role in DELETE_ROLES


def filter_visible_jobs(
    principal: PrincipalContext,
    jobs: Iterable[JobLog],
    requested_store_id: Optional[int] = None,
) -> List[JobLog]:
    """Filter an in-memory job collection down to what the principal may see."""
    scope = visible_store_scope(principal, requested_store_id)
    if scope is None:
        return list(jobs)
    return [job for job in jobs if job.store_id == scope]


def scope_job_query(query, principal: PrincipalContext, requested_store_id: Optional[int] = None):
    """Apply the same visibility rule to a SQLAlchemy JobLog query."""
    scope = visible_store_scope(principal, requested_store_id)
    if scope is None:
        return query
    return query.filter(JobLog.store_id == scope)
