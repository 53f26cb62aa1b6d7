"""
Audit logging service.
Append-only audit trail of job-log changes with integrity hashing.
"""
import hashlib
import json
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..models.models import AuditLog
from ..config import settings
from .permissions import PrincipalContext


def integrity_hash_for(canonical_data: Dict[str, Any], secret: str) -> str:
    canonical = {k: v for k, v in canonical_data.items() if v is not None}
    canonical_json = json.dumps(canonical, sort_keys=True, default=str)
    return hashlib.sha256(f"{canonical_json}:{secret}".encode()).hexdigest()


def record_audit(
    db: Session,
    entity_type: str,
    entity_id: Any,
    action: str,
    principal: Optional[PrincipalContext] = None,
    source: str = "api",
    changes_json: Optional[Dict] = None,
    context: Optional[Dict] = None,
) -> AuditLog:
    """
    Stage an audit entry on the session.

    The caller commits, so the entry lands in the same transaction as the
    change it describes.

    Args:
        entity_type: joblog|comment
        action: CREATE|UPDATE|RESCHEDULE|UNSCHEDULE|DELETE|COMMENT
        changes_json: before/after diff from compute_diff
    """
    timestamp_utc = datetime.utcnow()
    actor_id = principal.user_id if principal else None
    actor_role = principal.role if principal else None
    integrity_hash = None
    if settings.jwt_secret:
        integrity_hash = integrity_hash_for(
            {
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "action": action,
                "actor_id": actor_id,
                "actor_role": actor_role,
                "source": source,
                "timestamp_utc": timestamp_utc.isoformat(),
                "changes": changes_json,
                "context": context,
            },
            settings.jwt_secret,
        )

    entry = AuditLog(
        entity_type=entity_type,
        entity_id=str(entity_id),
        action=action,
        actor_id=actor_id,
        actor_role=actor_role,
        source=source,
        changes_json=changes_json,
        timestamp_utc=timestamp_utc,
        context=context,
        integrity_hash=integrity_hash,
    )
    db.add(entry)
    return entry


def get_audit_logs(
    db: Session,
    entity_type: Optional[str] = None,
    entity_id: Optional[Any] = None,
    limit: int = 100,
    offset: int = 0,
) -> List[AuditLog]:
    query = db.query(AuditLog)
    if entity_type:
        query = query.filter(AuditLog.entity_type == entity_type)
    if entity_id is not None:
        query = query.filter(AuditLog.entity_id == str(entity_id))
    return query.order_by(AuditLog.timestamp_utc.desc(), AuditLog.id.desc()).limit(limit).offset(offset).all()


def compute_diff(before: Dict, after: Dict) -> Dict:
    """Before/after values for the keys whose value changed."""
    diff = {}
    for key in set(before) | set(after):
        if before.get(key) != after.get(key):
            diff[key] = {"before": before.get(key), "after": after.get(key)}
    return diff
