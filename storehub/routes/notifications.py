from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..db import get_db
from ..models.models import Notification
from ..auth.security import get_principal
from ..services.permissions import PrincipalContext

router = APIRouter(prefix="/notifications", tags=["notifications"])


def _serialize(notif: Notification) -> dict:
    return {
        "id": notif.id,
        "kind": notif.kind,
        "payload": notif.payload_json or {},
        "createdAt": notif.created_at.isoformat() if notif.created_at else None,
        "readAt": notif.read_at.isoformat() if notif.read_at else None,
    }


@router.get("")
def list_notifications(
    unread_only: bool = False,
    db: Session = Depends(get_db),
    principal: PrincipalContext = Depends(get_principal),
):
    """Mention notifications for the current user, newest first."""
    query = db.query(Notification).filter(Notification.user_id == principal.user_id)
    if unread_only:
        query = query.filter(Notification.read_at.is_(None))
    rows = query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(50).all()
    return [_serialize(n) for n in rows]


@router.get("/unread-count")
def unread_count(db: Session = Depends(get_db), principal: PrincipalContext = Depends(get_principal)):
    count = db.query(Notification).filter(
        Notification.user_id == principal.user_id,
        Notification.read_at.is_(None),
    ).count()
    return {"count": count}


@router.post("/{notification_id}/read")
def mark_read(notification_id: int, db: Session = Depends(get_db), principal: PrincipalContext = Depends(get_principal)):
    notif = db.query(Notification).filter(
        Notification.id == notification_id,
        Notification.user_id == principal.user_id,
    ).first()
    if not notif:
        raise HTTPException(status_code=404, detail="Notification not found")
    if notif.read_at is None:
        notif.read_at = datetime.utcnow()
        db.commit()
    return _serialize(notif)
