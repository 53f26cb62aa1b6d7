from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import Optional, List

from ..db import get_db
from ..models.models import User
from ..auth.security import get_principal
from ..schemas.joblogs import StaffResponse
from ..services.permissions import PrincipalContext


router = APIRouter(prefix="/staff", tags=["staff"])


@router.get("", response_model=List[StaffResponse])
def list_staff(
    q: Optional[str] = None,
    limit: int = 20,
    db: Session = Depends(get_db),
    _: PrincipalContext = Depends(get_principal),
):
    """
    Staff directory for @mention autocomplete.

    Args:
        q: Text typed after '@' (matches name or username)
        limit: Max results (default 20, max 100)
    """
    limit = min(max(1, limit), 100)
    query = db.query(User).filter(User.is_active.is_(True))
    if q:
        like = f"%{q.strip()}%"
        query = query.filter((User.name.ilike(like)) | (User.username.ilike(like)))
    users = query.order_by(User.name.asc(), User.username.asc()).limit(limit).all()
    return [StaffResponse(id=u.id, name=u.display_name, role=u.role) for u in users]
