from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..db import get_db
from ..models.models import User
from ..schemas.auth import LoginRequest, MeResponse, RefreshRequest, TokenResponse
from ..services.permissions import PrincipalContext, can_filter_by_store, can_see_unscheduled_panel
from .security import (
    create_access_token,
    create_refresh_token,
    decode_token,
    get_current_user,
    verify_password,
)


router = APIRouter(prefix="/auth", tags=["auth"])
logger = structlog.get_logger(__name__)


def _issue_tokens(user: User) -> TokenResponse:
    access = create_access_token(str(user.id), role=user.role, store_id=user.store_id)
    refresh = create_refresh_token(str(user.id))
    return TokenResponse(access_token=access, refresh_token=refresh)


@router.post("/login", response_model=TokenResponse)
def login(req: LoginRequest, db: Session = Depends(get_db)):
    user = db.query(User).filter((User.username == req.identifier) | (User.email == req.identifier)).first()
    if not user or not user.is_active or not verify_password(req.password, user.password_hash):
        logger.info("login_failed", identifier=req.identifier)
        raise HTTPException(status_code=401, detail="Invalid credentials")
    user.last_login_at = datetime.now(timezone.utc)
    db.commit()
    logger.info("login_succeeded", user_id=user.id, role=user.role)
    return _issue_tokens(user)


@router.post("/refresh", response_model=TokenResponse)
def refresh(req: RefreshRequest, db: Session = Depends(get_db)):
    payload = decode_token(req.refresh_token)
    if payload.get("type") != "refresh":
        raise HTTPException(status_code=400, detail="Invalid refresh token")
    try:
        user_id = int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise HTTPException(status_code=400, detail="Invalid refresh token")
    user = db.query(User).filter(User.id == user_id).first()
    if user is None or not user.is_active:
        raise HTTPException(status_code=401, detail="User not active")
    return _issue_tokens(user)


@router.get("/me", response_model=MeResponse)
def me(user: User = Depends(get_current_user)):
    principal = PrincipalContext.from_user(user)
    return MeResponse(
        id=user.id,
        username=user.username,
        email=user.email,
        name=user.name,
        role=principal.role,
        store_id=user.store_id,
        can_filter_by_store=can_filter_by_store(principal),
        show_unscheduled_panel=can_see_unscheduled_panel(principal),
    )
