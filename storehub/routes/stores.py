from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..auth.security import get_principal
from ..db import get_db
from ..models.models import Store
from ..schemas.joblogs import StoreResponse
from ..services.permissions import PrincipalContext


router = APIRouter(prefix="/stores", tags=["stores"])


@router.get("", response_model=List[StoreResponse])
def list_stores(db: Session = Depends(get_db), _: PrincipalContext = Depends(get_principal)):
    # Used for display-name lookup only; the store count is small, so no paging
    return db.query(Store).order_by(Store.name.asc()).all()


@router.get("/{store_id}", response_model=StoreResponse)
def get_store(store_id: int, db: Session = Depends(get_db), _: PrincipalContext = Depends(get_principal)):
    store = db.query(Store).filter(Store.id == store_id).first()
    if not store:
        raise HTTPException(status_code=404, detail="Store not found")
    return store
