from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from portaria.auth import get_session
from portaria.models import Session
from portaria.session import filter_residents, search_residents

router = APIRouter(prefix="/api/residents", tags=["residents"])


@router.get("")
def list_residents(
    unit: str = Query(""),
    block: str = Query(""),
    session: Session = Depends(get_session),
):
    unit = unit.strip()
    items = filter_residents(session, unit, block.strip() or None) if unit else list(session.residents)
    return {"ok": True, "items": [r.to_dict() for r in items]}


@router.get("/search")
def search(q: str = Query("", max_length=120), session: Session = Depends(get_session)):
    return {"ok": True, "items": [r.to_dict() for r in search_residents(session, q)]}
