from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from portaria.admin import public_condominium
from portaria.auth import device_id_for, device_storage, get_session, read_session, set_session_cookie
from portaria.identity import SECRET_MIN_LENGTH, normalize_identifier, normalize_secret
from portaria.models import Session
from portaria.schemas import LoginIn
from portaria.session import SessionState, can_administer

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _session_out(session: Session) -> dict:
    return {
        "user": session.identity.public_dict(),
        "condominium": public_condominium(session.condominium),
        "residents": len(session.residents),
        "can_administer": can_administer(session),
    }


@router.post("/login")
def login(payload: LoginIn, request: Request, response: Response):
    normalize_identifier(payload.identifier)
    normalize_secret(payload.secret, min_length=SECRET_MIN_LENGTH)
    device_id = device_id_for(request)
    state = SessionState(request.app.state.store, device_storage(request, device_id))
    session = state.login(payload.identifier, payload.secret)
    set_session_cookie(response, request.app.state.settings, device_id)
    return {"ok": True, **_session_out(session)}


@router.post("/logout")
def logout(request: Request):
    data = read_session(request)
    if data:
        SessionState(request.app.state.store, device_storage(request, str(data["d"]))).logout()
    return {"ok": True}


@router.get("/me")
def me(session: Session = Depends(get_session)):
    return {"ok": True, **_session_out(session)}
