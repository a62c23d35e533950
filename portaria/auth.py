"""Signed device cookie and the request dependencies built on it.

The cookie only names the device; the login state itself lives in that
device's local storage, exactly as a kiosk browser keeps it.
"""
from __future__ import annotations

import uuid

from fastapi import BackgroundTasks, Depends, Request, Response
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from portaria.config import Settings
from portaria.deliveries import DeliveryMirror, DeliveryService
from portaria.errors import Forbidden, NotAuthenticated
from portaria.local_storage import LocalStorage, clean_device_id
from portaria.models import Session
from portaria.session import SessionState, can_administer

COOKIE_NAME = "portaria_session"
_SALT = "portaria-session"


def serializer(settings: Settings) -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(settings.secret_key, salt=_SALT)


def make_session(settings: Settings, device_id: str) -> str:
    return serializer(settings).dumps({"d": clean_device_id(device_id)})


def read_session(request: Request) -> dict | None:
    token = request.cookies.get(COOKIE_NAME)
    if not token:
        return None
    settings: Settings = request.app.state.settings
    try:
        data = serializer(settings).loads(token, max_age=settings.session_max_age)
    except (BadSignature, SignatureExpired):
        return None
    return data if isinstance(data, dict) and data.get("d") else None


def set_session_cookie(response: Response, settings: Settings, device_id: str) -> None:
    response.set_cookie(
        COOKIE_NAME,
        make_session(settings, device_id),
        max_age=settings.session_max_age,
        httponly=True,
        samesite="lax",
        secure=settings.cookie_secure,
    )


def device_id_for(request: Request) -> str:
    """Existing device id from the cookie, or a fresh one for a new device."""
    data = read_session(request)
    return str(data["d"]) if data else uuid.uuid4().hex


def device_storage(request: Request, device_id: str) -> LocalStorage:
    settings: Settings = request.app.state.settings
    return LocalStorage.for_device(settings.devices_dir, device_id)


def get_state(request: Request) -> SessionState:
    data = read_session(request)
    if not data:
        raise NotAuthenticated()
    return SessionState(request.app.state.store, device_storage(request, str(data["d"])))


def get_session(background: BackgroundTasks, state: SessionState = Depends(get_state)) -> Session:
    state.restore(defer=background.add_task)
    return state.require()


def require_admin(session: Session = Depends(get_session)) -> Session:
    if not can_administer(session):
        raise Forbidden()
    return session


def get_deliveries(request: Request, state: SessionState = Depends(get_state)) -> DeliveryService:
    app_state = request.app.state
    return DeliveryService(
        app_state.store,
        app_state.object_storage,
        DeliveryMirror(state.storage),
        app_state.notifier,
        app_state.settings,
    )
