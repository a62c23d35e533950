from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from portaria import admin
from portaria.auth import get_state, require_admin
from portaria.models import Session
from portaria.schemas import (
    ActiveIn,
    CondominiumPatchIn,
    EmployeeIn,
    EmployeePatchIn,
    ResidentIn,
    ResidentPatchIn,
)
from portaria.session import SessionState

router = APIRouter(prefix="/api/admin", tags=["admin"])


def _store(request: Request):
    return request.app.state.store


@router.get("/employees")
def get_employees(request: Request, session: Session = Depends(require_admin)):
    items = admin.list_employees(_store(request), session)
    return {"ok": True, "items": [e.public_dict() for e in items]}


@router.post("/employees")
def post_employee(payload: EmployeeIn, request: Request, session: Session = Depends(require_admin)):
    item = admin.create_employee(_store(request), session, payload.model_dump())
    return {"ok": True, "item": item.public_dict()}


@router.patch("/employees/{employee_id}")
def patch_employee(
    employee_id: str,
    payload: EmployeePatchIn,
    request: Request,
    session: Session = Depends(require_admin),
):
    item = admin.update_employee(_store(request), session, employee_id, payload.model_dump(exclude_none=True))
    return {"ok": True, "item": item.public_dict()}


@router.post("/employees/{employee_id}/active")
def post_employee_active(employee_id: str, payload: ActiveIn, request: Request, session: Session = Depends(require_admin)):
    item = admin.set_employee_active(_store(request), session, employee_id, payload.active)
    return {"ok": True, "item": item.public_dict()}


@router.delete("/employees/{employee_id}")
def delete_employee(employee_id: str, request: Request, session: Session = Depends(require_admin)):
    admin.delete_employee(_store(request), session, employee_id)
    return {"ok": True}


@router.get("/residents")
def get_residents(request: Request, session: Session = Depends(require_admin)):
    items = admin.list_residents(_store(request), session)
    return {"ok": True, "items": [r.to_dict() for r in items]}


@router.post("/residents")
def post_resident(
    payload: ResidentIn,
    request: Request,
    session: Session = Depends(require_admin),
    state: SessionState = Depends(get_state),
):
    item = admin.create_resident(_store(request), session, payload.model_dump())
    state.persist()
    return {"ok": True, "item": item.to_dict()}


@router.patch("/residents/{resident_id}")
def patch_resident(
    resident_id: str,
    payload: ResidentPatchIn,
    request: Request,
    session: Session = Depends(require_admin),
    state: SessionState = Depends(get_state),
):
    item = admin.update_resident(_store(request), session, resident_id, payload.model_dump(exclude_none=True))
    state.persist()
    return {"ok": True, "item": item.to_dict()}


@router.post("/residents/{resident_id}/active")
def post_resident_active(
    resident_id: str,
    payload: ActiveIn,
    request: Request,
    session: Session = Depends(require_admin),
    state: SessionState = Depends(get_state),
):
    item = admin.set_resident_active(_store(request), session, resident_id, payload.active)
    state.persist()
    return {"ok": True, "item": item.to_dict()}


@router.delete("/residents/{resident_id}")
def delete_resident(
    resident_id: str,
    request: Request,
    session: Session = Depends(require_admin),
    state: SessionState = Depends(get_state),
):
    admin.delete_resident(_store(request), session, resident_id)
    state.persist()
    return {"ok": True}


@router.get("/condominium")
def get_condominium(request: Request, session: Session = Depends(require_admin)):
    return {"ok": True, "item": admin.public_condominium(admin.get_condominium(_store(request), session))}


@router.patch("/condominium")
def patch_condominium(
    payload: CondominiumPatchIn,
    request: Request,
    session: Session = Depends(require_admin),
    state: SessionState = Depends(get_state),
):
    item = admin.update_condominium(_store(request), session, payload.model_dump(exclude_none=True))
    state.persist()
    return {"ok": True, "item": admin.public_condominium(item)}
