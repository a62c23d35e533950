from __future__ import annotations

from fastapi import APIRouter, Depends, File, Form, UploadFile

from portaria.auth import get_deliveries, get_session
from portaria.camera import PhotoUpload
from portaria.deliveries import DeliveryService
from portaria.models import Session
from portaria.schemas import PickupIn

router = APIRouter(prefix="/api/deliveries", tags=["deliveries"])


@router.post("")
async def register_delivery(
    resident_id: str = Form(""),
    notes: str = Form(""),
    photo: UploadFile | None = File(None),
    session: Session = Depends(get_session),
    service: DeliveryService = Depends(get_deliveries),
):
    upload = None
    if photo is not None:
        content = await photo.read()
        upload = PhotoUpload(
            content=content,
            content_type=photo.content_type or "",
            filename=photo.filename or "encomenda.jpg",
        )
    record = service.register(session, resident_id, upload, notes)
    return {"ok": True, "item": record.to_dict()}


@router.get("/pending")
def pending(session: Session = Depends(get_session), service: DeliveryService = Depends(get_deliveries)):
    items = service.list_pending(session)
    return {"ok": True, "items": [r.to_dict() for r in items]}


@router.delete("/mirror")
def clear_mirror(session: Session = Depends(get_session), service: DeliveryService = Depends(get_deliveries)):
    service.clear_mirror()
    return {"ok": True}


@router.get("/{code}")
def lookup(code: str, session: Session = Depends(get_session), service: DeliveryService = Depends(get_deliveries)):
    return {"ok": True, "item": service.lookup_by_code(session, code).to_dict()}


@router.post("/{code}/pickup")
def pickup(
    code: str,
    payload: PickupIn,
    session: Session = Depends(get_session),
    service: DeliveryService = Depends(get_deliveries),
):
    record = service.confirm_pickup(session, code, payload.description)
    return {"ok": True, "item": record.to_dict()}


@router.post("/{code}/cancel")
def cancel(code: str, session: Session = Depends(get_session), service: DeliveryService = Depends(get_deliveries)):
    return {"ok": True, "item": service.cancel(session, code).to_dict()}
