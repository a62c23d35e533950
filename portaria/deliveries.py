"""Delivery lifecycle: register, look up, confirm pickup, list pending.

The remote store is authoritative. Every record this device registers is also
kept in a local mirror (device storage, key ``deliveries``) so a pending code
can still be looked up when the store is unreachable. Mirror writes never fail
an operation.
"""
from __future__ import annotations

import logging
import secrets
import time
from typing import Any, Dict, List, Optional, Sequence

from portaria.camera import PhotoUpload
from portaria.config import Settings
from portaria.db import now_iso
from portaria.errors import (
    AlreadyPickedUp,
    CodeNotFound,
    DeliveryCancelled,
    DescriptionRequired,
    Forbidden,
    InvalidPhoto,
    PhotoRequired,
    PickupUpdateFailed,
    RecordInsertFailed,
    ResidentNotFound,
    StoreError,
)
from portaria.local_storage import DELIVERIES_KEY, LocalStorage
from portaria.models import (
    STATUS_CANCELLED,
    STATUS_PENDING,
    STATUS_PICKED_UP,
    DeliveryRecord,
    Resident,
    Session,
)
from portaria.notify import (
    KIND_DELIVERY,
    KIND_WITHDRAWAL,
    Notifier,
    local_date_time,
    render_delivery_message,
    render_withdrawal_message,
)
from portaria.object_storage import ObjectStorage
from portaria.reports import ReportFilters, ReportItem, export_csv, export_xlsx, matches, report_stats
from portaria.session import can_administer
from portaria.store import RemoteStore

logger = logging.getLogger("portaria.deliveries")

CODE_MIN = 10000
CODE_MAX = 99999
CODE_ATTEMPTS = 20
PHOTO_SUFFIXES = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/heic": ".heic",
    "image/heif": ".heif",
}


def generate_pickup_code() -> str:
    return str(CODE_MIN + secrets.randbelow(CODE_MAX - CODE_MIN + 1))


class DeliveryMirror:
    """Device-local copy of registered deliveries, one entry per pickup code."""

    def __init__(self, storage: LocalStorage) -> None:
        self.storage = storage

    @staticmethod
    def _decode(raw: Any) -> List[DeliveryRecord]:
        out: List[DeliveryRecord] = []
        for item in raw if isinstance(raw, list) else []:
            try:
                out.append(DeliveryRecord.from_dict(item))
            except (KeyError, TypeError, ValueError):
                logger.warning("Skipping unreadable mirrored delivery: %r", item)
        return out

    def records(self) -> List[DeliveryRecord]:
        return self._decode(self.storage.get(DELIVERIES_KEY, []))

    def _rewrite(self, change, what: str) -> None:
        def apply(raw: Any) -> List[Dict[str, Any]]:
            return [r.to_dict() for r in change(self._decode(raw))]

        try:
            self.storage.update(DELIVERIES_KEY, apply, [])
        except OSError:
            logger.exception("Failed to %s in the delivery mirror", what)

    def append(self, record: DeliveryRecord) -> None:
        def change(records: List[DeliveryRecord]) -> List[DeliveryRecord]:
            kept = [r for r in records if r.pickup_code != record.pickup_code]
            kept.append(record)
            return kept

        self._rewrite(change, f"append {record.pickup_code}")

    def _set_fields(self, code: str, **fields: Any) -> None:
        def change(records: List[DeliveryRecord]) -> List[DeliveryRecord]:
            for r in records:
                if r.pickup_code == code:
                    for k, v in fields.items():
                        setattr(r, k, v)
            return records

        self._rewrite(change, f"update {code}")

    def mark_picked_up(self, code: str, at: str, description: str) -> None:
        self._set_fields(code, status=STATUS_PICKED_UP, picked_up_at=at, pickup_description=description)

    def mark_cancelled(self, code: str) -> None:
        self._set_fields(code, status=STATUS_CANCELLED)

    def pending(self, condominium_id: Optional[str] = None) -> List[DeliveryRecord]:
        return [
            r for r in self.records()
            if r.is_pending and (condominium_id is None or r.condominium_id == condominium_id)
        ]

    def find_pending(self, code: str, condominium_id: Optional[str] = None) -> Optional[DeliveryRecord]:
        return next((r for r in self.pending(condominium_id) if r.pickup_code == code), None)

    def clear(self) -> None:
        try:
            self.storage.remove(DELIVERIES_KEY)
        except OSError:
            logger.exception("Failed to clear the delivery mirror")


def _prefer_pending(rows: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
    return next((r for r in rows if r.get("status") == STATUS_PENDING), rows[0])


class DeliveryService:
    def __init__(
        self,
        store: RemoteStore,
        storage: ObjectStorage,
        mirror: DeliveryMirror,
        notifier: Notifier,
        settings: Settings,
    ) -> None:
        self.store = store
        self.storage = storage
        self.mirror = mirror
        self.notifier = notifier
        self.settings = settings

    # --- helpers ---
    def _condominium_name(self, session: Session) -> str:
        return session.condominium_name or self.settings.condominium_name

    def _by_code(self, session: Session, code: str) -> List[Dict[str, Any]]:
        return (
            self.store.table("deliveries")
            .eq("pickup_code", code)
            .eq("condominium_id", session.condominium_id)
            .order("arrived_at", desc=True)
            .execute()
        )

    def _with_residents(self, session: Session, rows: Sequence[Dict[str, Any]]) -> List[DeliveryRecord]:
        records = [DeliveryRecord.from_dict(r) for r in rows]
        ids = sorted({r.resident_id for r in records if r.resident_id})
        residents: Dict[str, Resident] = {r.id: r for r in session.residents}
        if ids:
            try:
                fetched = self.store.table("residents").in_("id", ids).execute()
                residents.update({str(r["id"]): Resident.from_dict(r) for r in fetched})
            except StoreError:
                logger.warning("Resident join failed; using the session roster")
        for rec in records:
            rec.resident = residents.get(rec.resident_id or "")
        return records

    def _resident(self, session: Session, resident_id: str) -> Resident:
        rid = str(resident_id or "").strip()
        if not rid:
            raise ResidentNotFound()
        for r in session.residents:
            if r.id == rid and (not r.condominium_id or r.condominium_id == session.condominium_id):
                return r
        row = (
            self.store.table("residents")
            .eq("id", rid)
            .eq("condominium_id", session.condominium_id)
            .maybe_single()
        )
        if row is None:
            raise ResidentNotFound()
        return Resident.from_dict(row)

    def _check_photo(self, photo: Optional[PhotoUpload]) -> PhotoUpload:
        if photo is None or not photo.content:
            raise PhotoRequired()
        ctype = (photo.content_type or "").split(";")[0].strip().lower()
        if ctype not in self.settings.allowed_photo_types:
            raise InvalidPhoto(f"Tipo de imagem não suportado: {ctype or 'desconhecido'}.")
        if len(photo.content) > self.settings.upload_max_bytes:
            raise InvalidPhoto("Imagem excede o tamanho máximo permitido.")
        return photo

    def _new_code(self, session: Session) -> str:
        code = generate_pickup_code()
        for _ in range(CODE_ATTEMPTS):
            try:
                taken = (
                    self.store.table("deliveries")
                    .select("id")
                    .eq("pickup_code", code)
                    .eq("condominium_id", session.condominium_id)
                    .eq("status", STATUS_PENDING)
                    .limit(1)
                    .execute()
                )
            except StoreError:
                return code
            if not taken:
                return code
            code = generate_pickup_code()
        logger.warning("No free pickup code after %s attempts; reusing %s", CODE_ATTEMPTS, code)
        return code

    def _notify_delivery(self, session: Session, record: DeliveryRecord) -> bool:
        resident = record.resident
        if resident is None or not resident.phone:
            logger.info("Delivery %s: resident has no phone, skipping notification", record.pickup_code)
            return False
        day, hour = local_date_time()
        message = render_delivery_message(
            condominium=self._condominium_name(session),
            resident=resident.name,
            code=record.pickup_code,
            notes=record.notes,
            date=day,
            time=hour,
        )
        return self.notifier.send(
            resident.phone,
            message,
            KIND_DELIVERY,
            {
                "deliveryId": record.id,
                "code": record.pickup_code,
                "residentId": resident.id,
                "condominiumId": session.condominium_id,
                "notes": record.notes,
            },
        )

    def _notify_withdrawal(self, session: Session, record: DeliveryRecord) -> bool:
        resident = record.resident
        if resident is None or not resident.phone:
            logger.info("Pickup %s: resident has no phone, skipping notification", record.pickup_code)
            return False
        day, hour = local_date_time()
        message = render_withdrawal_message(
            condominium=self._condominium_name(session),
            resident=resident.name,
            code=record.pickup_code,
            description=record.pickup_description or "",
            date=day,
            time=hour,
        )
        return self.notifier.send(
            resident.phone,
            message,
            KIND_WITHDRAWAL,
            {
                "deliveryId": record.id,
                "code": record.pickup_code,
                "residentId": resident.id,
                "description": record.pickup_description,
                "pickedUpAt": record.picked_up_at,
            },
        )

    # --- operations ---
    def register(
        self,
        session: Session,
        resident_id: str,
        photo: Optional[PhotoUpload],
        notes: str = "",
    ) -> DeliveryRecord:
        photo = self._check_photo(photo)
        resident = self._resident(session, resident_id)
        code = self._new_code(session)

        ctype = (photo.content_type or "").split(";")[0].strip().lower()
        suffix = PHOTO_SUFFIXES.get(ctype, ".jpg")
        path = f"deliveries/{resident.id}/{int(time.time() * 1000)}-{code}{suffix}"
        stored = self.storage.upload(path, photo.content, ctype)
        photo_url = self.storage.public_url(stored)

        try:
            row = self.store.insert(
                "deliveries",
                {
                    "resident_id": resident.id,
                    "staff_id": session.identity.id,
                    "pickup_code": code,
                    "photo_url": photo_url,
                    "notes": (notes or "").strip(),
                    "status": STATUS_PENDING,
                    "arrived_at": now_iso(),
                    "notification_sent": False,
                    "condominium_id": session.condominium_id,
                    "created_at": now_iso(),
                },
            )
        except StoreError as exc:
            logger.error("Delivery insert failed for resident %s: %s", resident.id, exc)
            raise RecordInsertFailed() from exc

        record = DeliveryRecord.from_dict(row)
        record.resident = resident
        self.mirror.append(record)
        logger.info("Delivery %s registered for resident %s", record.pickup_code, resident.id)

        if self._notify_delivery(session, record):
            try:
                self.store.table("deliveries").eq("id", record.id).update({"notification_sent": True})
                record.notification_sent = True
            except StoreError:
                logger.exception("Failed to flag notification for delivery %s", record.id)
        return record

    def lookup_by_code(self, session: Session, code: str) -> DeliveryRecord:
        code = str(code or "").strip()
        if not code:
            raise CodeNotFound()
        try:
            rows = self._by_code(session, code)
        except StoreError as exc:
            logger.warning("Remote lookup for %s failed, trying the mirror: %s", code, exc)
            rows = []
        if rows:
            return self._with_residents(session, [_prefer_pending(rows)])[0]
        cached = self.mirror.find_pending(code, session.condominium_id)
        if cached is not None:
            return cached
        raise CodeNotFound()

    def confirm_pickup(self, session: Session, code: str, description: str) -> DeliveryRecord:
        code = str(code or "").strip()
        description = str(description or "").strip()
        if not description:
            raise DescriptionRequired()
        try:
            rows = self._by_code(session, code)
        except StoreError as exc:
            raise PickupUpdateFailed() from exc
        if not rows:
            raise CodeNotFound()
        current = _prefer_pending(rows)
        if current.get("status") == STATUS_PICKED_UP:
            raise AlreadyPickedUp()
        if current.get("status") == STATUS_CANCELLED:
            raise DeliveryCancelled()

        picked_up_at = now_iso()
        try:
            updated = (
                self.store.table("deliveries")
                .eq("id", current["id"])
                .eq("status", STATUS_PENDING)
                .update(
                    {
                        "status": STATUS_PICKED_UP,
                        "picked_up_at": picked_up_at,
                        "pickup_description": description,
                    }
                )
            )
        except StoreError as exc:
            logger.error("Pickup update failed for %s: %s", code, exc)
            raise PickupUpdateFailed() from exc
        if not updated:
            raise AlreadyPickedUp()

        record = self._with_residents(session, updated)[0]
        self.mirror.mark_picked_up(code, picked_up_at, description)
        logger.info("Delivery %s picked up", code)
        self._notify_withdrawal(session, record)
        return record

    def list_pending(self, session: Session) -> List[DeliveryRecord]:
        remote: List[DeliveryRecord] = []
        try:
            rows = (
                self.store.table("deliveries")
                .eq("condominium_id", session.condominium_id)
                .eq("status", STATUS_PENDING)
                .order("arrived_at", desc=True)
                .limit(self.settings.report_limit)
                .execute()
            )
            remote = self._with_residents(session, rows)
        except StoreError as exc:
            logger.warning("Pending list degraded to the local mirror: %s", exc)
        seen = {r.pickup_code for r in remote}
        merged = remote + [r for r in self.mirror.pending(session.condominium_id) if r.pickup_code not in seen]
        merged.sort(key=lambda r: r.arrived_at or "", reverse=True)
        return merged

    def cancel(self, session: Session, code: str) -> DeliveryRecord:
        if not can_administer(session):
            raise Forbidden()
        code = str(code or "").strip()
        rows = self._by_code(session, code)
        if not rows:
            raise CodeNotFound()
        current = _prefer_pending(rows)
        if current.get("status") == STATUS_PICKED_UP:
            raise AlreadyPickedUp()
        if current.get("status") == STATUS_CANCELLED:
            raise DeliveryCancelled()
        updated = (
            self.store.table("deliveries")
            .eq("id", current["id"])
            .eq("status", STATUS_PENDING)
            .update({"status": STATUS_CANCELLED})
        )
        if not updated:
            raise AlreadyPickedUp()
        self.mirror.mark_cancelled(code)
        logger.info("Delivery %s cancelled by %s", code, session.identity.id)
        return self._with_residents(session, updated)[0]

    def clear_mirror(self) -> None:
        self.mirror.clear()

    # --- reports ---
    def _staff_names(self, session: Session, staff_ids: Sequence[str]) -> Dict[str, str]:
        names: Dict[str, str] = {}
        if staff_ids:
            try:
                rows = (
                    self.store.table("employees")
                    .select("id", "name")
                    .eq("condominium_id", session.condominium_id)
                    .in_("id", staff_ids)
                    .execute()
                )
                names.update({str(r["id"]): str(r.get("name") or "") for r in rows})
            except StoreError:
                logger.warning("Staff name lookup failed for report")
        condo = session.condominium
        if condo is not None:
            super_name = condo.super_user_name or "Síndico"
            for sid in staff_ids:
                if sid not in names and (sid == condo.super_user_id or sid == f"superuser-{condo.id}"):
                    names[sid] = super_name
        return names

    def report(self, session: Session, filters: Optional[ReportFilters] = None) -> List[ReportItem]:
        filters = filters or ReportFilters()
        query = self.store.table("deliveries").eq("condominium_id", session.condominium_id)
        if filters.status:
            query = query.eq("status", filters.status)
        if filters.staff_id:
            query = query.eq("staff_id", filters.staff_id)
        if filters.resident_id:
            query = query.eq("resident_id", filters.resident_id)
        rows = query.order("arrived_at", desc=True).limit(self.settings.report_limit).execute()
        records = self._with_residents(session, rows)
        names =self._staff_names(session, sorted({r.staff_id for r in records if r.staff_id}))
        items = [ReportItem(record=r, staff_name=names.get(r.staff_id, "")) for r in records]
        return [i for i in items if matches(i, filters)]

    @staticmethod
    def report_stats(items: Sequence[ReportItem]) -> Dict[str, int]:
        return report_stats(items)

    @staticmethod
    def export_csv(items: Sequence[ReportItem]) -> str:
        return export_csv(items)

    @staticmethod
    def export_xlsx(items: Sequence[ReportItem]) -> bytes:
        return export_xlsx(items)
