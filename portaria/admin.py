from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from portaria.errors import Forbidden, PortariaError, RecordNotFound
from portaria.identity import SECRET_MIN_LENGTH, format_identifier, normalize_identifier, normalize_secret
from portaria.models import EMPLOYEE_ROLES, Condominium, Resident, Session, StaffIdentity
from portaria.session import can_administer
from portaria.store import RemoteStore

logger = logging.getLogger("portaria.admin")

_EMPLOYEE_FIELDS = ("name", "identifier", "secret", "role", "active")
_RESIDENT_FIELDS = ("name", "unit", "block", "phone", "email", "active")
_CONDO_FIELDS = ("name", "super_user_name", "super_user_identifier", "super_user_secret")


class InvalidRole(PortariaError):
    title = "Cargo inválido"
    description = "Cargo deve ser porteiro, zelador ou administrador."


class FieldRequired(PortariaError):
    title = "Campo obrigatório"
    description = "Preencha os campos obrigatórios."


def _require_admin(session: Session) -> str:
    if not can_administer(session):
        raise Forbidden()
    return session.condominium_id


def _pick(data: Dict[str, Any], allowed) -> Dict[str, Any]:
    return {k: v for k, v in (data or {}).items() if k in allowed and v is not None}


def _required_text(data: Dict[str, Any], key: str, label: str) -> str:
    value = str(data.get(key) or "").strip()
    if not value:
        raise FieldRequired(f"{label} é obrigatório.")
    return value


def _clean_employee(data: Dict[str, Any], *, partial: bool) -> Dict[str, Any]:
    out = _pick(data, _EMPLOYEE_FIELDS)
    if not partial or "name" in out:
        out["name"] = _required_text(out, "name", "Nome")
    if not partial or "identifier" in out:
        out["identifier"] = normalize_identifier(out.get("identifier"))
    if not partial or "secret" in out:
        out["secret"] = normalize_secret(out.get("secret"), min_length=SECRET_MIN_LENGTH)
    if not partial or "role" in out:
        role = str(out.get("role") or "").strip()
        if role not in EMPLOYEE_ROLES:
            raise InvalidRole()
        out["role"] = role
    if "active" in out:
        out["active"] = bool(out["active"])
    elif not partial:
        out["active"] = True
    return out


def _clean_resident(data: Dict[str, Any], *, partial: bool) -> Dict[str, Any]:
    out = _pick(data, _RESIDENT_FIELDS)
    if not partial or "name" in out:
        out["name"] = _required_text(out, "name", "Nome")
    if not partial or "unit" in out:
        out["unit"] = _required_text(out, "unit", "Apartamento")
    if not partial or "phone" in out:
        out["phone"] = _required_text(out, "phone", "Telefone")
    for key in ("block", "email"):
        if key in out:
            out[key] = str(out[key]).strip() or None
    if "active" in out:
        out["active"] = bool(out["active"])
    elif not partial:
        out["active"] = True
    return out


# --- employees ---
def list_employees(store: RemoteStore, session: Session) -> List[StaffIdentity]:
    condo_id = _require_admin(session)
    rows = store.table("employees").eq("condominium_id", condo_id).order("name").execute()
    return [StaffIdentity.from_employee_row(r) for r in rows]


def create_employee(store: RemoteStore, session: Session, data: Dict[str, Any]) -> StaffIdentity:
    condo_id = _require_admin(session)
    values = _clean_employee(data, partial=False)
    values["condominium_id"] = condo_id
    row = store.insert("employees", values)
    logger.info("Employee %s created in %s", row["id"], condo_id)
    return StaffIdentity.from_employee_row(row)


def update_employee(store: RemoteStore, session: Session, employee_id: str, data: Dict[str, Any]) -> StaffIdentity:
    condo_id = _require_admin(session)
    values = _clean_employee(data, partial=True)
    if not values:
        raise FieldRequired("Nada para atualizar.")
    rows = store.table("employees").eq("id", employee_id).eq("condominium_id", condo_id).update(values)
    if not rows:
        raise RecordNotFound("Funcionário não encontrado.")
    return StaffIdentity.from_employee_row(rows[0])


def set_employee_active(store: RemoteStore, session: Session, employee_id: str, active: bool) -> StaffIdentity:
    return update_employee(store, session, employee_id, {"active": bool(active)})


def delete_employee(store: RemoteStore, session: Session, employee_id: str) -> None:
    condo_id = _require_admin(session)
    if not store.table("employees").eq("id", employee_id).eq("condominium_id", condo_id).delete():
        raise RecordNotFound("Funcionário não encontrado.")
    logger.info("Employee %s deleted from %s", employee_id, condo_id)


# --- residents ---
def list_residents(store: RemoteStore, session: Session) -> List[Resident]:
    condo_id = _require_admin(session)
    rows = store.table("residents").eq("condominium_id", condo_id).order("name").execute()
    return [Resident.from_dict(r) for r in rows]


def create_resident(store: RemoteStore, session: Session, data: Dict[str, Any]) -> Resident:
    condo_id = _require_admin(session)
    values = _clean_resident(data, partial=False)
    values["condominium_id"] = condo_id
    resident = Resident.from_dict(store.insert("residents", values))
    session.residents.append(resident)
    return resident


def update_resident(store: RemoteStore, session: Session, resident_id: str, data: Dict[str, Any]) -> Resident:
    condo_id = _require_admin(session)
    values = _clean_resident(data, partial=True)
    if not values:
        raise FieldRequired("Nada para atualizar.")
    rows = store.table("residents").eq("id", resident_id).eq("condominium_id", condo_id).update(values)
    if not rows:
        raise RecordNotFound("Morador não encontrado.")
    resident = Resident.from_dict(rows[0])
    session.residents = [resident if r.id == resident.id else r for r in session.residents]
    return resident


def set_resident_active(store: RemoteStore, session: Session, resident_id: str, active: bool) -> Resident:
    return update_resident(store, session, resident_id, {"active": bool(active)})


def delete_resident(store: RemoteStore, session: Session, resident_id: str) -> None:
    condo_id = _require_admin(session)
    if not store.table("residents").eq("id", resident_id).eq("condominium_id", condo_id).delete():
        raise RecordNotFound("Morador não encontrado.")
    session.residents = [r for r in session.residents if r.id != resident_id]


# --- condominium ---
def get_condominium(store: RemoteStore, session: Session) -> Condominium:
    condo_id = _require_admin(session)
    row = store.table("condominiums").eq("id", condo_id).maybe_single()
    if row is None:
        raise RecordNotFound("Condomínio não encontrado.")
    return Condominium.from_dict(row)


def update_condominium(store: RemoteStore, session: Session, data: Dict[str, Any]) -> Condominium:
    condo_id = _require_admin(session)
    values = _pick(data, _CONDO_FIELDS)
    if not values:
        raise FieldRequired("Nada para atualizar.")
    if "name" in values:
        values["name"] = _required_text(values, "name", "Nome")
    if "super_user_identifier" in values:
        values["super_user_identifier"] = format_identifier(normalize_identifier(values["super_user_identifier"]))
    if "super_user_secret" in values:
        values["super_user_secret"] = normalize_secret(values["super_user_secret"], min_length=SECRET_MIN_LENGTH)
    rows = store.table("condominiums").eq("id", condo_id).update(values)
    if not rows:
        raise RecordNotFound("Condomínio não encontrado.")
    condominium = Condominium.from_dict(rows[0])
    session.condominium = condominium
    return condominium


def public_condominium(condominium: Optional[Condominium]) -> Optional[Dict[str, Any]]:
    if condominium is None:
        return None
    out = condominium.to_dict()
    out.pop("super_user_secret", None)
    return out
