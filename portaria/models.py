from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, List, Optional, Type, TypeVar

ROLE_PORTER = "porter"
ROLE_CARETAKER = "caretaker"
ROLE_ADMINISTRATOR = "administrator"
ROLE_SUPER_USER = "condominium-super-user"
EMPLOYEE_ROLES = (ROLE_PORTER, ROLE_CARETAKER, ROLE_ADMINISTRATOR)

STATUS_PENDING = "pending"
STATUS_PICKED_UP = "picked-up"
STATUS_CANCELLED = "cancelled"
DELIVERY_STATUSES = (STATUS_PENDING, STATUS_PICKED_UP, STATUS_CANCELLED)

T = TypeVar("T")


def _from_dict(cls: Type[T], data: Dict[str, Any]) -> T:
    known = {f.name for f in fields(cls)}  # type: ignore[arg-type]
    return cls(**{k: v for k, v in dict(data or {}).items() if k in known})


@dataclass
class Condominium:
    id: str
    name: str
    super_user_id: Optional[str] = None
    super_user_name: Optional[str] = None
    super_user_identifier: Optional[str] = None
    super_user_secret: Any = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Condominium":
        return _from_dict(cls, data)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class StaffIdentity:
    id: str
    display_name: str
    identifier: str
    secret: str
    role: str
    active: bool
    condominium_id: str
    created_at: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StaffIdentity":
        return _from_dict(cls, data)

    @classmethod
    def from_employee_row(cls, row: Dict[str, Any]) -> "StaffIdentity":
        return cls(
            id=str(row["id"]),
            display_name=str(row.get("name") or ""),
            identifier=str(row.get("identifier") or ""),
            secret=str(row.get("secret") or ""),
            role=str(row.get("role") or ROLE_PORTER),
            active=bool(row.get("active")),
            condominium_id=str(row.get("condominium_id") or ""),
            created_at=str(row.get("created_at") or ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def public_dict(self) -> Dict[str, Any]:
        out = self.to_dict()
        out.pop("secret", None)
        return out


@dataclass
class Resident:
    id: str
    name: str
    unit: str
    block: Optional[str] = None
    phone: str = ""
    active: bool = True
    condominium_id: str = ""
    email: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Resident":
        resident = _from_dict(cls, data)
        resident.active = bool(resident.active)
        return resident

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @property
    def apartment_label(self) -> str:
        return f"{self.block}-{self.unit}" if self.block else self.unit


@dataclass
class Session:
    identity: StaffIdentity
    condominium: Optional[Condominium] = None
    residents: List[Resident] = field(default_factory=list)

    @property
    def condominium_id(self) -> str:
        return self.identity.condominium_id

    @property
    def condominium_name(self) -> str:
        return self.condominium.name if self.condominium else ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Session":
        condo = data.get("condominium")
        return cls(
            identity=StaffIdentity.from_dict(data["identity"]),
            condominium=Condominium.from_dict(condo) if condo else None,
            residents=[Resident.from_dict(r) for r in data.get("residents") or []],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "identity": self.identity.to_dict(),
            "condominium": self.condominium.to_dict() if self.condominium else None,
            "residents": [r.to_dict() for r in self.residents],
        }


@dataclass
class DeliveryRecord:
    id: str
    resident_id: Optional[str]
    staff_id: str
    pickup_code: str
    photo_url: str
    notes: str = ""
    status: str = STATUS_PENDING
    arrived_at: str = ""
    picked_up_at: Optional[str] = None
    pickup_description: Optional[str] = None
    notification_sent: bool = False
    condominium_id: Optional[str] = None
    created_at: Optional[str] = None
    resident: Optional[Resident] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeliveryRecord":
        raw = dict(data or {})
        resident = raw.pop("resident", None)
        record = _from_dict(cls, raw)
        record.notification_sent = bool(record.notification_sent)
        record.resident = Resident.from_dict(resident) if resident else None
        return record

    def to_dict(self) -> Dict[str, Any]:
        out = asdict(self)
        out["resident"] = self.resident.to_dict() if self.resident else None
        return out

    def row(self) -> Dict[str, Any]:
        out = self.to_dict()
        out.pop("resident", None)
        return out

    @property
    def is_pending(self) -> bool:
        return self.status == STATUS_PENDING
