from __future__ import annotations

from datetime import date
from typing import Literal

from pydantic import BaseModel, Field

EmployeeRole = Literal["porter", "caretaker", "administrator"]
DeliveryStatus = Literal["pending", "picked-up", "cancelled"]


class LoginIn(BaseModel):
    identifier: str = Field(default="", max_length=32)
    secret: str | int = Field(default="")


class PickupIn(BaseModel):
    description: str = Field(default="", max_length=500)


class EmployeeIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    identifier: str = Field(..., max_length=32)
    secret: str = Field(..., max_length=128)
    role: EmployeeRole = "porter"
    active: bool = True


class EmployeePatchIn(BaseModel):
    name: str | None = Field(default=None, max_length=120)
    identifier: str | None = Field(default=None, max_length=32)
    secret: str | None = Field(default=None, max_length=128)
    role: EmployeeRole | None = None
    active: bool | None = None


class ResidentIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    unit: str = Field(..., min_length=1, max_length=20)
    block: str | None = Field(default=None, max_length=20)
    phone: str = Field(..., min_length=1, max_length=32)
    email: str | None = Field(default=None, max_length=200)
    active: bool = True


class ResidentPatchIn(BaseModel):
    name: str | None = Field(default=None, max_length=120)
    unit: str | None = Field(default=None, max_length=20)
    block: str | None = Field(default=None, max_length=20)
    phone: str | None = Field(default=None, max_length=32)
    email: str | None = Field(default=None, max_length=200)
    active: bool | None = None


class ActiveIn(BaseModel):
    active: bool


class CondominiumPatchIn(BaseModel):
    name: str | None = Field(default=None, max_length=160)
    super_user_name: str | None = Field(default=None, max_length=120)
    super_user_identifier: str | None = Field(default=None, max_length=32)
    super_user_secret: str | None = Field(default=None, max_length=128)


class ReportQuery(BaseModel):
    q: str = ""
    status: DeliveryStatus | None = None
    staff_id: str | None = None
    resident_id: str | None = None
    date_from: date | None = None
    date_to: date | None = None
