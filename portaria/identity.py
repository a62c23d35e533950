"""Credential resolution.

A front-desk login is an (identifier, secret) pair where the identifier is an
11-digit CPF. Two identity classes can answer it, tried in order:

1. employees rows (exact-string secret, active only)
2. the condominium super-user ("síndico") fields kept on the condominium row,
   whose identifier may be stored punctuated or not and whose secret may be
   stored as a number or as text.

The first provider that recognises the pair wins.
"""
from __future__ import annotations

import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional, Sequence, Tuple

from portaria.db import now_iso
from portaria.errors import (
    CondominiumLookupFailed,
    InvalidCredentials,
    InvalidIdentifier,
    InvalidSecret,
    StoreError,
)
from portaria.models import ROLE_SUPER_USER, Condominium, Resident, Session, StaffIdentity
from portaria.store import RemoteStore

logger = logging.getLogger("portaria.identity")

_NON_DIGIT_RE = re.compile(r"\D")
_REPEATED_RE = re.compile(r"^(\d)\1{10}$")
SECRET_MIN_LENGTH = 3
_CONDO_COLUMNS = (
    "id",
    "name",
    "super_user_id",
    "super_user_name",
    "super_user_identifier",
    "super_user_secret",
)


def normalize_identifier(raw: Any) -> str:
    digits = _NON_DIGIT_RE.sub("", str(raw or ""))
    if len(digits) != 11:
        raise InvalidIdentifier("CPF deve ter 11 dígitos.")
    if _REPEATED_RE.fullmatch(digits):
        raise InvalidIdentifier("CPF inválido.")
    return digits


def format_identifier(digits: str) -> str:
    d = str(digits)
    return f"{d[0:3]}.{d[3:6]}.{d[6:9]}-{d[9:11]}"


def normalize_secret(raw: Any, min_length: int = 1) -> str:
    secret = str(raw or "").strip()
    if not secret:
        raise InvalidSecret("CPF e senha são obrigatórios.")
    if len(secret) < min_length:
        raise InvalidSecret(f"Senha deve ter pelo menos {min_length} caracteres.")
    return secret


def _as_number(value: Any) -> Optional[Decimal]:
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None


def secret_matches(stored: Any, supplied: str) -> bool:
    """Compare a stored super-user secret that may be numeric or textual."""
    if stored is None or isinstance(stored, bool):
        return False
    if isinstance(stored, (int, float, Decimal)):
        number = _as_number(supplied)
        return number is not None and number == _as_number(stored)
    text = str(stored)
    return text == supplied or text.strip() == supplied


def fetch_condominium(store: RemoteStore, condominium_id: str) -> Optional[Condominium]:
    row = store.table("condominiums").select(*_CONDO_COLUMNS).eq("id", condominium_id).maybe_single()
    return Condominium.from_dict(row) if row else None


class IdentityProvider:
    name = "base"

    def __init__(self, store: RemoteStore) -> None:
        self.store = store

    def resolve(self, identifier: str, secret: str) -> Optional[Tuple[StaffIdentity, Optional[Condominium]]]:
        raise NotImplementedError


class EmployeeIdentityProvider(IdentityProvider):
    name = "employee"

    def resolve(self, identifier: str, secret: str) -> Optional[Tuple[StaffIdentity, Optional[Condominium]]]:
        rows = (
            self.store.table("employees")
            .eq("identifier", identifier)
            .eq("secret", secret)
            .eq("active", True)
            .execute()
        )
        if not rows:
            return None
        identity = StaffIdentity.from_employee_row(rows[0])
        try:
            condominium = fetch_condominium(self.store, identity.condominium_id)
        except StoreError as exc:
            logger.warning("Condominium lookup failed for employee %s: %s", identity.id, exc)
            raise CondominiumLookupFailed() from exc
        return identity, condominium


class SuperUserIdentityProvider(IdentityProvider):
    name = "condominium-super-user"

    def resolve(self, identifier: str, secret: str) -> Optional[Tuple[StaffIdentity, Optional[Condominium]]]:
        candidates = (
            self.store.table("condominiums")
            .select(*_CONDO_COLUMNS)
            .in_("super_user_identifier", [identifier, format_identifier(identifier)])
            .execute()
        )
        match = next((c for c in candidates if secret_matches(c.get("super_user_secret"), secret)), None)
        if match is None:
            return None
        condominium = Condominium.from_dict(match)
        ts = now_iso()
        identity = StaffIdentity(
            id=condominium.super_user_id or f"superuser-{condominium.id}",
            display_name=condominium.super_user_name or "Síndico",
            identifier=identifier,
            secret=secret,
            role=ROLE_SUPER_USER,
            active=True,
            condominium_id=condominium.id,
            created_at=ts,
        )
        return identity, condominium


class CredentialResolver:
    def __init__(self, store: RemoteStore, providers: Optional[Sequence[IdentityProvider]] = None) -> None:
        self.store = store
        self.providers: List[IdentityProvider] = list(
            providers if providers is not None
            else (EmployeeIdentityProvider(store), SuperUserIdentityProvider(store))
        )

    def resolve(self, raw_identifier: Any, raw_secret: Any) -> Session:
        identifier = normalize_identifier(raw_identifier)
        secret = normalize_secret(raw_secret)

        resolved = None
        for provider in self.providers:
            resolved = provider.resolve(identifier, secret)
            if resolved is not None:
                logger.info("Login resolved by %s provider", provider.name)
                break
        if resolved is None:
            raise InvalidCredentials()

        identity, condominium = resolved
        return Session(
            identity=identity,
            condominium=condominium,
            residents=self.load_residents(identity.condominium_id),
        )

    def load_residents(self, condominium_id: str) -> List[Resident]:
        try:
            rows = self.store.table("residents").eq("condominium_id", condominium_id).execute()
        except StoreError:
            logger.exception("Failed to load residents for condominium %s", condominium_id)
            return []
        return [Resident.from_dict(r) for r in rows]
