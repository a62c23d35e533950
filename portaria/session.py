from __future__ import annotations

import logging
from typing import Any, Callable, List, Optional

from portaria.errors import NotAuthenticated, StoreError
from portaria.identity import CredentialResolver, fetch_condominium
from portaria.local_storage import IDENTIFIER_KEY, SESSION_KEY, LocalStorage
from portaria.models import ROLE_ADMINISTRATOR, ROLE_SUPER_USER, Condominium, Resident, Session
from portaria.store import RemoteStore

logger = logging.getLogger("portaria.session")

Defer = Callable[..., Any]


class SessionState:
    """Login state of one device.

    Unauthenticated --login--> Authenticated(session) --logout--> Unauthenticated.
    A login while authenticated swaps the session; a failed login keeps it.
    """

    def __init__(self, store: RemoteStore, storage: LocalStorage, resolver: Optional[CredentialResolver] = None) -> None:
        self.store = store
        self.storage = storage
        self.resolver = resolver or CredentialResolver(store)
        self.session: Optional[Session] = None

    @property
    def is_authenticated(self) -> bool:
        return self.session is not None

    def require(self) -> Session:
        if self.session is None:
            raise NotAuthenticated()
        return self.session

    def restore(self, defer: Optional[Defer] = None) -> Optional[Session]:
        raw = self.storage.get(SESSION_KEY)
        if not raw:
            return None
        try:
            self.session = Session.from_dict(raw)
        except (AttributeError, KeyError, TypeError, ValueError):
            logger.warning("Discarding unreadable persisted session in %s", self.storage.path)
            self.session = None
            return None
        if defer is not None:
            defer(self.refresh_condominium)
        else:
            self.refresh_condominium()
        return self.session

    def refresh_condominium(self) -> None:
        session = self.session
        if session is None:
            return
        condo_id = session.condominium.id if session.condominium else session.condominium_id
        try:
            fresh = fetch_condominium(self.store, condo_id)
        except StoreError:
            logger.exception("Condominium refresh failed for %s", condo_id)
            return
        if fresh is None or not fresh.name or fresh.name == session.condominium_name:
            return
        merged = session.condominium.to_dict() if session.condominium else {}
        merged.update({k: v for k, v in fresh.to_dict().items() if v is not None})
        session.condominium = Condominium.from_dict(merged)
        try:
            self.storage.set(SESSION_KEY, session.to_dict())
        except OSError:
            logger.exception("Failed to persist refreshed session")

    def login(self, identifier: Any, secret: Any) -> Session:
        session = self.resolver.resolve(identifier, secret)
        self.storage.set(IDENTIFIER_KEY, session.identity.identifier)
        self.storage.set(SESSION_KEY, session.to_dict())
        self.session = session
        logger.info("Staff %s signed in (role=%s)", session.identity.id, session.identity.role)
        return session

    def persist(self) -> None:
        if self.session is not None:
            self.storage.set(SESSION_KEY, self.session.to_dict())

    def logout(self) -> None:
        self.session = None
        self.storage.remove(SESSION_KEY)
        self.storage.remove(IDENTIFIER_KEY)

    def last_identifier(self) -> str:
        return str(self.storage.get(IDENTIFIER_KEY) or "")

    def filter_residents(self, unit: str, block: Optional[str] = None) -> List[Resident]:
        if self.session is None:
            return []
        return filter_residents(self.session, unit, block)

    def search_residents(self, term: str) -> List[Resident]:
        if self.session is None:
            return []
        return search_residents(self.session, term)


def filter_residents(session: Session, unit: str, block: Optional[str] = None) -> List[Resident]:
    return [r for r in session.residents if r.unit == unit and (not block or r.block == block)]


def search_residents(session: Session, term: str) -> List[Resident]:
    needle = str(term or "").strip().lower()
    if not needle:
        return list(session.residents)
    out = []
    for r in session.residents:
        hay = " ".join(str(v or "") for v in (r.name, r.unit, r.block, r.phone)).lower()
        if needle in hay:
            out.append(r)
    return out


def can_administer(session: Session) -> bool:
    identity = session.identity
    if identity.role == ROLE_SUPER_USER:
        return True
    return (
        identity.role == ROLE_ADMINISTRATOR
        and session.condominium is not None
        and session.condominium.super_user_id == identity.id
    )
