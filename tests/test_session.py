from __future__ import annotations

import pytest

from portaria.errors import InvalidCredentials, NotAuthenticated, StoreError
from portaria.identity import CredentialResolver
from portaria.local_storage import IDENTIFIER_KEY, SESSION_KEY
from portaria.session import SessionState, can_administer, filter_residents, search_residents

from conftest import ADMIN_CPF, PORTER_CPF, SUPER_CPF


def test_login_persists_session_and_identifier(store, device) -> None:
    state = SessionState(store, device)
    session = state.login(PORTER_CPF, "1234")
    assert state.is_authenticated
    assert device.get(IDENTIFIER_KEY) == PORTER_CPF
    assert device.get(SESSION_KEY)["identity"]["id"] == session.identity.id


def test_restore_from_device_storage(store, device) -> None:
    SessionState(store, device).login(PORTER_CPF, "1234")
    fresh = SessionState(store, device)
    session = fresh.restore()
    assert session is not None
    assert session.identity.id == "s1"
    assert [r.name for r in filter_residents(session, "101", "A")] == ["Ana"]


def test_restore_refreshes_renamed_condominium(store, device) -> None:
    SessionState(store, device).login(PORTER_CPF, "1234")
    store.table("condominiums").eq("id", "c1").update({"name": "Aurora Prime"})

    deferred = []
    state = SessionState(store, device)
    session = state.restore(defer=deferred.append)
    assert session.condominium_name == "Residencial Aurora"
    assert len(deferred) == 1

    deferred[0]()
    assert state.session.condominium_name == "Aurora Prime"
    assert device.get(SESSION_KEY)["condominium"]["name"] == "Aurora Prime"


def test_refresh_failure_keeps_session(store, device, monkeypatch) -> None:
    SessionState(store, device).login(PORTER_CPF, "1234")

    def offline(query):
        raise StoreError("offline")

    monkeypatch.setattr(store, "run_select", offline)
    state = SessionState(store, device)
    session = state.restore()
    assert session is not None
    assert session.condominium_name == "Residencial Aurora"


def test_corrupt_persisted_session_is_ignored(store, device) -> None:
    device.set(SESSION_KEY, {"identity": {"id": "x"}})
    state = SessionState(store, device)
    assert state.restore() is None
    assert not state.is_authenticated
    with pytest.raises(NotAuthenticated):
        state.require()


def test_failed_login_keeps_previous_session(store, device) -> None:
    state = SessionState(store, device)
    state.login(PORTER_CPF, "1234")
    with pytest.raises(InvalidCredentials):
        state.login(PORTER_CPF, "wrong")
    assert state.session.identity.id == "s1"
    assert device.get(SESSION_KEY)["identity"]["id"] == "s1"


def test_logout_clears_both_keys(store, device) -> None:
    state = SessionState(store, device)
    state.login(PORTER_CPF, "1234")
    state.logout()
    assert not state.is_authenticated
    assert device.get(SESSION_KEY) is None
    assert device.get(IDENTIFIER_KEY) is None
    assert state.last_identifier() == ""


def test_search_residents_matches_name_unit_and_phone(porter) -> None:
    assert [r.id for r in search_residents(porter, "ana")] == ["r1"]
    assert sorted(r.id for r in search_residents(porter, "101")) == ["r1", "r2"]
    assert [r.id for r in search_residents(porter, "99990000")] == ["r1"]
    assert len(search_residents(porter, "")) == 2


def test_filter_residents_without_block(porter) -> None:
    assert sorted(r.id for r in filter_residents(porter, "101")) == ["r1", "r2"]
    assert filter_residents(porter, "999") == []


def test_can_administer(store, porter, admin) -> None:
    assert not can_administer(porter)
    assert can_administer(admin)
    assert can_administer(CredentialResolver(store).resolve(SUPER_CPF, "654321"))
    store.table("condominiums").eq("id", "c1").update({"super_user_id": "someone-else"})
    assert not can_administer(CredentialResolver(store).resolve(ADMIN_CPF, "admin-pass"))
