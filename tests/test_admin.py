from __future__ import annotations

import pytest

from portaria import admin as admin_ops
from portaria.errors import Forbidden, InvalidCredentials, InvalidIdentifier, InvalidSecret, RecordNotFound
from portaria.identity import CredentialResolver

from conftest import PORTER_CPF


def test_porter_cannot_administer(store, porter) -> None:
    with pytest.raises(Forbidden):
        admin_ops.list_employees(store, porter)
    with pytest.raises(Forbidden):
        admin_ops.create_resident(store, porter, {"name": "X", "unit": "1", "phone": "1"})


def test_employee_crud_and_login(store, admin) -> None:
    created = admin_ops.create_employee(
        store,
        admin,
        {"name": "Dora", "identifier": "935.411.347-80", "secret": "zel-1", "role": "caretaker"},
    )
    assert created.identifier == "93541134780"
    assert created.condominium_id == "c1"
    assert [e.display_name for e in admin_ops.list_employees(store, admin)] == ["Carlos", "Dora", "Marta"]

    session = CredentialResolver(store).resolve("93541134780", "zel-1")
    assert session.identity.role == "caretaker"

    admin_ops.set_employee_active(store, admin, created.id, False)
    with pytest.raises(InvalidCredentials):
        CredentialResolver(store).resolve("93541134780", "zel-1")

    renamed = admin_ops.update_employee(store, admin, created.id, {"name": "Dora Lima"})
    assert renamed.display_name == "Dora Lima"

    admin_ops.delete_employee(store, admin, created.id)
    with pytest.raises(RecordNotFound):
        admin_ops.delete_employee(store, admin, created.id)


def test_employee_validation(store, admin) -> None:
    with pytest.raises(InvalidIdentifier):
        admin_ops.create_employee(store, admin, {"name": "X", "identifier": "123", "secret": "s", "role": "porter"})
    with pytest.raises(admin_ops.InvalidRole):
        admin_ops.create_employee(
            store, admin, {"name": "X", "identifier": "93541134780", "secret": "sss1", "role": "condominium-super-user"}
        )
    with pytest.raises(admin_ops.FieldRequired):
        admin_ops.update_employee(store, admin, "s1", {})


def test_other_condominium_rows_are_invisible(store, admin) -> None:
    with pytest.raises(RecordNotFound):
        admin_ops.update_resident(store, admin, "r9", {"name": "Hacked"})
    with pytest.raises(RecordNotFound):
        admin_ops.delete_resident(store, admin, "r9")
    assert store.table("residents").eq("id", "r9").single()["name"] == "Zeca"


def test_resident_crud_updates_session_roster(store, admin) -> None:
    created = admin_ops.create_resident(
        store, admin, {"name": "Clara", "unit": "202", "block": "", "phone": "5511977770000"}
    )
    assert created.block is None
    assert created.id in {r.id for r in admin.residents}

    admin_ops.set_resident_active(store, admin, created.id, False)
    assert next(r for r in admin.residents if r.id == created.id).active is False

    admin_ops.delete_resident(store, admin, created.id)
    assert created.id not in {r.id for r in admin.residents}
    assert [r.name for r in admin_ops.list_residents(store, admin)] == ["Ana", "Bruno"]


def test_condominium_update(store, admin) -> None:
    condo = admin_ops.update_condominium(
        store, admin, {"name": "Aurora Prime", "super_user_identifier": "52998224725", "super_user_secret": "novo"}
    )
    assert condo.name == "Aurora Prime"
    assert condo.super_user_identifier == "529.982.247-25"
    assert admin.condominium_name == "Aurora Prime"
    assert "super_user_secret" not in admin_ops.public_condominium(condo)

    session = CredentialResolver(store).resolve("52998224725", "novo")
    assert session.condominium_name == "Aurora Prime"


def test_admin_secrets_need_three_characters(store, admin) -> None:
    with pytest.raises(InvalidSecret):
        admin_ops.create_employee(
            store, admin, {"name": "X", "identifier": "93541134780", "secret": " ab ", "role": "porter"}
        )
    with pytest.raises(InvalidSecret):
        admin_ops.update_employee(store, admin, "s1", {"secret": "12"})
    with pytest.raises(InvalidSecret):
        admin_ops.update_condominium(store, admin, {"super_user_secret": "9"})
    assert CredentialResolver(store).resolve(PORTER_CPF, "1234").identity.id == "s1"
