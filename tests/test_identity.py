from __future__ import annotations

import pytest

from portaria.errors import InvalidCredentials, InvalidIdentifier, InvalidSecret, StoreError
from portaria.identity import (
    CredentialResolver,
    EmployeeIdentityProvider,
    format_identifier,
    normalize_identifier,
    normalize_secret,
    secret_matches,
)
from portaria.models import ROLE_SUPER_USER
from portaria.store import RemoteStore

from conftest import ADMIN_CPF, PORTER_CPF, SUPER_CPF


class CountingStore(RemoteStore):
    def __init__(self, inner=None) -> None:
        self.inner = inner
        self.calls = 0

    def run_select(self, query):
        self.calls += 1
        if self.inner is None:
            raise StoreError("offline")
        return self.inner.run_select(query)


def test_normalize_identifier_strips_punctuation() -> None:
    assert normalize_identifier("111.444.777-35") == "11144477735"
    assert format_identifier("11144477735") == "111.444.777-35"


@pytest.mark.parametrize("raw", ["123", "111444777351", "", None])
def test_wrong_length_identifier_makes_no_remote_call(raw) -> None:
    counting = CountingStore()
    with pytest.raises(InvalidIdentifier):
        CredentialResolver(counting).resolve(raw, "1234")
    assert counting.calls == 0


def test_repeated_digit_identifier_rejected_before_store() -> None:
    counting = CountingStore()
    with pytest.raises(InvalidIdentifier):
        CredentialResolver(counting).resolve("111.111.111-11", "1234")
    assert counting.calls == 0


def test_blank_secret_rejected_before_store() -> None:
    counting = CountingStore()
    with pytest.raises(InvalidSecret):
        CredentialResolver(counting).resolve(PORTER_CPF, "   ")
    assert counting.calls == 0


def test_employee_login_loads_condominium_and_residents(store) -> None:
    session = CredentialResolver(store).resolve("111.444.777-35", " 1234 ")
    assert session.identity.id == "s1"
    assert session.identity.role == "porter"
    assert session.condominium_name == "Residencial Aurora"
    assert sorted(r.id for r in session.residents) == ["r1", "r2"]


def test_wrong_secret_is_invalid_credentials(store) -> None:
    with pytest.raises(InvalidCredentials):
        CredentialResolver(store).resolve(PORTER_CPF, "9999")


def test_inactive_employee_cannot_login(store) -> None:
    store.table("employees").eq("id", "s1").update({"active": False})
    with pytest.raises(InvalidCredentials):
        CredentialResolver(store).resolve(PORTER_CPF, "1234")


def test_super_user_numeric_secret_matches_text_input(store) -> None:
    session = CredentialResolver(store).resolve(SUPER_CPF, "654321")
    assert session.identity.role == ROLE_SUPER_USER
    assert session.identity.id == "adm1"
    assert session.identity.display_name == "Marta"
    assert session.identity.identifier == SUPER_CPF
    assert session.condominium.id == "c1"


def test_super_user_without_id_gets_synthetic_identity(store) -> None:
    store.table("condominiums").eq("id", "c2").update(
        {"super_user_identifier": "12345678909", "super_user_secret": "sol-2024"}
    )
    session = CredentialResolver(store).resolve("123.456.789-09", "sol-2024")
    assert session.identity.id == "superuser-c2"
    assert session.identity.display_name == "Síndico"
    assert [r.id for r in session.residents] == ["r9"]


def test_employee_provider_wins_over_super_user(store) -> None:
    session = CredentialResolver(store).resolve(ADMIN_CPF, "admin-pass")
    assert session.identity.role == "administrator"


def test_custom_provider_chain(store) -> None:
    resolver = CredentialResolver(store, providers=[EmployeeIdentityProvider(store)])
    with pytest.raises(InvalidCredentials):
        resolver.resolve(SUPER_CPF, "654321")


def test_secret_matches_numeric_and_text() -> None:
    assert secret_matches(654321, "654321")
    assert secret_matches(654321, "654321.0")
    assert not secret_matches(654321, "65432")
    assert secret_matches("abc", "abc")
    assert not secret_matches(None, "abc")


def test_normalize_secret_minimum_length() -> None:
    assert normalize_secret(" abc ", min_length=3) == "abc"
    assert normalize_secret(654321, min_length=3) == "654321"
    with pytest.raises(InvalidSecret):
        normalize_secret("ab", min_length=3)
    assert normalize_secret("a") == "a"
