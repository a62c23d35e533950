from __future__ import annotations

from pathlib import Path

import pytest

from portaria.camera import PhotoUpload
from portaria.config import Settings
from portaria.db import ensure_schema
from portaria.deliveries import DeliveryMirror, DeliveryService
from portaria.errors import NotificationFailed
from portaria.identity import CredentialResolver
from portaria.local_storage import LocalStorage
from portaria.notify import Notifier
from portaria.object_storage import ObjectStorage
from portaria.store import SqliteStore

PORTER_CPF = "11144477735"
ADMIN_CPF = "39053344705"
SUPER_CPF = "52998224725"

JPEG = b"\xff\xd8\xff\xe0" + b"\x00" * 64


def make_settings(tmp_path: Path, **overrides) -> Settings:
    values = dict(
        data_dir=tmp_path,
        db_path=tmp_path / "portaria.db",
        upload_dir=tmp_path / "uploads",
        public_url="/uploads",
        photo_bucket="delivery-photos",
        webhook_url="",
        webhook_timeout_sec=1.0,
        secret_key="k" * 32,
        session_max_age=3600,
        cookie_secure=False,
        report_limit=100,
        upload_max_bytes=1024 * 1024,
        sqlite_timeout_sec=5.0,
        condominium_name="",
    )
    values.update(overrides)
    return Settings(**values)


def seed(store: SqliteStore) -> None:
    store.insert(
        "condominiums",
        {
            "id": "c1",
            "name": "Residencial Aurora",
            "super_user_id": "adm1",
            "super_user_name": "Marta",
            "super_user_identifier": "529.982.247-25",
            "super_user_secret": 654321,
        },
    )
    store.insert("condominiums", {"id": "c2", "name": "Edifício Sol"})
    store.insert(
        "employees",
        {
            "id": "s1",
            "name": "Carlos",
            "identifier": PORTER_CPF,
            "secret": "1234",
            "role": "porter",
            "active": True,
            "condominium_id": "c1",
        },
    )
    store.insert(
        "employees",
        {
            "id": "adm1",
            "name": "Marta",
            "identifier": ADMIN_CPF,
            "secret": "admin-pass",
            "role": "administrator",
            "active": True,
            "condominium_id": "c1",
        },
    )
    store.insert(
        "residents",
        {"id": "r1", "name": "Ana", "unit": "101", "block": "A", "phone": "5511999990000", "condominium_id": "c1"},
    )
    store.insert(
        "residents",
        {"id": "r2", "name": "Bruno", "unit": "101", "block": "B", "phone": "", "condominium_id": "c1"},
    )
    store.insert(
        "residents",
        {"id": "r9", "name": "Zeca", "unit": "901", "phone": "5511988880000", "condominium_id": "c2"},
    )


class RecordingNotifier(Notifier):
    def __init__(self, *, fail: bool = False, store=None) -> None:
        super().__init__("http://hook.test/send", store=store)
        self.fail = fail
        self.payloads: list[dict] = []

    def deliver(self, payload: dict) -> None:
        self.payloads.append(payload)
        if self.fail:
            raise NotificationFailed("webhook down")


@pytest.fixture()
def settings(tmp_path):
    return make_settings(tmp_path)


@pytest.fixture()
def store(settings):
    ensure_schema(settings.db_path, timeout_sec=settings.sqlite_timeout_sec)
    out = SqliteStore(settings.db_path, timeout_sec=settings.sqlite_timeout_sec)
    seed(out)
    return out


@pytest.fixture()
def device(tmp_path):
    return LocalStorage(tmp_path / "devices" / "kiosk.json")


@pytest.fixture()
def notifier(store):
    return RecordingNotifier(store=store)


@pytest.fixture()
def service(store, settings, device, notifier):
    return DeliveryService(
        store,
        ObjectStorage(settings.upload_dir, settings.photo_bucket, settings.public_url),
        DeliveryMirror(device),
        notifier,
        settings,
    )


@pytest.fixture()
def porter(store):
    return CredentialResolver(store).resolve(PORTER_CPF, "1234")


@pytest.fixture()
def admin(store):
    return CredentialResolver(store).resolve(ADMIN_CPF, "admin-pass")


@pytest.fixture()
def photo():
    return PhotoUpload(content=JPEG, content_type="image/jpeg")
