from __future__ import annotations

import pytest

from portaria.config import load_settings


def test_defaults_under_data_dir(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("PORTARIA_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("PORTARIA_SECRET_KEY", "")
    monkeypatch.delenv("PORTARIA_DB_PATH", raising=False)
    monkeypatch.delenv("PORTARIA_UPLOAD_DIR", raising=False)
    monkeypatch.setenv("PORTARIA_REPORT_LIMIT", "not-a-number")

    s = load_settings()
    assert s.db_path == tmp_path / "portaria.db"
    assert s.upload_dir == tmp_path / "uploads"
    assert s.devices_dir == tmp_path / "devices"
    assert s.report_limit == 100
    assert len(s.secret_key) >= 32
    assert "image/jpeg" in s.allowed_photo_types


def test_weak_secret_rejected(monkeypatch) -> None:
    monkeypatch.delenv("ALLOW_INSECURE_DEFAULTS", raising=False)
    monkeypatch.setenv("PORTARIA_SECRET_KEY", "change-me")
    with pytest.raises(RuntimeError):
        load_settings()


def test_short_secret_allowed_with_insecure_defaults(monkeypatch) -> None:
    monkeypatch.setenv("ALLOW_INSECURE_DEFAULTS", "1")
    monkeypatch.setenv("PORTARIA_SECRET_KEY", "short")
    assert load_settings().secret_key == "short"


def test_timeouts_are_clamped(monkeypatch) -> None:
    monkeypatch.setenv("PORTARIA_SECRET_KEY", "s" * 32)
    monkeypatch.setenv("PORTARIA_WEBHOOK_TIMEOUT_SEC", "999")
    assert load_settings().webhook_timeout_sec == 30.0
