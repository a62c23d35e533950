from __future__ import annotations

import io
import json
import urllib.error

import pytest

from portaria import notify
from portaria.errors import NotificationFailed
from portaria.notify import (
    KIND_DELIVERY,
    KIND_WITHDRAWAL,
    Notifier,
    render_delivery_message,
    render_withdrawal_message,
)


class FakeResponse(io.BytesIO):
    def __init__(self, body: bytes, status: int = 200):
        super().__init__(body)
        self.status = status

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False


def test_delivery_message_contains_code_and_notes() -> None:
    msg = render_delivery_message(
        condominium="Residencial Aurora",
        resident="Ana",
        code="12345",
        notes="fragile",
        date="01/02/2024",
        time="10:30",
    )
    assert "*Residencial Aurora*" in msg
    assert "Olá *Ana*" in msg
    assert "*12345*" in msg
    assert "📝 Observações: fragile" in msg


def test_delivery_message_without_notes_and_default_name() -> None:
    msg = render_delivery_message(condominium="", resident="Ana", code="1", notes="  ", date="d", time="t")
    assert "Condomínio" in msg
    assert "Observações" not in msg


def test_withdrawal_message() -> None:
    msg = render_withdrawal_message(
        condominium="Aurora", resident="Ana", code="12345", description="picked up by spouse", date="d", time="t"
    )
    assert "Encomenda Retirada" in msg
    assert "picked up by spouse" in msg


def test_payload_shape() -> None:
    n = Notifier("http://hook")
    p = n.build_payload("55119", "oi", KIND_DELIVERY, {"code": "1"})
    assert set(p) == {"to", "message", "type", "timestamp", "deliveryData"}
    w = n.build_payload("55119", "oi", KIND_WITHDRAWAL, {"code": "1"})
    assert w["withdrawalData"] == {"code": "1"}


def test_post_json_success_requires_json_body(monkeypatch) -> None:
    seen = {}

    def fake_urlopen(req, timeout):
        seen["body"] = json.loads(req.data.decode("utf-8"))
        seen["timeout"] = timeout
        return FakeResponse(b'{"success": true}')

    monkeypatch.setattr(notify.urllib.request, "urlopen", fake_urlopen)
    assert notify._post_json("http://hook", {"to": "1"}, timeout=2.0) == (True, "")
    assert seen == {"body": {"to": "1"}, "timeout": 2.0}

    monkeypatch.setattr(notify.urllib.request, "urlopen", lambda req, timeout: FakeResponse(b"<html>"))
    ok, err = notify._post_json("http://hook", {})
    assert not ok and "non-JSON" in err


def test_post_json_network_error(monkeypatch) -> None:
    def boom(req, timeout):
        raise urllib.error.URLError("refused")

    monkeypatch.setattr(notify.urllib.request, "urlopen", boom)
    ok, err = notify._post_json("http://hook", {})
    assert not ok
    assert "refused" in err


def test_deliver_without_url_fails() -> None:
    with pytest.raises(NotificationFailed):
        Notifier("").deliver({"to": "1"})


def test_send_logs_every_attempt(store, monkeypatch) -> None:
    results = iter([(True, ""), (False, "status 500")])
    calls = []

    def fake_post(url, payload, *, timeout):
        calls.append(payload)
        return next(results)

    monkeypatch.setattr(notify, "_post_json", fake_post)
    n = Notifier("http://hook", store=store)
    assert n.send("5511", "oi", KIND_DELIVERY, {"code": "1"}) is True
    assert n.send("5511", "tchau", KIND_WITHDRAWAL) is False
    assert len(calls) == 2

    log = store.table("notification_log").order("id").execute()
    assert [(r["kind"], r["status"]) for r in log] == [("delivery", "SENT"), ("withdrawal", "ERROR")]
    assert log[1]["error"] == "status 500"
    assert json.loads(log[0]["payload_json"])["deliveryData"] == {"code": "1"}
