from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from jinja2 import Environment, StrictUndefined

from portaria.errors import NotificationFailed, StoreError
from portaria.store import RemoteStore

logger = logging.getLogger("portaria.notify")

KIND_DELIVERY = "delivery"
KIND_WITHDRAWAL = "withdrawal"

_env = Environment(autoescape=False, undefined=StrictUndefined, keep_trailing_newline=False)

DELIVERY_TEMPLATE = _env.from_string(
    "🏢 *{{ condominium }}*\n\n"
    "📦 *Nova Encomenda Chegou!*\n\n"
    "Olá *{{ resident }}*, você tem uma nova encomenda!\n\n"
    "📅 Data: {{ date }}\n"
    "⏰ Hora: {{ time }}\n"
    "🔑 Código de retirada: *{{ code }}*"
    "{% if notes %}\n📝 Observações: {{ notes }}\n{% endif %}\n"
    "Para retirar, apresente este código na portaria.\n\n"
    "Não responda esta mensagem, este é um atendimento automático."
)

WITHDRAWAL_TEMPLATE = _env.from_string(
    "🏢 *{{ condominium }}*\n\n"
    "✅ *Encomenda Retirada*\n\n"
    "Olá *{{ resident }}*, sua encomenda foi retirada com sucesso!\n\n"
    "📅 Data: {{ date }}\n"
    "⏰ Hora: {{ time }}\n"
    "🔑 Código: {{ code }}\n"
    "📝 {{ description }}\n\n"
    "Não responda esta mensagem, este é um atendimento automático."
)


def render_delivery_message(*, condominium: str, resident: str, code: str, notes: str, date: str, time: str) -> str:
    return DELIVERY_TEMPLATE.render(
        condominium=condominium or "Condomínio",
        resident=resident,
        code=code,
        notes=(notes or "").strip(),
        date=date,
        time=time,
    )


def render_withdrawal_message(*, condominium: str, resident: str, code: str, description: str, date: str, time: str) -> str:
    return WITHDRAWAL_TEMPLATE.render(
        condominium=condominium or "Condomínio",
        resident=resident,
        code=code,
        description=(description or "").strip(),
        date=date,
        time=time,
    )


def local_date_time(ts: Optional[datetime] = None) -> tuple[str, str]:
    """dd/mm/yyyy and HH:MM, as the residents read them."""
    moment = (ts or datetime.now(timezone.utc)).astimezone()
    return moment.strftime("%d/%m/%Y"), moment.strftime("%H:%M")


def _post_json(url: str, payload: dict, *, timeout: float = 5.0) -> tuple[bool, str]:
    data = json.dumps(payload, ensure_ascii=False).encode("utf-8")
    req = urllib.request.Request(url, data=data, headers={"Content-Type": "application/json"}, method="POST")
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            status = int(getattr(resp, "status", 200))
            body = resp.read()
    except (urllib.error.URLError, OSError, ValueError) as exc:
        return False, str(exc)
    if not 200 <= status < 300:
        return False, f"webhook failed with status: {status}"
    try:
        json.loads(body.decode("utf-8") or "null")
    except ValueError as exc:
        return False, f"webhook returned a non-JSON body: {exc}"
    return True, ""


class Notifier:
    """Posts one webhook call per notification; never retries."""

    def __init__(self, webhook_url: str, *, timeout: float = 5.0, store: Optional[RemoteStore] = None) -> None:
        self.webhook_url = (webhook_url or "").strip()
        self.timeout = timeout
        self.store = store

    def build_payload(self, to: str, message: str, kind: str, metadata: Optional[Dict[str, Any]]) -> dict:
        payload: Dict[str, Any] = {
            "to": to,
            "message": message,
            "type": kind,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if metadata is not None:
            payload["deliveryData" if kind == KIND_DELIVERY else "withdrawalData"] = metadata
        return payload

    def deliver(self, payload: dict) -> None:
        if not self.webhook_url:
            raise NotificationFailed("PORTARIA_WEBHOOK_URL not configured")
        ok, err = _post_json(self.webhook_url, payload, timeout=self.timeout)
        if not ok:
            raise NotificationFailed(err)

    def send(self, to: str, message: str, kind: str, metadata: Optional[Dict[str, Any]] = None) -> bool:
        payload = self.build_payload(to, message, kind, metadata)
        try:
            self.deliver(payload)
        except NotificationFailed as exc:
            logger.warning("%s notification to %s failed: %s", kind, to, exc.description)
            self._log_attempt(kind, to, payload, error=exc.description)
            return False
        self._log_attempt(kind, to, payload)
        return True

    def _log_attempt(self, kind: str, recipient: str, payload: dict, error: Optional[str] = None) -> None:
        if self.store is None:
            return
        try:
            self.store.insert(
                "notification_log",
                {
                    "kind": kind,
                    "recipient": recipient or "",
                    "payload_json": json.dumps(payload, ensure_ascii=False),
                    "status": "ERROR" if error else "SENT",
                    "error": error,
                    "created_at": payload.get("timestamp"),
                },
            )
        except StoreError:
            logger.exception("Failed to record notification attempt")
