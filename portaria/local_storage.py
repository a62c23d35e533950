from __future__ import annotations

import json
import logging
import os
import re
import tempfile
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger("portaria.local-storage")

SESSION_KEY = "auth_user"
IDENTIFIER_KEY = "current_user_identifier"
DELIVERIES_KEY = "deliveries"

_DEVICE_RE = re.compile(r"[^0-9A-Za-z_-]")
_LOCKS: Dict[str, threading.Lock] = {}
_LOCKS_GUARD = threading.Lock()


def _lock_for(path: Path) -> threading.Lock:
    key = str(path.resolve())
    with _LOCKS_GUARD:
        lock = _LOCKS.get(key)
        if lock is None:
            lock = threading.Lock()
            _LOCKS[key] = lock
        return lock


def clean_device_id(device_id: str) -> str:
    clean = _DEVICE_RE.sub("", str(device_id or "").strip())[:64]
    if not clean:
        raise ValueError("device id is required")
    return clean


class LocalStorage:
    """Durable per-device key/value storage; each value is JSON."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = _lock_for(self.path)

    @classmethod
    def for_device(cls, devices_dir: Path, device_id: str) -> "LocalStorage":
        return cls(Path(devices_dir) / f"{clean_device_id(device_id)}.json")

    def _read_all(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.exception("Failed to read device storage: %s", self.path)
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=".storage-", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, ensure_ascii=False)
            os.replace(tmp, self.path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def get(self, key: str, default: Optional[Any] = None) -> Any:
        with self._lock:
            return self._read_all().get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            data = self._read_all()
            data[key] = value
            self._write_all(data)

    def remove(self, key: str) -> None:
        with self._lock:
            data = self._read_all()
            if key in data:
                data.pop(key)
                self._write_all(data)

    def update(self, key: str, fn: Callable[[Any], Any], default: Optional[Any] = None) -> Any:
        """Read-modify-write one key under the file lock."""
        with self._lock:
            data = self._read_all()
            value = fn(data.get(key, default))
            data[key] = value
            self._write_all(data)
            return value
