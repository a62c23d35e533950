from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parents[1]

_TRUTHY = {"1", "true", "yes", "on"}
_WEAK_SECRET_MARKERS = {
    "change-me",
    "change-this-secret",
    "portaria-dev-secret",
    "secret",
}


def _env_enabled(name: str, default: bool = False) -> bool:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return bool(default)
    return raw.lower() in _TRUTHY


def _allow_insecure_defaults() -> bool:
    return _env_enabled("ALLOW_INSECURE_DEFAULTS", False)


def _safe_int_env(name: str, default: int, minimum: int) -> int:
    raw = (os.getenv(name) or "").strip()
    try:
        value = int(raw) if raw else int(default)
    except ValueError:
        value = int(default)
    return max(minimum, value)


def _safe_float_env(name: str, default: float, lo: float, hi: float) -> float:
    raw = (os.getenv(name) or "").strip()
    try:
        value = float(raw) if raw else float(default)
    except ValueError:
        value = float(default)
    return max(lo, min(hi, value))


def _parse_csv_set(name: str, default_csv: str) -> frozenset[str]:
    raw = (os.getenv(name) or default_csv).strip()
    out: set[str] = set()
    for token in raw.split(","):
        item = str(token or "").strip().lower()
        if item:
            out.add(item)
    return frozenset(out)


def _require_secret(name: str, *, min_len: int = 16) -> str:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        generated = os.urandom(max(32, min_len)).hex()
        os.environ[name] = generated
        return generated
    if _allow_insecure_defaults():
        return raw
    if raw.lower() in _WEAK_SECRET_MARKERS:
        raise RuntimeError(f"{name} uses an insecure default-like value")
    if len(raw) < min_len:
        raise RuntimeError(f"{name} must be at least {min_len} characters")
    return raw


def _path_env(name: str, default: Path) -> Path:
    raw = (os.getenv(name) or "").strip()
    return Path(raw) if raw else default


@dataclass(frozen=True)
class Settings:
    data_dir: Path
    db_path: Path
    upload_dir: Path
    public_url: str
    photo_bucket: str
    webhook_url: str
    webhook_timeout_sec: float
    secret_key: str
    session_max_age: int
    cookie_secure: bool
    report_limit: int
    upload_max_bytes: int
    sqlite_timeout_sec: float
    condominium_name: str = ""
    allowed_photo_types: frozenset[str] = field(
        default_factory=lambda: frozenset({"image/jpeg", "image/png", "image/webp", "image/heic", "image/heif"})
    )

    @property
    def devices_dir(self) -> Path:
        return self.data_dir / "devices"


def load_settings() -> Settings:
    data_dir = _path_env("PORTARIA_DATA_DIR", BASE_DIR / "data")
    public_url = (os.getenv("PORTARIA_PUBLIC_URL") or "/uploads").strip().rstrip("/") or "/uploads"
    return Settings(
        data_dir=data_dir,
        db_path=_path_env("PORTARIA_DB_PATH", data_dir / "portaria.db"),
        upload_dir=_path_env("PORTARIA_UPLOAD_DIR", data_dir / "uploads"),
        public_url=public_url,
        photo_bucket=(os.getenv("PORTARIA_PHOTO_BUCKET") or "delivery-photos").strip() or "delivery-photos",
        webhook_url=(os.getenv("PORTARIA_WEBHOOK_URL") or "").strip(),
        webhook_timeout_sec=_safe_float_env("PORTARIA_WEBHOOK_TIMEOUT_SEC", 5.0, 1.0, 30.0),
        secret_key=_require_secret("PORTARIA_SECRET_KEY"),
        session_max_age=_safe_int_env("PORTARIA_SESSION_MAX_AGE", 43200, 60),
        cookie_secure=_env_enabled("PORTARIA_COOKIE_SECURE", False),
        report_limit=_safe_int_env("PORTARIA_REPORT_LIMIT", 100, 1),
        upload_max_bytes=_safe_int_env("PORTARIA_UPLOAD_MAX_BYTES", 5 * 1024 * 1024, 64 * 1024),
        sqlite_timeout_sec=_safe_float_env("PORTARIA_SQLITE_TIMEOUT_SEC", 30.0, 1.0, 60.0),
        condominium_name=(os.getenv("PORTARIA_CONDOMINIUM_NAME") or "").strip(),
        allowed_photo_types=_parse_csv_set(
            "PORTARIA_UPLOAD_ALLOWED_MIME",
            "image/jpeg,image/png,image/webp,image/heic,image/heif",
        ),
    )
