from __future__ import annotations

import mimetypes
import urllib.parse
from pathlib import Path

from portaria.errors import StorageUploadFailed


def _safe_path(path: str) -> str:
    parts = [p for p in str(path or "").replace("\\", "/").split("/") if p and p not in (".", "..")]
    if not parts:
        raise StorageUploadFailed("caminho de arquivo vazio")
    return "/".join(parts)


class ObjectStorage:
    """Bucket on the local disk, published by the app under ``public_url``."""

    def __init__(self, root: Path, bucket: str, public_url: str) -> None:
        self.root = Path(root)
        self.bucket = bucket
        self.public_url_prefix = public_url.rstrip("/")

    def upload(self, path: str, content: bytes, content_type: str = "application/octet-stream") -> str:
        rel = _safe_path(path)
        ctype = (content_type or "").split(";")[0].strip().lower()
        if "/" not in ctype:
            raise StorageUploadFailed(f"tipo de conteúdo inválido: {content_type!r}")
        guessed, _ = mimetypes.guess_type(rel)
        if guessed and ctype != "application/octet-stream" and guessed != ctype:
            raise StorageUploadFailed(f"{rel} não corresponde a {ctype}")
        target = self.root / self.bucket / rel
        if target.exists():
            raise StorageUploadFailed("The resource already exists")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with target.open("xb") as fh:
                fh.write(content)
        except OSError as exc:
            raise StorageUploadFailed(str(exc)) from exc
        return rel

    def public_url(self, path: str) -> str:
        rel = _safe_path(path)
        return f"{self.public_url_prefix}/{urllib.parse.quote(self.bucket)}/{urllib.parse.quote(rel)}"
