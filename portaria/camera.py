"""Camera capture for the delivery photo.

The media stream is an exclusive device: it is opened inside :func:`acquire`
and stopped on every way out (capture done, cancel, error, teardown).
"""
from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional, Sequence

logger = logging.getLogger("portaria.camera")

PREFERRED_CONSTRAINTS: Dict[str, Any] = {
    "video": {
        "facing_mode": "environment",
        "width": {"ideal": 1280, "min": 640},
        "height": {"ideal": 720, "min": 480},
    }
}
FALLBACK_CONSTRAINTS: Dict[str, Any] = {"video": True}


class CameraError(Exception):
    message = "Erro ao acessar câmera"

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail or self.message)


class CameraPermissionDenied(CameraError):
    message = "Permissão da câmera negada. Permita o acesso nas configurações do navegador."


class CameraNotFound(CameraError):
    message = "Nenhuma câmera encontrada no dispositivo."


class CameraInUse(CameraError):
    message = "A câmera está sendo usada por outro aplicativo."


class CameraTimeout(CameraError):
    message = "Timeout ao carregar vídeo."


@dataclass
class PhotoUpload:
    content: bytes
    content_type: str = "image/jpeg"
    filename: str = "encomenda.jpg"

    def __bool__(self) -> bool:
        return bool(self.content)


class MediaStream:
    def read_frame(self, timeout: float) -> bytes:
        raise NotImplementedError

    def stop(self) -> None:
        raise NotImplementedError


class MediaDevice:
    def open(self, constraints: Dict[str, Any]) -> MediaStream:
        raise NotImplementedError


class CameraSession:
    def __init__(self, stream: MediaStream, constraints: Dict[str, Any]) -> None:
        self.stream = stream
        self.constraints = constraints
        self.released = False

    def read_frame(self, timeout: float) -> bytes:
        if self.released:
            raise CameraError("camera already released")
        return self.stream.read_frame(timeout)

    def release(self) -> None:
        if self.released:
            return
        self.released = True
        try:
            self.stream.stop()
        except Exception:
            logger.exception("Failed to stop camera stream")


def _open(device: MediaDevice, chain: Sequence[Dict[str, Any]]) -> CameraSession:
    last: Optional[CameraError] = None
    for constraints in chain:
        try:
            return CameraSession(device.open(constraints), constraints)
        except (CameraPermissionDenied, CameraInUse):
            # a looser constraint set cannot fix these
            raise
        except CameraError as exc:
            logger.info("Camera constraints %s rejected: %s", constraints, exc)
            last = exc
    raise last or CameraNotFound()


@contextmanager
def acquire(
    device: MediaDevice,
    constraints: Sequence[Dict[str, Any]] = (PREFERRED_CONSTRAINTS, FALLBACK_CONSTRAINTS),
) -> Iterator[CameraSession]:
    session = _open(device, constraints)
    try:
        yield session
    finally:
        session.release()


def capture_photo(device: MediaDevice, *, timeout: float = 10.0, retries: int = 1) -> PhotoUpload:
    attempt = 0
    while True:
        try:
            with acquire(device) as cam:
                frame = cam.read_frame(timeout)
        except CameraTimeout:
            if attempt >= retries:
                raise
            attempt += 1
            logger.info("Camera timed out, retrying (%s/%s)", attempt, retries)
            continue
        if not frame:
            raise CameraError("empty frame")
        return PhotoUpload(content=frame, filename=f"encomenda-{int(time.time() * 1000)}.jpg")
