from __future__ import annotations

import logging
import os

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from portaria.config import Settings, load_settings
from portaria.db import ensure_schema
from portaria.errors import PortariaError
from portaria.notify import Notifier
from portaria.object_storage import ObjectStorage
from portaria.routers import admin, auth, deliveries, reports, residents
from portaria.store import SqliteStore

logger = logging.getLogger("portaria.app")


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or load_settings()
    app = FastAPI(title="Portaria", version="1.0.0")

    for path in (settings.data_dir, settings.upload_dir, settings.devices_dir, settings.db_path.parent):
        path.mkdir(parents=True, exist_ok=True)
    ensure_schema(settings.db_path, timeout_sec=settings.sqlite_timeout_sec)

    store = SqliteStore(settings.db_path, timeout_sec=settings.sqlite_timeout_sec)
    app.state.settings = settings
    app.state.store = store
    app.state.object_storage = ObjectStorage(settings.upload_dir, settings.photo_bucket, settings.public_url)
    app.state.notifier = Notifier(settings.webhook_url, timeout=settings.webhook_timeout_sec, store=store)

    if settings.public_url.startswith("/"):
        app.mount(settings.public_url, StaticFiles(directory=str(settings.upload_dir)), name="uploads")

    @app.exception_handler(PortariaError)
    async def portaria_error_handler(request: Request, exc: PortariaError):
        if exc.status_code >= 500:
            logger.warning("%s %s failed: %s", request.method, request.url.path, exc.description)
        return JSONResponse(status_code=exc.status_code, content=exc.as_payload())

    @app.get("/health")
    def health():
        return {"ok": True}

    app.include_router(auth.router)
    app.include_router(residents.router)
    app.include_router(deliveries.router)
    app.include_router(reports.router)
    app.include_router(admin.router)
    logger.info("Portaria ready (db=%s)", settings.db_path)
    return app


def run() -> None:
    uvicorn.run(
        "portaria.main:create_app",
        factory=True,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
    )
