from __future__ import annotations

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from . import __version__
from .audit import log_event
from .paths import ensure_dirs, get_paths
from .wallet.api import router as wallet_router

app = FastAPI(title="Legacy Wallet Server", version=__version__)

app.include_router(wallet_router, prefix="/api")


@app.get("/api/health")
def health() -> JSONResponse:
    return JSONResponse({"status": "ok", "version": __version__})


@app.on_event("startup")
def on_startup() -> None:
    paths = get_paths()
    ensure_dirs(paths)

    audit_log = paths.data_dir / "audit_log.jsonl"
    first_start = not audit_log.exists()
    if first_start:
        log_event(
            audit_log,
            event_type="first_start",
            details={
                "app_dir": str(paths.app_dir),
                "data_dir": str(paths.data_dir),
                "temp_dir": str(paths.temp_dir),
            },
        )
