# backend/attestdb/main.py
import logging
import os
from typing import List

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import APP_VERSION
from .apps.audit.router import router as audit_router
from .apps.training.router import router as training_router
from .apps.evidence.router import router as evidence_router
from .apps.compliance.router import router as compliance_router
from .apps.compliance.worker import start_worker, stop_worker

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


def _allowed_origins() -> List[str]:
    """
    Parse CORS_ALLOWED_ORIGINS from env.

    Accepts comma-separated origins. If unset, defaults to local dev ports.
    """
    raw = os.getenv("CORS_ALLOWED_ORIGINS", "")
    if raw:
        origins = [origin.strip() for origin in raw.split(",") if origin.strip()]
        if origins:
            return origins
    return [
        "http://127.0.0.1:3000",
        "http://localhost:3000",
    ]


app = FastAPI(title="Attest Training API", version=APP_VERSION)
cors_origins = _allowed_origins()
allow_credentials = "*" not in cors_origins

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def _start_compliance_worker() -> None:
    start_worker()


@app.on_event("shutdown")
def _stop_compliance_worker() -> None:
    stop_worker()


@app.get("/", tags=["health"])
def read_root():
    return {"status": "ok", "message": "Attest training backend is running"}


@app.get("/health", tags=["health"])
def health():
    return {"status": "ok", "version": APP_VERSION}


app.include_router(training_router)
app.include_router(evidence_router)
app.include_router(compliance_router)
app.include_router(audit_router)
