# backend/wvpdb/main.py
import logging
import os
from typing import List

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .apps.compliance.router import router as compliance_router
from .apps.reminders.router import router as reminders_router
from .apps.training.router import router as training_router

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

DEFAULT_ORIGINS = ["http://localhost:3000", "http://127.0.0.1:3000"]


def parse_origins(raw: str) -> List[str]:
    """Comma-separated CORS_ALLOWED_ORIGINS; empty input means the local dev frontend."""
    origins = [item.strip() for item in (raw or "").split(",") if item.strip()]
    return origins or list(DEFAULT_ORIGINS)


def create_app() -> FastAPI:
    application = FastAPI(title="WVPP Compliance API", version="1.0.0")

    origins = parse_origins(os.getenv("CORS_ALLOWED_ORIGINS", ""))
    application.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        # Browsers reject credentialed requests against a wildcard origin.
        allow_credentials="*" not in origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @application.get("/health", tags=["health"])
    def health():
        return {"status": "ok"}

    for router in (training_router, compliance_router, reminders_router):
        application.include_router(router)
    return application


app = create_app()
