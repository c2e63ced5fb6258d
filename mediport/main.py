"""
FastAPI application entrypoint.

Run locally:  PII_ENCRYPTION_KEY=<64 hex chars> uvicorn mediport.main:app --reload
"""

import logging

from fastapi import FastAPI

from mediport.api.routes import router
from mediport.config import settings
from mediport.models.database import Base, engine
from mediport.services.context import context_from_settings

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(levelname)s | %(name)s | %(message)s",
)

app = FastAPI(
    title="MediPort PII Protection API",
    description=(
        "Field-level encryption of patient and user PII: AES-256-GCM envelopes "
        "at rest, decryption on read with masked fallback, client-side "
        "encrypted profile updates, and audit logging of every decrypt."
    ),
    version="1.0.0",
)

app.include_router(router, prefix="/api/v1")


@app.on_event("startup")
def on_startup():
    # Fails closed: a missing or malformed key stops the process here.
    app.state.pii = context_from_settings(settings)
    Base.metadata.create_all(bind=engine)
