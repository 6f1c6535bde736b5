"""Liveness and readiness endpoints.

``/health`` answers as long as the process is up. ``/health/ready`` also
probes the database and reports whether outbound mail is configured; only a
database failure makes the service not ready, since mail delivery is
best-effort.
"""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from claimflow.api.deps import get_db, get_settings_dep
from claimflow.core.config import Settings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

VERSION = "0.1.0"


def probe_database(db: Session) -> dict:
    try:
        db.execute(text("SELECT 1")).scalar()
    except SQLAlchemyError as e:
        logger.error("Readiness probe could not reach the database: %s", e)
        return {"status": "unhealthy", "error": str(e)}
    return {"status": "healthy"}


def mail_transport(settings: Settings) -> dict:
    if not settings.smtp_host:
        return {"status": "disabled"}
    check = {"status": "configured", "host": settings.smtp_host, "port": settings.smtp_port}
    if settings.notify_override_email:
        check["override"] = settings.notify_override_email
    return check


@router.get("/health")
async def health_check():
    return {"status": "healthy", "version": VERSION}


@router.get("/health/ready")
async def readiness_probe(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
):
    database = probe_database(db)
    ready = database["status"] == "healthy"
    return JSONResponse(
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "ready" if ready else "not_ready",
            "checks": {"database": database, "mail": mail_transport(settings)},
            "timestamp": datetime.utcnow().isoformat(),
        },
    )
