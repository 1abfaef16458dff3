from contextlib import asynccontextmanager
from datetime import date
from typing import Optional

import structlog
from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse
from motor.motor_asyncio import AsyncIOMotorDatabase
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from rentdesk.core.config import settings
from rentdesk.core.database import db_manager, get_database
from rentdesk.core.log_config import configure_logging
from rentdesk.models.documents import EmailStatus
from rentdesk.services.email_log import EMAIL_LOG_INDEXES, EmailLogService
from rentdesk.workers.tasks import monthly_summary_report

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Connect to Mongo on startup, close on shutdown"""
    configure_logging()
    logger.info("Starting report admin API...")

    await db_manager.initialize()
    await db_manager.create_indexes(EMAIL_LOG_INDEXES)
    health = await db_manager.health_check()
    if health["status"] != "healthy":
        raise RuntimeError(f"Database unhealthy: {health}")

    yield

    await db_manager.close()
    logger.info("Report admin API stopped")


app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions with proper logging"""
    logger.warning(
        "http_exception",
        status_code=exc.status_code,
        detail=exc.detail,
        path=request.url.path,
        method=request.method
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail}
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions"""
    logger.error(
        "unexpected_exception",
        error=str(exc),
        path=request.url.path,
        method=request.method,
        exc_info=True
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )


@app.get("/health")
async def health():
    db_health = await db_manager.health_check()
    status_code = 200 if db_health["status"] == "healthy" else 503
    return JSONResponse(status_code=status_code, content={"service": settings.APP_NAME, "database": db_health})


@app.get("/landlords/{landlord_id}/emails")
async def list_emails(
    landlord_id: str,
    status: Optional[EmailStatus] = None,
    limit: int = Query(50, ge=1, le=500),
    db: AsyncIOMotorDatabase = Depends(get_database),
):
    """Audit history for one landlord, newest first"""
    service = EmailLogService.from_database(db)
    entries = await service.get_history(
        landlord_id,
        status=status.value if status else None,
        limit=limit,
    )
    return {"landlord_id": landlord_id, "count": len(entries), "items": entries}


@app.post("/reports/monthly/run", status_code=202)
async def run_monthly_report(reference: Optional[date] = Query(None, alias="date")):
    """Enqueue a monthly report run; ``date`` picks the month after the one reported"""
    message = monthly_summary_report.send(reference.isoformat() if reference else None)
    logger.info("Monthly report enqueued", message_id=message.message_id, reference=str(reference) if reference else None)
    return {"queued": True, "message_id": message.message_id}


@app.get("/metrics")
async def metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
