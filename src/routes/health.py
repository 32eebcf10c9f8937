"""
Health and liveness endpoints
"""

import logging
from datetime import UTC, datetime

from fastapi import APIRouter, Depends

from src.config import Config
from src.db.record_store import RecordStore
from src.routes.payments import get_record_store

logger = logging.getLogger(__name__)
router = APIRouter(tags=["health"])


@router.get("/")
async def root():
    return {"service": "paybridge-api", "status": "running", "version": Config.APP_VERSION}


@router.get("/health")
async def health_check(store: RecordStore = Depends(get_record_store)):
    """
    Simple health check endpoint

    Always returns 200 while the process is serving. The record counts are
    in-memory only and reset on restart.
    """
    return {
        "status": "healthy",
        "app_env": Config.APP_ENV,
        "timestamp": datetime.now(UTC).isoformat(),
        **store.stats(),
    }
