from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from prospector.config import settings
from prospector.services.discovery.orchestrator import get_contact_repository
from prospector.services.repositories import ContactRepository, SqlContactRepository

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("")
async def health_check(repository: ContactRepository = Depends(get_contact_repository)):
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
        "repository": "database" if isinstance(repository, SqlContactRepository) else "memory",
    }
