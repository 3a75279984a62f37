"""Liveness and data-file status."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from backend.api.deps import get_documents
from backend.services.document_service import DocumentService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: str
    version: str
    storage: str
    pages: int


@router.get("/api/health", response_model=HealthResponse)
async def health_check(
    documents: Annotated[DocumentService, Depends(get_documents)],
) -> HealthResponse:
    """Report whether the application document is readable."""
    storage_status = "ok"
    pages = 0
    try:
        pages = len(documents.document.pages)
    except (OSError, ValueError):
        logger.warning("Health check could not load the data file", exc_info=True)
        storage_status = "error"

    return HealthResponse(
        status="ok" if storage_status == "ok" else "degraded",
        version="0.1.0",
        storage=storage_status,
        pages=pages,
    )
