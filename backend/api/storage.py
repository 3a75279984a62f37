"""Whole-document storage endpoints."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from backend.api.deps import get_documents, require_admin
from backend.schemas.app import AppDocument
from backend.services.admin_service import validate_sidebar
from backend.services.document_service import DocumentService

router = APIRouter(prefix="/api/storage", tags=["storage"], dependencies=[Depends(require_admin)])


@router.get("", response_model=AppDocument, response_model_by_alias=True)
async def read_document(
    documents: Annotated[DocumentService, Depends(get_documents)],
) -> AppDocument:
    """Return the whole application document."""
    return documents.document


@router.post("", response_model=AppDocument, response_model_by_alias=True)
async def write_document(
    body: AppDocument,
    documents: Annotated[DocumentService, Depends(get_documents)],
) -> AppDocument:
    """Overwrite the whole application document."""
    validate_sidebar(body.sidebar)
    return await documents.replace(body)
