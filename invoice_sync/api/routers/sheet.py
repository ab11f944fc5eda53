import uuid
from dataclasses import asdict
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from loguru import logger
from ..deps import get_current_user_id, get_invoice_store
from ...models.invoice import (
    CreateSheetRequest,
    SheetResponse,
    SheetUpdateRequest,
    SheetUpdateResponse,
    SheetVersionResponse,
)
from ...services.errors import StorageUnavailable
from ...services.sheet.reconcile import apply_sheet, build_sheet
from ...services.storage import InvoiceStoreBase

router = APIRouter(prefix="/sheets", tags=["sheets"])

# Store calls are blocking, so these handlers are plain functions and
# FastAPI runs them in its threadpool.


@router.post("", response_model=SheetResponse)
def create_sheet(
    req: CreateSheetRequest | None = None,
    user_id: str = Depends(get_current_user_id),
    store: InvoiceStoreBase = Depends(get_invoice_store),
):
    """Render the user's invoices as a new editable sheet"""
    title = (req or CreateSheetRequest()).title
    try:
        content = build_sheet(store, user_id)
        version = store.save_sheet_version(str(uuid.uuid4()), user_id, title, content)
    except StorageUnavailable:
        raise HTTPException(status_code=503, detail="Storage unavailable")

    return SheetResponse(**version.model_dump())


@router.get("/{sheet_id}", response_model=SheetResponse)
def get_sheet(
    sheet_id: str,
    user_id: str = Depends(get_current_user_id),
    store: InvoiceStoreBase = Depends(get_invoice_store),
):
    """Latest version of a sheet"""
    version = store.get_latest_sheet_version(sheet_id, user_id)
    if version is None:
        raise HTTPException(status_code=404, detail="Sheet not found")
    return SheetResponse(**version.model_dump())


@router.get("/{sheet_id}/versions")
def list_sheet_versions(
    sheet_id: str,
    user_id: str = Depends(get_current_user_id),
    store: InvoiceStoreBase = Depends(get_invoice_store),
):
    """All versions of a sheet, oldest first"""
    versions = store.list_sheet_versions(sheet_id, user_id)
    if not versions:
        raise HTTPException(status_code=404, detail="Sheet not found")
    return {
        "sheet_id": sheet_id,
        "versions": [
            SheetVersionResponse(version=number, content=v.content, created_at=v.created_at)
            for number, v in enumerate(versions, start=1)
        ],
    }


@router.put("/{sheet_id}", response_model=SheetUpdateResponse)
def update_sheet(
    sheet_id: str,
    req: SheetUpdateRequest,
    user_id: str = Depends(get_current_user_id),
    store: InvoiceStoreBase = Depends(get_invoice_store),
):
    """
    Apply an edited sheet to the user's invoices.

    Each row with an ID updates that invoice's changed fields. The response
    content is re-rendered from storage after the updates, and is saved as
    the sheet's next version. If storage fails part way, rows already written
    stay written and the previous version is returned with a 503.
    """
    previous = store.get_latest_sheet_version(sheet_id, user_id)
    if previous is None:
        raise HTTPException(status_code=404, detail="Sheet not found")

    try:
        result = apply_sheet(store, user_id, req.content)
        if result.applied:
            store.save_sheet_version(sheet_id, user_id, previous.title, result.content)
    except StorageUnavailable as e:
        logger.error("Sheet update failed", sheet_id=sheet_id, user_id=user_id, error=str(e))
        return JSONResponse(
            status_code=503,
            content={"detail": "Storage unavailable", "content": previous.content},
        )

    return SheetUpdateResponse(sheet_id=sheet_id, **asdict(result))
