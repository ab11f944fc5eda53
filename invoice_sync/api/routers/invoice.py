from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import Response
from loguru import logger
from ..deps import get_current_user_id, get_extraction_config, get_invoice_store
from ...core.config import settings
from ...models.invoice import InvoiceFileResponse, InvoiceResponse, UploadResponse
from ...services.errors import ExtractionFailure, NotAnInvoice, StorageUnavailable, UnsupportedUpload
from ...services.extraction import ExtractionConfig
from ...services.ingest import IngestResult, content_type_for, ingest_document, reextract_file
from ...services.storage import InvoiceStoreBase

router = APIRouter(prefix="/invoices", tags=["invoices"])

_OUTCOME_MESSAGES = {
    "created": "Invoice processed successfully",
    "duplicate_content": "File was already uploaded",
    "duplicate_signature": "Invoice already exists",
}


def _upload_response(result: IngestResult) -> UploadResponse:
    return UploadResponse(
        outcome=result.outcome,
        message=_OUTCOME_MESSAGES[result.outcome],
        file_id=result.file_id,
        invoice_id=result.invoice_id,
    )


def _raise_for_ingest_error(e: Exception):
    if isinstance(e, (UnsupportedUpload, NotAnInvoice)):
        raise HTTPException(status_code=400, detail=str(e))
    if isinstance(e, ExtractionFailure):
        raise HTTPException(status_code=502, detail=str(e))
    if isinstance(e, StorageUnavailable):
        raise HTTPException(status_code=503, detail="Storage unavailable")
    raise e


@router.post("/upload", response_model=UploadResponse)
async def upload(
    request: Request,
    file: UploadFile = File(None),
    user_id: str = Depends(get_current_user_id),
    store: InvoiceStoreBase = Depends(get_invoice_store),
    config: ExtractionConfig = Depends(get_extraction_config),
):
    """
    Upload an invoice document, extract it and store it.

    Accepts either:
    - multipart/form-data (file upload via form)
    - image/jpeg, image/png or application/pdf raw binary body
      (filename in the X-Filename header)

    Byte-identical re-uploads return the stored file without extracting again;
    a different file holding the same invoice returns the stored invoice.
    """
    if file:
        # Multipart form-data upload
        content = await file.read()
        title = file.filename or "upload"
        content_type = file.content_type
    else:
        # Raw binary body
        content = await request.body()
        if not content:
            raise HTTPException(status_code=422, detail="No file provided (either multipart or raw body)")
        title = request.headers.get("x-filename", "upload")
        content_type = request.headers.get("content-type")

    try:
        result = await ingest_document(
            store,
            user_id,
            title,
            content_type,
            content,
            config,
            max_bytes=settings.max_upload_bytes,
        )
    except (UnsupportedUpload, ExtractionFailure, StorageUnavailable) as e:
        logger.warning("Upload rejected", user_id=user_id, title=title, error=str(e))
        _raise_for_ingest_error(e)

    return _upload_response(result)


@router.get("")
async def list_invoices(
    user_id: str = Depends(get_current_user_id),
    store: InvoiceStoreBase = Depends(get_invoice_store),
):
    """List the user's invoices, newest first"""
    invoices = await run_in_threadpool(store.get_invoices_by_user_id, user_id)
    return {
        "total": len(invoices),
        "invoices": [InvoiceResponse.model_validate(inv.model_dump()) for inv in invoices],
    }


@router.get("/files")
async def list_files(
    user_id: str = Depends(get_current_user_id),
    store: InvoiceStoreBase = Depends(get_invoice_store),
):
    """List the user's uploaded invoice files (metadata only)"""
    files = await run_in_threadpool(store.list_invoice_files, user_id)
    return {"files": [InvoiceFileResponse.from_file(f) for f in files]}


@router.get("/files/{file_id}")
async def download_file(
    file_id: str,
    user_id: str = Depends(get_current_user_id),
    store: InvoiceStoreBase = Depends(get_invoice_store),
):
    """Download one of the user's files"""
    invoice_file = await run_in_threadpool(store.get_invoice_file, file_id, user_id)
    if invoice_file is None:
        raise HTTPException(status_code=404, detail="File not found")

    return Response(
        content=invoice_file.content,
        media_type=content_type_for(invoice_file),
        headers={"Content-Disposition": f'attachment; filename="{invoice_file.title}"'},
    )


@router.post("/files/{file_id}/extract", response_model=UploadResponse)
async def extract_file(
    file_id: str,
    user_id: str = Depends(get_current_user_id),
    store: InvoiceStoreBase = Depends(get_invoice_store),
    config: ExtractionConfig = Depends(get_extraction_config),
):
    """Re-run extraction on a stored file; never creates a duplicate invoice"""
    invoice_file = await run_in_threadpool(store.get_invoice_file, file_id, user_id)
    if invoice_file is None:
        raise HTTPException(status_code=404, detail="File not found")

    try:
        result = await reextract_file(store, user_id, invoice_file, config)
    except (ExtractionFailure, StorageUnavailable) as e:
        logger.warning("Re-extraction failed", user_id=user_id, file_id=file_id, error=str(e))
        _raise_for_ingest_error(e)

    return _upload_response(result)
