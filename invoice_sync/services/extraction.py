import base64
import json
from typing import Any, Literal
from azure.ai.documentintelligence import DocumentIntelligenceClient
from azure.core.credentials import AzureKeyCredential
from azure.core.exceptions import AzureError
from fastapi.concurrency import run_in_threadpool
from loguru import logger
from openai import AsyncOpenAI, OpenAIError
from pydantic import BaseModel, ValidationError
from .document_classifier import classify_document_type
from .errors import ExtractionFailure, ExtractionShapeError, NotAnInvoice
from .invoice_types import ExtractedInvoice
from .sheet.field_mapper import parse_money
from .sheet.line_items import validate_items

Provider = Literal["llm", "document-intelligence", "mock"]

DEFAULT_LLM_MODEL = "gpt-4o-mini"
OPTIONAL_FIELDS = ("customerName", "dueDate")

EXTRACTION_SYSTEM_PROMPT = """You extract structured data from invoice documents.
Return a single JSON object with exactly these keys:
- isInvoice: boolean, false if the document is not an invoice (receipt, quote, letter, ...)
- invoiceNumber: string, the invoice number as printed
- vendorName: string, the company issuing the invoice
- customerName: string or null, the customer / bill-to name
- invoiceDate: string, issue date as YYYY-MM-DD
- dueDate: string or null, payment due date as YYYY-MM-DD
- amount: integer, invoice total in the smallest currency unit (cents)
- currency: string, three-letter ISO currency code
- lineItems: array of {description: string, quantity: number, unitPrice: integer (cents), total: integer (cents)}
Do not add any other keys or commentary."""


class ExtractionConfig(BaseModel):
    """Everything an extraction call needs, passed explicitly per call."""

    provider: Provider = "mock"
    llm_base_url: str | None = None
    llm_api_key: str | None = None
    llm_model: str = DEFAULT_LLM_MODEL
    az_di_endpoint: str | None = None
    az_di_api_key: str | None = None
    timeout_seconds: float = 60.0
    poll_interval_seconds: float = 1.0  # Document Intelligence analyze polling

    @classmethod
    def from_settings(cls, settings) -> "ExtractionConfig":
        """LLM when an API key is set, else Document Intelligence when configured, else mock."""
        if settings.llm_api_key:
            provider = "llm"
        elif settings.az_di_endpoint and settings.az_di_api_key:
            provider = "document-intelligence"
        else:
            provider = "mock"

        return cls(
            provider=provider,
            llm_base_url=settings.llm_base_url,
            llm_api_key=settings.llm_api_key,
            llm_model=settings.llm_deployment or DEFAULT_LLM_MODEL,
            az_di_endpoint=settings.az_di_endpoint,
            az_di_api_key=settings.az_di_api_key,
            timeout_seconds=settings.llm_timeout_seconds,
        )


def validate_extraction(raw: Any) -> ExtractedInvoice:
    """
    Check raw backend output against the invoice field shapes.

    Line items with the wrong shape are dropped one by one, and a blank or
    unreadable customerName or dueDate is treated as absent. Anything else
    that does not fit raises ExtractionShapeError.
    """
    if not isinstance(raw, dict):
        raise ExtractionShapeError([f"expected a JSON object, got {type(raw).__name__}"])

    # null means "use the default" for fields that have one
    data = {
        key: value for key, value in raw.items()
        if not (value is None and key in ("currency", "lineItems", "isInvoice", "confidence"))
    }

    raw_items = data.get("lineItems")
    if raw_items is not None:
        if not isinstance(raw_items, list):
            raise ExtractionShapeError(["lineItems must be an array"])
        items, errors = validate_items(raw_items)
        for error in errors:
            logger.warning(f"Dropping invalid extracted line item: {error}")
        data["lineItems"] = items

    try:
        return ExtractedInvoice.model_validate(data)
    except ValidationError as e:
        problems = e.errors()

    # Optional fields the backend got wrong are dropped, not fatal
    bad_optional = {err["loc"][0] for err in problems if err["loc"] and err["loc"][0] in OPTIONAL_FIELDS}
    if bad_optional and len(bad_optional) == len({err["loc"][0] for err in problems if err["loc"]}):
        for key in sorted(bad_optional):
            logger.warning("Ignoring unreadable optional field", field=key, value=str(data.get(key)))
            data[key] = None
        return ExtractedInvoice.model_validate(data)

    raise ExtractionShapeError(
        [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in problems]
    )


async def extract_invoice_fields(content: bytes, content_type: str, config: ExtractionConfig) -> ExtractedInvoice:
    """
    Extract and validate invoice fields from a document.

    Raises:
        NotAnInvoice: the backend read the document and it is not an invoice
        ExtractionFailure: backend error, or output that fails validation
    """
    logger.info(
        "Extracting invoice fields",
        provider=config.provider,
        content_type=content_type,
        size_bytes=len(content),
    )

    if config.provider == "llm":
        raw = await _extract_with_llm(content, content_type, config)
    elif config.provider == "document-intelligence":
        raw = await _extract_with_document_intelligence(content, config)
    else:
        raw = _mock_extraction(content)

    if isinstance(raw, dict) and raw.get("isInvoice") is False:
        logger.warning("Document is not an invoice", provider=config.provider)
        raise NotAnInvoice("File is not an invoice")

    extracted = validate_extraction(raw)
    logger.info(
        "Extracted invoice fields",
        provider=config.provider,
        vendor=extracted.vendor_name,
        invoice_number=extracted.invoice_number,
        confidence=extracted.confidence,
    )
    return extracted


async def _extract_with_llm(content: bytes, content_type: str, config: ExtractionConfig) -> dict:
    if not config.llm_api_key:
        raise ExtractionFailure("LLM extraction is not configured (set LLM_API_KEY)")

    data_url = f"data:{content_type};base64,{base64.b64encode(content).decode('ascii')}"
    if content_type.startswith("image/"):
        document_part = {"type": "image_url", "image_url": {"url": data_url}}
    else:
        document_part = {"type": "file", "file": {"filename": "invoice.pdf", "file_data": data_url}}

    try:
        async with AsyncOpenAI(
            base_url=config.llm_base_url,
            api_key=config.llm_api_key,
            timeout=config.timeout_seconds,
        ) as client:
            response = await client.chat.completions.create(
                model=config.llm_model,
                temperature=0,
                response_format={"type": "json_object"},
                messages=[
                    {"role": "system", "content": EXTRACTION_SYSTEM_PROMPT},
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": "Extract the invoice fields from this document."},
                            document_part,
                        ],
                    },
                ],
            )
    except OpenAIError as e:
        logger.error(f"LLM extraction failed: {str(e)}")
        raise ExtractionFailure(f"Invoice extraction failed: {str(e)}") from e

    if not response.choices or not response.choices[0].message.content:
        raise ExtractionShapeError(["model returned no content"])

    try:
        raw = json.loads(response.choices[0].message.content)
    except json.JSONDecodeError as e:
        raise ExtractionShapeError([f"model output is not JSON: {e}"]) from e

    if isinstance(raw, dict):
        raw.setdefault("confidence", 1.0)
    return raw


def _to_minor_units(value: Any) -> int | None:
    """Document Intelligence reports money in major units, sometimes as text"""
    if value is None:
        return None
    try:
        return parse_money(str(value))
    except ValueError:
        logger.warning(f"Could not parse amount: {value}")
        return None


def _field_text(fields: dict, name: str) -> str | None:
    field = fields.get(name) or {}
    value = field.get("valueString") or field.get("content")
    return str(value) if value else None


def _field_date(fields: dict, name: str) -> str | None:
    field = fields.get(name) or {}
    return field.get("valueDate") or field.get("content")


def _field_money(fields: dict, name: str) -> tuple[int | None, str | None]:
    """(minor units, currency code) from a currency field"""
    field = fields.get(name) or {}
    currency = field.get("valueCurrency") or {}
    if currency.get("amount") is not None:
        return _to_minor_units(currency["amount"]), currency.get("currencyCode")
    return _to_minor_units(field.get("content")), None


def _field_number(fields: dict, name: str) -> int | float | None:
    value = (fields.get(name) or {}).get("valueNumber")
    if value is not None and float(value).is_integer():
        return int(value)
    return value


def _analyze_invoice(content: bytes, config: ExtractionConfig):
    """Run the prebuilt-invoice model and wait for the result (blocking)"""
    with DocumentIntelligenceClient(
        endpoint=config.az_di_endpoint,
        credential=AzureKeyCredential(config.az_di_api_key),
    ) as client:
        logger.info(f"Analyzing document of size {len(content)} bytes")
        poller = client.begin_analyze_document(
            "prebuilt-invoice",
            body=content,
            content_type="application/octet-stream",
            polling_interval=config.poll_interval_seconds,
        )
        poller.wait(timeout=config.timeout_seconds)
        if not poller.done():
            raise ExtractionFailure("Document analysis timed out")
        return poller.result()


async def _extract_with_document_intelligence(content: bytes, config: ExtractionConfig) -> dict:
    endpoint = config.az_di_endpoint
    logger.info(
        "Using Azure Document Intelligence for invoice extraction",
        endpoint=endpoint[:50] + "..." if len(endpoint) > 50 else endpoint
    )

    try:
        result = await run_in_threadpool(_analyze_invoice, content, config)
    except AzureError as e:
        logger.error(f"Azure DI extraction failed: {str(e)}")
        raise ExtractionFailure(f"Invoice extraction failed: {str(e)}") from e

    # SDK models are also mappings over the service's JSON, so fields read by their wire names
    ocr_content = result.get("content") or ""
    documents = result.get("documents") or []
    if not documents:
        # Readable document, but no invoice structure in it
        logger.warning("Azure DI prebuilt-invoice model found no structured invoice data")
        return {"isInvoice": False, "content": ocr_content, "confidence": 0.0}

    doc = documents[0]
    fields = doc.get("fields") or {}

    amount, currency_code = _field_money(fields, "InvoiceTotal")

    line_items = []
    items_field = fields.get("Items") or {}
    for item in items_field.get("valueArray") or []:
        item_fields = item.get("valueObject") or {}
        unit_price, _ = _field_money(item_fields, "UnitPrice")
        total, _ = _field_money(item_fields, "Amount")
        line_items.append({
            "description": _field_text(item_fields, "Description"),
            "quantity": _field_number(item_fields, "Quantity"),
            "unitPrice": unit_price,
            "total": total,
        })

    raw = {
        "invoiceNumber": _field_text(fields, "InvoiceId"),
        "vendorName": _field_text(fields, "VendorName"),
        "customerName": _field_text(fields, "CustomerName") or _field_text(fields, "BillingAddressRecipient"),
        "invoiceDate": _field_date(fields, "InvoiceDate"),
        "dueDate": _field_date(fields, "DueDate"),
        "amount": amount,
        "currency": _field_text(fields, "CurrencyCode") or currency_code,
        "lineItems": [{k: v for k, v in item.items() if v is not None} for item in line_items],
        "isInvoice": classify_document_type(ocr_content) != "receipt",
        "confidence": doc.get("confidence") or 0.0,
        "content": ocr_content,
    }
    return {k: v for k, v in raw.items() if v is not None}


def _mock_extraction(content: bytes) -> dict:
    logger.warning(
        "No extraction backend configured - using MOCK data. "
        "Set LLM_API_KEY, or AZ_DI_ENDPOINT and AZ_DI_API_KEY, to use real extraction."
    )

    if not content:
        raise ExtractionFailure("Cannot extract fields from an empty document")

    ocr_content = (
        "INVOICE\nContoso Pty Ltd\nInvoice #: INV-10023\nBill To: Fabrikam Inc\n"
        "Consulting services 1 x AUD 385.00\nTotal: AUD 385.00\nDue Date: 2025-10-15"
    )
    return {
        "invoiceNumber": "INV-10023",
        "vendorName": "Contoso Pty Ltd",
        "customerName": "Fabrikam Inc",
        "invoiceDate": "2025-09-30",
        "dueDate": "2025-10-15",
        "amount": 38500,
        "currency": "AUD",
        "lineItems": [
            {"description": "Consulting services", "quantity": 1, "unitPrice": 38500, "total": 38500},
        ],
        "isInvoice": classify_document_type(ocr_content) != "receipt",
        "confidence": 0.92,
        "content": ocr_content,
    }
