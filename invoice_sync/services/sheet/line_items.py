"""
Line-item normalization for the sheet's ``Line Items`` cell.

A cell holds a JSON array of objects with ``description``, ``quantity``,
``unitPrice`` and ``total`` keys. Decoding is lenient per item: one malformed
item is dropped and the rest are kept. A blob that is not a JSON array at all
is invalid as a whole.
"""

import json
from typing import Any, Iterable, Optional
from loguru import logger
from pydantic import ValidationError
from ..errors import InvalidLineItem
from ..invoice_types import LineItem


def encode(items: Iterable[LineItem]) -> str:
    """Serialize line items as a compact JSON array (absent keys omitted)."""
    return json.dumps(
        [item.model_dump(by_alias=True, exclude_none=True) for item in items],
        separators=(",", ":"),
        ensure_ascii=False,
    )


def validate_items(raw_items: list[Any]) -> tuple[list[LineItem], list[InvalidLineItem]]:
    """Validate raw item objects, dropping the ones with the wrong shape."""
    items: list[LineItem] = []
    errors: list[InvalidLineItem] = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            errors.append(InvalidLineItem(index, f"expected an object, got {type(raw).__name__}"))
            continue
        try:
            items.append(LineItem.model_validate(raw))
        except ValidationError as e:
            fields = ", ".join(str(err["loc"][0]) for err in e.errors() if err["loc"])
            errors.append(InvalidLineItem(index, f"invalid fields: {fields or 'unknown'}"))
    return items, errors


def decode(blob: Optional[str]) -> Optional[list[LineItem]]:
    """
    Parse a line-items blob.

    Returns None when the blob is empty, is not JSON, or is not a JSON array;
    callers treat that as "field absent". Otherwise returns the valid items,
    logging and dropping any that fail shape validation.
    """
    if blob is None or not blob.strip():
        return None

    try:
        parsed = json.loads(blob)
    except json.JSONDecodeError as e:
        logger.warning("Line items are not valid JSON", error=str(e))
        return None

    if not isinstance(parsed, list):
        logger.warning("Line items must be an array", got=type(parsed).__name__)
        return None

    items, errors = validate_items(parsed)
    for error in errors:
        logger.warning(f"Dropping invalid line item: {error}")
    return items

