"""
Heuristic invoice/receipt classification of OCR text.

Used to refuse uploads that are readable but are not invoices (receipts,
payment confirmations) before anything is stored. The question asked is
"does this document still require payment?"
"""

from dataclasses import dataclass
from typing import Literal, Optional
from loguru import logger

DocumentType = Literal["receipt", "invoice", "unknown"]


@dataclass(frozen=True)
class Cue:
    """A weighted signal: fires when any phrase is present, the extra
    condition (if any) holds, and none of the ``unless`` phrases appear."""

    weight: int
    phrases: tuple[str, ...]
    with_any: tuple[str, ...] = ()
    unless: tuple[str, ...] = ()

    def matches(self, text: str) -> bool:
        if not any(p in text for p in self.phrases):
            return False
        if self.with_any and not any(p in text for p in self.with_any):
            return False
        return not any(p in text for p in self.unless)


# Obligation cues (+): payment is still owed
OBLIGATION_CUES = (
    Cue(3, ("amount due",), unless=("$0.00",)),
    Cue(3, ("balance due",), unless=("$0.00", "balance due 0")),
    Cue(3, ("total due",), unless=("$0.00",)),
    Cue(3, ("please remit", "please pay", "payment required")),
    Cue(4, ("due date", "payment due")),
    Cue(4, ("net 30", "net 60", "due upon receipt", "payment terms")),
    Cue(3, ("remit to", "remit payment", "make payment to")),
    Cue(3, ("bank details", "bsb", "account number", "eft details")),
    Cue(3, ("wire transfer", "bpay", "direct deposit")),
    Cue(2, ("invoice",), unless=("receipt",)),
    Cue(2, ("invoice number", "invoice #", "invoice no", "invoice id")),
)

# Confirmation cues (-): payment already happened
CONFIRMATION_CUES = (
    Cue(-3, ("thank you for your payment", "payment received")),
    Cue(-3, ("amount paid", "paid on", "date paid")),
    Cue(-3, ("payment history", "transaction history")),
    Cue(-3, ("your order is complete", "we appreciate your business")),
    Cue(-4, ("$0.00", "balance due 0", "balance: $0.00", "no payment required")),
    Cue(-4, ("balance due: $0.00", "amount due: $0.00")),
    Cue(-3, ("visa",), with_any=("****", "ending")),
    Cue(-3, ("mastercard",), with_any=("****", "ending")),
    Cue(-3, ("direct debit", "auto-recharge", "autopay")),
    Cue(-3, ("paypal", "stripe", "square")),
    Cue(-2, ("receipt",), unless=("invoice",)),
    Cue(-2, ("receipt number", "receipt #", "receipt no")),
    Cue(-2, ("tax invoice / receipt", "tax receipt")),
)


def score_document(text: str) -> int:
    t = text.lower()
    return sum(cue.weight for cue in (*OBLIGATION_CUES, *CONFIRMATION_CUES) if cue.matches(t))


def classify_document_type(text: Optional[str]) -> DocumentType:
    """
    Classify OCR text as an invoice (score > 2), a receipt (score < -2) or unknown.

    Args:
        text: Full OCR text content from document

    Returns:
        "receipt", "invoice", or "unknown"
    """
    if not text:
        return "unknown"

    score = score_document(text)
    logger.debug("Document obligation scoring", score=score)

    if score > 2:
        return "invoice"
    elif score < -2:
        return "receipt"
    else:
        return "unknown"
