"""
Document type polarity.

An entry stores a positive magnitude plus a document type; its effect on the
account balance is the magnitude times the sign resolved here.
"""

import enum
import logging
from typing import Optional

from backoffice.app.core.config import settings
from backoffice.app.core.exceptions import UnknownDocumentTypeError
from backoffice.app.domain.ledger.money import Money

logger = logging.getLogger(__name__)


class DocumentType(str, enum.Enum):
    """Known ledger document types."""
    RECEIPT = "receipt"  # client paid in / operator credit position grows
    INVESTMENT = "investment"  # payment made to an operator
    ADJUST_UP = "adjust_up"
    ADJUST_DOWN = "adjust_down"


DOCUMENT_SIGNS = {
    DocumentType.RECEIPT.value: 1,
    DocumentType.INVESTMENT.value: -1,
    DocumentType.ADJUST_UP.value: 1,
    DocumentType.ADJUST_DOWN.value: -1,
}


def normalize_document_type(document_type: Optional[str]) -> str:
    return (document_type or "").strip().lower()


def resolve_sign(document_type: Optional[str], strict: Optional[bool] = None) -> int:
    """
    Map a document type to +1 or -1.

    Lookup is case-insensitive and ignores surrounding whitespace. Unknown
    types raise UnknownDocumentTypeError in strict mode; otherwise they
    resolve to +1 and a warning is logged.
    """
    key = normalize_document_type(document_type)
    sign = DOCUMENT_SIGNS.get(key)
    if sign is not None:
        return sign

    if settings.strict_document_types if strict is None else strict:
        raise UnknownDocumentTypeError(document_type or "")

    logger.warning("Unknown document type %r, applying +1", document_type)
    return 1


def signed_amount(amount: Money, document_type: Optional[str], strict: Optional[bool] = None) -> Money:
    """Effect of an entry of ``amount`` on its account balance."""
    return amount * resolve_sign(document_type, strict=strict)
