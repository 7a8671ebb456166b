"""
Ledger and collection enumerations.
"""

import enum


class SubjectType(str, enum.Enum):
    """Who a credit account belongs to."""
    CLIENT = "client"
    OPERATOR = "operator"


class ClientPaymentStatus(str, enum.Enum):
    """Persisted status of a client payment schedule line."""
    PENDING = "PENDIENTE"
    PAID = "PAGADA"
    CANCELLED = "CANCELADA"


class DerivedPaymentStatus(str, enum.Enum):
    """Status shown to callers; OVERDUE is never persisted."""
    PENDING = "PENDIENTE"
    OVERDUE = "VENCIDA"
    PAID = "PAGADA"
    CANCELLED = "CANCELADA"
