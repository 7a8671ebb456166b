"""
Per-agency sequence counters.
"""

from sqlalchemy import Column, Integer, String, UniqueConstraint
from backoffice.app.db.session import Base


class AgencyCounter(Base):
    """Next human-facing number per (agency, key)."""
    __tablename__ = "agency_counters"

    id = Column(Integer, primary_key=True, autoincrement=True)
    agency_id = Column(Integer, nullable=False, index=True)
    key = Column(String(50), nullable=False)
    next_value = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        UniqueConstraint("agency_id", "key", name="uq_agency_counters_agency_key"),
    )
