"""
Finance section grant database model.
"""

from sqlalchemy import Column, Integer, String, UniqueConstraint
from backoffice.app.db.session import Base


class FinanceSectionGrant(Base):
    """Extra finance section a user may access beyond their role defaults."""
    __tablename__ = "finance_section_grants"

    id = Column(Integer, primary_key=True, autoincrement=True)
    agency_id = Column(Integer, nullable=False, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    section = Column(String(50), nullable=False)

    __table_args__ = (
        UniqueConstraint("agency_id", "user_id", "section", name="uq_finance_section_grants"),
    )
