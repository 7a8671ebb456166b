"""
Directory models consumed for tenant validation.

Clients, operators and bookings are managed elsewhere; the ledger only needs
their identity and owning agency.
"""

from sqlalchemy import Column, Integer, String
from backoffice.app.db.session import Base


class Client(Base):
    """Passenger / client of an agency."""
    __tablename__ = "clients"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    agency_id = Column(Integer, nullable=False, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)


class Operator(Base):
    """Tour operator / supplier of an agency."""
    __tablename__ = "operators"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    agency_id = Column(Integer, nullable=False, index=True)
    name = Column(String(200), nullable=False)


class Booking(Base):
    """Booking (file) of an agency."""
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    agency_id = Column(Integer, nullable=False, index=True)
    titular_id = Column(Integer, nullable=True)
    details = Column(String(255), nullable=True)
