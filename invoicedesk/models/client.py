"""
Client model.

Clients are referenced by invoices and never mutated by the document pipeline.
"""
import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, String
from sqlalchemy.orm import relationship

from invoicedesk.database import Base
from invoicedesk.models.types import UUID, utcnow


class Client(Base):
    """Billing client (e.g. a law firm or collection agency)."""

    __tablename__ = "clients"

    id: uuid.UUID = Column(UUID(), primary_key=True, default=uuid.uuid4, index=True)
    name: str = Column(String(255), nullable=False, index=True)
    email: str = Column(String(255), nullable=True)
    created_at: datetime = Column(DateTime, default=utcnow, nullable=False)

    invoices = relationship("Invoice", back_populates="client")

    def __repr__(self) -> str:
        return f"<Client(id={self.id}, name='{self.name}')>"
