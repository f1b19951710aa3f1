"""
Pydantic schemas for client endpoints.
"""
from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class ClientCreate(BaseModel):
    """Request model for creating a client."""

    name: str = Field(..., min_length=1, max_length=255, description="Client name")
    email: Optional[str] = Field(None, max_length=255, description="Billing email")


class ClientResponse(BaseModel):
    """Response model for a client."""

    id: UUID
    name: str
    email: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True
