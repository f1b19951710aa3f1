"""
Pydantic schemas for document endpoints.

Covers upload results, processing requests, review commits and the
upload wizard.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from invoicedesk.models.document import DocumentStatus
from invoicedesk.services.wizard import WizardAction, WizardStep


class DocumentResponse(BaseModel):
    """Response model for a document."""

    id: UUID = Field(..., description="Document identifier")
    filename: str = Field(..., description="Original filename")
    content_type: Optional[str] = Field(None, description="Declared content type")
    size_bytes: int = Field(..., description="File size in bytes")
    status: DocumentStatus = Field(..., description="Processing status")
    extracted_fields: Optional[Dict[str, Any]] = Field(None, description="Fields found by extraction")
    error_message: Optional[str] = Field(None, description="Failure reason if failed")
    invoice_id: Optional[UUID] = Field(None, description="Invoice created on commit")
    created_at: datetime = Field(..., description="Upload timestamp")
    processed_at: Optional[datetime] = None
    committed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RejectedFile(BaseModel):
    """A file refused at upload."""

    filename: str = Field(..., description="Filename as sent")
    error: Dict[str, Any] = Field(..., description="Error envelope explaining the rejection")


class UploadResponse(BaseModel):
    """Response model for a batch upload."""

    accepted: List[DocumentResponse] = Field(default_factory=list)
    rejected: List[RejectedFile] = Field(default_factory=list)


class ProcessRequest(BaseModel):
    """Request model for batch processing."""

    document_ids: List[UUID] = Field(..., min_length=1, description="Documents to process")


class ProcessResult(BaseModel):
    """Outcome of a processing request for one document."""

    document: DocumentResponse
    scheduled: bool = Field(..., description="False when the request was a no-op")


class ProcessResponse(BaseModel):
    results: List[ProcessResult]


class CommitRequest(BaseModel):
    """Reviewer edits applied on top of the extracted fields."""

    fields: Dict[str, Any] = Field(default_factory=dict, description="Edited invoice fields")
    invoice_id: Optional[UUID] = Field(None, description="Existing draft invoice to update")


class WizardRequest(BaseModel):
    """Request model for evaluating the upload wizard."""

    step: WizardStep = Field(WizardStep.UPLOAD, description="Current step")
    document_ids: List[UUID] = Field(default_factory=list, description="Documents in this session")
    action: WizardAction = Field(WizardAction.NONE, description="Requested move")


class WizardResponse(BaseModel):
    """Wizard state after evaluation."""

    step: WizardStep
    index: int
    title: str
    can_advance: bool
    can_go_back: bool
    blocked_reason: Optional[str] = None
    validated_steps: List[WizardStep]
    document_counts: Dict[str, int]

    class Config:
        from_attributes = True
