"""
Document Submission Schemas
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import AliasChoices, Field, field_validator

from ta_portal.modules.applications.models import ApplicationStatus
from ta_portal.modules.documents.models import REVIEW_DECISIONS, DocumentStatus
from ta_portal.modules.module_recruitments.schemas import RoleCountsResponse
from ta_portal.modules.shared import CamelModel


class DocumentFile(CamelModel):
    """Upload metadata for one document; the file itself lives in external storage."""

    submitted: bool = True
    file_url: str = Field(..., min_length=1, max_length=2000)
    file_name: str | None = Field(None, max_length=255)
    uploaded_at: datetime | None = None


class DocumentsPayload(CamelModel):
    cv: DocumentFile | None = None
    nic_copy: DocumentFile | None = Field(
        None, validation_alias=AliasChoices("nicCopy", "nic_copy", "id")
    )
    bank_passbook_copy: DocumentFile | None = None
    degree_certificate: DocumentFile | None = None
    transcript: DocumentFile | None = None

    def as_entries(self) -> dict[str, dict[str, Any] | None]:
        """Stored form: document type -> camelCase metadata, omitted types as None."""
        return {
            name: (value.model_dump(mode="json", by_alias=True) if value is not None else None)
            for name, value in (
                (field, getattr(self, field)) for field in type(self).model_fields
            )
        }


class BankDetails(CamelModel):
    name_as_in_bank_account: str | None = Field(None, max_length=200)
    address: str | None = Field(None, max_length=500)
    nic_number: str | None = Field(None, max_length=20)
    bank: str | None = Field(None, max_length=100)
    branch: str | None = Field(None, max_length=100)
    account_number: str | None = Field(None, max_length=50)


class SubmitDocumentsRequest(CamelModel):
    """Request body for POST /ta/submit-documents."""

    module_id: UUID
    details: BankDetails | None = None
    documents: DocumentsPayload


class DocumentSubmissionResponse(CamelModel):
    id: UUID
    applicant_id: UUID
    applicant_email: str
    recruitment_series_id: UUID = Field(..., alias="recSeriesId")
    name_as_in_bank_account: str | None = None
    address: str | None = None
    nic_number: str | None = None
    bank: str | None = None
    branch: str | None = None
    account_number: str | None = None
    documents: dict[str, Any]
    status: DocumentStatus
    review_note: str | None = None
    reviewed_by: UUID | None = None
    reviewed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class SubmitDocumentsResponse(CamelModel):
    submission: DocumentSubmissionResponse
    created: bool
    counted: bool = Field(
        ..., description="True when this submission completed the checklist for the first time"
    )
    message: str


class ReviewDocumentsRequest(CamelModel):
    decision: DocumentStatus
    note: str | None = Field(None, max_length=2000)

    @field_validator("decision")
    @classmethod
    def validate_decision(cls, v: DocumentStatus) -> DocumentStatus:
        if v not in REVIEW_DECISIONS:
            raise ValueError(
                f"decision must be one of {sorted(d.value for d in REVIEW_DECISIONS)}"
            )
        return v


class SubmissionListResponse(CamelModel):
    items: list[DocumentSubmissionResponse]
    total: int
    limit: int
    offset: int


class AppointResponse(CamelModel):
    success: bool = True
    application_id: UUID
    applicant_id: UUID
    module_id: UUID
    status: ApplicationStatus
    appointed_at: datetime | None = None
    counts: RoleCountsResponse
    message: str
