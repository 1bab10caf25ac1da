"""
Document Submission Models

One submission per applicant per recruitment series, holding bank/identity
details and the per-document upload state. File contents live in external
storage; only opaque URLs are kept here.
"""

import enum
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Index, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from ta_portal.modules.shared import BaseModel, value_enum


class DocumentType(str, enum.Enum):
    CV = "cv"
    NIC_COPY = "nic_copy"
    BANK_PASSBOOK_COPY = "bank_passbook_copy"
    DEGREE_CERTIFICATE = "degree_certificate"
    TRANSCRIPT = "transcript"


class DocumentStatus(str, enum.Enum):
    PENDING = "pending"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    ADDITIONAL_REQUIRED = "additional-required"


# Outcomes a reviewer may record
REVIEW_DECISIONS = frozenset(
    {DocumentStatus.APPROVED, DocumentStatus.REJECTED, DocumentStatus.ADDITIONAL_REQUIRED}
)


class DocumentSubmission(BaseModel):
    __tablename__ = "ta_document_submissions"

    applicant_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    applicant_email: Mapped[str] = mapped_column(String(255), nullable=False)
    recruitment_series_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)

    # Bank / identity details
    name_as_in_bank_account: Mapped[str | None] = mapped_column(String(200), nullable=True)
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    nic_number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    bank: Mapped[str | None] = mapped_column(String(100), nullable=True)
    branch: Mapped[str | None] = mapped_column(String(100), nullable=True)
    account_number: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # {document_type: {"submitted", "fileUrl", "fileName", "uploadedAt"}}
    documents: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False, default=dict)

    status: Mapped[DocumentStatus] = mapped_column(
        value_enum(DocumentStatus, "document_status"),
        nullable=False,
        default=DocumentStatus.PENDING,
    )
    review_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    reviewed_by: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "applicant_id",
            "recruitment_series_id",
            name="uq_ta_document_submissions_applicant_series",
        ),
        Index("ix_ta_document_submissions_status", "status"),
    )
