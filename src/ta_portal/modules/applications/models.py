"""
Application Models

One row per applicant bid for a module. ``role`` is snapshotted at apply
time and decides which ledger bucket the application counts against, even
if the applicant's role changes later.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from ta_portal.modules.module_recruitments.models import ApplicantRole
from ta_portal.modules.shared import BaseModel, value_enum


class ApplicationStatus(str, enum.Enum):
    """Application lifecycle: pending -> accepted | rejected (both terminal)."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class Application(BaseModel):
    __tablename__ = "ta_applications"

    applicant_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    applicant_email: Mapped[str] = mapped_column(String(255), nullable=False)
    module_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("module_recruitments.id", ondelete="CASCADE"),
        nullable=False,
    )
    recruitment_series_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)

    role: Mapped[ApplicantRole] = mapped_column(
        value_enum(ApplicantRole, "applicant_role"), nullable=False
    )
    ta_hours: Mapped[float | None] = mapped_column(Float, nullable=True)

    status: Mapped[ApplicationStatus] = mapped_column(
        value_enum(ApplicationStatus, "application_status"),
        nullable=False,
        default=ApplicationStatus.PENDING,
    )
    decided_by: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    status_changed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Document gate progress
    documents_counted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    appointed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("applicant_id", "module_id", name="uq_ta_applications_applicant_module"),
        Index("ix_ta_applications_module_status", "module_id", "status"),
        Index("ix_ta_applications_applicant", "applicant_id"),
    )

    @property
    def is_pending(self) -> bool:
        return self.status == ApplicationStatus.PENDING

    @property
    def documents_counted(self) -> bool:
        return self.documents_counted_at is not None

    @property
    def is_appointed(self) -> bool:
        return self.appointed_at is not None
