"""
Module Recruitment Models

One row per module's TA recruitment within a recruitment series, and one
ledger row per (module, applicant role) holding the quota counters.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import ARRAY, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ta_portal.modules.shared import BaseModel, value_enum


class ApplicantRole(str, enum.Enum):
    """The two applicant populations a module recruits from."""

    UNDERGRADUATE = "undergraduate"
    POSTGRADUATE = "postgraduate"


class ModuleStatus(str, enum.Enum):
    """Lifecycle stage of a module recruitment."""

    INITIALISED = "initialised"
    PENDING_CHANGES = "pending-changes"
    CHANGES_SUBMITTED = "changes-submitted"
    ADVERTISED = "advertised"
    FULL = "full"
    GETTING_DOCUMENTS = "getting-documents"
    CLOSED = "closed"
    ARCHIVED = "archived"


class ModuleRecruitment(BaseModel):
    """
    A module's TA recruitment.

    Counters live in ``RoleQuota`` rows, one per role, so the unit of write
    contention is a single (module, role) row.
    """

    __tablename__ = "module_recruitments"

    recruitment_series_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)

    # Descriptive
    module_code: Mapped[str] = mapped_column(String(20), nullable=False)
    module_name: Mapped[str] = mapped_column(String(200), nullable=False)
    semester: Mapped[str] = mapped_column(String(20), nullable=False)
    year: Mapped[str] = mapped_column(String(20), nullable=False)
    coordinators: Mapped[list[uuid.UUID]] = mapped_column(
        ARRAY(UUID(as_uuid=True)), nullable=False, default=list
    )
    required_ta_hours: Mapped[float | None] = mapped_column(Float, nullable=True)
    requirements: Mapped[str | None] = mapped_column(Text, nullable=True)
    application_due_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    document_due_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Eligibility
    open_for_undergraduates: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    open_for_postgraduates: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    module_status: Mapped[ModuleStatus] = mapped_column(
        value_enum(ModuleStatus, "module_status"),
        nullable=False,
        default=ModuleStatus.INITIALISED,
    )

    quotas: Mapped[list["RoleQuota"]] = relationship(
        "RoleQuota",
        back_populates="module",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        CheckConstraint(
            "open_for_undergraduates OR open_for_postgraduates",
            name="ck_module_recruitments_open_for_some_role",
        ),
        Index("ix_module_recruitments_status", "module_status"),
        Index("ix_module_recruitments_series", "recruitment_series_id"),
        Index("ix_module_recruitments_coordinators", "coordinators", postgresql_using="gin"),
    )

    def is_open_for(self, role: ApplicantRole) -> bool:
        if role is ApplicantRole.UNDERGRADUATE:
            return self.open_for_undergraduates
        return self.open_for_postgraduates

    def open_roles(self) -> list[ApplicantRole]:
        return [role for role in ApplicantRole if self.is_open_for(role)]

    def quota_for(self, role: ApplicantRole) -> "RoleQuota | None":
        for quota in self.quotas:
            if quota.role == role:
                return quota
        return None

    def is_coordinator(self, user_id: uuid.UUID) -> bool:
        return user_id in (self.coordinators or [])


class RoleQuota(BaseModel):
    """
    Ledger row: the per-role counters of one module.

    Only written through the conditional updates in the repository; every
    write bumps ``version``.
    """

    __tablename__ = "role_quotas"

    module_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("module_recruitments.id", ondelete="CASCADE"),
        nullable=False,
    )
    role: Mapped[ApplicantRole] = mapped_column(
        value_enum(ApplicantRole, "applicant_role"), nullable=False
    )

    required: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    remaining: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    applied: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reviewed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    accepted: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    doc_submitted: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    appointed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    module: Mapped["ModuleRecruitment"] = relationship("ModuleRecruitment", back_populates="quotas")

    __table_args__ = (
        UniqueConstraint("module_id", "role", name="uq_role_quotas_module_role"),
        CheckConstraint(
            "required >= 0 AND remaining >= 0 AND applied >= 0 AND reviewed >= 0 "
            "AND accepted >= 0 AND doc_submitted >= 0 AND appointed >= 0",
            name="ck_role_quotas_non_negative",
        ),
        CheckConstraint("remaining = required - accepted", name="ck_role_quotas_remaining"),
        CheckConstraint(
            "reviewed <= applied AND accepted <= reviewed", name="ck_role_quotas_review_order"
        ),
        CheckConstraint(
            "doc_submitted <= accepted AND appointed <= doc_submitted",
            name="ck_role_quotas_document_order",
        ),
        CheckConstraint("applied - reviewed <= remaining", name="ck_role_quotas_claims"),
    )
