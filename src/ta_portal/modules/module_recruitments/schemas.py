"""
Module Recruitment Schemas

Pydantic schemas for module recruitment requests and responses. Field names
are snake_case in Python and camelCase on the wire.
"""

from datetime import datetime
from uuid import UUID

from pydantic import Field, model_validator

from ta_portal.modules.module_recruitments.ledger import RoleCounts
from ta_portal.modules.module_recruitments.models import (
    ApplicantRole,
    ModuleRecruitment,
    ModuleStatus,
)
from ta_portal.modules.shared import CamelModel


class RoleCountsResponse(CamelModel):
    """One role's ledger counters."""

    required: int = 0
    remaining: int = 0
    applied: int = 0
    reviewed: int = 0
    accepted: int = 0
    doc_submitted: int = 0
    appointed: int = 0

    @classmethod
    def from_counts(cls, counts: RoleCounts) -> "RoleCountsResponse":
        return cls(**counts.counters())


def counts_for(module: ModuleRecruitment, role: ApplicantRole) -> RoleCounts:
    """Ledger snapshot for ``role``; a role the module is closed to reads as zeros."""
    quota = module.quota_for(role) if module.is_open_for(role) else None
    return RoleCounts.from_row(quota) if quota is not None else RoleCounts.closed()


class ModuleRecruitmentResponse(CamelModel):
    id: UUID
    recruitment_series_id: UUID = Field(..., alias="recSeriesId")
    module_code: str
    module_name: str
    semester: str
    year: str
    coordinators: list[UUID]
    required_ta_hours: float | None = None
    requirements: str | None = None
    application_due_date: datetime | None = None
    document_due_date: datetime | None = None
    open_for_undergraduates: bool
    open_for_postgraduates: bool
    module_status: ModuleStatus
    undergraduate_counts: RoleCountsResponse
    postgraduate_counts: RoleCountsResponse
    allowed_actions: list[str] = Field(
        default_factory=list, description="Staff actions legal from the current status"
    )
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_module(
        cls, module: ModuleRecruitment, allowed_actions: list[str] | None = None
    ) -> "ModuleRecruitmentResponse":
        return cls(
            id=module.id,
            recruitment_series_id=module.recruitment_series_id,
            module_code=module.module_code,
            module_name=module.module_name,
            semester=module.semester,
            year=module.year,
            coordinators=list(module.coordinators or []),
            required_ta_hours=module.required_ta_hours,
            requirements=module.requirements,
            application_due_date=module.application_due_date,
            document_due_date=module.document_due_date,
            open_for_undergraduates=module.open_for_undergraduates,
            open_for_postgraduates=module.open_for_postgraduates,
            module_status=module.module_status,
            undergraduate_counts=RoleCountsResponse.from_counts(
                counts_for(module, ApplicantRole.UNDERGRADUATE)
            ),
            postgraduate_counts=RoleCountsResponse.from_counts(
                counts_for(module, ApplicantRole.POSTGRADUATE)
            ),
            allowed_actions=allowed_actions or [],
            created_at=module.created_at,
            updated_at=module.updated_at,
        )


class OpenPositionResponse(CamelModel):
    """An advertised module as seen by an applicant of one role."""

    module_id: UUID
    recruitment_series_id: UUID = Field(..., alias="recSeriesId")
    module_code: str
    module_name: str
    semester: str
    year: str
    required_ta_hours: float | None = None
    requirements: str | None = None
    application_due_date: datetime | None = None
    role: ApplicantRole
    required: int
    remaining: int
    open_slots: int = Field(..., description="Positions not yet accepted or claimed")


class ModuleRequirementsUpdate(CamelModel):
    """
    Request body for PATCH /lecturer/modules/{id}.

    Omitted fields are left unchanged.
    """

    required_undergraduates: int | None = Field(None, ge=0, le=500)
    required_postgraduates: int | None = Field(None, ge=0, le=500)
    required_ta_hours: float | None = Field(None, gt=0, le=40)
    requirements: str | None = Field(None, max_length=5000)

    @model_validator(mode="after")
    def validate_not_empty(self) -> "ModuleRequirementsUpdate":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided")
        return self


class ModuleActionResponse(CamelModel):
    success: bool = True
    module_id: UUID
    previous_status: ModuleStatus
    module_status: ModuleStatus
    message: str
