"""
Application Schemas

Request and response bodies for the applicant and coordinator endpoints.
"""

from datetime import datetime
from uuid import UUID

from pydantic import Field

from ta_portal.modules.applications.models import ApplicationStatus
from ta_portal.modules.module_recruitments.models import ApplicantRole, ModuleStatus
from ta_portal.modules.module_recruitments.schemas import RoleCountsResponse
from ta_portal.modules.shared import CamelModel


class ApplyRequest(CamelModel):
    """
    Request body for POST /ta/apply.

    ``userRole`` and ``recSeriesId`` are cross-checked against the caller's
    token and the module; the role used for the ledger always comes from the
    token.
    """

    module_id: UUID
    user_role: ApplicantRole | None = None
    recruitment_series_id: UUID | None = Field(None, alias="recSeriesId")
    ta_hours: float | None = Field(None, gt=0, le=40)


class ApplicationResponse(CamelModel):
    id: UUID
    applicant_id: UUID
    module_id: UUID
    recruitment_series_id: UUID = Field(..., alias="recSeriesId")
    role: ApplicantRole
    ta_hours: float | None = None
    status: ApplicationStatus
    decided_by: UUID | None = None
    status_changed_at: datetime | None = None
    created_at: datetime


class DecisionResponse(CamelModel):
    """Response for accept/reject."""

    success: bool = True
    application_id: UUID
    status: ApplicationStatus
    module_id: UUID
    module_status: ModuleStatus
    counts: RoleCountsResponse
    message: str


class WithdrawResponse(CamelModel):
    success: bool = True
    application_id: UUID
    message: str = "Application withdrawn."


class AppliedModuleResponse(CamelModel):
    """A pending application joined with its module."""

    application_id: UUID
    module_id: UUID
    module_code: str
    module_name: str
    semester: str
    year: str
    module_status: ModuleStatus
    role: ApplicantRole
    ta_hours: float | None = None
    status: ApplicationStatus
    applied_at: datetime


class AcceptedModuleResponse(AppliedModuleResponse):
    """An accepted application with its document progress."""

    document_due_date: datetime | None = None
    document_status: str | None = Field(
        None, description="Status of the applicant's document submission for the series"
    )
    documents_counted: bool = False
    appointed: bool = False


class ApplicantRow(CamelModel):
    application_id: UUID
    applicant_id: UUID
    applicant_email: str
    role: ApplicantRole
    ta_hours: float | None = None
    status: ApplicationStatus
    applied_at: datetime
    document_status: str | None = None
    documents_counted: bool = False
    appointed: bool = False


class ModuleApplicationsResponse(CamelModel):
    """A coordinated module with one row per application."""

    module_id: UUID
    module_code: str
    module_name: str
    module_status: ModuleStatus
    required_ta_hours: float | None = None
    undergraduate_counts: RoleCountsResponse
    postgraduate_counts: RoleCountsResponse
    applications: list[ApplicantRow]
