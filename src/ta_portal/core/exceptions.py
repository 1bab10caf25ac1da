"""
Recruitment Error Taxonomy

Every business-rule, idempotency and concurrency failure raised by the
services is a ``RecruitmentError`` carrying a stable ``error_code`` and the
HTTP status the routers answer with. Catch by type, not by message.

    RecruitmentError
    +-- NotFoundError (404)
    |   +-- ModuleRecruitmentNotFoundError
    |   +-- ApplicationNotFoundError
    |   +-- DocumentSubmissionNotFoundError
    +-- NotAuthorizedError (403)
    +-- ConcurrentModificationError (409, retryable)
    +-- (400) business refusals:
        DuplicateApplicationError, AlreadyProcessedError, QuotaExhaustedError,
        RoleNotEligibleError, ModuleNotAcceptingApplicationsError,
        InvalidStatusTransitionError, RequiredBelowCommittedError,
        NoAcceptedApplicationError, ModuleNotAcceptingDocumentsError,
        MissingRequiredDocumentError, AlreadyAppointedError,
        DocumentsNotSubmittedError, RequestMismatchError
"""

from uuid import UUID

from fastapi import HTTPException, status


class RecruitmentError(Exception):
    """Base exception for recruitment service errors."""

    retryable: bool = False

    def __init__(self, message: str, error_code: str, status_code: int = 400):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)

    def to_detail(self) -> dict:
        detail = {"error": self.error_code, "message": self.message}
        if self.retryable:
            detail["retryable"] = True
        return detail


# ============================================
# Not found
# ============================================


class NotFoundError(RecruitmentError):
    def __init__(self, message: str, error_code: str):
        super().__init__(message=message, error_code=error_code, status_code=404)


class ModuleRecruitmentNotFoundError(NotFoundError):
    def __init__(self, module_id: UUID):
        super().__init__(f"Module {module_id} not found", "MODULE_NOT_FOUND")


class ApplicationNotFoundError(NotFoundError):
    def __init__(self, application_id: UUID | None = None):
        message = (
            f"Application {application_id} not found" if application_id else "Application not found"
        )
        super().__init__(message, "APPLICATION_NOT_FOUND")


class DocumentSubmissionNotFoundError(NotFoundError):
    def __init__(self, submission_id: UUID):
        super().__init__(f"Document submission {submission_id} not found", "DOCUMENTS_NOT_FOUND")


# ============================================
# Authorization / concurrency
# ============================================


class NotAuthorizedError(RecruitmentError):
    """The caller is authenticated but is not a coordinator/owner of the resource."""

    def __init__(self, message: str = "You are not authorized to perform this action."):
        super().__init__(message=message, error_code="NOT_AUTHORIZED", status_code=403)


class ConcurrentModificationError(RecruitmentError):
    """
    A conditional write lost a race. Nothing was changed; the caller may
    re-read current state and retry the whole operation.
    """

    retryable = True

    def __init__(self, resource: str):
        super().__init__(
            message=f"{resource} was modified concurrently. Please retry.",
            error_code="CONCURRENT_MODIFICATION",
            status_code=409,
        )


# ============================================
# Business refusals
# ============================================


class DuplicateApplicationError(RecruitmentError):
    def __init__(self, module_id: UUID):
        super().__init__(
            f"You have already applied for module {module_id}.", "DUPLICATE_APPLICATION"
        )


class AlreadyProcessedError(RecruitmentError):
    def __init__(self, application_id: UUID, current_status: str):
        self.current_status = current_status
        super().__init__(
            f"Application {application_id} has already been {current_status}.",
            "ALREADY_PROCESSED",
        )


class QuotaExhaustedError(RecruitmentError):
    def __init__(self, module_id: UUID, role: str):
        super().__init__(
            f"No {role} TA positions are open for module {module_id}.", "QUOTA_EXHAUSTED"
        )


class RoleNotEligibleError(RecruitmentError):
    def __init__(self, module_id: UUID, role: str):
        super().__init__(
            f"Module {module_id} is not open to {role} applicants.", "ROLE_NOT_ELIGIBLE"
        )


class ModuleNotAcceptingApplicationsError(RecruitmentError):
    def __init__(self, module_id: UUID, module_status: str):
        super().__init__(
            f"Module {module_id} is not accepting applications (status: {module_status}).",
            "MODULE_NOT_ACCEPTING_APPLICATIONS",
        )


class InvalidStatusTransitionError(RecruitmentError):
    def __init__(self, current_status: str, action: str, allowed: list[str] | None = None):
        self.current_status = current_status
        self.action = action
        message = f"Cannot {action} a module in status '{current_status}'."
        if allowed is not None:
            message += f" Allowed actions: {allowed}"
        super().__init__(message, "INVALID_STATUS_TRANSITION")


class RequiredBelowCommittedError(RecruitmentError):
    def __init__(self, role: str, requested: int, committed: int):
        super().__init__(
            f"Cannot set required {role} TAs to {requested}: "
            f"{committed} positions are already accepted or claimed.",
            "REQUIRED_BELOW_COMMITTED",
        )


class NoAcceptedApplicationError(RecruitmentError):
    def __init__(self, module_id: UUID, applicant_id: UUID | None = None):
        who = f"Applicant {applicant_id} does" if applicant_id else "You do"
        super().__init__(
            f"{who} not have an accepted application for module {module_id}.",
            "NO_ACCEPTED_APPLICATION",
        )


class ModuleNotAcceptingDocumentsError(RecruitmentError):
    def __init__(self, module_id: UUID, module_status: str):
        super().__init__(
            f"Module {module_id} is not collecting documents (status: {module_status}).",
            "MODULE_NOT_ACCEPTING_DOCUMENTS",
        )


class MissingRequiredDocumentError(RecruitmentError):
    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__(
            f"Missing required documents: {', '.join(missing)}", "MISSING_REQUIRED_DOCUMENT"
        )


class AlreadyAppointedError(RecruitmentError):
    def __init__(self, application_id: UUID):
        super().__init__(
            f"Application {application_id} has already been appointed.", "ALREADY_APPOINTED"
        )


class DocumentsNotSubmittedError(RecruitmentError):
    def __init__(self, application_id: UUID):
        super().__init__(
            f"Documents for application {application_id} have not been submitted.",
            "DOCUMENTS_NOT_SUBMITTED",
        )


class RequestMismatchError(RecruitmentError):
    """A request body field disagrees with the caller's token or the target module."""

    def __init__(self, message: str, error_code: str = "REQUEST_MISMATCH"):
        super().__init__(message, error_code)


# ============================================
# HTTP translation
# ============================================


def http_error(e: RecruitmentError) -> HTTPException:
    """Convert a service error to the HTTPException the routers raise."""
    return HTTPException(status_code=e.status_code, detail=e.to_detail())


def internal_error() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred.",
        },
    )
