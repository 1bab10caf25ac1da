"""
Document Checklist

Which documents an applicant must provide, and how a resubmission merges
into what is already on file. Pure functions over the JSON ``documents``
map stored on a submission.
"""

from typing import Any

from ta_portal.modules.documents.models import DocumentType
from ta_portal.modules.module_recruitments.models import ApplicantRole

# CV + identity + bank details
BASE_REQUIRED = (DocumentType.CV, DocumentType.NIC_COPY, DocumentType.BANK_PASSBOOK_COPY)


def required_documents(role: ApplicantRole) -> tuple[DocumentType, ...]:
    if role is ApplicantRole.POSTGRADUATE:
        return BASE_REQUIRED + (DocumentType.DEGREE_CERTIFICATE,)
    return BASE_REQUIRED


def is_submitted(entry: dict[str, Any] | None) -> bool:
    return bool(entry and entry.get("submitted") and entry.get("fileUrl"))


def merge_documents(
    existing: dict[str, Any] | None,
    incoming: dict[str, dict[str, Any] | None],
) -> dict[str, Any]:
    """
    Overlay ``incoming`` onto ``existing`` per document type.

    A type omitted (or null) in ``incoming`` keeps what is on file.
    """
    merged = dict(existing or {})
    for doc_type, entry in incoming.items():
        if entry is not None:
            merged[doc_type] = entry
    return merged


def missing_documents(documents: dict[str, Any], role: ApplicantRole) -> list[str]:
    """Required document types not yet submitted, in checklist order."""
    return [
        doc_type.value
        for doc_type in required_documents(role)
        if not is_submitted(documents.get(doc_type.value))
    ]
