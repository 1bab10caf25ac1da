"""
Module Status Controller

Transition table for a module recruitment's lifecycle:

    initialised -> pending-changes -> changes-submitted -> advertised
        -> full -> getting-documents -> closed -> archived

Staff actions and the automatic capacity transitions (``mark_full`` /
``reopen``) are all looked up here, so the legality of an action is decided
in one place.
"""

import enum

from ta_portal.core.exceptions import InvalidStatusTransitionError
from ta_portal.modules.module_recruitments.ledger import all_roles_full
from ta_portal.modules.module_recruitments.models import ModuleStatus


class ModuleAction(str, enum.Enum):
    REQUEST_CHANGES = "request-changes"
    SUBMIT_CHANGES = "submit-changes"
    ADVERTISE = "advertise"
    MARK_FULL = "mark-full"
    REOPEN = "reopen"
    START_DOCUMENTS = "start-documents"
    CLOSE = "close"
    ARCHIVE = "archive"


# Triggered by an admin through the status endpoint
STAFF_ACTIONS = frozenset(
    {
        ModuleAction.REQUEST_CHANGES,
        ModuleAction.ADVERTISE,
        ModuleAction.START_DOCUMENTS,
        ModuleAction.CLOSE,
        ModuleAction.ARCHIVE,
    }
)

MODULE_TRANSITIONS: dict[ModuleStatus, dict[ModuleAction, ModuleStatus]] = {
    ModuleStatus.INITIALISED: {
        ModuleAction.REQUEST_CHANGES: ModuleStatus.PENDING_CHANGES,
    },
    ModuleStatus.PENDING_CHANGES: {
        ModuleAction.SUBMIT_CHANGES: ModuleStatus.CHANGES_SUBMITTED,
    },
    ModuleStatus.CHANGES_SUBMITTED: {
        ModuleAction.SUBMIT_CHANGES: ModuleStatus.CHANGES_SUBMITTED,  # Coordinator resubmits
        ModuleAction.ADVERTISE: ModuleStatus.ADVERTISED,
    },
    ModuleStatus.ADVERTISED: {
        ModuleAction.MARK_FULL: ModuleStatus.FULL,
        ModuleAction.START_DOCUMENTS: ModuleStatus.GETTING_DOCUMENTS,
        ModuleAction.CLOSE: ModuleStatus.CLOSED,
    },
    ModuleStatus.FULL: {
        ModuleAction.REOPEN: ModuleStatus.ADVERTISED,
        ModuleAction.START_DOCUMENTS: ModuleStatus.GETTING_DOCUMENTS,
        ModuleAction.CLOSE: ModuleStatus.CLOSED,
    },
    ModuleStatus.GETTING_DOCUMENTS: {
        ModuleAction.CLOSE: ModuleStatus.CLOSED,
    },
    ModuleStatus.CLOSED: {
        ModuleAction.ARCHIVE: ModuleStatus.ARCHIVED,
    },
    # Terminal
    ModuleStatus.ARCHIVED: {},
}

# Stages in which coordinators may edit requirements (required counts, hours)
EDITABLE_STATUSES = frozenset(
    {
        ModuleStatus.PENDING_CHANGES,
        ModuleStatus.CHANGES_SUBMITTED,
        ModuleStatus.ADVERTISED,
        ModuleStatus.FULL,
    }
)

# Stages in which accept/reject/withdraw may still change an application
DECISION_STATUSES = frozenset(
    {ModuleStatus.ADVERTISED, ModuleStatus.FULL, ModuleStatus.GETTING_DOCUMENTS}
)


def allowed_actions(current: ModuleStatus) -> list[ModuleAction]:
    return list(MODULE_TRANSITIONS.get(current, {}))


def next_status(current: ModuleStatus, action: ModuleAction) -> ModuleStatus:
    """
    Look up the status ``action`` leads to from ``current``.

    Raises:
        InvalidStatusTransitionError: If the table has no such transition
    """
    target = MODULE_TRANSITIONS.get(current, {}).get(action)
    if target is None:
        raise InvalidStatusTransitionError(
            current.value,
            action.value,
            allowed=[a.value for a in allowed_actions(current)],
        )
    return target


def accepts_applications(current: ModuleStatus) -> bool:
    return current is ModuleStatus.ADVERTISED


def accepts_decisions(current: ModuleStatus) -> bool:
    return current in DECISION_STATUSES


def accepts_documents(current: ModuleStatus) -> bool:
    return current is ModuleStatus.GETTING_DOCUMENTS


def accepts_appointments(current: ModuleStatus) -> bool:
    return current in (ModuleStatus.GETTING_DOCUMENTS, ModuleStatus.CLOSED)


def capacity_action(
    current: ModuleStatus,
    counts_by_open_role: dict,
) -> ModuleAction | None:
    """
    The automatic transition the ledger calls for, if any.

    ``advertised`` becomes ``full`` once every open role has no remaining
    positions; ``full`` reopens when a role gains positions again.
    """
    full = all_roles_full(counts_by_open_role)
    if current is ModuleStatus.ADVERTISED and full:
        return ModuleAction.MARK_FULL
    if current is ModuleStatus.FULL and not full:
        return ModuleAction.REOPEN
    return None


__all__ = [
    "DECISION_STATUSES",
    "EDITABLE_STATUSES",
    "MODULE_TRANSITIONS",
    "STAFF_ACTIONS",
    "ModuleAction",
    "accepts_applications",
    "accepts_appointments",
    "accepts_decisions",
    "accepts_documents",
    "allowed_actions",
    "capacity_action",
    "next_status",
]
