"""
Quota Ledger

Pure counter arithmetic for one (module, role) bucket. No I/O: services
compute the next bucket here and hand it to the repository's conditional
write, which only lands if the row still carries the observed ``version``.

Invariants for an open role:
    remaining     = required - accepted
    reviewed     <= applied
    accepted     <= reviewed
    doc_submitted <= accepted
    appointed    <= doc_submitted
    applied - reviewed <= remaining      (pending applications hold a claim)

A role the module is closed to is pinned at all zeros.
"""

from dataclasses import dataclass, fields, replace
from typing import Protocol

from ta_portal.core.exceptions import RecruitmentError


class LedgerInvariantError(RecruitmentError):
    """A transition would break a ledger invariant."""

    def __init__(self, violations: list[str]):
        self.violations = violations
        super().__init__(
            message=f"Quota ledger invariant violated: {'; '.join(violations)}",
            error_code="LEDGER_INVARIANT_VIOLATION",
            status_code=409,
        )


class QuotaRow(Protocol):
    required: int
    remaining: int
    applied: int
    reviewed: int
    accepted: int
    doc_submitted: int
    appointed: int
    version: int


@dataclass(frozen=True)
class RoleCounts:
    """Immutable snapshot of one role's counters."""

    required: int = 0
    remaining: int = 0
    applied: int = 0
    reviewed: int = 0
    accepted: int = 0
    doc_submitted: int = 0
    appointed: int = 0
    version: int = 0

    @classmethod
    def from_row(cls, row: QuotaRow) -> "RoleCounts":
        return cls(**{f.name: getattr(row, f.name) for f in fields(cls)})

    @classmethod
    def closed(cls) -> "RoleCounts":
        return cls()

    @classmethod
    def opened(cls, required: int) -> "RoleCounts":
        return cls(required=required, remaining=required)

    @property
    def pending(self) -> int:
        """Applications awaiting a decision."""
        return self.applied - self.reviewed

    @property
    def open_slots(self) -> int:
        """Slots not yet accepted nor claimed by a pending application."""
        return self.remaining - self.pending

    @property
    def committed(self) -> int:
        return self.accepted + self.pending

    def counters(self) -> dict[str, int]:
        """Counter values without the version stamp."""
        return {f.name: getattr(self, f.name) for f in fields(self) if f.name != "version"}


def violations(counts: RoleCounts, is_open: bool = True) -> list[str]:
    """List every invariant ``counts`` breaks."""
    found = [f"{name} is negative" for name, value in counts.counters().items() if value < 0]

    if not is_open:
        if any(counts.counters().values()):
            found.append("role is closed but counters are not zero")
        return found

    if counts.remaining != counts.required - counts.accepted:
        found.append("remaining != required - accepted")
    if counts.reviewed > counts.applied:
        found.append("reviewed > applied")
    if counts.accepted > counts.reviewed:
        found.append("accepted > reviewed")
    if counts.doc_submitted > counts.accepted:
        found.append("doc_submitted > accepted")
    if counts.appointed > counts.doc_submitted:
        found.append("appointed > doc_submitted")
    if counts.pending > counts.remaining:
        found.append("pending applications exceed remaining positions")
    return found


def check_invariants(counts: RoleCounts, is_open: bool = True) -> RoleCounts:
    """Return ``counts`` unchanged, or raise LedgerInvariantError."""
    found = violations(counts, is_open)
    if found:
        raise LedgerInvariantError(found)
    return counts


def claim(counts: RoleCounts) -> RoleCounts:
    """An application is submitted: it takes a claim on an open slot."""
    if counts.open_slots <= 0:
        raise LedgerInvariantError(["no open slot to claim"])
    return check_invariants(replace(counts, applied=counts.applied + 1))


def accept(counts: RoleCounts) -> RoleCounts:
    """A pending application is accepted: its claim becomes a filled position."""
    if counts.pending <= 0:
        raise LedgerInvariantError(["no pending application to accept"])
    return check_invariants(
        replace(
            counts,
            remaining=counts.remaining - 1,
            accepted=counts.accepted + 1,
            reviewed=counts.reviewed + 1,
        )
    )


def reject(counts: RoleCounts) -> RoleCounts:
    """A pending application is rejected. It stays counted as applied."""
    if counts.pending <= 0:
        raise LedgerInvariantError(["no pending application to reject"])
    return check_invariants(replace(counts, reviewed=counts.reviewed + 1))


def release(counts: RoleCounts) -> RoleCounts:
    """A pending application is withdrawn by its applicant."""
    if counts.pending <= 0:
        raise LedgerInvariantError(["no pending application to release"])
    return check_invariants(replace(counts, applied=counts.applied - 1))


def count_documents(counts: RoleCounts) -> RoleCounts:
    """An accepted applicant completed the mandatory document checklist."""
    if counts.doc_submitted >= counts.accepted:
        raise LedgerInvariantError(["doc_submitted would exceed accepted"])
    return check_invariants(replace(counts, doc_submitted=counts.doc_submitted + 1))


def appoint(counts: RoleCounts) -> RoleCounts:
    """A TA with verified documents is appointed."""
    if counts.appointed >= counts.doc_submitted:
        raise LedgerInvariantError(["appointed would exceed doc_submitted"])
    return check_invariants(replace(counts, appointed=counts.appointed + 1))


def resize(counts: RoleCounts, required: int) -> RoleCounts:
    """
    Change the number of positions.

    Raises LedgerInvariantError when ``required`` is below the positions
    already accepted or claimed by pending applications.
    """
    if required < counts.committed:
        raise LedgerInvariantError(
            [f"required ({required}) below committed positions ({counts.committed})"]
        )
    return check_invariants(
        replace(counts, required=required, remaining=required - counts.accepted)
    )


def all_roles_full(counts_by_role: dict) -> bool:
    """True when every open role has no remaining positions."""
    return bool(counts_by_role) and all(c.remaining == 0 for c in counts_by_role.values())
