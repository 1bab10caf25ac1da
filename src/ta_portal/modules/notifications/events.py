"""
Notification Events

Status-change events emitted by the recruitment services after their
transaction commits. Events are plain JSON-serialisable records so they can
sit on the Redis outbox between the request that raised them and the job
that delivers them.
"""

import enum
import json
from dataclasses import asdict, dataclass, field
from typing import Any


class NotificationType(str, enum.Enum):
    MODULE_ADVERTISED = "module_advertised"
    APPLICATION_RECEIVED = "application_received"
    APPLICATION_ACCEPTED = "application_accepted"
    APPLICATION_REJECTED = "application_rejected"
    DOCUMENTS_REQUESTED = "documents_requested"
    DOCUMENTS_REVIEWED = "documents_reviewed"
    TA_APPOINTED = "ta_appointed"


@dataclass
class NotificationEvent:
    """
    One notification to send.

    Attributes:
        type: What happened
        recipients: Email addresses (or mailing lists) to notify
        context: Template values (module code/name, role, decision, ...)
    """

    type: NotificationType
    recipients: list[str]
    context: dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> str:
        payload = asdict(self)
        payload["type"] = self.type.value
        return json.dumps(payload, default=str)

    @classmethod
    def from_json(cls, raw: str) -> "NotificationEvent":
        payload = json.loads(raw)
        return cls(
            type=NotificationType(payload["type"]),
            recipients=list(payload.get("recipients") or []),
            context=dict(payload.get("context") or {}),
        )


def module_context(module) -> dict[str, Any]:
    """Template values shared by every module-scoped event."""
    return {
        "module_id": str(module.id),
        "module_code": module.module_code,
        "module_name": module.module_name,
    }
