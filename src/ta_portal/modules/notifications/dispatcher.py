"""
Notification Dispatcher

Publishing is fire-and-forget: a failure to enqueue or send is logged and
never propagated to the request that raised the event, because by then its
transaction has already committed.

Events go onto the Redis list ``notifications:outbox`` and are delivered by
the ``notifications_flush_outbox`` job. Without Redis (local development,
tests) they are delivered inline.
"""

import logging
from collections.abc import Iterable
from typing import Any

from ta_portal.core import email
from ta_portal.core.redis import get_redis_client
from ta_portal.modules.notifications.events import NotificationEvent, NotificationType

logger = logging.getLogger(__name__)

OUTBOX_KEY = "notifications:outbox"


async def _send_one(event: NotificationEvent, recipient: str) -> bool:
    ctx = event.context
    module = (ctx.get("module_code", ""), ctx.get("module_name", ""))

    if event.type is NotificationType.MODULE_ADVERTISED:
        return await email.send_module_advertised(
            recipient, *module, ctx["role"], required_ta_hours=ctx.get("required_ta_hours")
        )
    if event.type is NotificationType.APPLICATION_RECEIVED:
        return await email.send_application_received(recipient, *module)
    if event.type is NotificationType.APPLICATION_ACCEPTED:
        return await email.send_application_accepted(recipient, *module)
    if event.type is NotificationType.APPLICATION_REJECTED:
        return await email.send_application_rejected(recipient, *module)
    if event.type is NotificationType.DOCUMENTS_REQUESTED:
        return await email.send_documents_requested(
            recipient, *module, due_date=ctx.get("due_date")
        )
    if event.type is NotificationType.DOCUMENTS_REVIEWED:
        return await email.send_documents_reviewed(recipient, ctx["decision"], note=ctx.get("note"))
    if event.type is NotificationType.TA_APPOINTED:
        return await email.send_ta_appointed(recipient, *module)

    logger.warning(f"No template for notification type {event.type}")
    return False


async def deliver(event: NotificationEvent) -> dict[str, Any]:
    """
    Send ``event`` to each of its recipients.

    Returns:
        Dict with the event type and the sent/failed recipient lists
    """
    result: dict[str, Any] = {"type": event.type.value, "sent": [], "failed": []}
    for recipient in event.recipients:
        try:
            sent = await _send_one(event, recipient)
        except Exception as e:
            logger.error(
                f"Error sending {event.type.value} notification to {recipient}: {e}",
                exc_info=True,
            )
            sent = False
        result["sent" if sent else "failed"].append(recipient)
    return result


async def publish(event: NotificationEvent) -> None:
    """Enqueue ``event`` on the outbox, or deliver it inline without Redis."""
    if not event.recipients:
        return

    client = get_redis_client()
    if client is not None:
        try:
            await client.rpush(OUTBOX_KEY, event.to_json())
            logger.debug(f"Queued {event.type.value} notification for {len(event.recipients)}")
            return
        except Exception as e:
            logger.error(f"Failed to queue {event.type.value} notification, sending inline: {e}")

    try:
        await deliver(event)
    except Exception as e:
        logger.error(f"Failed to deliver {event.type.value} notification: {e}", exc_info=True)


async def publish_all(events: Iterable[NotificationEvent]) -> None:
    for event in events:
        await publish(event)


async def drain_outbox(batch_size: int) -> list[dict[str, Any]]:
    """
    Pop up to ``batch_size`` events off the outbox and deliver them.

    A malformed or failing event is logged and reported in the results; the
    rest of the batch is still processed.
    """
    client = get_redis_client()
    if client is None:
        return []

    raw_events = await client.lpop(OUTBOX_KEY, batch_size) or []
    results = []
    for raw in raw_events:
        try:
            event = NotificationEvent.from_json(raw)
            results.append(await deliver(event))
        except Exception as e:
            logger.error(f"Error processing outbox entry {raw!r}: {e}", exc_info=True)
            results.append({"status": "error", "error": str(e)})
    return results


__all__ = ["OUTBOX_KEY", "deliver", "drain_outbox", "publish", "publish_all"]
