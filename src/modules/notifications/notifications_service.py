# Notifications Service

import logging
from datetime import datetime, timezone
import re
from typing import List, Optional
from uuid import UUID
from sqlalchemy import select, update, func, desc
from sqlalchemy.ext.asyncio import AsyncSession

from src.common.events import DomainEvent, EventType, event_bus
from src.models.models import Notification, NotificationType, Profile

logger = logging.getLogger(__name__)

INVOICE_MESSAGE_PREFIX = "Invoice generated for appointment:"
_INVOICE_TOKEN = re.compile(r"appointment:([0-9a-fA-F-]{36})")


def invoice_message(appointment_id: UUID) -> str:
    """Invoice-ready message body embedding the appointment id."""
    return f"{INVOICE_MESSAGE_PREFIX}{appointment_id}"


def parse_invoice_appointment_id(message: str) -> Optional[UUID]:
    """Extract the appointment id embedded by ``invoice_message``."""
    match = _INVOICE_TOKEN.search(message or "")
    if not match:
        return None
    try:
        return UUID(match.group(1))
    except ValueError:
        return None


def notification_event(notification: Notification) -> DomainEvent:
    return DomainEvent(
        type=EventType.NOTIFICATION_CREATED,
        appointment_id=notification.reference_id if notification.reference_type == "appointment" else None,
        user_ids=[notification.user_id],
        data={
            "notification_id": str(notification.id),
            "title": notification.title,
            "message": notification.message,
            "type": notification.type.value,
        },
    )


async def get_user_notifications(
    db: AsyncSession,
    user: Profile,
    limit: int = 20,
    unread_only: bool = False
) -> tuple[List[Notification], int]:
    """Get notifications for a user with unread count."""

    # Base query
    query = select(Notification).where(Notification.user_id == user.id)

    if unread_only:
        query = query.where(Notification.is_read == False)

    query = query.order_by(desc(Notification.created_at)).limit(limit)

    result = await db.execute(query)
    notifications = result.scalars().all()

    # Get unread count
    count_query = select(func.count(Notification.id)).where(
        Notification.user_id == user.id,
        Notification.is_read == False
    )
    count_result = await db.execute(count_query)
    unread_count = count_result.scalar() or 0

    return list(notifications), unread_count


async def mark_notifications_read(
    db: AsyncSession,
    user: Profile,
    notification_ids: List[UUID]
) -> int:
    """Mark the recipient's notifications as read. Returns count of updated notifications."""

    stmt = (
        update(Notification)
        .where(
            Notification.id.in_(notification_ids),
            Notification.user_id == user.id
        )
        .values(is_read=True)
    )

    result = await db.execute(stmt)
    await db.commit()

    return result.rowcount


async def mark_all_read(db: AsyncSession, user: Profile) -> int:
    """Mark all notifications as read for a user."""

    stmt = (
        update(Notification)
        .where(
            Notification.user_id == user.id,
            Notification.is_read == False
        )
        .values(is_read=True)
    )

    result = await db.execute(stmt)
    await db.commit()

    return result.rowcount


async def notify(
    db: AsyncSession,
    user_id: UUID,
    title: str,
    message: str,
    notification_type: NotificationType = NotificationType.SYSTEM,
    reference_id: Optional[UUID] = None,
    reference_type: Optional[str] = None,
    commit: bool = True
) -> Notification:
    """
    Create a notification for one user.

    With ``commit=False`` the row joins the caller's transaction and the caller
    publishes ``notification_event(...)`` once it has committed.
    """

    notification = Notification(
        user_id=user_id,
        title=title,
        message=message,
        type=notification_type,
        reference_id=reference_id,
        reference_type=reference_type,
        created_at=datetime.now(timezone.utc)
    )

    db.add(notification)
    await db.flush()

    if commit:
        await db.commit()
        await db.refresh(notification)
        event_bus.publish(notification_event(notification))

    logger.info("Notification %s (%s) queued for %s", notification.id, notification_type.value, user_id)
    return notification
