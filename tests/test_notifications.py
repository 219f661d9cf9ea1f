import uuid

from src.common.events import EventType, event_bus
from src.models.models import NotificationType
from src.modules.notifications.notifications_service import (
    get_user_notifications,
    invoice_message,
    mark_all_read,
    mark_notifications_read,
    notify,
    parse_invoice_appointment_id,
)


def test_invoice_message_round_trips_the_appointment_id():
    appointment_id = uuid.uuid4()

    message = invoice_message(appointment_id)

    assert message == f"Invoice generated for appointment:{appointment_id}"
    assert parse_invoice_appointment_id(message) == appointment_id
    assert parse_invoice_appointment_id("Your rider is on the way") is None


async def test_notify_stores_and_publishes(session, patient):
    async with event_bus.subscribe(user_id=patient.id) as subscription:
        notification = await notify(session, patient.id, "Ride Starting", "Soon", NotificationType.RIDE)
        event = subscription.queue.get_nowait()

    assert notification.id is not None
    assert not notification.is_read
    assert event.type == EventType.NOTIFICATION_CREATED
    assert event.data["notification_id"] == str(notification.id)


async def test_list_and_mark_read(session, patient, rider):
    first = await notify(session, patient.id, "One", "first")
    await notify(session, patient.id, "Two", "second")
    others = await notify(session, rider.id, "Rider only", "not the patient's")

    notifications, unread = await get_user_notifications(session, patient)
    assert {n.title for n in notifications} == {"One", "Two"}
    assert unread == 2

    # Ids belonging to someone else are ignored
    assert await mark_notifications_read(session, patient, [first.id, others.id]) == 1
    _, unread = await get_user_notifications(session, patient)
    assert unread == 1

    assert await mark_all_read(session, patient) == 1
    notifications, unread = await get_user_notifications(session, patient, unread_only=True)
    assert notifications == [] and unread == 0
