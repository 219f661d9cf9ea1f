# Notifications Schemas

from typing import Optional, List
from uuid import UUID
from pydantic import BaseModel
from datetime import datetime
from enum import Enum


class NotificationTypeEnum(str, Enum):
    RIDE = "ride"
    INVOICE = "invoice"
    SYSTEM = "system"


class NotificationResponse(BaseModel):
    id: str
    title: str
    message: str
    type: NotificationTypeEnum
    is_read: bool
    reference_id: Optional[str] = None
    reference_type: Optional[str] = None
    # Parsed from invoice messages so clients can link to the invoice view
    invoice_appointment_id: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class NotificationsListResponse(BaseModel):
    notifications: List[NotificationResponse]
    unread_count: int


class MarkReadRequest(BaseModel):
    notification_ids: List[UUID]


class MarkReadResponse(BaseModel):
    success: bool
    marked_count: int
