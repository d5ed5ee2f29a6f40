"""Schemas for outbound contractor notifications"""

import enum

from pydantic import BaseModel


class NotificationChannel(str, enum.Enum):
    EMAIL = "email"
    SMS = "sms"


class DeliveryResult(BaseModel):
    """Outcome of one send attempt on one channel"""
    channel: NotificationChannel
    recipient: str | None = None
    delivered: bool
    simulated: bool = False
    error: str | None = None

    def __bool__(self) -> bool:
        return self.delivered
