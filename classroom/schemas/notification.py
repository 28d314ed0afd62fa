from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel


class NotificationRead(BaseModel):
    id: str
    recipient_id: str
    recipient_type: str
    kind: str
    title: str
    message: str
    data: dict[str, Any]
    priority: str
    read: bool
    read_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class UnreadCount(BaseModel):
    unread: int


class MarkAllRead(BaseModel):
    updated: int
