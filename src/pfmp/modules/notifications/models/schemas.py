from pydantic import BaseModel
from datetime import datetime
from typing import Optional

class NotificationResponse(BaseModel):
    id: int
    title: str
    message: str
    created_at: datetime
    updated_at: datetime
    recipient_email: str
    convention_id: Optional[int] = None
    read: bool = False

    model_config = {"from_attributes": True}


class MarkAllReadResponse(BaseModel):
    updated: int
