from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict


class NotificationOut(BaseModel):
    id: int
    message: str
    requisition_id: uuid.UUID
    read: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MarkAllReadOut(BaseModel):
    updated: int
