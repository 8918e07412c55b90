from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel

from app.schemas.common import ExtensionStatus


class ExtensionRequestIn(BaseModel):
    task_id: str
    requested_due_date: datetime
    reason: str


class ExtensionReviewIn(BaseModel):
    action: Literal["approve", "reject"]
    admin_response: Optional[str] = None


class ExtensionRequestOut(BaseModel):
    id: str
    task_id: str
    task_title: Optional[str] = None
    user_id: str
    current_due_date: Optional[datetime] = None
    requested_due_date: datetime
    reason: str
    status: ExtensionStatus
    admin_response: Optional[str] = None
    created_at: datetime
    reviewed_at: Optional[datetime] = None
