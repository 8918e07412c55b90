from datetime import datetime
from typing import Optional
from pydantic import BaseModel, StrictInt

from app.schemas.common import SessionStatus


class ManualSessionIn(BaseModel):
    minutes: StrictInt


class TimeSessionOut(BaseModel):
    id: str
    task_id: str
    user_id: str
    start_time: datetime
    end_time: Optional[datetime] = None
    duration_minutes: int = 0
    status: SessionStatus
    cost: Optional[float] = None
