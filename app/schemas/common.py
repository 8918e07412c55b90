from enum import Enum


class Role(str, Enum):
    admin = "admin"
    manager = "manager"
    user = "user"


class TaskStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    PAUSED = "paused"
    COMPLETED = "completed"


class Priority(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"


class SessionStatus(str, Enum):
    active = "active"
    completed = "completed"
    manual = "manual"


class ExtensionStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
