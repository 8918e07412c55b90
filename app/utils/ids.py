from typing import Any

from bson import ObjectId
from bson.errors import InvalidId

from app.core.errors import NotFoundError


def to_object_id(value: Any, what: str = "Record") -> ObjectId:
    """Parse an opaque id; malformed ids are reported as missing records."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError) as exc:
        raise NotFoundError(f"{what} not found") from exc
