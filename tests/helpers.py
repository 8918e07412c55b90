from datetime import datetime, timedelta

from bson import ObjectId

from app.core.security import create_jwt


class FakeClock:
    """Callable stand-in for ``clock.utcnow`` that only moves when told to."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


def make_user(name: str, role: str = "user") -> dict:
    return {"id": str(ObjectId()), "role": role, "name": name}


def auth_headers(user: dict) -> dict:
    token = create_jwt({"sub": user["id"], "role": user["role"], "name": user["name"]})
    return {"Authorization": f"Bearer {token}"}
