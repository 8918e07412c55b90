from app.core.errors import PermissionDeniedError


def is_admin_like(role: str) -> bool:
    return role in {"admin", "manager"}


def require_admin(user: dict) -> None:
    if not is_admin_like(str(user.get("role", ""))):
        raise PermissionDeniedError("Administrator role required")


def is_assigned(task: dict, user_id: str) -> bool:
    return str(user_id) in {str(u) for u in task.get("assigned_users", [])}
