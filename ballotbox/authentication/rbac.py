# ballotbox/authentication/rbac.py

from enum import Enum
from functools import wraps
import logging

from ballotbox.database.models import Role
from ballotbox.errors import UnauthorizedError

# Role-based access control for ElectionService operations

logger = logging.getLogger(__name__)


class Permission(Enum):
    VOTE = "vote"
    MANAGE_ELECTIONS = "manage_elections"
    MANAGE_USERS = "manage_users"


# Role -> Permissions mapping
ROLE_PERMISSIONS = {
    Role.VOTER: [
        Permission.VOTE,
    ],
    Role.ADMIN: [
        Permission.VOTE,
        Permission.MANAGE_ELECTIONS,
        Permission.MANAGE_USERS,
    ],
}


class RBACService:
    def has_permission(self, user_role, permission):
        if isinstance(user_role, str):
            user_role = Role(user_role)
        if isinstance(permission, str):
            permission = Permission(permission)
        return permission in ROLE_PERMISSIONS.get(user_role, [])

    def get_permissions(self, user_role):
        if isinstance(user_role, str):
            user_role = Role(user_role)
        return ROLE_PERMISSIONS.get(user_role, [])


_rbac = RBACService()


# Decorator for required permission on methods of an object exposing `current_user`
def require_permission(permission):
    def decorator(func):
        @wraps(func)
        def wrapper(self, *args, **kwargs):
            user = self.current_user
            if user is None:
                logger.warning("%s refused: no active session", func.__name__)
                raise UnauthorizedError(f"{func.__name__} requires a logged-in user")
            if not _rbac.has_permission(user.role, permission):
                logger.warning("%s refused: user %s lacks %s", func.__name__, user.id, permission.value)
                raise UnauthorizedError(f"{func.__name__} requires permission {permission.value}")
            return func(self, *args, **kwargs)
        return wrapper
    return decorator
