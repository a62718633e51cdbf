import logging
from dataclasses import dataclass, field
from functools import wraps

from flask_login import login_required, current_user

from achievetrack.errors import Forbidden
from achievetrack.models import UserRole
from achievetrack.services.scope import HierarchyPath

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Principal:
    """The acting user, passed explicitly into every access-control call."""
    id: int
    role: UserRole
    membership: HierarchyPath = field(default_factory=HierarchyPath)
    assignment: HierarchyPath = field(default_factory=HierarchyPath)

    @classmethod
    def from_user(cls, user):
        return cls(
            id=user.id,
            role=user.role,
            membership=user.membership_path,
            assignment=user.assignment_path
        )


def current_principal():
    return Principal.from_user(current_user)


# --- Auth Helpers ---
def role_required(*roles):
    def decorator(f):
        @wraps(f)
        @login_required
        def wrapped(*args, **kwargs):
            if current_user.role not in roles:
                logger.warning(f"User {current_user.id} ({current_user.role.value}) denied access to {f.__name__}")
                raise Forbidden("You are not authorized to perform this action")
            return f(*args, **kwargs)
        return wrapped
    return decorator
