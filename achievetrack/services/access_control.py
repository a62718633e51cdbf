"""
Central authorization rules for achievements.

Every list, single-record, review and report path goes through the two
functions here:

- `can_access` decides for one achievement in memory;
- `visibility_criterion` is the same rule as a SQL criterion over Achievement.

Both derive a reviewer's reach from `reviewer_scope`, so a record shows up in
a reviewer's list exactly when the reviewer may act on it.
"""
import enum
import logging
from typing import Optional

from flask import current_app
from sqlalchemy import and_, false, or_, select, true

from achievetrack.models import Achievement, AchievementStatus, User, UserRole
from achievetrack.services.scope import HierarchyPath

logger = logging.getLogger(__name__)


class Action(str, enum.Enum):
    VIEW = "VIEW"
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    REVIEW = "REVIEW"
    LIST_SCOPED = "LIST_SCOPED"
    REPORT = "REPORT"
    MANAGE = "MANAGE"


class HodScopePolicy(str, enum.Enum):
    # HODs only reach their own department
    DEPARTMENT = "department"
    # HODs additionally reach every SUBMITTED achievement, for triage
    GLOBAL_SUBMITTED = "global"


REVIEWER_ROLES = (UserRole.ADMIN, UserRole.HOD, UserRole.CLASS_ADVISOR)


def resolve_policy(policy=None) -> HodScopePolicy:
    if policy is not None:
        return HodScopePolicy(policy)
    return HodScopePolicy(current_app.config.get('HOD_SUBMITTED_SCOPE', HodScopePolicy.DEPARTMENT.value))


def reviewer_scope(principal) -> Optional[HierarchyPath]:
    """
    The subtree a reviewer may act on. None means nothing at all; an open
    path (no levels set) means every student.
    """
    if principal.role == UserRole.CLASS_ADVISOR:
        return principal.assignment
    if principal.role == UserRole.HOD:
        scope = principal.assignment
        if scope.department_id is None:
            scope = scope.replace(department_id=principal.membership.department_id)
        if scope.department_id is None:
            return None
        return scope
    return None


# --- Per-role rules ---
# Each rule answers (principal, action, achievement, policy) -> bool.

def _admin_rule(principal, action, achievement, policy):
    return action in (Action.VIEW, Action.REVIEW, Action.LIST_SCOPED, Action.REPORT, Action.MANAGE)


def _student_rule(principal, action, achievement, policy):
    if action == Action.CREATE:
        return True
    if action in (Action.VIEW, Action.UPDATE, Action.DELETE):
        return achievement is not None and achievement.student_id == principal.id
    return False


def _in_reviewer_reach(principal, achievement, policy):
    if achievement is None:
        return False
    if principal.role == UserRole.HOD and policy == HodScopePolicy.GLOBAL_SUBMITTED \
            and achievement.status == AchievementStatus.SUBMITTED:
        return True
    scope = reviewer_scope(principal)
    if scope is None:
        return False
    return scope.matches(achievement.student.membership_path)


def _class_advisor_rule(principal, action, achievement, policy):
    if action == Action.LIST_SCOPED:
        return True
    if action in (Action.VIEW, Action.REVIEW):
        return _in_reviewer_reach(principal, achievement, policy)
    return False


def _hod_rule(principal, action, achievement, policy):
    if action in (Action.LIST_SCOPED, Action.REPORT):
        return True
    if action in (Action.VIEW, Action.REVIEW):
        return _in_reviewer_reach(principal, achievement, policy)
    return False


_RULES = {
    UserRole.ADMIN: _admin_rule,
    UserRole.HOD: _hod_rule,
    UserRole.CLASS_ADVISOR: _class_advisor_rule,
    UserRole.STUDENT: _student_rule,
}

_missing = set(UserRole) - set(_RULES)
if _missing:
    raise RuntimeError(f"No access rule for roles: {sorted(r.value for r in _missing)}")


def can_access(principal, action, achievement=None, policy=None) -> bool:
    allowed = _RULES[principal.role](principal, Action(action), achievement, resolve_policy(policy))
    if not allowed:
        logger.debug(f"Denied {action} for user {principal.id} ({principal.role.value})")
    return allowed


def _students_matching(scope: HierarchyPath):
    clauses = scope.criteria(User.membership_columns())
    return Achievement.student_id.in_(select(User.id).where(and_(true(), *clauses)))


def visibility_criterion(principal, policy=None):
    """SQL criterion over Achievement selecting what `principal` may VIEW/REVIEW."""
    policy = resolve_policy(policy)

    if principal.role == UserRole.ADMIN:
        return true()
    if principal.role == UserRole.STUDENT:
        return Achievement.student_id == principal.id

    scope = reviewer_scope(principal)
    in_scope = false() if scope is None else _students_matching(scope)

    if principal.role == UserRole.HOD and policy == HodScopePolicy.GLOBAL_SUBMITTED:
        return or_(Achievement.status == AchievementStatus.SUBMITTED, in_scope)
    return in_scope
