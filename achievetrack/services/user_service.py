import logging

from achievetrack.errors import Conflict, InvalidState, NotFound, Unauthenticated, ValidationFailed
from achievetrack.models import db, Achievement, User, UserRole
from achievetrack.services.hierarchy_service import HierarchyService
from achievetrack.services.scope import HierarchyPath, LEVELS
from werkzeug.security import generate_password_hash, check_password_hash

logger = logging.getLogger(__name__)

REVIEWER_ROLES = (UserRole.HOD, UserRole.CLASS_ADVISOR)


def _require_student_id(role, student_id):
    if role == UserRole.STUDENT and not student_id:
        raise ValidationFailed("Invalid input", details={'studentId': ["Students must have a Student ID."]})


def _path_from(data, prefix=''):
    return HierarchyPath(**{level: data.get(prefix + level) for level in LEVELS})


class UserService:
    @staticmethod
    def get_user_by_email(email):
        return User.query.filter_by(email=email).first()

    @staticmethod
    def get_user_by_id(user_id):
        user = db.session.get(User, user_id)
        if user is None:
            raise NotFound("User not found")
        return user

    @staticmethod
    def verify_password(user, password):
        return check_password_hash(user.password_hash, password)

    @staticmethod
    def authenticate(email, password):
        user = UserService.get_user_by_email(email)
        if user and UserService.verify_password(user, password):
            return user
        return None

    @staticmethod
    def list_users(role=None, department_id=None):
        if role and role not in UserRole.__members__:
            raise ValidationFailed("Invalid filter", details={'role': ["Not a valid role."]})
        query = User.query
        if role:
            query = query.filter(User.role == UserRole(role))
        if department_id:
            query = query.filter(User.department_id == department_id)
        return query.order_by(User.created_at.desc()).all()

    @staticmethod
    def _resolve_paths(role, data):
        """
        Students carry a membership path (completed upward from the deepest
        node given); HODs and advisors carry an assignment path, kept exactly
        as given since every unset level widens their scope. HODs also keep a
        home department as membership.
        """
        membership = _path_from(data)
        assignment = _path_from(data, 'assigned_')

        if role == UserRole.STUDENT:
            if not assignment.is_open:
                raise ValidationFailed("Invalid input", details={'role': ["Students cannot have an assigned scope."]})
            return HierarchyService.validate_path(membership, complete=True), HierarchyPath()

        if role in REVIEWER_ROLES:
            membership = HierarchyService.validate_path(membership)
            assignment = HierarchyService.validate_path(assignment, field_prefix='assigned')
            return membership, assignment

        # Admins sit outside the hierarchy
        return HierarchyService.validate_path(membership), HierarchyPath()

    @staticmethod
    def _check_unique(email=None, student_id=None, exclude_id=None):
        if email:
            query = User.query.filter(User.email == email)
            if exclude_id:
                query = query.filter(User.id != exclude_id)
            if query.first():
                raise Conflict("Email already registered")
        if student_id:
            query = User.query.filter(User.student_id == student_id)
            if exclude_id:
                query = query.filter(User.id != exclude_id)
            if query.first():
                raise Conflict("Student ID already registered")

    @staticmethod
    def create_user(email, password, name, role, **data):
        role = UserRole(role)
        student_id = data.get('student_id')
        _require_student_id(role, student_id)

        UserService._check_unique(email=email, student_id=student_id)
        membership, assignment = UserService._resolve_paths(role, data)

        user = User(
            email=email,
            password_hash=generate_password_hash(password),
            name=name,
            role=role,
            student_id=student_id,
            phone=data.get('phone'),
            is_active=data.get('is_active', True)
        )
        user.membership_path = membership
        user.assignment_path = assignment
        db.session.add(user)
        db.session.commit()
        logger.info(f"Created {role.value} user {email}")
        return user

    @staticmethod
    def register_student(name, email, password, student_id):
        return UserService.create_user(email, password, name, UserRole.STUDENT, student_id=student_id)

    @staticmethod
    def update_user(user_id, **changes):
        user = UserService.get_user_by_id(user_id)
        UserService._check_unique(email=changes.get('email'), student_id=changes.get('student_id'), exclude_id=user_id)

        role = UserRole(changes['role']) if changes.get('role') else user.role

        # Merge the incoming hierarchy refs over the stored ones before validating
        current = dict(zip(LEVELS, user.membership_path.values()))
        current.update(zip(['assigned_' + level for level in LEVELS], user.assignment_path.values()))
        for key in list(current):
            if key in changes:
                current[key] = changes[key]
        if role == UserRole.STUDENT and user.role != UserRole.STUDENT:
            for level in LEVELS:
                current['assigned_' + level] = None

        student_id = changes['student_id'] if 'student_id' in changes else user.student_id
        _require_student_id(role, student_id)
        membership, assignment = UserService._resolve_paths(role, current)

        for key in ('email', 'name', 'student_id', 'phone', 'is_active'):
            if key in changes:
                setattr(user, key, changes[key])
        if changes.get('password'):
            user.password_hash = generate_password_hash(changes['password'])
        user.role = role
        user.membership_path = membership
        user.assignment_path = assignment

        db.session.commit()
        logger.info(f"Updated user {user.email}")
        return user

    @staticmethod
    def update_profile(user_id, **changes):
        """Self-service edit; only name and phone are open to the user."""
        user = UserService.get_user_by_id(user_id)
        for key in ('name', 'phone'):
            if key in changes:
                setattr(user, key, changes[key])
        db.session.commit()
        return user

    @staticmethod
    def change_password(user_id, current_password, new_password):
        user = UserService.get_user_by_id(user_id)
        if not UserService.verify_password(user, current_password):
            logger.warning(f"Password change for user {user_id} rejected: wrong current password")
            raise Unauthenticated("Current password is incorrect")
        user.password_hash = generate_password_hash(new_password)
        db.session.commit()
        logger.info(f"Password changed for user {user.email}")
        return user

    @staticmethod
    def toggle_active(user_id, acting_user_id):
        user = UserService.get_user_by_id(user_id)
        if user.id == acting_user_id:
            raise InvalidState("Cannot deactivate your own account")
        user.is_active = not user.is_active
        db.session.commit()
        logger.info(f"User {user.email} {'activated' if user.is_active else 'deactivated'}")
        return user

    @staticmethod
    def delete_user(user_id, acting_user_id):
        user = UserService.get_user_by_id(user_id)
        if user.id == acting_user_id:
            raise InvalidState("Cannot delete your own admin account")
        # Achievement history outlives accounts; such users are deactivated instead
        referenced = Achievement.query.filter(
            (Achievement.student_id == user.id) | (Achievement.verified_by == user.id)
        ).first()
        if referenced is not None:
            raise InvalidState("User has achievement records and cannot be deleted. Deactivate the account instead.")
        db.session.delete(user)
        db.session.commit()
        logger.info(f"Deleted user {user.email}")
