import logging
from datetime import date, datetime

from sqlalchemy import delete, update

from achievetrack.errors import Forbidden, InvalidState, NotFound, ValidationFailed
from achievetrack.models import db, Achievement, AchievementCategory, AchievementStatus, User
from achievetrack.services.access_control import Action, can_access, visibility_criterion

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = (
    'title', 'description', 'category', 'event_date', 'academic_year', 'semester',
    'certificate_path', 'photo_path', 'is_group_achievement', 'group_members',
)

NOT_SUBMITTED_MESSAGE = "Cannot modify non-submitted achievement"
ALREADY_PROCESSED_MESSAGE = "Achievement already processed"


def academic_year_for(event_date: date) -> str:
    """Academic years run June to May: 2024-07-10 -> '2024-25', 2025-03-01 -> '2024-25'."""
    start = event_date.year if event_date.month >= 6 else event_date.year - 1
    return f"{start}-{str(start + 1)[-2:]}"


def _apply_filters(query, status=None, category=None, academic_year=None, program_id=None,
                   academic_structure_id=None):
    if status:
        query = query.filter(Achievement.status == AchievementStatus(status))
    if category:
        query = query.filter(Achievement.category == AchievementCategory(category))
    if academic_year:
        query = query.filter(Achievement.academic_year == academic_year)
    if program_id or academic_structure_id:
        query = query.join(User, Achievement.student_id == User.id)
        if program_id:
            query = query.filter(User.program_id == program_id)
        if academic_structure_id:
            query = query.filter(User.academic_structure_id == academic_structure_id)
    return query


def _check_filter_values(status=None, category=None):
    errors = {}
    if status and status not in AchievementStatus.__members__:
        errors['status'] = ["Not a valid status."]
    if category and category not in AchievementCategory.__members__:
        errors['category'] = ["Not a valid category."]
    if errors:
        raise ValidationFailed("Invalid filter", details=errors)


class AchievementService:
    @staticmethod
    def _load(achievement_id):
        achievement = db.session.get(Achievement, achievement_id)
        if achievement is None:
            raise NotFound("Achievement not found")
        return achievement

    @staticmethod
    def _authorize(principal, action, achievement, policy=None):
        if not can_access(principal, action, achievement, policy):
            logger.warning(f"User {principal.id} denied {action.value} on achievement {achievement.id}")
            raise Forbidden()

    # --- Student side ---
    @staticmethod
    def create(principal, **data):
        if not can_access(principal, Action.CREATE):
            raise Forbidden("Only students can submit achievements")

        event_date = data['event_date']
        achievement = Achievement(
            title=data['title'],
            description=data['description'],
            category=AchievementCategory(data['category']),
            event_date=event_date,
            academic_year=data.get('academic_year') or academic_year_for(event_date),
            semester=data.get('semester') or None,
            certificate_path=data.get('certificate_path') or None,
            photo_path=data.get('photo_path') or None,
            is_group_achievement=bool(data.get('is_group_achievement', False)),
            group_members=data.get('group_members') or None,
            status=AchievementStatus.SUBMITTED,
            student_id=principal.id
        )
        db.session.add(achievement)
        db.session.commit()
        logger.info(f"Student {principal.id} submitted achievement {achievement.id}")
        return achievement

    @staticmethod
    def list_own(principal, status=None, category=None, academic_year=None):
        _check_filter_values(status, category)
        query = Achievement.query.filter(Achievement.student_id == principal.id)
        query = _apply_filters(query, status=status, category=category, academic_year=academic_year)
        return query.order_by(Achievement.event_date.desc()).all()

    @staticmethod
    def get(principal, achievement_id, policy=None):
        achievement = AchievementService._load(achievement_id)
        AchievementService._authorize(principal, Action.VIEW, achievement, policy)
        return achievement

    @staticmethod
    def check_editable(principal, achievement_id, action=Action.UPDATE):
        """Ownership and state checks run before the request body is parsed."""
        achievement = AchievementService._load(achievement_id)
        AchievementService._authorize(principal, action, achievement)
        if achievement.status != AchievementStatus.SUBMITTED:
            raise InvalidState(NOT_SUBMITTED_MESSAGE)
        return achievement

    @staticmethod
    def update(principal, achievement_id, **changes):
        AchievementService.check_editable(principal, achievement_id)

        values = {key: changes[key] for key in EDITABLE_FIELDS if key in changes}
        if 'category' in values:
            values['category'] = AchievementCategory(values['category'])
        if 'is_group_achievement' in values:
            values['is_group_achievement'] = bool(values['is_group_achievement'])
        if not values:
            return AchievementService._load(achievement_id)
        values['updated_at'] = datetime.utcnow()

        # Status is part of the WHERE clause so a concurrent review wins cleanly
        result = db.session.execute(
            update(Achievement)
            .where(Achievement.id == achievement_id,
                   Achievement.student_id == principal.id,
                   Achievement.status == AchievementStatus.SUBMITTED)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.session.rollback()
            raise InvalidState(NOT_SUBMITTED_MESSAGE)
        db.session.commit()
        return AchievementService._load(achievement_id)

    @staticmethod
    def delete(principal, achievement_id):
        achievement = AchievementService.check_editable(principal, achievement_id, Action.DELETE)
        db.session.expunge(achievement)

        result = db.session.execute(
            delete(Achievement)
            .where(Achievement.id == achievement_id,
                   Achievement.student_id == principal.id,
                   Achievement.status == AchievementStatus.SUBMITTED)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.session.rollback()
            raise InvalidState(NOT_SUBMITTED_MESSAGE)
        db.session.commit()
        logger.info(f"Student {principal.id} deleted achievement {achievement_id}")

    # --- Reviewer side ---
    @staticmethod
    def list_scoped(principal, status=None, category=None, academic_year=None, program_id=None,
                    academic_structure_id=None, policy=None):
        if not can_access(principal, Action.LIST_SCOPED, policy=policy):
            raise Forbidden()
        _check_filter_values(status, category)
        query = Achievement.query.filter(visibility_criterion(principal, policy))
        query = _apply_filters(query, status=status, category=category, academic_year=academic_year,
                               program_id=program_id, academic_structure_id=academic_structure_id)
        return query.order_by(Achievement.created_at.desc(), Achievement.id.desc()).all()

    @staticmethod
    def review(principal, achievement_id, status, remarks=None, policy=None):
        """
        Move a SUBMITTED achievement to VERIFIED or REJECTED.

        The transition is one conditional UPDATE guarded by the current
        status and the reviewer's visibility; when two reviewers race, the
        loser matches zero rows and gets "already processed".
        """
        target = AchievementStatus(status)
        if target == AchievementStatus.SUBMITTED:
            raise ValidationFailed("Invalid status update")

        achievement = AchievementService._load(achievement_id)
        AchievementService._authorize(principal, Action.REVIEW, achievement, policy)
        if achievement.status != AchievementStatus.SUBMITTED:
            raise InvalidState(ALREADY_PROCESSED_MESSAGE)

        now = datetime.utcnow()
        result = db.session.execute(
            update(Achievement)
            .where(Achievement.id == achievement_id,
                   Achievement.status == AchievementStatus.SUBMITTED,
                   visibility_criterion(principal, policy))
            .values(status=target, remarks=remarks, verified_by=principal.id, verified_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.session.rollback()
            raise InvalidState(ALREADY_PROCESSED_MESSAGE)
        db.session.commit()

        logger.info(f"Achievement {achievement_id} {target.value} by user {principal.id}")
        db.session.refresh(achievement)
        return achievement
