from flask import Blueprint, jsonify, request

from achievetrack.auth import current_principal, role_required
from achievetrack.forms import ReviewForm, parse_form
from achievetrack.models import UserRole
from achievetrack.services.achievement_service import AchievementService

reviewer_bp = Blueprint('reviewer', __name__, url_prefix='/review')

REVIEWERS = (UserRole.CLASS_ADVISOR, UserRole.HOD, UserRole.ADMIN)

@reviewer_bp.route('/achievements')
@role_required(*REVIEWERS)
def list_achievements():
    achievements = AchievementService.list_scoped(
        current_principal(),
        status=request.args.get('status'),
        category=request.args.get('category'),
        academic_year=request.args.get('academicYear'),
        program_id=request.args.get('programId', type=int),
        academic_structure_id=request.args.get('academicStructureId', type=int)
    )
    return jsonify([a.to_dict() for a in achievements])

@reviewer_bp.route('/achievements/<int:achievement_id>')
@role_required(*REVIEWERS)
def get_achievement(achievement_id):
    achievement = AchievementService.get(current_principal(), achievement_id)
    return jsonify(achievement.to_dict())

@reviewer_bp.route('/achievements/<int:achievement_id>/verify', methods=['POST'])
@role_required(*REVIEWERS)
def verify_achievement(achievement_id):
    principal = current_principal()
    form, _ = parse_form(ReviewForm)
    achievement = AchievementService.review(
        principal,
        achievement_id,
        status=form.status.data,
        remarks=form.remarks.data or None
    )
    return jsonify(achievement.to_dict())
