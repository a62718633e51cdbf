import os

from flask import Blueprint, current_app, jsonify, request, send_from_directory
from flask_login import login_required

from achievetrack.auth import current_principal, role_required
from achievetrack.errors import Forbidden, NotFound
from achievetrack.forms import AchievementForm, AchievementUpdateForm, parse_form
from achievetrack.models import Achievement, UserRole
from achievetrack.services.access_control import Action, can_access
from achievetrack.services.achievement_service import AchievementService, EDITABLE_FIELDS
from achievetrack.services.upload_service import UploadService

student_bp = Blueprint('student', __name__)

@student_bp.route('/student/achievements', methods=['GET'])
@role_required(UserRole.STUDENT)
def list_achievements():
    achievements = AchievementService.list_own(
        current_principal(),
        status=request.args.get('status'),
        category=request.args.get('category'),
        academic_year=request.args.get('academicYear')
    )
    return jsonify([a.to_dict(include_student=False) for a in achievements])

@student_bp.route('/student/achievements', methods=['POST'])
@role_required(UserRole.STUDENT)
def create_achievement():
    form, _ = parse_form(AchievementForm)
    data = {name: getattr(form, name).data for name in EDITABLE_FIELDS}
    achievement = AchievementService.create(current_principal(), **data)
    return jsonify(achievement.to_dict(include_student=False)), 201

@student_bp.route('/student/achievements/<int:achievement_id>', methods=['GET'])
@login_required
def get_achievement(achievement_id):
    # Owner or any reviewer whose scope covers the student
    achievement = AchievementService.get(current_principal(), achievement_id)
    return jsonify(achievement.to_dict())

@student_bp.route('/student/achievements/<int:achievement_id>', methods=['PUT'])
@role_required(UserRole.STUDENT)
def update_achievement(achievement_id):
    principal = current_principal()
    AchievementService.check_editable(principal, achievement_id)

    form, present = parse_form(AchievementUpdateForm)
    changes = {name: value for name, value in form.present_data(present).items() if name in EDITABLE_FIELDS}
    achievement = AchievementService.update(principal, achievement_id, **changes)
    return jsonify(achievement.to_dict(include_student=False))

@student_bp.route('/student/achievements/<int:achievement_id>', methods=['DELETE'])
@role_required(UserRole.STUDENT)
def delete_achievement(achievement_id):
    AchievementService.delete(current_principal(), achievement_id)
    return jsonify({'message': 'Achievement deleted successfully'})

@student_bp.route('/student/upload', methods=['POST'])
@role_required(UserRole.STUDENT)
def upload():
    path = UploadService.save(request.files.get('file'), request.form.get('type'))
    return jsonify({'path': path, 'message': 'File uploaded successfully'})

@student_bp.route('/uploads/<path:filename>')
@login_required
def serve_upload(filename):
    public_path = UploadService.public_path(filename)
    achievements = Achievement.query.filter(
        (Achievement.certificate_path == public_path) | (Achievement.photo_path == public_path)
    ).all()

    # Files are served only once attached to an achievement the caller may view
    if not achievements:
        raise NotFound("File not found")
    principal = current_principal()
    if not any(can_access(principal, Action.VIEW, a) for a in achievements):
        raise Forbidden()

    upload_folder = current_app.config['UPLOAD_FOLDER']
    if not os.path.isfile(os.path.join(upload_folder, filename)):
        raise NotFound("File not found")
    return send_from_directory(upload_folder, filename)
