import logging

from flask import Blueprint, jsonify
from flask_login import login_user, logout_user, login_required, current_user
from flask_wtf.csrf import generate_csrf

from achievetrack.errors import Forbidden, Unauthenticated
from achievetrack.forms import LoginForm, PasswordChangeForm, ProfileForm, SignupForm, parse_form
from achievetrack.services.user_service import UserService

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__, url_prefix='/auth')

@auth_bp.route('/csrf-token')
def csrf_token():
    return jsonify({'csrfToken': generate_csrf()})

@auth_bp.route('/login', methods=['POST'])
def login():
    form, _ = parse_form(LoginForm)
    user = UserService.authenticate(form.email.data, form.password.data)

    if user is None:
        logger.warning(f"Failed login for {form.email.data}")
        raise Unauthenticated("Invalid email or password")
    if not user.is_active:
        raise Forbidden("Account deactivated. Please contact administrator.")

    login_user(user)
    return jsonify({'user': user.to_dict()})

@auth_bp.route('/logout', methods=['POST'])
@login_required
def logout():
    logout_user()
    return jsonify({'message': 'Logged out'})

@auth_bp.route('/me')
@login_required
def me():
    return jsonify({'user': current_user.to_dict()})

@auth_bp.route('/me', methods=['PUT'])
@login_required
def update_me():
    form, present = parse_form(ProfileForm)
    user = UserService.update_profile(current_user.id, **form.present_data(present))
    return jsonify({'user': user.to_dict()})

@auth_bp.route('/password', methods=['PUT'])
@login_required
def update_password():
    form, _ = parse_form(PasswordChangeForm)
    UserService.change_password(current_user.id, form.current_password.data, form.new_password.data)
    return jsonify({'message': 'Password updated successfully'})

@auth_bp.route('/signup', methods=['POST'])
def signup():
    form, _ = parse_form(SignupForm)
    UserService.register_student(
        name=form.name.data,
        email=form.email.data,
        password=form.password.data,
        student_id=form.student_id.data
    )
    return jsonify({'message': 'Signup successful'}), 201
