from flask import Blueprint, jsonify, request
from flask_login import current_user

from achievetrack.auth import role_required
from achievetrack.forms import (
    AcademicStructureForm, BatchForm, DepartmentForm, DepartmentUpdateForm, DivisionForm, ProgramForm,
    UserForm, UserUpdateForm, parse_form
)
from achievetrack.models import UserRole
from achievetrack.services.hierarchy_service import HierarchyService
from achievetrack.services.user_service import UserService

admin_bp = Blueprint('admin', __name__, url_prefix='/admin')


def _form_data(form, present=None):
    if present is None:
        present = form._fields.keys()
    return form.present_data(present)


# --- Departments ---
@admin_bp.route('/departments', methods=['GET'])
@role_required(UserRole.ADMIN)
def list_departments():
    return jsonify([d.to_dict() for d in HierarchyService.list_departments()])

@admin_bp.route('/departments', methods=['POST'])
@role_required(UserRole.ADMIN)
def create_department():
    form, _ = parse_form(DepartmentForm)
    department = HierarchyService.create_department(
        name=form.name.data,
        code=form.code.data,
        description=form.description.data or None
    )
    return jsonify(department.to_dict()), 201

@admin_bp.route('/departments/<int:department_id>', methods=['GET'])
@role_required(UserRole.ADMIN)
def get_department(department_id):
    return jsonify(HierarchyService.get_department(department_id).to_dict(nested=True))

@admin_bp.route('/departments/<int:department_id>', methods=['PUT'])
@role_required(UserRole.ADMIN)
def update_department(department_id):
    form, present = parse_form(DepartmentUpdateForm)
    department = HierarchyService.update_department(department_id, **_form_data(form, present))
    return jsonify(department.to_dict())

@admin_bp.route('/departments/<int:department_id>', methods=['DELETE'])
@role_required(UserRole.ADMIN)
def delete_department(department_id):
    HierarchyService.delete_department(department_id)
    return jsonify({'message': 'Department deleted successfully'})


# --- Programs ---
@admin_bp.route('/programs', methods=['GET'])
@role_required(UserRole.ADMIN)
def list_programs():
    programs = HierarchyService.list_programs(department_id=request.args.get('departmentId', type=int))
    return jsonify([p.to_dict() for p in programs])

@admin_bp.route('/programs', methods=['POST'])
@role_required(UserRole.ADMIN)
def create_program():
    form, _ = parse_form(ProgramForm)
    program = HierarchyService.create_program(**_form_data(form))
    return jsonify(program.to_dict()), 201

@admin_bp.route('/programs/<int:program_id>', methods=['DELETE'])
@role_required(UserRole.ADMIN)
def delete_program(program_id):
    HierarchyService.delete_program(program_id)
    return jsonify({'message': 'Program deleted successfully'})


# --- Academic Structures ---
@admin_bp.route('/academic-structures', methods=['GET'])
@role_required(UserRole.ADMIN)
def list_academic_structures():
    structures = HierarchyService.list_academic_structures(
        department_id=request.args.get('departmentId', type=int),
        program_id=request.args.get('programId', type=int)
    )
    return jsonify([s.to_dict(nested=True) for s in structures])

@admin_bp.route('/academic-structures', methods=['POST'])
@role_required(UserRole.ADMIN)
def create_academic_structure():
    form, _ = parse_form(AcademicStructureForm)
    structure = HierarchyService.create_academic_structure(**_form_data(form))
    return jsonify(structure.to_dict()), 201

@admin_bp.route('/academic-structures/<int:structure_id>', methods=['DELETE'])
@role_required(UserRole.ADMIN)
def delete_academic_structure(structure_id):
    HierarchyService.delete_academic_structure(structure_id)
    return jsonify({'message': 'Academic structure deleted successfully'})


# --- Divisions ---
@admin_bp.route('/divisions', methods=['GET'])
@role_required(UserRole.ADMIN)
def list_divisions():
    divisions = HierarchyService.list_divisions(
        academic_structure_id=request.args.get('academicStructureId', type=int)
    )
    return jsonify([d.to_dict(nested=True) for d in divisions])

@admin_bp.route('/divisions', methods=['POST'])
@role_required(UserRole.ADMIN)
def create_division():
    form, _ = parse_form(DivisionForm)
    division = HierarchyService.create_division(**_form_data(form))
    return jsonify(division.to_dict()), 201

@admin_bp.route('/divisions/<int:division_id>', methods=['DELETE'])
@role_required(UserRole.ADMIN)
def delete_division(division_id):
    HierarchyService.delete_division(division_id)
    return jsonify({'message': 'Division deleted successfully'})


# --- Batches ---
@admin_bp.route('/batches', methods=['GET'])
@role_required(UserRole.ADMIN)
def list_batches():
    batches = HierarchyService.list_batches(division_id=request.args.get('divisionId', type=int))
    return jsonify([b.to_dict() for b in batches])

@admin_bp.route('/batches', methods=['POST'])
@role_required(UserRole.ADMIN)
def create_batch():
    form, _ = parse_form(BatchForm)
    batch = HierarchyService.create_batch(**_form_data(form))
    return jsonify(batch.to_dict()), 201

@admin_bp.route('/batches/<int:batch_id>', methods=['DELETE'])
@role_required(UserRole.ADMIN)
def delete_batch(batch_id):
    HierarchyService.delete_batch(batch_id)
    return jsonify({'message': 'Batch deleted successfully'})


# --- Users ---
@admin_bp.route('/users', methods=['GET'])
@role_required(UserRole.ADMIN)
def list_users():
    users = UserService.list_users(
        role=request.args.get('role'),
        department_id=request.args.get('departmentId', type=int)
    )
    return jsonify([u.to_dict() for u in users])

@admin_bp.route('/users', methods=['POST'])
@role_required(UserRole.ADMIN)
def create_user():
    form, present = parse_form(UserForm)
    data = _form_data(form, present)
    user = UserService.create_user(
        email=data.pop('email'),
        password=data.pop('password'),
        name=data.pop('name'),
        role=data.pop('role'),
        **data
    )
    return jsonify(user.to_dict()), 201

@admin_bp.route('/users/<int:user_id>', methods=['PUT'])
@role_required(UserRole.ADMIN)
def update_user(user_id):
    form, present = parse_form(UserUpdateForm)
    user = UserService.update_user(user_id, **_form_data(form, present))
    return jsonify(user.to_dict())

@admin_bp.route('/users/<int:user_id>/toggle', methods=['POST'])
@role_required(UserRole.ADMIN)
def toggle_user(user_id):
    user = UserService.toggle_active(user_id, acting_user_id=current_user.id)
    return jsonify(user.to_dict())

@admin_bp.route('/users/<int:user_id>', methods=['DELETE'])
@role_required(UserRole.ADMIN)
def delete_user(user_id):
    UserService.delete_user(user_id, acting_user_id=current_user.id)
    return jsonify({'message': 'User deleted successfully'})
