"""
Input validation for the JSON API.

Forms are fed from the request's JSON body instead of form posts; CSRF is
enforced globally by CSRFProtect through the X-CSRFToken header, so the
forms themselves carry no token field.
"""
from flask import request
from flask_wtf import FlaskForm
from werkzeug.datastructures import MultiDict
from wtforms import BooleanField, DateField, IntegerField, PasswordField, StringField
from wtforms.validators import (
    AnyOf, DataRequired, Email, InputRequired, Length, NumberRange, Optional, Regexp, ValidationError
)

from achievetrack.errors import ValidationFailed
from achievetrack.models import AchievementCategory, AchievementStatus, ProgramType, UserRole


def _values(enum_cls):
    return [member.value for member in enum_cls]


class ApiForm(FlaskForm):
    class Meta:
        csrf = False

    # Maps JSON keys onto form field names
    json_fields = {}
    # Fields a JSON null resets to None; null elsewhere counts as absent
    clearable = ()
    cleared = frozenset()

    def present_data(self, present):
        return {
            name: None if name in self.cleared else self._fields[name].data
            for name in present if name in self._fields
        }


def json_payload():
    payload = request.get_json(silent=True)
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationFailed("Request body must be a JSON object")
    return payload


def parse_form(form_cls, payload=None):
    """
    Validate a JSON payload against `form_cls`.

    Returns (form, present) where `present` is the set of field names the
    client actually sent; partial updates only touch those. A null for a
    field in `form_cls.clearable` is kept in `present` and recorded in
    `form.cleared`.
    """
    if payload is None:
        payload = json_payload()

    data = MultiDict()
    present = set()
    cleared = set()
    for key, value in payload.items():
        name = form_cls.json_fields.get(key, key)
        if value is None:
            if name in form_cls.clearable:
                present.add(name)
                cleared.add(name)
            continue
        if isinstance(value, (dict, list)):
            raise ValidationFailed("Invalid input", details={key: ["Must be a single value."]})
        data[name] = value if isinstance(value, bool) else str(value)
        present.add(name)

    form = form_cls(formdata=data)
    form.cleared = frozenset(cleared)
    if not form.validate():
        raise ValidationFailed("Invalid input", details=form.errors)
    return form, present


# --- Auth ---

class LoginForm(ApiForm):
    email = StringField('email', validators=[DataRequired(), Email()])
    password = PasswordField('password', validators=[DataRequired()])


class SignupForm(ApiForm):
    json_fields = {'studentId': 'student_id'}

    name = StringField('name', validators=[DataRequired(), Length(max=100)])
    email = StringField('email', validators=[DataRequired(), Email(), Length(max=120)])
    password = PasswordField('password', validators=[DataRequired(), Length(min=6)])
    student_id = StringField('studentId', validators=[DataRequired(), Length(max=64)])


class ProfileForm(ApiForm):
    clearable = ('phone',)

    name = StringField('name', validators=[Optional(), Length(min=1, max=100)])
    phone = StringField('phone', validators=[Optional(), Length(max=20)])


class PasswordChangeForm(ApiForm):
    json_fields = {'currentPassword': 'current_password', 'newPassword': 'new_password'}

    current_password = PasswordField('currentPassword', validators=[DataRequired()])
    new_password = PasswordField('newPassword', validators=[DataRequired(), Length(min=6)])


# --- Achievements ---

class AchievementForm(ApiForm):
    json_fields = {
        'eventDate': 'event_date',
        'academicYear': 'academic_year',
        'certificatePath': 'certificate_path',
        'photoPath': 'photo_path',
        'isGroupAchievement': 'is_group_achievement',
        'groupMembers': 'group_members',
    }

    title = StringField('title', validators=[DataRequired(), Length(max=200)])
    description = StringField('description', validators=[DataRequired()])
    category = StringField('category', validators=[DataRequired(), AnyOf(_values(AchievementCategory))])
    event_date = DateField('eventDate', validators=[DataRequired()])
    academic_year = StringField('academicYear', validators=[Optional(), Length(min=7, max=7)])
    semester = StringField('semester', validators=[Optional(), Length(max=20)])
    certificate_path = StringField('certificatePath', validators=[
        Optional(), Length(max=255),
        Regexp(r'^/uploads/certificate/[\w.-]+$', message="Must be a path returned by the upload endpoint.")
    ])
    photo_path = StringField('photoPath', validators=[
        Optional(), Length(max=255),
        Regexp(r'^/uploads/photo/[\w.-]+$', message="Must be a path returned by the upload endpoint.")
    ])
    is_group_achievement = BooleanField('isGroupAchievement')
    group_members = StringField('groupMembers', validators=[Optional()])

    def validate_academic_year(self, field):
        if field.data and not _is_academic_year(field.data):
            raise ValidationError("Academic year must look like 2024-25.")


class AchievementUpdateForm(AchievementForm):
    clearable = ('semester', 'certificate_path', 'photo_path', 'group_members')

    title = StringField('title', validators=[Optional(), Length(min=1, max=200)])
    description = StringField('description', validators=[Optional(), Length(min=1)])
    category = StringField('category', validators=[Optional(), AnyOf(_values(AchievementCategory))])
    event_date = DateField('eventDate', validators=[Optional()])


class ReviewForm(ApiForm):
    status = StringField('status', validators=[DataRequired(), AnyOf(_values(AchievementStatus))])
    remarks = StringField('remarks', validators=[Optional()])

    def validate_status(self, field):
        if field.data == AchievementStatus.SUBMITTED.value:
            raise ValidationError("Status must be VERIFIED or REJECTED.")


def _is_academic_year(value):
    if len(value) != 7 or value[4] != '-':
        return False
    start, end = value[:4], value[5:]
    if not (start.isdigit() and end.isdigit()):
        return False
    return (int(start) + 1) % 100 == int(end)


# --- Hierarchy ---

class DepartmentForm(ApiForm):
    name = StringField('name', validators=[DataRequired(), Length(max=100)])
    code = StringField('code', validators=[DataRequired(), Length(min=1, max=10)])
    description = StringField('description', validators=[Optional(), Length(max=255)])


class DepartmentUpdateForm(DepartmentForm):
    clearable = ('description',)

    name = StringField('name', validators=[Optional(), Length(min=1, max=100)])
    code = StringField('code', validators=[Optional(), Length(min=1, max=10)])


class ProgramForm(ApiForm):
    json_fields = {'departmentId': 'department_id'}

    name = StringField('name', validators=[DataRequired(), Length(max=100)])
    code = StringField('code', validators=[DataRequired(), Length(min=1, max=10)])
    type = StringField('type', validators=[DataRequired(), AnyOf(_values(ProgramType))])
    department_id = IntegerField('departmentId', validators=[InputRequired()])


class AcademicStructureForm(ApiForm):
    json_fields = {
        'isSemester': 'is_semester',
        'departmentId': 'department_id',
        'programId': 'program_id',
    }

    name = StringField('name', validators=[DataRequired(), Length(max=100)])
    code = StringField('code', validators=[DataRequired(), Length(min=1, max=10)])
    level = IntegerField('level', validators=[InputRequired(), NumberRange(min=1)])
    is_semester = BooleanField('isSemester')
    semester = IntegerField('semester', validators=[Optional(), NumberRange(min=1)])
    department_id = IntegerField('departmentId', validators=[InputRequired()])
    program_id = IntegerField('programId', validators=[InputRequired()])

    def validate(self, extra_validators=None):
        if not super().validate(extra_validators):
            return False
        # Optional() halts the field chain when semester is absent, so this lives at form level
        if self.is_semester.data and self.semester.data is None:
            self.semester.errors.append("Semester is required for semester-based structures.")
            return False
        if not self.is_semester.data and self.semester.data is not None:
            self.semester.errors.append("Semester is only allowed for semester-based structures.")
            return False
        return True


class DivisionForm(ApiForm):
    json_fields = {'academicStructureId': 'academic_structure_id'}

    name = StringField('name', validators=[DataRequired(), Length(max=100)])
    code = StringField('code', validators=[DataRequired(), Length(min=1, max=10)])
    academic_structure_id = IntegerField('academicStructureId', validators=[InputRequired()])


class BatchForm(ApiForm):
    json_fields = {'divisionId': 'division_id'}

    name = StringField('name', validators=[DataRequired(), Length(max=100)])
    number = IntegerField('number', validators=[InputRequired(), NumberRange(min=1)])
    division_id = IntegerField('divisionId', validators=[InputRequired()])


# --- Users ---

HIERARCHY_JSON_FIELDS = {
    'departmentId': 'department_id',
    'programId': 'program_id',
    'academicStructureId': 'academic_structure_id',
    'divisionId': 'division_id',
    'batchId': 'batch_id',
    'assignedDepartmentId': 'assigned_department_id',
    'assignedProgramId': 'assigned_program_id',
    'assignedAcademicStructureId': 'assigned_academic_structure_id',
    'assignedDivisionId': 'assigned_division_id',
    'assignedBatchId': 'assigned_batch_id',
}


class UserForm(ApiForm):
    json_fields = dict(HIERARCHY_JSON_FIELDS, studentId='student_id', isActive='is_active')

    email = StringField('email', validators=[DataRequired(), Email(), Length(max=120)])
    password = PasswordField('password', validators=[DataRequired(), Length(min=6)])
    name = StringField('name', validators=[DataRequired(), Length(max=100)])
    role = StringField('role', validators=[DataRequired(), AnyOf(_values(UserRole))])
    student_id = StringField('studentId', validators=[Optional(), Length(max=64)])
    phone = StringField('phone', validators=[Optional(), Length(max=20)])
    is_active = BooleanField('isActive', default=True)

    department_id = IntegerField('departmentId', validators=[Optional()])
    program_id = IntegerField('programId', validators=[Optional()])
    academic_structure_id = IntegerField('academicStructureId', validators=[Optional()])
    division_id = IntegerField('divisionId', validators=[Optional()])
    batch_id = IntegerField('batchId', validators=[Optional()])

    assigned_department_id = IntegerField('assignedDepartmentId', validators=[Optional()])
    assigned_program_id = IntegerField('assignedProgramId', validators=[Optional()])
    assigned_academic_structure_id = IntegerField('assignedAcademicStructureId', validators=[Optional()])
    assigned_division_id = IntegerField('assignedDivisionId', validators=[Optional()])
    assigned_batch_id = IntegerField('assignedBatchId', validators=[Optional()])


class UserUpdateForm(UserForm):
    clearable = ('student_id', 'phone') + tuple(HIERARCHY_JSON_FIELDS.values())

    email = StringField('email', validators=[Optional(), Email(), Length(max=120)])
    password = PasswordField('password', validators=[Optional(), Length(min=6)])
    name = StringField('name', validators=[Optional(), Length(min=1, max=100)])
    role = StringField('role', validators=[Optional(), AnyOf(_values(UserRole))])
