import logging

from sqlalchemy.exc import IntegrityError

from achievetrack.errors import Conflict, InvalidState, NotFound, ValidationFailed
from achievetrack.models import db, AcademicStructure, Batch, Department, Division, Program, ProgramType, User
from achievetrack.services.scope import HierarchyPath, LEVELS

logger = logging.getLogger(__name__)

LEVEL_MODELS = {
    'department_id': Department,
    'program_id': Program,
    'academic_structure_id': AcademicStructure,
    'division_id': Division,
    'batch_id': Batch,
}


def _get_or_404(model, obj_id, label):
    obj = db.session.get(model, obj_id)
    if obj is None:
        raise NotFound(f"{label} not found")
    return obj


def _commit(conflict_message):
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise Conflict(conflict_message)


def _delete_if_unused(obj, dependents, label):
    if any(dependents):
        raise InvalidState(f"{label} has dependent records and cannot be deleted")
    db.session.delete(obj)
    db.session.commit()
    logger.info(f"Deleted {obj!r}")


def _has_members(column, obj_id):
    return db.session.query(User.id).filter(column == obj_id).first() is not None


class HierarchyService:
    # --- Departments ---
    @staticmethod
    def list_departments():
        return Department.query.order_by(Department.name).all()

    @staticmethod
    def get_department(department_id):
        return _get_or_404(Department, department_id, "Department")

    @staticmethod
    def create_department(name, code, description=None):
        if Department.query.filter_by(code=code).first():
            raise Conflict(f"Department code '{code}' already exists")
        department = Department(name=name, code=code, description=description)
        db.session.add(department)
        _commit(f"Department code '{code}' already exists")
        return department

    @staticmethod
    def update_department(department_id, **changes):
        department = HierarchyService.get_department(department_id)
        code = changes.get('code')
        if code and Department.query.filter(Department.code == code, Department.id != department_id).first():
            raise Conflict(f"Department code '{code}' already exists")
        for key in ('name', 'code', 'description'):
            if key in changes:
                setattr(department, key, changes[key])
        _commit("Department code already exists")
        return department

    @staticmethod
    def delete_department(department_id):
        department = HierarchyService.get_department(department_id)
        _delete_if_unused(department, [
            department.programs,
            _has_members(User.department_id, department_id),
            _has_members(User.assigned_department_id, department_id),
        ], "Department")

    # --- Programs ---
    @staticmethod
    def list_programs(department_id=None):
        query = Program.query
        if department_id:
            query = query.filter_by(department_id=department_id)
        return query.order_by(Program.code).all()

    @staticmethod
    def create_program(name, code, type, department_id):
        _get_or_404(Department, department_id, "Department")
        program = Program(name=name, code=code, type=ProgramType(type), department_id=department_id)
        db.session.add(program)
        db.session.commit()
        return program

    @staticmethod
    def delete_program(program_id):
        program = _get_or_404(Program, program_id, "Program")
        _delete_if_unused(program, [
            program.academic_structures,
            _has_members(User.program_id, program_id),
            _has_members(User.assigned_program_id, program_id),
        ], "Program")

    # --- Academic structures ---
    @staticmethod
    def list_academic_structures(department_id=None, program_id=None):
        query = AcademicStructure.query
        if department_id:
            query = query.filter_by(department_id=department_id)
        if program_id:
            query = query.filter_by(program_id=program_id)
        return query.order_by(AcademicStructure.level).all()

    @staticmethod
    def create_academic_structure(name, code, level, department_id, program_id, is_semester=False, semester=None):
        program = _get_or_404(Program, program_id, "Program")
        _get_or_404(Department, department_id, "Department")
        if program.department_id != department_id:
            raise ValidationFailed("Invalid input", details={'programId': ["Program does not belong to the department."]})

        structure = AcademicStructure(
            name=name,
            code=code,
            level=level,
            is_semester=is_semester,
            semester=semester if is_semester else None,
            department_id=department_id,
            program_id=program_id
        )
        db.session.add(structure)
        _commit(f"Academic structure '{code}' already exists for this program")
        return structure

    @staticmethod
    def delete_academic_structure(structure_id):
        structure = _get_or_404(AcademicStructure, structure_id, "Academic structure")
        _delete_if_unused(structure, [
            structure.divisions,
            _has_members(User.academic_structure_id, structure_id),
            _has_members(User.assigned_academic_structure_id, structure_id),
        ], "Academic structure")

    # --- Divisions ---
    @staticmethod
    def list_divisions(academic_structure_id=None):
        query = Division.query
        if academic_structure_id:
            query = query.filter_by(academic_structure_id=academic_structure_id)
        return query.order_by(Division.code).all()

    @staticmethod
    def create_division(name, code, academic_structure_id):
        _get_or_404(AcademicStructure, academic_structure_id, "Academic structure")
        division = Division(name=name, code=code, academic_structure_id=academic_structure_id)
        db.session.add(division)
        db.session.commit()
        return division

    @staticmethod
    def delete_division(division_id):
        division = _get_or_404(Division, division_id, "Division")
        _delete_if_unused(division, [
            division.batches,
            _has_members(User.division_id, division_id),
            _has_members(User.assigned_division_id, division_id),
        ], "Division")

    # --- Batches ---
    @staticmethod
    def list_batches(division_id=None):
        query = Batch.query
        if division_id:
            query = query.filter_by(division_id=division_id)
        return query.order_by(Batch.number).all()

    @staticmethod
    def create_batch(name, number, division_id):
        _get_or_404(Division, division_id, "Division")
        batch = Batch(name=name, number=number, division_id=division_id)
        db.session.add(batch)
        db.session.commit()
        return batch

    @staticmethod
    def delete_batch(batch_id):
        batch = _get_or_404(Batch, batch_id, "Batch")
        _delete_if_unused(batch, [
            _has_members(User.batch_id, batch_id),
            _has_members(User.assigned_batch_id, batch_id),
        ], "Batch")

    # --- Path validation ---
    @staticmethod
    def validate_path(path: HierarchyPath, field_prefix='', complete=False) -> HierarchyPath:
        """
        Check that every node set on `path` exists and descends from every
        node set above it. With `complete=True` the missing ancestors of the
        deepest node are filled in.
        """
        errors = {}
        resolved = path
        for level in path.set_levels():
            node = db.session.get(LEVEL_MODELS[level], getattr(path, level))
            if node is None:
                errors[_field_name(field_prefix, level)] = ["Does not exist."]
                continue
            node_path = node.path
            for ancestor in LEVELS[:LEVELS.index(level)]:
                expected = getattr(path, ancestor)
                if expected is not None and getattr(node_path, ancestor) != expected:
                    errors.setdefault(_field_name(field_prefix, level), []).append(
                        f"Does not belong to the selected {_label(ancestor)}."
                    )
                    break
            if complete:
                resolved = HierarchyPath.from_values([
                    resolved_value if resolved_value is not None else node_value
                    for resolved_value, node_value in zip(resolved.values(), node_path.values())
                ])
        if errors:
            raise ValidationFailed("Invalid input", details=errors)
        return resolved


def _label(level):
    return level[:-3].replace('_', ' ')


def _field_name(prefix, level):
    parts = level.split('_')
    name = parts[0] + ''.join(p.capitalize() for p in parts[1:])
    name = name[:-2] + 'Id'
    if prefix:
        return prefix + name[0].upper() + name[1:]
    return name
