import enum

from flask_sqlalchemy import SQLAlchemy
from flask_login import UserMixin
from datetime import datetime

from achievetrack.services.scope import HierarchyPath

# Initialize SQLAlchemy
db = SQLAlchemy()


class UserRole(str, enum.Enum):
    ADMIN = "ADMIN"
    HOD = "HOD"
    CLASS_ADVISOR = "CLASS_ADVISOR"
    STUDENT = "STUDENT"


class ProgramType(str, enum.Enum):
    UG = "UG"
    PG = "PG"
    PHD = "PHD"


class AchievementStatus(str, enum.Enum):
    SUBMITTED = "SUBMITTED"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"


TERMINAL_STATUSES = (AchievementStatus.VERIFIED, AchievementStatus.REJECTED)


class AchievementCategory(str, enum.Enum):
    TECHNICAL_COMPETITIONS = "TECHNICAL_COMPETITIONS"
    HACKATHONS = "HACKATHONS"
    INTERNSHIPS = "INTERNSHIPS"
    CERTIFICATIONS = "CERTIFICATIONS"
    RESEARCH_PUBLICATIONS = "RESEARCH_PUBLICATIONS"
    SPORTS_CULTURAL = "SPORTS_CULTURAL"


class Department(db.Model):
    __tablename__ = 'departments'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    code = db.Column(db.String(10), unique=True, nullable=False, index=True)
    description = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    programs = db.relationship('Program', backref='department', lazy=True, order_by='Program.code')

    @property
    def path(self):
        return HierarchyPath(department_id=self.id)

    def to_dict(self, nested=False):
        data = {
            'id': self.id,
            'name': self.name,
            'code': self.code,
            'description': self.description,
        }
        if nested:
            data['programs'] = [p.to_dict(nested=True) for p in self.programs]
        return data

    def __repr__(self):
        return f'<Department {self.code}>'


class Program(db.Model):
    __tablename__ = 'programs'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    code = db.Column(db.String(10), nullable=False)
    type = db.Column(db.Enum(ProgramType, name='program_type'), nullable=False)
    department_id = db.Column(db.Integer, db.ForeignKey('departments.id'), nullable=False, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    academic_structures = db.relationship('AcademicStructure', backref='program', lazy=True,
                                          order_by='AcademicStructure.level')

    @property
    def path(self):
        return HierarchyPath(department_id=self.department_id, program_id=self.id)

    def to_dict(self, nested=False):
        data = {
            'id': self.id,
            'name': self.name,
            'code': self.code,
            'type': self.type.value,
            'departmentId': self.department_id,
        }
        if nested:
            data['academicStructures'] = [s.to_dict(nested=True) for s in self.academic_structures]
        return data

    def __repr__(self):
        return f'<Program {self.code}>'


class AcademicStructure(db.Model):
    """A year or level inside a program, e.g. 'SE - Semester 3'."""
    __tablename__ = 'academic_structures'
    __table_args__ = (
        db.UniqueConstraint('department_id', 'program_id', 'code', name='uq_structure_dept_program_code'),
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    code = db.Column(db.String(10), nullable=False)
    level = db.Column(db.Integer, nullable=False)
    is_semester = db.Column(db.Boolean, default=False, nullable=False)
    semester = db.Column(db.Integer, nullable=True)
    department_id = db.Column(db.Integer, db.ForeignKey('departments.id'), nullable=False, index=True)
    program_id = db.Column(db.Integer, db.ForeignKey('programs.id'), nullable=False, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    department = db.relationship('Department')
    divisions = db.relationship('Division', backref='academic_structure', lazy=True, order_by='Division.code')

    @property
    def path(self):
        return HierarchyPath(
            department_id=self.department_id,
            program_id=self.program_id,
            academic_structure_id=self.id
        )

    def to_dict(self, nested=False):
        data = {
            'id': self.id,
            'name': self.name,
            'code': self.code,
            'level': self.level,
            'isSemester': self.is_semester,
            'semester': self.semester,
            'departmentId': self.department_id,
            'programId': self.program_id,
        }
        if nested:
            data['divisions'] = [d.to_dict(nested=True) for d in self.divisions]
        return data

    def __repr__(self):
        return f'<AcademicStructure {self.code}>'


class Division(db.Model):
    __tablename__ = 'divisions'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    code = db.Column(db.String(10), nullable=False)
    academic_structure_id = db.Column(db.Integer, db.ForeignKey('academic_structures.id'), nullable=False, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    batches = db.relationship('Batch', backref='division', lazy=True, order_by='Batch.number')

    @property
    def path(self):
        return self.academic_structure.path.replace(division_id=self.id)

    def to_dict(self, nested=False):
        data = {
            'id': self.id,
            'name': self.name,
            'code': self.code,
            'academicStructureId': self.academic_structure_id,
        }
        if nested:
            data['batches'] = [b.to_dict() for b in self.batches]
        return data

    def __repr__(self):
        return f'<Division {self.code}>'


class Batch(db.Model):
    __tablename__ = 'batches'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    number = db.Column(db.Integer, nullable=False)
    division_id = db.Column(db.Integer, db.ForeignKey('divisions.id'), nullable=False, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    @property
    def path(self):
        return self.division.path.replace(batch_id=self.id)

    def to_dict(self, nested=False):
        return {
            'id': self.id,
            'name': self.name,
            'number': self.number,
            'divisionId': self.division_id,
        }

    def __repr__(self):
        return f'<Batch {self.name}>'


class User(UserMixin, db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    role = db.Column(db.Enum(UserRole, name='user_role'), nullable=False, default=UserRole.STUDENT, index=True)

    # Roll number for students
    student_id = db.Column(db.String(64), unique=True, nullable=True, index=True)
    phone = db.Column(db.String(20), nullable=True)

    is_active = db.Column(db.Boolean, default=True, nullable=False)

    # Membership: where a student sits in the hierarchy
    department_id = db.Column(db.Integer, db.ForeignKey('departments.id'), nullable=True, index=True)
    program_id = db.Column(db.Integer, db.ForeignKey('programs.id'), nullable=True, index=True)
    academic_structure_id = db.Column(db.Integer, db.ForeignKey('academic_structures.id'), nullable=True, index=True)
    division_id = db.Column(db.Integer, db.ForeignKey('divisions.id'), nullable=True, index=True)
    batch_id = db.Column(db.Integer, db.ForeignKey('batches.id'), nullable=True, index=True)

    # Assignment: the subtree an advisor/HOD may act on
    assigned_department_id = db.Column(db.Integer, db.ForeignKey('departments.id'), nullable=True)
    assigned_program_id = db.Column(db.Integer, db.ForeignKey('programs.id'), nullable=True)
    assigned_academic_structure_id = db.Column(db.Integer, db.ForeignKey('academic_structures.id'), nullable=True)
    assigned_division_id = db.Column(db.Integer, db.ForeignKey('divisions.id'), nullable=True)
    assigned_batch_id = db.Column(db.Integer, db.ForeignKey('batches.id'), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    department = db.relationship('Department', foreign_keys=[department_id])
    program = db.relationship('Program', foreign_keys=[program_id])
    academic_structure = db.relationship('AcademicStructure', foreign_keys=[academic_structure_id])
    division = db.relationship('Division', foreign_keys=[division_id])
    batch = db.relationship('Batch', foreign_keys=[batch_id])

    MEMBERSHIP_COLUMNS = ('department_id', 'program_id', 'academic_structure_id', 'division_id', 'batch_id')
    ASSIGNMENT_COLUMNS = ('assigned_department_id', 'assigned_program_id', 'assigned_academic_structure_id',
                          'assigned_division_id', 'assigned_batch_id')

    @classmethod
    def membership_columns(cls):
        return [getattr(cls, c) for c in cls.MEMBERSHIP_COLUMNS]

    @property
    def membership_path(self):
        return HierarchyPath.from_values([getattr(self, c) for c in self.MEMBERSHIP_COLUMNS])

    @membership_path.setter
    def membership_path(self, path):
        for column, value in zip(self.MEMBERSHIP_COLUMNS, path.values()):
            setattr(self, column, value)

    @property
    def assignment_path(self):
        return HierarchyPath.from_values([getattr(self, c) for c in self.ASSIGNMENT_COLUMNS])

    @assignment_path.setter
    def assignment_path(self, path):
        for column, value in zip(self.ASSIGNMENT_COLUMNS, path.values()):
            setattr(self, column, value)

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'name': self.name,
            'role': self.role.value,
            'studentId': self.student_id,
            'phone': self.phone,
            'isActive': self.is_active,
            'membership': self.membership_path.to_dict(),
            'assignment': self.assignment_path.to_dict(),
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }

    def to_summary(self):
        """Student block embedded in achievement payloads."""
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'studentId': self.student_id,
            'department': self.department.name if self.department else None,
            'program': self.program.name if self.program else None,
            'academicStructure': self.academic_structure.name if self.academic_structure else None,
            'division': self.division.name if self.division else None,
            'batch': self.batch.name if self.batch else None,
        }

    def __repr__(self):
        return f'<User {self.email}>'


class Achievement(db.Model):
    __tablename__ = 'achievements'

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=False)
    category = db.Column(db.Enum(AchievementCategory, name='achievement_category'), nullable=False, index=True)
    status = db.Column(db.Enum(AchievementStatus, name='achievement_status'), nullable=False,
                       default=AchievementStatus.SUBMITTED, index=True)

    event_date = db.Column(db.Date, nullable=False)
    academic_year = db.Column(db.String(7), nullable=False, index=True)  # e.g. 2024-25
    semester = db.Column(db.String(20), nullable=True)

    certificate_path = db.Column(db.String(255), nullable=True)
    photo_path = db.Column(db.String(255), nullable=True)

    is_group_achievement = db.Column(db.Boolean, default=False, nullable=False)
    group_members = db.Column(db.Text, nullable=True)

    remarks = db.Column(db.Text, nullable=True)

    student_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    verified_by = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    verified_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    student = db.relationship('User', foreign_keys=[student_id],
                              backref=db.backref('achievements', lazy=True))
    reviewer = db.relationship('User', foreign_keys=[verified_by])

    @property
    def is_terminal(self):
        return self.status in TERMINAL_STATUSES

    def to_dict(self, include_student=True):
        data = {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'category': self.category.value,
            'status': self.status.value,
            'eventDate': self.event_date.isoformat() if self.event_date else None,
            'academicYear': self.academic_year,
            'semester': self.semester,
            'certificatePath': self.certificate_path,
            'photoPath': self.photo_path,
            'isGroupAchievement': self.is_group_achievement,
            'groupMembers': self.group_members,
            'remarks': self.remarks,
            'studentId': self.student_id,
            'verifiedBy': self.verified_by,
            'verifiedAt': self.verified_at.isoformat() if self.verified_at else None,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'updatedAt': self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_student and self.student is not None:
            data['student'] = self.student.to_summary()
        return data

    def __repr__(self):
        return f'<Achievement {self.id} - {self.title}>'
