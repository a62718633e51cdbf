from datetime import date
from types import SimpleNamespace

import pytest
from werkzeug.security import generate_password_hash

from config import TestConfig
from achievetrack import create_app
from achievetrack.auth import Principal
from achievetrack.models import (
    db, AcademicStructure, Achievement, AchievementCategory, AchievementStatus, Batch, Department, Division,
    Program, ProgramType, User, UserRole
)
from achievetrack.services.scope import HierarchyPath

PASSWORD = 'password'
# Cheap hash so seeding a dozen users per test stays fast
PASSWORD_HASH = generate_password_hash(PASSWORD, method='pbkdf2:sha256:1000')


@pytest.fixture
def app(tmp_path):
    class _Config(TestConfig):
        UPLOAD_FOLDER = str(tmp_path / 'uploads')

    app = create_app(_Config)
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def ctx(app):
    """An app context for tests that call services directly."""
    with app.app_context():
        yield
        db.session.remove()


def _user(email, role, membership=None, assignment=None, student_id=None):
    user = User(email=email, password_hash=PASSWORD_HASH, name=email.split('@')[0], role=role,
                student_id=student_id)
    user.membership_path = membership or HierarchyPath()
    user.assignment_path = assignment or HierarchyPath()
    db.session.add(user)
    return user


@pytest.fixture
def seed(app):
    """
    Two departments:

    CSE > BTECH > SE > {Division A > Batch A1, Division B > Batch B1}
    MECH > BMECH > ME (no divisions)

    plus students and reviewers spread across them. Returns plain ids.
    """
    with app.app_context():
        cse = Department(name='Computer Engineering', code='CSE')
        mech = Department(name='Mechanical Engineering', code='MECH')
        db.session.add_all([cse, mech])
        db.session.flush()

        btech = Program(name='B.Tech CSE', code='BTECH', type=ProgramType.UG, department_id=cse.id)
        bmech = Program(name='B.Tech Mech', code='BMECH', type=ProgramType.UG, department_id=mech.id)
        db.session.add_all([btech, bmech])
        db.session.flush()

        se = AcademicStructure(name='Second Year', code='SE', level=2, is_semester=True, semester=3,
                               department_id=cse.id, program_id=btech.id)
        me = AcademicStructure(name='Mech Second Year', code='ME', level=2,
                               department_id=mech.id, program_id=bmech.id)
        db.session.add_all([se, me])
        db.session.flush()

        div_a = Division(name='Division A', code='A', academic_structure_id=se.id)
        div_b = Division(name='Division B', code='B', academic_structure_id=se.id)
        db.session.add_all([div_a, div_b])
        db.session.flush()

        batch_a1 = Batch(name='A1', number=1, division_id=div_a.id)
        batch_b1 = Batch(name='B1', number=1, division_id=div_b.id)
        db.session.add_all([batch_a1, batch_b1])
        db.session.flush()

        path_a1 = HierarchyPath(cse.id, btech.id, se.id, div_a.id, batch_a1.id)
        path_b1 = HierarchyPath(cse.id, btech.id, se.id, div_b.id, batch_b1.id)

        users = {
            'admin': _user('admin@example.com', UserRole.ADMIN),
            'student_a': _user('student.a@college.edu', UserRole.STUDENT, path_a1, student_id='S-A'),
            'student_b': _user('student.b@college.edu', UserRole.STUDENT, path_b1, student_id='S-B'),
            'student_mech': _user('student.mech@college.edu', UserRole.STUDENT,
                                  HierarchyPath(mech.id, bmech.id, me.id), student_id='S-M'),
            # In CSE but never placed into a division or batch
            'student_loose': _user('student.loose@college.edu', UserRole.STUDENT,
                                   HierarchyPath(department_id=cse.id), student_id='S-L'),
            'advisor_open': _user('advisor.open@college.edu', UserRole.CLASS_ADVISOR),
            'advisor_div_a': _user('advisor.a@college.edu', UserRole.CLASS_ADVISOR,
                                   assignment=HierarchyPath(cse.id, None, se.id, div_a.id)),
            'advisor_mech': _user('advisor.mech@college.edu', UserRole.CLASS_ADVISOR,
                                  assignment=HierarchyPath(department_id=mech.id)),
            'hod_cse': _user('hod.cse@college.edu', UserRole.HOD,
                             assignment=HierarchyPath(department_id=cse.id)),
            'hod_mech_home': _user('hod.mech@college.edu', UserRole.HOD,
                                   membership=HierarchyPath(department_id=mech.id)),
            'hod_nowhere': _user('hod.none@college.edu', UserRole.HOD),
        }
        db.session.commit()

        data = SimpleNamespace(
            cse=cse.id, mech=mech.id, btech=btech.id, bmech=bmech.id, se=se.id, me=me.id,
            div_a=div_a.id, div_b=div_b.id, batch_a1=batch_a1.id, batch_b1=batch_b1.id,
        )
        for key, user in users.items():
            setattr(data, key, user.id)
        return data


def make_achievement(student_id, status=AchievementStatus.SUBMITTED, **kwargs):
    values = dict(
        title='Inter-college Hackathon',
        description='Won first place',
        category=AchievementCategory.HACKATHONS,
        event_date=date(2024, 9, 14),
        academic_year='2024-25',
        student_id=student_id,
        status=status,
    )
    values.update(kwargs)
    achievement = Achievement(**values)
    db.session.add(achievement)
    db.session.commit()
    return achievement


@pytest.fixture
def achievement_factory(app):
    def factory(student_id, **kwargs):
        with app.app_context():
            return make_achievement(student_id, **kwargs).id
    return factory


def principal_for(user_id):
    return Principal.from_user(db.session.get(User, user_id))


def login(client, email):
    resp = client.post('/auth/login', json={'email': email, 'password': PASSWORD})
    assert resp.status_code == 200, resp.get_json()
    return client


@pytest.fixture
def login_as(app):
    """Returns a logged-in test client for the given email."""
    def factory(email):
        return login(app.test_client(), email)
    return factory
