import pytest

from achievetrack.models import Achievement, AchievementStatus, UserRole, db
from achievetrack.services import access_control
from achievetrack.services.access_control import Action, HodScopePolicy, can_access, visibility_criterion
from achievetrack.services.achievement_service import AchievementService

from conftest import make_achievement, principal_for

REVIEWERS = ['admin', 'advisor_open', 'advisor_div_a', 'advisor_mech', 'hod_cse', 'hod_mech_home', 'hod_nowhere']
STUDENTS = ['student_a', 'student_b', 'student_mech', 'student_loose']


@pytest.fixture
def achievements(seed, ctx):
    """One SUBMITTED and one VERIFIED achievement per student."""
    ids = {}
    for name in STUDENTS:
        student_id = getattr(seed, name)
        ids[(name, 'submitted')] = make_achievement(student_id).id
        ids[(name, 'verified')] = make_achievement(student_id, status=AchievementStatus.VERIFIED).id
    return ids


def _visible_ids(principal, policy):
    return {a.id for a in Achievement.query.filter(visibility_criterion(principal, policy)).all()}


def _names_for(ids, visible):
    return {key for key, achievement_id in ids.items() if achievement_id in visible}


class TestRoleRules:
    def test_every_role_has_a_rule(self):
        assert set(access_control._RULES) == set(UserRole)

    def test_admin_cannot_author_achievements(self, seed, ctx):
        admin = principal_for(seed.admin)
        assert can_access(admin, Action.MANAGE, policy='department')
        assert can_access(admin, Action.REPORT, policy='department')
        assert not can_access(admin, Action.CREATE, policy='department')

    def test_only_hod_and_admin_report(self, seed, ctx):
        assert can_access(principal_for(seed.hod_cse), Action.REPORT, policy='department')
        assert not can_access(principal_for(seed.advisor_open), Action.REPORT, policy='department')
        assert not can_access(principal_for(seed.student_a), Action.REPORT, policy='department')

    def test_student_sees_only_own(self, seed, achievements):
        student = principal_for(seed.student_a)
        own = db.session.get(Achievement, achievements[('student_a', 'submitted')])
        other = db.session.get(Achievement, achievements[('student_b', 'submitted')])

        assert can_access(student, Action.VIEW, own, 'department')
        assert can_access(student, Action.UPDATE, own, 'department')
        assert not can_access(student, Action.VIEW, other, 'department')
        assert not can_access(student, Action.REVIEW, own, 'department')
        assert _visible_ids(student, 'department') == {
            achievements[('student_a', 'submitted')], achievements[('student_a', 'verified')]
        }


class TestScopedVisibility:
    def test_open_advisor_sees_every_student(self, seed, achievements):
        advisor = principal_for(seed.advisor_open)
        assert _visible_ids(advisor, 'department') == set(achievements.values())

    def test_division_advisor_sees_only_division(self, seed, achievements):
        advisor = principal_for(seed.advisor_div_a)
        visible = _visible_ids(advisor, 'department')
        assert _names_for(achievements, visible) == {('student_a', 'submitted'), ('student_a', 'verified')}

    def test_null_membership_excluded_from_division_scope(self, seed, achievements):
        """student_loose is in CSE but has no division, so a division advisor never sees them."""
        advisor = principal_for(seed.advisor_div_a)
        loose = db.session.get(Achievement, achievements[('student_loose', 'submitted')])
        assert not can_access(advisor, Action.REVIEW, loose, 'department')
        assert loose.id not in _visible_ids(advisor, 'department')

    def test_hod_bounded_by_department(self, seed, achievements):
        hod = principal_for(seed.hod_cse)
        names = {name for name, _ in _names_for(achievements, _visible_ids(hod, 'department'))}
        assert names == {'student_a', 'student_b', 'student_loose'}

    def test_hod_falls_back_to_home_department(self, seed, achievements):
        hod = principal_for(seed.hod_mech_home)
        names = {name for name, _ in _names_for(achievements, _visible_ids(hod, 'department'))}
        assert names == {'student_mech'}

    def test_hod_without_department_sees_nothing(self, seed, achievements):
        hod = principal_for(seed.hod_nowhere)
        assert _visible_ids(hod, 'department') == set()

    def test_global_policy_opens_submitted_only(self, seed, achievements):
        hod = principal_for(seed.hod_mech_home)
        visible = _names_for(achievements, _visible_ids(hod, 'global'))
        assert visible == {(name, 'submitted') for name in STUDENTS} | {('student_mech', 'verified')}

    def test_global_policy_does_not_widen_advisors(self, seed, achievements):
        advisor = principal_for(seed.advisor_mech)
        assert _visible_ids(advisor, 'global') == _visible_ids(advisor, 'department')


class TestListAndPointCheckAgree:
    @pytest.mark.parametrize("policy", [HodScopePolicy.DEPARTMENT.value, HodScopePolicy.GLOBAL_SUBMITTED.value])
    @pytest.mark.parametrize("reviewer", REVIEWERS)
    def test_scoped_list_equals_reviewable(self, seed, achievements, app, reviewer, policy):
        """An achievement is listed for a reviewer exactly when the reviewer may act on it."""
        app.config['HOD_SUBMITTED_SCOPE'] = policy
        principal = principal_for(getattr(seed, reviewer))

        listed = {a.id for a in AchievementService.list_scoped(principal)}
        reviewable = {
            a.id for a in Achievement.query.all()
            if can_access(principal, Action.REVIEW, a)
        }
        assert listed == reviewable
