from datetime import date, datetime

import pytest
from sqlalchemy import update

from achievetrack.errors import Forbidden, InvalidState, NotFound, ValidationFailed
from achievetrack.models import db, Achievement, AchievementStatus
from achievetrack.services import achievement_service
from achievetrack.services.achievement_service import AchievementService, academic_year_for

from conftest import make_achievement, principal_for


class TestAcademicYear:
    @pytest.mark.parametrize("event_date,expected", [
        (date(2024, 7, 10), "2024-25"),
        (date(2024, 6, 1), "2024-25"),
        (date(2025, 3, 1), "2024-25"),
        (date(2025, 5, 31), "2024-25"),
        (date(1999, 12, 1), "1999-00"),
    ])
    def test_academic_year_runs_june_to_may(self, event_date, expected):
        assert academic_year_for(event_date) == expected


class TestCreate:
    def test_create_sets_submitted_and_owner(self, seed, ctx):
        student = principal_for(seed.student_a)
        achievement = AchievementService.create(
            student,
            title='Smart India Hackathon',
            description='Finalist',
            category='HACKATHONS',
            event_date=date(2025, 2, 20),
        )
        assert achievement.status == AchievementStatus.SUBMITTED
        assert achievement.student_id == seed.student_a
        assert achievement.academic_year == '2024-25'
        assert achievement.verified_by is None

    def test_reviewer_cannot_create(self, seed, ctx):
        with pytest.raises(Forbidden):
            AchievementService.create(principal_for(seed.advisor_open), title='x', description='y',
                                      category='HACKATHONS', event_date=date(2025, 1, 1))


class TestReview:
    def test_verify_then_reject_fails(self, seed, ctx):
        """Scenario: a department-scoped advisor verifies once; a second decision is refused."""
        achievement_id = make_achievement(seed.student_mech).id
        advisor = principal_for(seed.advisor_mech)

        before = datetime.utcnow()
        reviewed = AchievementService.review(advisor, achievement_id, 'VERIFIED', remarks='Looks good')
        assert reviewed.status == AchievementStatus.VERIFIED
        assert reviewed.verified_by == seed.advisor_mech
        assert reviewed.verified_at >= before.replace(microsecond=0)
        assert reviewed.remarks == 'Looks good'

        with pytest.raises(InvalidState) as excinfo:
            AchievementService.review(advisor, achievement_id, 'REJECTED')
        assert excinfo.value.message == "Achievement already processed"

        achievement = db.session.get(Achievement, achievement_id)
        assert achievement.status == AchievementStatus.VERIFIED
        assert achievement.remarks == 'Looks good'

    def test_out_of_scope_review_is_forbidden(self, seed, ctx):
        achievement_id = make_achievement(seed.student_b).id
        with pytest.raises(Forbidden):
            AchievementService.review(principal_for(seed.advisor_div_a), achievement_id, 'VERIFIED')
        assert db.session.get(Achievement, achievement_id).status == AchievementStatus.SUBMITTED

    def test_student_cannot_review_own(self, seed, ctx):
        achievement_id = make_achievement(seed.student_a).id
        with pytest.raises(Forbidden):
            AchievementService.review(principal_for(seed.student_a), achievement_id, 'VERIFIED')

    def test_admin_reviews_anything(self, seed, ctx):
        achievement_id = make_achievement(seed.student_loose).id
        reviewed = AchievementService.review(principal_for(seed.admin), achievement_id, 'REJECTED',
                                             remarks='Certificate unreadable')
        assert reviewed.status == AchievementStatus.REJECTED
        assert reviewed.verified_by == seed.admin

    def test_missing_achievement(self, seed, ctx):
        with pytest.raises(NotFound):
            AchievementService.review(principal_for(seed.admin), 9999, 'VERIFIED')

    def test_submitted_is_not_a_target(self, seed, ctx):
        achievement_id = make_achievement(seed.student_a).id
        with pytest.raises(ValidationFailed):
            AchievementService.review(principal_for(seed.admin), achievement_id, 'SUBMITTED')

    def test_concurrent_reviews_only_one_wins(self, seed, ctx, monkeypatch):
        """
        A second reviewer commits between our precheck and our UPDATE; the
        conditional UPDATE must then match nothing.
        """
        achievement_id = make_achievement(seed.student_a).id
        real_criterion = achievement_service.visibility_criterion

        def racing_criterion(principal, policy=None):
            db.session.execute(
                update(Achievement)
                .where(Achievement.id == achievement_id, Achievement.status == AchievementStatus.SUBMITTED)
                .values(status=AchievementStatus.REJECTED, verified_by=seed.hod_cse, verified_at=datetime.utcnow())
                .execution_options(synchronize_session=False)
            )
            db.session.commit()
            return real_criterion(principal, policy)

        monkeypatch.setattr(achievement_service, 'visibility_criterion', racing_criterion)

        with pytest.raises(InvalidState):
            AchievementService.review(principal_for(seed.advisor_div_a), achievement_id, 'VERIFIED')

        achievement = db.session.get(Achievement, achievement_id)
        db.session.refresh(achievement)
        assert achievement.status == AchievementStatus.REJECTED
        assert achievement.verified_by == seed.hod_cse


class TestStudentMutations:
    def test_update_while_submitted(self, seed, ctx):
        achievement_id = make_achievement(seed.student_a).id
        updated = AchievementService.update(principal_for(seed.student_a), achievement_id,
                                            title='Updated title', semester='Sem 3')
        assert updated.title == 'Updated title'
        assert updated.semester == 'Sem 3'
        assert updated.student_id == seed.student_a

    def test_other_student_cannot_update(self, seed, ctx):
        achievement_id = make_achievement(seed.student_a).id
        with pytest.raises(Forbidden):
            AchievementService.update(principal_for(seed.student_b), achievement_id, title='Mine now')
        with pytest.raises(Forbidden):
            AchievementService.delete(principal_for(seed.student_b), achievement_id)

    @pytest.mark.parametrize("status", [AchievementStatus.VERIFIED, AchievementStatus.REJECTED])
    def test_terminal_states_are_final(self, seed, ctx, status):
        achievement_id = make_achievement(seed.student_a, status=status).id
        student = principal_for(seed.student_a)

        with pytest.raises(InvalidState):
            AchievementService.update(student, achievement_id, title='Changed')
        with pytest.raises(InvalidState):
            AchievementService.delete(student, achievement_id)
        with pytest.raises(InvalidState):
            AchievementService.review(principal_for(seed.admin), achievement_id, 'VERIFIED')

        assert db.session.get(Achievement, achievement_id).status == status

    def test_delete_while_submitted(self, seed, ctx):
        achievement_id = make_achievement(seed.student_a).id
        AchievementService.delete(principal_for(seed.student_a), achievement_id)
        assert db.session.get(Achievement, achievement_id) is None


class TestListing:
    def test_list_own_filters(self, seed, ctx):
        make_achievement(seed.student_a, category='HACKATHONS')
        make_achievement(seed.student_a, category='INTERNSHIPS', status=AchievementStatus.VERIFIED)
        make_achievement(seed.student_b)

        student = principal_for(seed.student_a)
        assert len(AchievementService.list_own(student)) == 2
        assert [a.category.value for a in AchievementService.list_own(student, category='INTERNSHIPS')] == ['INTERNSHIPS']
        assert len(AchievementService.list_own(student, status='SUBMITTED')) == 1

    def test_invalid_filter_rejected(self, seed, ctx):
        with pytest.raises(ValidationFailed):
            AchievementService.list_own(principal_for(seed.student_a), status='PENDING')

    def test_scoped_list_with_program_filter(self, seed, ctx):
        make_achievement(seed.student_a)
        make_achievement(seed.student_mech)
        listed = AchievementService.list_scoped(principal_for(seed.admin), program_id=seed.bmech)
        assert [a.student_id for a in listed] == [seed.student_mech]
