"""
Unit tests for the match result lifecycle actions.
"""
import pytest
from types import SimpleNamespace
from unittest.mock import patch
import sqlalchemy as sa
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from app import db
from app.errors import ValidationError, InvalidStateError
from app.matches.lifecycle import (
    submit_result, approve_result, lock_result, validate_submission, _transition
)
from app.models import Match, MatchResult, AuditLogEntry, StandingsRecompute, SeasonStanding
from app.standings.utils import process_pending_recomputes


def _result_count(match_id):
    return db.session.scalar(
        sa.select(sa.func.count(MatchResult.id)).where(MatchResult.match_id == match_id)
    )


def _audit_actions(match_id):
    return db.session.scalars(
        sa.select(AuditLogEntry.action)
        .where(AuditLogEntry.entity_type == 'match', AuditLogEntry.entity_id == match_id)
        .order_by(AuditLogEntry.id)
    ).all()


def _submit(actor, match, **overrides):
    values = dict(points_a=100, points_b=87, innings=15, high_run_a=23, high_run_b=18)
    values.update(overrides)
    return submit_result(actor, match.id, **values)


@pytest.mark.unit
class TestValidateSubmission:
    """Scoring rules checked before a result is written."""

    def season(self, innings_required=True, high_run_enabled=True):
        return SimpleNamespace(innings_required=innings_required, high_run_enabled=high_run_enabled)

    def test_valid_submission_returns_stored_values(self):
        assert validate_submission(self.season(), 100, 87, 15, 23, 18) == (15, 23, 18)

    @pytest.mark.parametrize('innings', [None, 0, -3])
    def test_required_innings_rejected_when_missing_or_not_positive(self, innings):
        with pytest.raises(ValidationError, match='Innings are required'):
            validate_submission(self.season(), 7, 5, innings)

    def test_optional_innings_may_be_zero(self):
        assert validate_submission(self.season(innings_required=False), 7, 5, 0) == (0, None, None)

    def test_optional_innings_cannot_be_negative(self):
        with pytest.raises(ValidationError, match='Innings cannot be negative'):
            validate_submission(self.season(innings_required=False), 7, 5, -1)

    def test_optional_innings_may_be_omitted(self):
        assert validate_submission(self.season(innings_required=False), 7, 5, None) == (None, None, None)

    def test_negative_points_rejected(self):
        with pytest.raises(ValidationError, match='cannot be negative'):
            validate_submission(self.season(), -1, 5, 10)

    def test_missing_points_rejected(self):
        with pytest.raises(ValidationError, match='required for both players'):
            validate_submission(self.season(), None, 5, 10)

    def test_high_run_above_points_rejected(self):
        with pytest.raises(ValidationError, match='Player A high run'):
            validate_submission(self.season(), 20, 5, 10, 21, 3)
        with pytest.raises(ValidationError, match='Player B high run'):
            validate_submission(self.season(), 20, 5, 10, 4, 6)

    def test_high_run_equal_to_points_accepted(self):
        assert validate_submission(self.season(), 20, 5, 10, 20, 5) == (10, 20, 5)

    def test_negative_high_run_rejected(self):
        with pytest.raises(ValidationError, match='High runs cannot be negative'):
            validate_submission(self.season(), 20, 5, 10, -1, 3)

    def test_high_run_above_points_rejected_when_not_tracked(self):
        season = self.season(high_run_enabled=False)
        with pytest.raises(ValidationError, match='Player A high run'):
            validate_submission(season, 20, 5, 10, 99, 99)

    def test_valid_high_runs_dropped_when_not_tracked(self):
        season = self.season(high_run_enabled=False)
        assert validate_submission(season, 20, 5, 10, 12, 3) == (10, None, None)


@pytest.mark.unit
class TestSubmitResult:
    """Submitting a result for a scheduled match."""

    def test_participant_submits_result(self, participant, scheduled_match):
        result = _submit(participant, scheduled_match)

        assert result.success is True
        assert result.warnings == []
        assert result.data == {'match_id': scheduled_match.id, 'status': 'submitted'}

        match = db.session.get(Match, scheduled_match.id)
        assert match.status == 'submitted'
        assert match.version == 2
        assert match.result.points_a == 100
        assert match.result.points_b == 87
        assert match.result.innings == 15
        assert match.result.high_run_a == 23
        assert match.result.high_run_b == 18
        assert match.result.submitted_by_user_id == participant.id
        assert match.result.submitted_at is not None
        assert match.result.approved_at is None
        assert _audit_actions(match.id) == ['submitted_result']

    def test_owner_may_submit(self, owner, scheduled_match):
        assert _submit(owner, scheduled_match).success is True

    def test_unauthenticated_submit_rejected(self, scheduled_match):
        result = _submit(None, scheduled_match)

        assert result.success is False
        assert result.error_kind == 'unauthenticated'
        assert result.status_code == 401
        assert _result_count(scheduled_match.id) == 0

    def test_unknown_match_not_found(self, participant, db_session):
        result = submit_result(participant, 9999, points_a=7, points_b=3, innings=10)

        assert result.error_kind == 'not_found'
        assert result.status_code == 404

    def test_outsider_submit_forbidden_without_writes(self, outsider, scheduled_match):
        result = _submit(outsider, scheduled_match)

        assert result.success is False
        assert result.error_kind == 'forbidden'
        match = db.session.get(Match, scheduled_match.id)
        assert match.status == 'scheduled'
        assert match.version == 1
        assert _result_count(match.id) == 0
        assert _audit_actions(match.id) == []
        assert db.session.scalar(sa.select(sa.func.count(StandingsRecompute.id))) == 0

    def test_scorekeeper_rule_limits_submission_to_owner(self, owner, participant, season, scheduled_match):
        season.submission_rule = 'scorekeeper_submits'
        db.session.commit()

        denied = _submit(participant, scheduled_match)
        assert denied.error_kind == 'forbidden'

        assert _submit(owner, scheduled_match).success is True

    def test_zero_innings_rejected_and_match_stays_scheduled(self, participant, scheduled_match):
        result = _submit(participant, scheduled_match, innings=0)

        assert result.success is False
        assert result.error_kind == 'validation'
        assert result.status_code == 422
        assert db.session.get(Match, scheduled_match.id).status == 'scheduled'
        assert _result_count(scheduled_match.id) == 0

    def test_missing_innings_rejected_when_required(self, participant, scheduled_match):
        result = _submit(participant, scheduled_match, innings=None)

        assert result.error_kind == 'validation'
        assert _result_count(scheduled_match.id) == 0

    def test_high_run_above_points_rejected(self, participant, scheduled_match):
        result = _submit(participant, scheduled_match, high_run_a=101)

        assert result.error_kind == 'validation'
        assert _result_count(scheduled_match.id) == 0

    def test_high_run_equal_to_points_accepted(self, participant, scheduled_match):
        result = _submit(participant, scheduled_match, high_run_a=100)

        assert result.success is True
        assert db.session.get(Match, scheduled_match.id).result.high_run_a == 100

    def test_high_runs_discarded_when_not_tracked(self, participant, season, scheduled_match):
        season.high_run_enabled = False
        db.session.commit()

        assert _submit(participant, scheduled_match).success is True
        stored = db.session.get(Match, scheduled_match.id).result
        assert stored.high_run_a is None
        assert stored.high_run_b is None

    def test_high_run_above_points_rejected_when_not_tracked(self, participant, season, scheduled_match):
        season.high_run_enabled = False
        db.session.commit()

        result = _submit(participant, scheduled_match, points_a=5, points_b=7, innings=10,
                         high_run_a=50, high_run_b=None)

        assert result.success is False
        assert result.error_kind == 'validation'
        assert db.session.get(Match, scheduled_match.id).status == 'scheduled'
        assert _result_count(scheduled_match.id) == 0

    def test_zero_innings_stored_when_not_required(self, participant, season, scheduled_match):
        season.innings_required = False
        db.session.commit()

        result = _submit(participant, scheduled_match, points_a=5, points_b=7, innings=0,
                         high_run_a=None, high_run_b=None)

        assert result.success is True
        assert db.session.get(Match, scheduled_match.id).result.innings == 0

    def test_overlong_notes_rejected(self, app, participant, scheduled_match):
        notes = 'x' * (app.config['MAX_NOTES_LENGTH'] + 1)
        result = _submit(participant, scheduled_match, notes=notes)

        assert result.error_kind == 'validation'
        assert _result_count(scheduled_match.id) == 0

    def test_second_submit_is_invalid_state(self, participant, opponent, scheduled_match):
        assert _submit(participant, scheduled_match).success is True

        again = _submit(opponent, scheduled_match, points_a=90, points_b=100)

        assert again.success is False
        assert again.error_kind == 'invalid_state'
        assert again.status_code == 409
        assert db.session.get(Match, scheduled_match.id).result.points_a == 100

    def test_forbidden_checked_before_state(self, participant, outsider, scheduled_match):
        _submit(participant, scheduled_match)

        assert _submit(outsider, scheduled_match).error_kind == 'forbidden'

    def test_lost_race_is_invalid_state_and_writes_nothing(self, participant, scheduled_match):
        match_id = scheduled_match.id

        def competing_write(*args, **kwargs):
            # Another request moves the match on after this one read it
            db.session.execute(
                sa.update(Match)
                .where(Match.id == match_id)
                .values(status='submitted', version=Match.version + 1)
                .execution_options(synchronize_session=False)
            )
            return validate_submission(*args, **kwargs)

        with patch('app.matches.lifecycle.validate_submission', side_effect=competing_write):
            result = _submit(participant, scheduled_match)

        assert result.success is False
        assert result.error_kind == 'invalid_state'
        assert _result_count(match_id) == 0
        assert _audit_actions(match_id) == []

    def test_primary_write_failure_is_dependency_failure(self, participant, scheduled_match):
        error = OperationalError('COMMIT', {}, Exception('database is locked'))
        with patch('app.matches.lifecycle._commit_primary', side_effect=error):
            result = _submit(participant, scheduled_match)

        assert result.success is False
        assert result.error_kind == 'dependency_failure'
        assert result.status_code == 503
        assert db.session.get(Match, scheduled_match.id).status == 'scheduled'
        assert _result_count(scheduled_match.id) == 0


@pytest.mark.unit
class TestApproveAndLock:
    """Owner approval and locking."""

    def test_approve_then_lock_sets_both_stamps_in_order(self, owner, participant, scheduled_match):
        _submit(participant, scheduled_match)

        approved = approve_result(owner, scheduled_match.id)
        assert approved.success is True
        assert approved.data['status'] == 'approved'

        locked = lock_result(owner, scheduled_match.id)
        assert locked.success is True

        match = db.session.get(Match, scheduled_match.id)
        assert match.status == 'locked'
        assert match.result.approved_by_user_id == owner.id
        assert match.result.locked_by_user_id == owner.id
        assert match.result.approved_at <= match.result.locked_at
        assert _audit_actions(match.id) == ['submitted_result', 'approved_result', 'locked_result']

    def test_lock_from_submitted_approves_in_same_step(self, owner, participant, scheduled_match):
        _submit(participant, scheduled_match)

        result = lock_result(owner, scheduled_match.id)

        assert result.success is True
        match = db.session.get(Match, scheduled_match.id)
        assert match.status == 'locked'
        assert match.result.approved_by_user_id == owner.id
        assert match.result.approved_at is not None
        assert match.result.locked_at is not None
        assert match.result.approved_at == match.result.locked_at

        entry = db.session.scalar(sa.select(AuditLogEntry).where(AuditLogEntry.action == 'locked_result'))
        assert entry.payload == {'previous_status': 'submitted', 'implicit_approval': True}

    def test_second_approve_is_invalid_state_and_keeps_timestamps(self, owner, participant, scheduled_match):
        _submit(participant, scheduled_match)
        approve_result(owner, scheduled_match.id)
        first_approved_at = db.session.get(Match, scheduled_match.id).result.approved_at

        again = approve_result(owner, scheduled_match.id)

        assert again.success is False
        assert again.error_kind == 'invalid_state'
        assert db.session.get(Match, scheduled_match.id).result.approved_at == first_approved_at

    def test_participant_cannot_approve(self, participant, scheduled_match):
        _submit(participant, scheduled_match)

        result = approve_result(participant, scheduled_match.id)

        assert result.error_kind == 'forbidden'
        assert result.error == 'Only the league owner can approve results.'
        assert db.session.get(Match, scheduled_match.id).status == 'submitted'

    def test_participant_cannot_lock(self, participant, scheduled_match):
        _submit(participant, scheduled_match)

        assert lock_result(participant, scheduled_match.id).error_kind == 'forbidden'

    def test_approve_scheduled_match_is_invalid_state(self, owner, scheduled_match):
        assert approve_result(owner, scheduled_match.id).error_kind == 'invalid_state'

    def test_lock_scheduled_match_is_invalid_state(self, owner, scheduled_match):
        result = lock_result(owner, scheduled_match.id)

        assert result.error_kind == 'invalid_state'
        assert result.error == 'Match must be in submitted or approved status to lock.'

    def test_lock_twice_is_invalid_state(self, owner, participant, scheduled_match):
        _submit(participant, scheduled_match)
        lock_result(owner, scheduled_match.id)

        assert lock_result(owner, scheduled_match.id).error_kind == 'invalid_state'

    def test_approval_counts_towards_standings(self, owner, participant, season, player_a, player_b,
                                               scheduled_match):
        _submit(participant, scheduled_match)
        standing_a = db.session.scalar(
            sa.select(SeasonStanding).where(SeasonStanding.player_id == player_a.id)
        )
        assert standing_a.matches_played == 0

        approve_result(owner, scheduled_match.id)

        standing_a = db.session.scalar(
            sa.select(SeasonStanding).where(SeasonStanding.player_id == player_a.id)
        )
        standing_b = db.session.scalar(
            sa.select(SeasonStanding).where(SeasonStanding.player_id == player_b.id)
        )
        assert standing_a.wins == 1
        assert standing_a.points_for == 100
        assert standing_a.ppi == pytest.approx(6.667)
        assert standing_b.losses == 1
        assert standing_b.high_run == 18


@pytest.mark.unit
class TestDegradedSuccess:
    """Follow-up failures keep the status change and report warnings."""

    def test_failed_recompute_leaves_pending_task(self, owner, participant, scheduled_match):
        _submit(participant, scheduled_match)

        with patch('app.standings.utils.recompute_season_standings', side_effect=RuntimeError('boom')):
            result = approve_result(owner, scheduled_match.id)

        assert result.success is True
        assert result.degraded is True
        assert result.warnings == ['Result approved but failed to recompute standings; standings may be stale.']
        assert db.session.get(Match, scheduled_match.id).status == 'approved'

        task = db.session.scalar(
            sa.select(StandingsRecompute).where(StandingsRecompute.reason == 'approved_result')
        )
        assert task.status == 'pending'
        assert task.attempts == 1
        assert task.last_error == 'boom'

        assert process_pending_recomputes() == (1, 0)
        assert db.session.get(StandingsRecompute, task.id).status == 'done'

    def test_failed_audit_write_is_reported(self, participant, scheduled_match):
        with patch('app.matches.lifecycle.record_audit_entry', side_effect=SQLAlchemyError('audit down')):
            result = _submit(participant, scheduled_match)

        assert result.success is True
        assert result.warnings == ['Result submitted but the audit log entry could not be written.']
        assert db.session.get(Match, scheduled_match.id).status == 'submitted'
        assert _audit_actions(scheduled_match.id) == []

    def test_to_dict_includes_warnings(self, participant, scheduled_match):
        with patch('app.matches.lifecycle.record_audit_entry', side_effect=SQLAlchemyError('audit down')):
            body = _submit(participant, scheduled_match).to_dict()

        assert body['success'] is True
        assert body['status'] == 'submitted'
        assert len(body['warnings']) == 1


@pytest.mark.unit
class TestConditionalTransition:

    def test_stale_version_raises(self, scheduled_match):
        match = db.session.get(Match, scheduled_match.id)
        db.session.execute(
            sa.update(Match)
            .where(Match.id == match.id)
            .values(version=Match.version + 1)
            .execution_options(synchronize_session=False)
        )

        with pytest.raises(InvalidStateError, match='stale'):
            _transition(match, ['scheduled'], 'submitted', 'stale')
        db.session.rollback()
