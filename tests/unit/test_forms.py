"""
Unit tests for WTForms form validation.
"""
import pytest
from app.auth.forms import LoginForm, RegistrationForm
from app.matches.forms import SubmitResultForm
from app.admin.forms import SeasonForm, ScheduleMatchForm, HandicapForm


def posted(app, data):
    """Request context carrying data as a submitted form."""
    return app.test_request_context(method='POST', data=data)


@pytest.mark.unit
class TestLoginForm:
    """Test cases for LoginForm."""

    def test_valid_login_form(self, app):
        with posted(app, {'email': 'alice@example.com', 'password': 'alicepassword123', 'remember_me': 'y'}):
            form = LoginForm()

            assert form.validate() is True
            assert form.remember_me.data is True

    def test_empty_login_form(self, app):
        with posted(app, {'email': '', 'password': ''}):
            form = LoginForm()

            assert form.validate() is False
            assert 'This field is required.' in form.email.errors
            assert 'This field is required.' in form.password.errors


@pytest.mark.unit
class TestRegistrationForm:

    def test_valid_registration(self, app, db_session):
        with posted(app, {'email': 'new@example.com', 'display_name': 'New Player',
                          'password': 'longenough1', 'password2': 'longenough1'}):
            assert RegistrationForm().validate() is True

    def test_duplicate_email_rejected_case_insensitively(self, app, owner):
        with posted(app, {'email': 'OWNER@example.com', 'display_name': 'Impostor',
                          'password': 'longenough1', 'password2': 'longenough1'}):
            form = RegistrationForm()

            assert form.validate() is False
            assert 'An account with this email already exists.' in form.email.errors

    def test_password_mismatch(self, app, db_session):
        with posted(app, {'email': 'new@example.com', 'display_name': 'New Player',
                          'password': 'longenough1', 'password2': 'different11'}):
            form = RegistrationForm()

            assert form.validate() is False
            assert 'Passwords must match' in form.password2.errors


@pytest.mark.unit
class TestSubmitResultForm:

    def test_points_required(self, app):
        with posted(app, {'points_b': '5'}):
            form = SubmitResultForm()

            assert form.validate() is False
            assert 'Points are required for both players.' in form.points_a.errors

    def test_optional_fields_may_be_blank(self, app):
        with posted(app, {'points_a': '7', 'points_b': '5', 'innings': ''}):
            form = SubmitResultForm()

            assert form.validate() is True
            assert form.points_a.data == 7
            assert form.innings.data is None
            assert form.high_run_a.data is None

    def test_non_numeric_points_rejected(self, app):
        with posted(app, {'points_a': 'seven', 'points_b': '5'}):
            assert SubmitResultForm().validate() is False


@pytest.mark.unit
class TestSeasonForm:

    def test_submission_rule_choices_from_config(self, app):
        with posted(app, {}):
            form = SeasonForm()

            assert [key for key, _ in form.submission_rule.choices] == list(app.config['SUBMISSION_RULES'])

    def test_end_before_start_rejected(self, app):
        with posted(app, {'name': 'Backwards', 'start_date': '2024-09-02', 'end_date': '2024-09-01',
                          'submission_rule': 'player_submits'}):
            form = SeasonForm()

            assert form.validate() is False
            assert 'Season end date must be on or after its start date.' in form.end_date.errors


@pytest.mark.unit
class TestScheduleMatchForm:

    def test_same_player_rejected(self, app):
        with posted(app, {'week_number': '1', 'player_a_id': '3', 'player_b_id': '3'}):
            form = ScheduleMatchForm()

            assert form.validate() is False
            assert 'A player cannot play themselves.' in form.player_b_id.errors


@pytest.mark.unit
class TestHandicapForm:

    def test_handicap_required(self, app):
        with posted(app, {}):
            form = HandicapForm()

            assert form.validate() is False
            assert 'Handicap must be a whole number.' in form.handicap_points.errors

    def test_negative_handicap_allowed(self, app):
        with posted(app, {'handicap_points': '-2'}):
            form = HandicapForm()

            assert form.validate() is True
            assert form.handicap_points.data == -2
