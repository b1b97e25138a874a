from flask import current_app
from flask_wtf import FlaskForm
from wtforms import (
    StringField, BooleanField, SubmitField, SelectField, TextAreaField,
    DateField, DateTimeLocalField, IntegerField
)
from wtforms.validators import (
    ValidationError, DataRequired, InputRequired, Email, Length, Optional, NumberRange
)


class LeagueForm(FlaskForm):
    name = StringField('League Name', validators=[DataRequired(), Length(max=120)])
    submit = SubmitField('Create League')


class SeasonForm(FlaskForm):
    name = StringField('Season Name', validators=[DataRequired(), Length(max=120)])
    start_date = DateField('Start Date', validators=[DataRequired()])
    end_date = DateField('End Date', validators=[DataRequired()])
    race_to_default = IntegerField('Default Race To', validators=[Optional(), NumberRange(min=1)])
    innings_required = BooleanField('Innings Required')
    high_run_enabled = BooleanField('Track High Runs')
    submission_rule = SelectField('Submission Rule', default='player_submits')
    submit = SubmitField('Create Season')

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.submission_rule.choices = [
            (key, label) for key, label in current_app.config.get('SUBMISSION_RULES', {}).items()
        ]

    def validate_end_date(self, field):
        if self.start_date.data and field.data and field.data < self.start_date.data:
            raise ValidationError('Season end date must be on or after its start date.')


class PlayerForm(FlaskForm):
    display_name = StringField('Display Name', validators=[DataRequired(), Length(max=100)])
    email = StringField('Email', validators=[Optional(), Email(), Length(max=120)])
    phone = StringField('Phone', validators=[Optional(), Length(max=32)])
    submit = SubmitField('Add Player')


class VenueForm(FlaskForm):
    name = StringField('Venue Name', validators=[DataRequired(), Length(max=120)])
    address = StringField('Address', validators=[Optional(), Length(max=255)])
    notes = TextAreaField('Notes', validators=[Optional(), Length(max=1000)])
    submit = SubmitField('Add Venue')


class EnrollPlayerForm(FlaskForm):
    player_id = IntegerField('Player', validators=[InputRequired()])
    handicap_points = IntegerField('Handicap', default=0, validators=[Optional()])
    submit = SubmitField('Enroll Player')


class HandicapForm(FlaskForm):
    handicap_points = IntegerField('Handicap', validators=[InputRequired(message='Handicap must be a whole number.')])
    submit = SubmitField('Update Handicap')


class ScheduleMatchForm(FlaskForm):
    week_number = IntegerField('Week', validators=[InputRequired(), NumberRange(min=1)])
    player_a_id = IntegerField('Player A', validators=[InputRequired()])
    player_b_id = IntegerField('Player B', validators=[InputRequired()])
    venue_id = IntegerField('Venue', validators=[Optional()])
    scheduled_at = DateTimeLocalField('Scheduled At', format='%Y-%m-%dT%H:%M', validators=[Optional()])
    race_to_points = IntegerField('Race To', validators=[Optional(), NumberRange(min=1)])
    submit = SubmitField('Schedule Match')

    def validate_player_b_id(self, field):
        if field.data is not None and field.data == self.player_a_id.data:
            raise ValidationError('A player cannot play themselves.')
