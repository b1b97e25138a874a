from flask_wtf import FlaskForm
from wtforms import IntegerField, TextAreaField, SubmitField
from wtforms.validators import InputRequired, Optional


class SubmitResultForm(FlaskForm):
    """
    Result submission form.

    Only types and presence are checked here; the scoring rules depend on the
    season and are enforced by submit_result().
    """
    points_a = IntegerField('Player A Points', validators=[InputRequired(message='Points are required for both players.')])
    points_b = IntegerField('Player B Points', validators=[InputRequired(message='Points are required for both players.')])
    innings = IntegerField('Innings', validators=[Optional()])
    high_run_a = IntegerField('High Run (Player A)', validators=[Optional()])
    high_run_b = IntegerField('High Run (Player B)', validators=[Optional()])
    notes = TextAreaField('Notes', validators=[Optional()])
    submit = SubmitField('Submit Result')
