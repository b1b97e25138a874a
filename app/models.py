# Standard library imports
from datetime import datetime, timezone, date
from typing import Any, Optional

# Third-party imports
import sqlalchemy as sa
import sqlalchemy.orm as so
from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash

# Local application imports
from app import db, login


def utcnow():
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(UserMixin, db.Model):
    __tablename__ = 'users'

    id: so.Mapped[int] = so.mapped_column(primary_key=True)
    email: so.Mapped[str] = so.mapped_column(sa.String(120), index=True, unique=True)
    display_name: so.Mapped[str] = so.mapped_column(sa.String(100), nullable=False)
    password_hash: so.Mapped[Optional[str]] = so.mapped_column(sa.String(256))
    created_at: so.Mapped[datetime] = so.mapped_column(sa.DateTime, default=utcnow, nullable=False)
    last_login: so.Mapped[Optional[datetime]] = so.mapped_column(sa.DateTime, nullable=True)
    last_seen: so.Mapped[Optional[date]] = so.mapped_column(sa.Date, nullable=True)  # Daily updates only

    owned_leagues: so.Mapped[list['League']] = so.relationship('League', back_populates='owner')
    player_profiles: so.Mapped[list['Player']] = so.relationship('Player', back_populates='user')

    def __repr__(self):
        return '<User {}>'.format(self.email)

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        if self.password_hash is None or password is None:
            return False
        return check_password_hash(self.password_hash, password)

    def owns_league(self, league_id):
        """Check if the user is the owner of a league."""
        return any(league.id == league_id for league in self.owned_leagues)


@login.user_loader
def load_user(id):
    return db.session.get(User, int(id))


class League(db.Model):
    __tablename__ = 'leagues'

    id: so.Mapped[int] = so.mapped_column(sa.Integer, primary_key=True)
    name: so.Mapped[str] = so.mapped_column(sa.String(120), nullable=False)
    owner_user_id: so.Mapped[int] = so.mapped_column(sa.Integer, sa.ForeignKey('users.id'), nullable=False, index=True)
    created_at: so.Mapped[datetime] = so.mapped_column(sa.DateTime, default=utcnow, nullable=False)

    owner: so.Mapped['User'] = so.relationship('User', back_populates='owned_leagues')
    seasons: so.Mapped[list['Season']] = so.relationship(
        'Season', back_populates='league', order_by='Season.start_date.desc()', cascade='all, delete-orphan'
    )
    players: so.Mapped[list['Player']] = so.relationship(
        'Player', back_populates='league', order_by='Player.display_name', cascade='all, delete-orphan'
    )
    venues: so.Mapped[list['Venue']] = so.relationship('Venue', back_populates='league', cascade='all, delete-orphan')

    def __repr__(self):
        return f"<League id={self.id}, name='{self.name}', owner={self.owner_user_id}>"

    def current_season(self):
        """Most recent season by start date, or None."""
        return self.seasons[0] if self.seasons else None


class Season(db.Model):
    __tablename__ = 'seasons'

    id: so.Mapped[int] = so.mapped_column(sa.Integer, primary_key=True)
    league_id: so.Mapped[int] = so.mapped_column(sa.Integer, sa.ForeignKey('leagues.id'), nullable=False, index=True)
    name: so.Mapped[str] = so.mapped_column(sa.String(120), nullable=False)
    start_date: so.Mapped[date] = so.mapped_column(sa.Date, nullable=False)
    end_date: so.Mapped[date] = so.mapped_column(sa.Date, nullable=False)
    race_to_default: so.Mapped[int] = so.mapped_column(sa.Integer, nullable=False, default=7)
    innings_required: so.Mapped[bool] = so.mapped_column(sa.Boolean, nullable=False, default=False)
    high_run_enabled: so.Mapped[bool] = so.mapped_column(sa.Boolean, nullable=False, default=False)
    handicap_method: so.Mapped[str] = so.mapped_column(sa.String(32), nullable=False, default='adjusted_race_to')
    submission_rule: so.Mapped[str] = so.mapped_column(sa.String(32), nullable=False, default='player_submits')
    created_at: so.Mapped[datetime] = so.mapped_column(sa.DateTime, default=utcnow, nullable=False)

    league: so.Mapped['League'] = so.relationship('League', back_populates='seasons')
    weeks: so.Mapped[list['Week']] = so.relationship(
        'Week', back_populates='season', order_by='Week.week_number', cascade='all, delete-orphan'
    )
    matches: so.Mapped[list['Match']] = so.relationship('Match', back_populates='season', cascade='all, delete-orphan')
    enrollments: so.Mapped[list['SeasonPlayer']] = so.relationship(
        'SeasonPlayer', back_populates='season', cascade='all, delete-orphan'
    )
    standings: so.Mapped[list['SeasonStanding']] = so.relationship(
        'SeasonStanding', back_populates='season', cascade='all, delete-orphan'
    )

    def __repr__(self):
        return f"<Season id={self.id}, name='{self.name}', league_id={self.league_id}>"

    def get_week(self, week_number):
        return next((week for week in self.weeks if week.week_number == week_number), None)

    def get_enrollment(self, player_id):
        return next((sp for sp in self.enrollments if sp.player_id == player_id), None)


class Week(db.Model):
    __tablename__ = 'weeks'
    __table_args__ = (sa.UniqueConstraint('season_id', 'week_number', name='uq_week_season_number'),)

    id: so.Mapped[int] = so.mapped_column(sa.Integer, primary_key=True)
    season_id: so.Mapped[int] = so.mapped_column(sa.Integer, sa.ForeignKey('seasons.id'), nullable=False, index=True)
    week_number: so.Mapped[int] = so.mapped_column(sa.Integer, nullable=False)
    start_date: so.Mapped[Optional[date]] = so.mapped_column(sa.Date, nullable=True)
    end_date: so.Mapped[Optional[date]] = so.mapped_column(sa.Date, nullable=True)
    created_at: so.Mapped[datetime] = so.mapped_column(sa.DateTime, default=utcnow, nullable=False)

    season: so.Mapped['Season'] = so.relationship('Season', back_populates='weeks')
    matches: so.Mapped[list['Match']] = so.relationship('Match', back_populates='week', order_by='Match.id')

    def __repr__(self):
        return f"<Week id={self.id}, season_id={self.season_id}, number={self.week_number}>"


class Venue(db.Model):
    __tablename__ = 'venues'

    id: so.Mapped[int] = so.mapped_column(sa.Integer, primary_key=True)
    league_id: so.Mapped[int] = so.mapped_column(sa.Integer, sa.ForeignKey('leagues.id'), nullable=False, index=True)
    name: so.Mapped[str] = so.mapped_column(sa.String(120), nullable=False)
    address: so.Mapped[Optional[str]] = so.mapped_column(sa.String(255), nullable=True)
    notes: so.Mapped[Optional[str]] = so.mapped_column(sa.Text, nullable=True)
    created_at: so.Mapped[datetime] = so.mapped_column(sa.DateTime, default=utcnow, nullable=False)

    league: so.Mapped['League'] = so.relationship('League', back_populates='venues')

    def __repr__(self):
        return f"<Venue id={self.id}, name='{self.name}'>"


class Player(db.Model):
    __tablename__ = 'players'

    id: so.Mapped[int] = so.mapped_column(sa.Integer, primary_key=True)
    league_id: so.Mapped[int] = so.mapped_column(sa.Integer, sa.ForeignKey('leagues.id'), nullable=False, index=True)
    user_id: so.Mapped[Optional[int]] = so.mapped_column(sa.Integer, sa.ForeignKey('users.id'), nullable=True, index=True)
    display_name: so.Mapped[str] = so.mapped_column(sa.String(100), nullable=False)
    email: so.Mapped[Optional[str]] = so.mapped_column(sa.String(120), nullable=True)
    phone: so.Mapped[Optional[str]] = so.mapped_column(sa.String(32), nullable=True)
    created_at: so.Mapped[datetime] = so.mapped_column(sa.DateTime, default=utcnow, nullable=False)

    league: so.Mapped['League'] = so.relationship('League', back_populates='players')
    user: so.Mapped[Optional['User']] = so.relationship('User', back_populates='player_profiles')
    enrollments: so.Mapped[list['SeasonPlayer']] = so.relationship('SeasonPlayer', back_populates='player')

    def __repr__(self):
        return f"<Player id={self.id}, name='{self.display_name}', league_id={self.league_id}>"


class SeasonPlayer(db.Model):
    __tablename__ = 'season_players'
    __table_args__ = (sa.UniqueConstraint('season_id', 'player_id', name='uq_season_player'),)

    id: so.Mapped[int] = so.mapped_column(sa.Integer, primary_key=True)
    season_id: so.Mapped[int] = so.mapped_column(sa.Integer, sa.ForeignKey('seasons.id'), nullable=False, index=True)
    player_id: so.Mapped[int] = so.mapped_column(sa.Integer, sa.ForeignKey('players.id'), nullable=False, index=True)
    handicap_points: so.Mapped[int] = so.mapped_column(sa.Integer, nullable=False, default=0)
    rating: so.Mapped[Optional[float]] = so.mapped_column(sa.Float, nullable=True)
    is_active: so.Mapped[bool] = so.mapped_column(sa.Boolean, nullable=False, default=True)
    created_at: so.Mapped[datetime] = so.mapped_column(sa.DateTime, default=utcnow, nullable=False)

    season: so.Mapped['Season'] = so.relationship('Season', back_populates='enrollments')
    player: so.Mapped['Player'] = so.relationship('Player', back_populates='enrollments')

    def __repr__(self):
        return f"<SeasonPlayer id={self.id}, season_id={self.season_id}, player_id={self.player_id}, handicap={self.handicap_points}>"


class Match(db.Model):
    __tablename__ = 'matches'
    __table_args__ = (
        sa.UniqueConstraint('week_id', 'player_a_id', 'player_b_id', name='uq_match_week_pairing'),
        sa.CheckConstraint('player_a_id <> player_b_id', name='ck_match_distinct_players'),
    )

    id: so.Mapped[int] = so.mapped_column(sa.Integer, primary_key=True)
    season_id: so.Mapped[int] = so.mapped_column(sa.Integer, sa.ForeignKey('seasons.id'), nullable=False, index=True)
    week_id: so.Mapped[int] = so.mapped_column(sa.Integer, sa.ForeignKey('weeks.id'), nullable=False, index=True)
    player_a_id: so.Mapped[int] = so.mapped_column(sa.Integer, sa.ForeignKey('players.id'), nullable=False)
    player_b_id: so.Mapped[int] = so.mapped_column(sa.Integer, sa.ForeignKey('players.id'), nullable=False)
    venue_id: so.Mapped[Optional[int]] = so.mapped_column(sa.Integer, sa.ForeignKey('venues.id'), nullable=True)
    scheduled_at: so.Mapped[Optional[datetime]] = so.mapped_column(sa.DateTime, nullable=True)
    race_to_points: so.Mapped[int] = so.mapped_column(sa.Integer, nullable=False)
    status: so.Mapped[str] = so.mapped_column(sa.String(16), nullable=False, default='scheduled', index=True)
    # Bumped on every status change; the lifecycle writes are conditional on it
    version: so.Mapped[int] = so.mapped_column(sa.Integer, nullable=False, default=1)
    created_at: so.Mapped[datetime] = so.mapped_column(sa.DateTime, default=utcnow, nullable=False)

    season: so.Mapped['Season'] = so.relationship('Season', back_populates='matches')
    week: so.Mapped['Week'] = so.relationship('Week', back_populates='matches')
    player_a: so.Mapped['Player'] = so.relationship('Player', foreign_keys=[player_a_id])
    player_b: so.Mapped['Player'] = so.relationship('Player', foreign_keys=[player_b_id])
    venue: so.Mapped[Optional['Venue']] = so.relationship('Venue')
    result: so.Mapped[Optional['MatchResult']] = so.relationship(
        'MatchResult', back_populates='match', uselist=False, cascade='all, delete-orphan'
    )

    def __repr__(self):
        return f"<Match id={self.id}, week_id={self.week_id}, a={self.player_a_id}, b={self.player_b_id}, status={self.status}>"

    @property
    def league(self):
        return self.season.league

    def participant_user_ids(self):
        """User ids linked to either side of the match."""
        return {player.user_id for player in (self.player_a, self.player_b)
                if player is not None and player.user_id is not None}


class MatchResult(db.Model):
    __tablename__ = 'match_results'

    id: so.Mapped[int] = so.mapped_column(sa.Integer, primary_key=True)
    match_id: so.Mapped[int] = so.mapped_column(sa.Integer, sa.ForeignKey('matches.id'), nullable=False, unique=True)
    points_a: so.Mapped[int] = so.mapped_column(sa.Integer, nullable=False)
    points_b: so.Mapped[int] = so.mapped_column(sa.Integer, nullable=False)
    innings: so.Mapped[Optional[int]] = so.mapped_column(sa.Integer, nullable=True)
    high_run_a: so.Mapped[Optional[int]] = so.mapped_column(sa.Integer, nullable=True)
    high_run_b: so.Mapped[Optional[int]] = so.mapped_column(sa.Integer, nullable=True)
    submitted_by_user_id: so.Mapped[int] = so.mapped_column(sa.Integer, sa.ForeignKey('users.id'), nullable=False)
    submitted_at: so.Mapped[datetime] = so.mapped_column(sa.DateTime, default=utcnow, nullable=False)
    approved_by_user_id: so.Mapped[Optional[int]] = so.mapped_column(sa.Integer, sa.ForeignKey('users.id'), nullable=True)
    approved_at: so.Mapped[Optional[datetime]] = so.mapped_column(sa.DateTime, nullable=True)
    locked_by_user_id: so.Mapped[Optional[int]] = so.mapped_column(sa.Integer, sa.ForeignKey('users.id'), nullable=True)
    locked_at: so.Mapped[Optional[datetime]] = so.mapped_column(sa.DateTime, nullable=True)
    notes: so.Mapped[Optional[str]] = so.mapped_column(sa.Text, nullable=True)
    created_at: so.Mapped[datetime] = so.mapped_column(sa.DateTime, default=utcnow, nullable=False)

    match: so.Mapped['Match'] = so.relationship('Match', back_populates='result')

    def __repr__(self):
        return f"<MatchResult id={self.id}, match_id={self.match_id}, score={self.points_a}-{self.points_b}>"


@sa.event.listens_for(MatchResult.points_a, 'set', active_history=True)
@sa.event.listens_for(MatchResult.points_b, 'set', active_history=True)
@sa.event.listens_for(MatchResult.innings, 'set', active_history=True)
def _refuse_score_change(target, value, oldvalue, initiator):
    # Scores are fixed once the row is persisted
    if target.id is not None and oldvalue is not so.attributes.NO_VALUE and value != oldvalue:
        raise ValueError(f'{initiator.key} of a submitted result cannot be changed')


class SeasonStanding(db.Model):
    __tablename__ = 'season_standings'
    __table_args__ = (sa.UniqueConstraint('season_id', 'player_id', name='uq_standing_season_player'),)

    id: so.Mapped[int] = so.mapped_column(sa.Integer, primary_key=True)
    season_id: so.Mapped[int] = so.mapped_column(sa.Integer, sa.ForeignKey('seasons.id'), nullable=False, index=True)
    player_id: so.Mapped[int] = so.mapped_column(sa.Integer, sa.ForeignKey('players.id'), nullable=False)
    matches_played: so.Mapped[int] = so.mapped_column(sa.Integer, nullable=False, default=0)
    wins: so.Mapped[int] = so.mapped_column(sa.Integer, nullable=False, default=0)
    losses: so.Mapped[int] = so.mapped_column(sa.Integer, nullable=False, default=0)
    points_for: so.Mapped[int] = so.mapped_column(sa.Integer, nullable=False, default=0)
    points_against: so.Mapped[int] = so.mapped_column(sa.Integer, nullable=False, default=0)
    point_differential: so.Mapped[int] = so.mapped_column(sa.Integer, nullable=False, default=0)
    total_innings: so.Mapped[int] = so.mapped_column(sa.Integer, nullable=False, default=0)
    ppi: so.Mapped[float] = so.mapped_column(sa.Float, nullable=False, default=0.0)
    high_run: so.Mapped[int] = so.mapped_column(sa.Integer, nullable=False, default=0)
    updated_at: so.Mapped[datetime] = so.mapped_column(sa.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    season: so.Mapped['Season'] = so.relationship('Season', back_populates='standings')
    player: so.Mapped['Player'] = so.relationship('Player')

    def __repr__(self):
        return f"<SeasonStanding season_id={self.season_id}, player_id={self.player_id}, {self.wins}-{self.losses}>"


class AuditLogEntry(db.Model):
    """
    Append-only record of a state-changing action.

    Rows are never updated or deleted through the ORM; see the mapper
    listeners below.
    """
    __tablename__ = 'audit_log'

    id: so.Mapped[int] = so.mapped_column(sa.Integer, primary_key=True)
    league_id: so.Mapped[Optional[int]] = so.mapped_column(sa.Integer, sa.ForeignKey('leagues.id'), nullable=True, index=True)
    actor_user_id: so.Mapped[int] = so.mapped_column(sa.Integer, sa.ForeignKey('users.id'), nullable=False)
    entity_type: so.Mapped[str] = so.mapped_column(sa.String(32), nullable=False)
    entity_id: so.Mapped[int] = so.mapped_column(sa.Integer, nullable=False)
    action: so.Mapped[str] = so.mapped_column(sa.String(64), nullable=False, index=True)
    payload: so.Mapped[dict[str, Any]] = so.mapped_column(sa.JSON, nullable=False, default=dict)
    created_at: so.Mapped[datetime] = so.mapped_column(sa.DateTime, default=utcnow, nullable=False)

    actor: so.Mapped['User'] = so.relationship('User')

    def __repr__(self):
        return f"<AuditLogEntry id={self.id}, action='{self.action}', {self.entity_type}={self.entity_id}>"


@sa.event.listens_for(AuditLogEntry, 'before_update')
def _refuse_audit_update(mapper, connection, target):
    raise ValueError('Audit log entries are immutable')


@sa.event.listens_for(AuditLogEntry, 'before_delete')
def _refuse_audit_delete(mapper, connection, target):
    raise ValueError('Audit log entries cannot be deleted')


class StandingsRecompute(db.Model):
    """
    Queued request to rebuild a season's standings.

    Inserted in the same transaction as the match status change that caused
    it, so a failed rebuild is never lost: the row stays pending until a later
    attempt completes it.
    """
    __tablename__ = 'standings_recomputes'

    id: so.Mapped[int] = so.mapped_column(sa.Integer, primary_key=True)
    season_id: so.Mapped[int] = so.mapped_column(sa.Integer, sa.ForeignKey('seasons.id'), nullable=False, index=True)
    reason: so.Mapped[str] = so.mapped_column(sa.String(64), nullable=False)
    status: so.Mapped[str] = so.mapped_column(sa.String(16), nullable=False, default='pending', index=True)
    attempts: so.Mapped[int] = so.mapped_column(sa.Integer, nullable=False, default=0)
    last_error: so.Mapped[Optional[str]] = so.mapped_column(sa.Text, nullable=True)
    created_at: so.Mapped[datetime] = so.mapped_column(sa.DateTime, default=utcnow, nullable=False)
    completed_at: so.Mapped[Optional[datetime]] = so.mapped_column(sa.DateTime, nullable=True)

    season: so.Mapped['Season'] = so.relationship('Season')

    def __repr__(self):
        return f"<StandingsRecompute id={self.id}, season_id={self.season_id}, status={self.status}, attempts={self.attempts}>"
