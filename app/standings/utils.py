"""
Standings aggregation and the recompute queue.
"""

from typing import Dict, Any, Iterable, Optional
from flask import current_app
import sqlalchemy as sa
from sqlalchemy.exc import SQLAlchemyError

from app import db
from app.models import Match, MatchResult, Season, SeasonPlayer, SeasonStanding, StandingsRecompute, utcnow


def _empty_line():
    return {
        'matches_played': 0,
        'wins': 0,
        'losses': 0,
        'points_for': 0,
        'points_against': 0,
        'point_differential': 0,
        'total_innings': 0,
        'ppi': 0.0,
        'high_run': 0,
    }


def compute_standings(player_ids: Iterable[int], results: Iterable[tuple]) -> Dict[int, Dict[str, Any]]:
    """
    Aggregate per-player season statistics.

    Args:
        player_ids: Players that get a line even without any results
        results: Tuples of (player_a_id, player_b_id, points_a, points_b,
            innings, high_run_a, high_run_b)

    Returns:
        Mapping of player id to standing values
    """
    table = {player_id: _empty_line() for player_id in player_ids}

    for player_a_id, player_b_id, points_a, points_b, innings, high_run_a, high_run_b in results:
        sides = (
            (player_a_id, points_a, points_b, high_run_a),
            (player_b_id, points_b, points_a, high_run_b),
        )
        for player_id, scored, conceded, high_run in sides:
            line = table.setdefault(player_id, _empty_line())
            line['matches_played'] += 1
            line['points_for'] += scored
            line['points_against'] += conceded
            line['total_innings'] += innings or 0
            if scored > conceded:
                line['wins'] += 1
            elif scored < conceded:
                line['losses'] += 1
            if high_run is not None and high_run > line['high_run']:
                line['high_run'] = high_run

    for line in table.values():
        line['point_differential'] = line['points_for'] - line['points_against']
        if line['total_innings'] > 0:
            line['ppi'] = round(line['points_for'] / line['total_innings'], 3)

    return table


def recompute_season_standings(season_id: int):
    """
    Rebuild every SeasonStanding row of a season from its counted results.

    Changes are flushed but not committed; the caller owns the transaction.
    """
    season = db.session.get(Season, season_id)
    if season is None:
        raise LookupError(f'Season {season_id} does not exist')

    counted = current_app.config.get('STANDINGS_COUNTED_STATUSES', ['approved', 'locked'])
    results = db.session.execute(
        sa.select(
            Match.player_a_id, Match.player_b_id,
            MatchResult.points_a, MatchResult.points_b, MatchResult.innings,
            MatchResult.high_run_a, MatchResult.high_run_b,
        )
        .join(MatchResult, MatchResult.match_id == Match.id)
        .where(Match.season_id == season_id, Match.status.in_(counted))
    ).all()

    enrolled = db.session.scalars(
        sa.select(SeasonPlayer.player_id)
        .where(SeasonPlayer.season_id == season_id, SeasonPlayer.is_active == True)
    ).all()

    table = compute_standings(enrolled, results)

    existing = {
        standing.player_id: standing
        for standing in db.session.scalars(
            sa.select(SeasonStanding).where(SeasonStanding.season_id == season_id)
        )
    }

    for player_id, values in table.items():
        standing = existing.pop(player_id, None)
        if standing is None:
            standing = SeasonStanding(season_id=season_id, player_id=player_id)
            db.session.add(standing)
        for key, value in values.items():
            setattr(standing, key, value)
        standing.updated_at = utcnow()

    # Players no longer enrolled and without counted results
    for standing in existing.values():
        db.session.delete(standing)

    db.session.flush()
    current_app.logger.info(f"Recomputed standings for season {season_id}: {len(table)} players, {len(results)} results")


def enqueue_recompute(season_id: int, reason: str) -> StandingsRecompute:
    """Add a pending recompute to the current transaction without committing."""
    task = StandingsRecompute(season_id=season_id, reason=reason, status='pending', attempts=0)
    db.session.add(task)
    return task


def process_recompute(task_id: int) -> bool:
    """
    Run one queued recompute.

    On success the task, and every other pending task of the same season, is
    marked done. On failure the task stays pending with the attempt recorded.

    Returns:
        True if standings are now current, False otherwise
    """
    task = db.session.get(StandingsRecompute, task_id)
    if task is None or task.status == 'done':
        return True

    season_id = task.season_id
    try:
        recompute_season_standings(season_id)
        now = utcnow()
        pending = db.session.scalars(
            sa.select(StandingsRecompute).where(
                StandingsRecompute.season_id == season_id,
                StandingsRecompute.status == 'pending',
            )
        ).all()
        for queued in pending:
            queued.status = 'done'
            queued.completed_at = now
            queued.last_error = None
        task.attempts += 1
        db.session.commit()
        return True
    except Exception as e:
        db.session.rollback()
        error_text = str(e)
        current_app.logger.error(f"Standings recompute {task_id} for season {season_id} failed: {error_text}")

    try:
        task = db.session.get(StandingsRecompute, task_id)
        task.attempts += 1
        task.last_error = error_text[:500]
        db.session.commit()
    except SQLAlchemyError as record_error:
        db.session.rollback()
        current_app.logger.error(f"Could not record failed recompute {task_id}: {str(record_error)}")
    return False


def process_pending_recomputes(season_id: Optional[int] = None):
    """
    Drain the recompute queue.

    Args:
        season_id: Limit processing to one season

    Returns:
        Tuple of (completed, failed) task counts
    """
    query = sa.select(StandingsRecompute.id).where(StandingsRecompute.status == 'pending')
    if season_id is not None:
        query = query.where(StandingsRecompute.season_id == season_id)
    task_ids = db.session.scalars(query.order_by(StandingsRecompute.id)).all()

    completed = failed = 0
    for task_id in task_ids:
        task = db.session.get(StandingsRecompute, task_id)
        if task.status == 'done':
            # Finished together with an earlier task of the same season
            completed += 1
            continue
        if process_recompute(task_id):
            completed += 1
        else:
            failed += 1
    return completed, failed


def get_season_standings(season_id: int):
    """Standings of a season ordered by wins, then points per inning."""
    return db.session.scalars(
        sa.select(SeasonStanding)
        .where(SeasonStanding.season_id == season_id)
        .order_by(SeasonStanding.wins.desc(), SeasonStanding.ppi.desc(), SeasonStanding.point_differential.desc())
    ).all()
