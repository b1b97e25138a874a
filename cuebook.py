import sqlalchemy as sa
import sqlalchemy.orm as so
from dotenv import load_dotenv
from app import create_app, db
from app.models import (
    User, League, Season, Week, Venue, Player, SeasonPlayer, Match, MatchResult,
    SeasonStanding, AuditLogEntry, StandingsRecompute
)
import os

load_dotenv('.flaskenv')

app = create_app(os.getenv('FLASK_CONFIG') or 'development')

@app.shell_context_processor
def make_shell_context():
    return {
        'sa': sa,
        'so': so,
        'db': db,
        'User': User,
        'League': League,
        'Season': Season,
        'Week': Week,
        'Venue': Venue,
        'Player': Player,
        'SeasonPlayer': SeasonPlayer,
        'Match': Match,
        'MatchResult': MatchResult,
        'SeasonStanding': SeasonStanding,
        'AuditLogEntry': AuditLogEntry,
        'StandingsRecompute': StandingsRecompute,
    }

if __name__ == '__main__':
    app.run(debug=True)
