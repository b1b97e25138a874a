"""
Test configuration and fixtures for the CueBook application.
"""
import pytest
import os
from app import create_app, db
from tests.fixtures.factories import (
    UserFactory, LeagueFactory, SeasonFactory, PlayerFactory, SeasonPlayerFactory, MatchFactory
)

# Set environment variables for testing
os.environ['SECRET_KEY'] = 'test-secret-key-for-testing-only'
os.environ['MAIL_SUPPRESS_SEND'] = 'true'


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app('testing')

    with app.app_context():
        # Ensure all models are registered with SQLAlchemy
        from app import models

        db.create_all()

        import sqlalchemy as sa
        tables = sa.inspect(db.engine).get_table_names()
        if 'matches' not in tables:
            raise RuntimeError(f"Database setup failed. Tables created: {tables}")

        yield app

        db.drop_all()


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def runner(app):
    """Create test CLI runner."""
    return app.test_cli_runner()


@pytest.fixture
def db_session(app):
    """Database session with every table emptied after the test."""
    with app.app_context():
        yield db.session

        try:
            for table in reversed(db.metadata.sorted_tables):
                db.session.execute(table.delete())
            db.session.commit()
        except Exception:
            db.session.rollback()
        finally:
            db.session.remove()


@pytest.fixture
def owner(db_session):
    """The league owner."""
    return UserFactory.create(email='owner@example.com', display_name='League Owner',
                              password='ownerpassword123')


@pytest.fixture
def participant(db_session):
    """User linked to player A of the scheduled match."""
    return UserFactory.create(email='alice@example.com', display_name='Alice',
                              password='alicepassword123')


@pytest.fixture
def opponent(db_session):
    """User linked to player B of the scheduled match."""
    return UserFactory.create(email='bob@example.com', display_name='Bob',
                              password='bobpassword123')


@pytest.fixture
def outsider(db_session):
    """Signed-up user with no part in the league."""
    return UserFactory.create(email='mallory@example.com', display_name='Mallory',
                              password='mallorypassword123')


@pytest.fixture
def league(owner):
    return LeagueFactory.create(name='Tuesday Night 8-Ball', owner=owner)


@pytest.fixture
def season(league):
    """Season tracking innings and high runs, players submit their own results."""
    return SeasonFactory.create(league=league, name='Spring', innings_required=True,
                                high_run_enabled=True)


@pytest.fixture
def player_a(league, participant):
    return PlayerFactory.create(league=league, display_name='Alice', email=participant.email,
                                user=participant)


@pytest.fixture
def player_b(league, opponent):
    return PlayerFactory.create(league=league, display_name='Bob', email=opponent.email,
                                user=opponent)


@pytest.fixture
def enrollments(season, player_a, player_b):
    return [
        SeasonPlayerFactory.create(season=season, player=player_a, handicap_points=0),
        SeasonPlayerFactory.create(season=season, player=player_b, handicap_points=2),
    ]


@pytest.fixture
def scheduled_match(season, player_a, player_b, enrollments):
    """Week 1 match between Alice and Bob."""
    return MatchFactory.create(season=season, player_a=player_a, player_b=player_b)


def _login(client, user):
    with client.session_transaction() as sess:
        sess['_user_id'] = str(user.id)
        sess['_fresh'] = True
    return client


@pytest.fixture
def owner_client(client, owner):
    """Client signed in as the league owner."""
    return _login(client, owner)


@pytest.fixture
def participant_client(client, participant):
    """Client signed in as player A's user."""
    return _login(client, participant)


@pytest.fixture
def outsider_client(client, outsider):
    """Client signed in as a user outside the league."""
    return _login(client, outsider)
