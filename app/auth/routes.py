# Authentication routes: accounts, sessions and emailed sign-in links
from flask import jsonify, current_app
from flask_login import login_user, logout_user, current_user, login_required
from flask_wtf.csrf import generate_csrf
import sqlalchemy as sa

from app import db, limiter
from app.auth import bp
from app.auth.forms import LoginForm, RegistrationForm, SignInLinkForm
from app.auth.utils import generate_signin_token, verify_signin_token, send_signin_email
from app.audit import audit_log_authentication, audit_log_security_event
from app.models import User, Player, utcnow
from app.utils import form_error_response


def _login_rate_limit():
    return current_app.config.get('LOGIN_RATE_LIMIT', '10 per minute')


def _identity(user):
    return {
        'id': user.id,
        'email': user.email,
        'display_name': user.display_name,
    }


def link_player_profiles(user):
    """Attach unlinked players registered under the user's email."""
    players = db.session.scalars(
        sa.select(Player).where(
            Player.user_id.is_(None),
            sa.func.lower(Player.email) == user.email.lower(),
        )
    ).all()
    for player in players:
        player.user_id = user.id
    return players


@bp.route('/csrf')
def csrf_token():
    """CSRF token for clients posting forms."""
    return jsonify({'csrf_token': generate_csrf()})


@bp.route('/me')
def me():
    """The signed-in identity, or null."""
    if not current_user.is_authenticated:
        return jsonify({'authenticated': False, 'user': None})
    return jsonify({'authenticated': True, 'user': _identity(current_user)})


@bp.route('/register', methods=['POST'])
@limiter.limit(_login_rate_limit)
def register():
    """
    Create an account and sign it in
    """
    form = RegistrationForm()
    if not form.validate_on_submit():
        return form_error_response(form)

    try:
        user = User(email=form.email.data.strip().lower(), display_name=form.display_name.data.strip())
        user.set_password(form.password.data)
        db.session.add(user)
        db.session.flush()
        linked = link_player_profiles(user)
        user.last_login = utcnow()
        db.session.commit()

        audit_log_authentication('REGISTER', user.email, True)
        login_user(user)
        current_app.logger.info(f"Registered user {user.id}, linked {len(linked)} player profiles")
        return jsonify({'success': True, 'user': _identity(user)}), 201

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error registering account: {str(e)}")
        return jsonify({'success': False, 'error': 'An error occurred while creating the account.'}), 500


@bp.route('/login', methods=['POST'])
@limiter.limit(_login_rate_limit)
def login():
    """
    Email and password sign-in
    """
    form = LoginForm()
    if not form.validate_on_submit():
        return form_error_response(form)

    email = form.email.data.strip().lower()
    user = db.session.scalar(sa.select(User).where(User.email == email))
    if user is None or not user.check_password(form.password.data):
        audit_log_authentication('LOGIN', email, False)
        return jsonify({'success': False, 'error': 'Invalid email or password.'}), 401

    login_user(user, remember=form.remember_me.data)
    user.last_login = utcnow()
    db.session.commit()
    audit_log_authentication('LOGIN', user.email, True)
    return jsonify({'success': True, 'user': _identity(user)})


@bp.route('/logout', methods=['POST'])
@login_required
def logout():
    """
    Sign out
    """
    audit_log_authentication('LOGOUT', current_user.email, True)
    logout_user()
    return jsonify({'success': True})


@bp.route('/signin-link', methods=['POST'])
@limiter.limit(_login_rate_limit)
def request_signin_link():
    """
    Email a one-time sign-in link. The response never reveals whether the
    address has an account.
    """
    form = SignInLinkForm()
    if not form.validate_on_submit():
        return form_error_response(form)

    email = form.email.data.strip().lower()
    user = db.session.scalar(sa.select(User).where(User.email == email))
    if user is not None:
        sent = send_signin_email(user, generate_signin_token(user))
        audit_log_authentication('SIGNIN_LINK', email, sent)
    else:
        audit_log_authentication('SIGNIN_LINK', email, False)

    return jsonify({'success': True, 'message': 'Check your email for a sign-in link.'})


@bp.route('/signin/<token>')
def consume_signin_link(token):
    """
    Sign in from an emailed link
    """
    user = verify_signin_token(token)
    if user is None:
        audit_log_security_event('INVALID_TOKEN', 'Invalid or expired sign-in link used')
        return jsonify({'success': False, 'error': 'This sign-in link is invalid or has expired.'}), 400

    login_user(user)
    user.last_login = utcnow()
    db.session.commit()
    audit_log_authentication('LOGIN', user.email, True)
    return jsonify({'success': True, 'user': _identity(user)})
