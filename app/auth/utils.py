# Standard library imports
from typing import Optional

# Third-party imports
import sqlalchemy as sa
from flask import current_app, url_for
from flask_mail import Message
from itsdangerous import URLSafeTimedSerializer, BadSignature, SignatureExpired

# Local application imports
from app import db, mail
from app.models import User

SIGNIN_SALT = 'signin-link-salt'


def generate_signin_token(user):
    """
    Generate a signed, time-limited token identifying a user by email.

    Args:
        user (User): The user the link signs in.

    Returns:
        str: Token to embed in the sign-in URL.
    """
    serializer = URLSafeTimedSerializer(current_app.config['SECRET_KEY'])
    return serializer.dumps(user.email, salt=SIGNIN_SALT)


def verify_signin_token(token, expiration=None) -> Optional[User]:
    """
    Verify a sign-in token and return the associated user.

    Args:
        token (str): The token from the sign-in link.
        expiration (int): Maximum token age in seconds (default: SIGNIN_LINK_EXPIRATION).

    Returns:
        User or None: User if the token is valid, None if invalid or expired.
    """
    if expiration is None:
        expiration = current_app.config.get('SIGNIN_LINK_EXPIRATION', 3600)
    serializer = URLSafeTimedSerializer(current_app.config['SECRET_KEY'])
    try:
        email = serializer.loads(token, salt=SIGNIN_SALT, max_age=expiration)
    except (SignatureExpired, BadSignature):
        return None
    return db.session.scalar(sa.select(User).where(User.email == email))


def send_signin_email(user, token):
    """
    Email a sign-in link to a user.

    Returns:
        bool: True if the email was sent, False otherwise.
    """
    sender = (current_app.config.get('MAIL_DEFAULT_SENDER') or
              current_app.config.get('MAIL_USERNAME'))
    if not sender:
        current_app.logger.error("No email sender configured - missing MAIL_DEFAULT_SENDER and MAIL_USERNAME")
        return False

    try:
        signin_url = url_for('auth.consume_signin_link', token=token, _external=True)
        expiry_minutes = current_app.config.get('SIGNIN_LINK_EXPIRATION', 3600) // 60

        msg = Message(
            subject='Your CueBook sign-in link',
            recipients=[user.email],
            sender=sender
        )
        msg.body = f'''Hello {user.display_name},

Use the link below to sign in to CueBook:
{signin_url}

This link will expire in {expiry_minutes} minutes.

If you did not request it, you can ignore this email.
'''
        mail.send(msg)
        return True

    except Exception as e:
        current_app.logger.error(f"Error sending sign-in email to {user.email}: {str(e)}")
        return False
