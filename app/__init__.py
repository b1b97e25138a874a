from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_mail import Mail
from flask_migrate import Migrate
from flask_login import LoginManager
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
import logging
from logging.handlers import SMTPHandler, RotatingFileHandler
import os

# Initialize extensions
db = SQLAlchemy()
mail = Mail()
migrate = Migrate()
login = LoginManager()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["200 per day", "50 per hour"]
)


def create_app(config_name='development'):
    """Application factory function"""
    app = Flask(__name__)

    # Load configuration
    from config import config
    app.config.from_object(config[config_name])

    # Initialize extensions
    db.init_app(app)
    mail.init_app(app)
    migrate.init_app(app, db)
    login.init_app(app)
    limiter.init_app(app)

    # Configure logging
    configure_logging(app)

    # Register middleware
    register_middleware(app)

    # Register blueprints/routes
    register_routes(app)

    # Register CLI commands
    register_commands(app)

    return app


def configure_logging(app):
    """Configure logging for the application"""
    # Ensure instance/logs directory exists
    logs_dir = os.path.join(app.instance_path, 'logs')
    os.makedirs(logs_dir, exist_ok=True)

    # Always log to file (even in debug mode)
    app_log_path = os.path.join(logs_dir, 'app.log')
    file_handler = RotatingFileHandler(app_log_path, maxBytes=10240, backupCount=10)
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'))
    file_handler.setLevel(logging.INFO)
    app.logger.addHandler(file_handler)

    # Set appropriate log level
    if app.debug:
        app.logger.setLevel(logging.DEBUG)
    else:
        app.logger.setLevel(logging.INFO)

    # Email notifications for production errors only
    if not app.debug and not app.testing and app.config.get('MAIL_SERVER'):
        auth = None
        if app.config['MAIL_USERNAME'] or app.config['MAIL_PASSWORD']:
            auth = (app.config['MAIL_USERNAME'], app.config['MAIL_PASSWORD'])
        secure = None
        if app.config['MAIL_USE_TLS']:
            secure = ()
        mail_handler = SMTPHandler(
            mailhost=(app.config['MAIL_SERVER'], app.config['MAIL_PORT']),
            fromaddr='no-reply@' + app.config['MAIL_SERVER'],
            toaddrs=app.config['ADMINS'], subject='CueBook Failure',
            credentials=auth, secure=secure)
        mail_handler.setLevel(logging.ERROR)
        app.logger.addHandler(mail_handler)

    app.logger.info('CueBook application startup')


def register_middleware(app):
    """Register middleware functions"""

    @app.after_request
    def add_security_headers(response):
        """Add security headers to all responses"""
        response.headers['Content-Security-Policy'] = "default-src 'self'"
        response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
        response.headers['Permissions-Policy'] = 'geolocation=(), microphone=(), camera=()'
        return response

    @app.before_request
    def track_user_activity():
        """Update last_seen date for authenticated users - only once per day"""
        from flask_login import current_user
        from datetime import date

        if current_user.is_authenticated:
            today = date.today()
            if current_user.last_seen != today:
                current_user.last_seen = today
                db.session.commit()


def register_routes(app):
    """Register application routes via blueprints"""
    from app.main import bp as main_bp
    from app.auth import bp as auth_bp
    from app.matches import bp as matches_bp
    from app.admin import bp as admin_bp
    from app.standings import bp as standings_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(auth_bp, url_prefix='/auth')
    app.register_blueprint(matches_bp, url_prefix='/matches')
    app.register_blueprint(admin_bp, url_prefix='/admin')
    app.register_blueprint(standings_bp, url_prefix='/standings')

    # Register error handlers
    from app.errors import register_error_handlers
    register_error_handlers(app)

    # Import models to ensure they're loaded
    from app import models


def register_commands(app):
    """Register flask CLI command groups"""
    from app.commands import standings_cli, create_league_command

    app.cli.add_command(standings_cli)
    app.cli.add_command(create_league_command)
