"""
Application factory for PolicyHub.

This module provides create_app() which loads configuration, initializes
extensions and logging, and registers the JSON blueprints.
"""

import os
import logging
from logging.handlers import RotatingFileHandler

from flask import Flask, jsonify, request
from dotenv import load_dotenv
from werkzeug.exceptions import HTTPException

from policyhub.extensions import rate_limit_storage_uri

# Load environment variables
load_dotenv()

REQUIRED_ENV_VARS = ["SECRET_KEY", "DATABASE_URL", "FLASK_ENV"]


def _check_required_env():
    missing_vars = [var for var in REQUIRED_ENV_VARS if not os.getenv(var)]
    if missing_vars:
        raise RuntimeError(
            "Missing required environment variables: " + ", ".join(missing_vars)
        )


# -------------------- APPLICATION FACTORY --------------------

def create_app(config_overrides=None):
    """
    Application factory function.

    Creates and configures the Flask application, initializes extensions,
    sets up logging and registers blueprints, CLI commands and the
    scheduled expiry sweep.

    Args:
        config_overrides: optional mapping applied after the environment
            configuration (tests use it for TESTING and the database URL)

    Returns:
        Flask: Configured Flask application instance
    """
    _check_required_env()

    app = Flask(__name__)

    # -------------------- CONFIGURATION --------------------
    app.config.from_mapping(
        DEBUG=False,
        ENV=os.environ["FLASK_ENV"],
        SECRET_KEY=os.environ["SECRET_KEY"],
        SQLALCHEMY_DATABASE_URI=os.environ["DATABASE_URL"],
        SQLALCHEMY_TRACK_MODIFICATIONS=False,
        SESSION_COOKIE_SECURE=True,
        SESSION_COOKIE_HTTPONLY=True,
        SESSION_COOKIE_SAMESITE="Lax",
        TOKEN_MAX_AGE_SECONDS=int(os.getenv("TOKEN_MAX_AGE_SECONDS", 8 * 60 * 60)),
        EXPIRY_SWEEP_MINUTES=int(os.getenv("EXPIRY_SWEEP_MINUTES", 60)),
        RATELIMIT_STORAGE_URI=rate_limit_storage_uri(),
    )
    if config_overrides:
        app.config.update(config_overrides)

    # -------------------- EXTENSIONS --------------------
    from policyhub.extensions import db, migrate, csrf, limiter

    db.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)
    limiter.init_app(app)

    # -------------------- LOGGING --------------------
    log_level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    log_level = getattr(logging, log_level_name, logging.INFO)
    log_format = os.getenv(
        "LOG_FORMAT",
        "[%(asctime)s] %(levelname)s in %(module)s: %(message)s",
    )

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(log_level)
    stream_handler.setFormatter(logging.Formatter(log_format))

    app.logger.setLevel(log_level)
    # Prevent duplicate log entries by clearing handlers first
    app.logger.handlers.clear()
    app.logger.addHandler(stream_handler)

    if app.config.get("ENV") == "production":
        log_file = os.getenv("LOG_FILE", "policyhub.log")
        file_handler = RotatingFileHandler(log_file, maxBytes=1_000_000, backupCount=5)
        file_handler.setLevel(log_level)
        file_handler.setFormatter(logging.Formatter(log_format))
        app.logger.addHandler(file_handler)

    # -------------------- MODELS --------------------
    # Imported so Flask-Migrate and db.create_all() see every table
    from policyhub import models  # noqa: F401

    # -------------------- REGISTER BLUEPRINTS --------------------
    from policyhub.routes.main import main_bp
    from policyhub.routes.auth import auth_bp
    from policyhub.routes.customer import customer_bp
    from policyhub.routes.agent import agent_bp
    from policyhub.routes.admin import admin_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(customer_bp)
    app.register_blueprint(agent_bp)
    app.register_blueprint(admin_bp)

    # -------------------- ERROR HANDLERS --------------------
    error_kinds = {
        400: 'ValidationError',
        401: 'UnauthenticatedError',
        403: 'ForbiddenError',
        404: 'NotFoundError',
        405: 'ValidationError',
        409: 'ConflictError',
        429: 'RateLimitExceeded',
    }

    @app.errorhandler(HTTPException)
    def handle_http_exception(error):
        """Render framework errors (404, 405, 429, ...) as JSON."""
        code = error.code or 500
        kind = error_kinds.get(code, 'InternalError')
        if code >= 500:
            app.logger.error(f"HTTP {error.code} on {request.method} {request.path}: {error.description}")
        return jsonify(success=False, error=kind, message=error.description), code

    @app.errorhandler(Exception)
    def handle_unexpected_exception(error):
        if isinstance(error, HTTPException):
            return handle_http_exception(error)
        app.logger.exception(f"Unhandled error on {request.method} {request.path}")
        db.session.rollback()
        return jsonify(success=False, error='InternalError', message='Internal server error'), 500

    # -------------------- SECURITY HEADERS --------------------
    @app.after_request
    def set_security_headers(response):
        """Add security headers to all HTTP responses."""
        response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
        response.headers['Content-Security-Policy'] = "default-src 'none'; frame-ancestors 'none'"
        return response

    # -------------------- CLI COMMANDS --------------------
    from policyhub import cli_commands
    cli_commands.init_app(app)

    # -------------------- SCHEDULED TASKS --------------------
    if not app.config.get("TESTING") and app.config.get("ENV") != "testing":
        from policyhub.scheduled_tasks import init_scheduled_tasks
        init_scheduled_tasks(app)

    return app


__all__ = ["create_app"]
