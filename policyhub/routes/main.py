"""
Main routes for PolicyHub.

Public utility routes: health check and API index (no authentication required).
"""

from flask import Blueprint, jsonify, current_app
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from policyhub.extensions import db

# Create blueprint
main_bp = Blueprint('main', __name__)


@main_bp.route('/')
def index():
    """Describe the API surface."""
    return jsonify(
        success=True,
        name='PolicyHub',
        endpoints=['/api/auth', '/api/customer', '/api/agent', '/api/admin', '/health'],
    )


@main_bp.route('/health')
def health_check():
    """Simple health check endpoint for uptime monitoring."""
    try:
        db.session.execute(text('SELECT 1'))
        return 'ok', 200
    except SQLAlchemyError:
        current_app.logger.exception('Health check failed')
        return jsonify(success=False, error='InternalError', message='Database error'), 500
