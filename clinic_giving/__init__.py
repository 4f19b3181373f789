from flask import Flask, jsonify
from flask_cors import CORS

from clinic_giving.config import config
from clinic_giving.extensions import db, migrate, jwt, redis_client, socketio, celery_app
from clinic_giving.errors import AppError, DonationError
from clinic_giving.utils.caching import InMemoryTokenCache, RedisTokenCache
from clinic_giving.utils.logger import configure_app_logging, get_logger, RequestLogger

logger = get_logger(__name__)


def create_app(config_name='development'):
    """Application factory pattern"""
    app = Flask(__name__)

    # Load configuration
    app.config.from_object(config[config_name])

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    redis_client.init_app(app)
    socketio.init_app(app, cors_allowed_origins="*")
    CORS(app)

    from clinic_giving.celery_extension import init_celery
    init_celery(celery_app, app)

    # One Daraja token cache per app, shared by every request
    if app.config.get('MPESA_TOKEN_CACHE', 'memory').lower() == 'redis':
        app.extensions['mpesa_token_cache'] = RedisTokenCache()
    else:
        app.extensions['mpesa_token_cache'] = InMemoryTokenCache()

    configure_app_logging(app)
    RequestLogger(app)

    # Socket handlers register on import
    from clinic_giving.websockets import events  # noqa: F401

    # Register blueprints
    from clinic_giving.api import register_blueprints
    register_blueprints(app)

    # Error handlers
    register_error_handlers(app)

    return app


def register_error_handlers(app):
    """Register error handlers"""

    @app.errorhandler(DonationError)
    def donation_error(error):
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(AppError)
    def app_error(error):
        return jsonify({'error': error.error, 'message': error.message}), error.status_code

    @app.errorhandler(400)
    def bad_request(error):
        return jsonify({'error': 'Bad request', 'message': str(error)}), 400

    @app.errorhandler(401)
    def unauthorized(error):
        return jsonify({'error': 'Unauthorized', 'message': str(error)}), 401

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({'error': 'Not found', 'message': str(error)}), 404

    @app.errorhandler(500)
    def internal_error(error):
        logger.error(f'Unhandled error: {str(error)}')
        return jsonify({'error': 'server', 'message': 'Internal server error'}), 500
