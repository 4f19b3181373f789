"""
API Blueprints Package
Registers all API blueprints
"""

from clinic_giving.api.donations import donations_bp
from clinic_giving.api.supporters import supporters_bp
from clinic_giving.api.admin import admin_bp
from clinic_giving.api.health import health_bp

# Export blueprints
__all__ = [
    'donations_bp',
    'supporters_bp',
    'admin_bp',
    'health_bp',
    'register_blueprints'
]


def register_blueprints(app):
    """
    Register all blueprints with the Flask app

    Args:
        app: Flask application instance
    """

    url_base: str = '/api/v1'

    app.register_blueprint(donations_bp, url_prefix=f'{url_base}/donations')
    app.register_blueprint(supporters_bp, url_prefix=f'{url_base}/donations/supporters')
    app.register_blueprint(admin_bp, url_prefix=f'{url_base}/admin')
    app.register_blueprint(health_bp, url_prefix=url_base)
