"""
Health Check Endpoints
"""

from flask import Blueprint, jsonify
from sqlalchemy import text

from clinic_giving.errors import ConfigurationError
from clinic_giving.extensions import db, redis_client
from clinic_giving.providers import get_mpesa_provider
from clinic_giving.utils.logger import get_logger
from clinic_giving.utils.validators import utcnow

health_bp = Blueprint('health', __name__)
logger = get_logger(__name__)

SERVICE_NAME = 'clinic-giving'
SERVICE_VERSION = '1.0.0'


def _check_database():
    db.session.execute(text('SELECT 1'))


def _check_redis():
    redis_client.set('health_check', 'ok', ex=10)
    if redis_client.get('health_check') != 'ok':
        raise RuntimeError('Redis read/write failed')


def _check_mpesa():
    # Builds the client only; no call is made to Daraja
    provider = get_mpesa_provider()
    return f'{provider.environment} credentials configured'


# name -> (check, fails the service when broken)
CHECKS = {
    'database': (_check_database, True),
    'redis': (_check_redis, True),
    'mpesa': (_check_mpesa, False),
}


def _run(name):
    check, _ = CHECKS[name]
    try:
        detail = check()
    except ConfigurationError as e:
        return False, e.message
    except Exception as e:
        logger.warning(f'Health check failed for {name}: {str(e)}')
        return False, str(e)
    return True, detail or 'OK'


@health_bp.route('/health', methods=['GET'])
def health_check():
    """
    Dependency report

    Returns:
        200 when the database and Redis are usable, 503 otherwise.
        A missing M-Pesa configuration is reported as degraded but does not
        fail the check: supporters and the overview still work without it.
    """
    checks = {}
    healthy = True
    degraded = False

    for name, (_, critical) in CHECKS.items():
        ok, message = _run(name)
        checks[name] = {'status': 'healthy' if ok else 'unhealthy', 'message': message}
        if not ok:
            if critical:
                healthy = False
            else:
                degraded = True

    status = 'unhealthy' if not healthy else ('degraded' if degraded else 'healthy')
    return jsonify({
        'status': status,
        'timestamp': utcnow().isoformat(),
        'service': SERVICE_NAME,
        'version': SERVICE_VERSION,
        'checks': checks
    }), 200 if healthy else 503


@health_bp.route('/health/live', methods=['GET'])
def liveness_probe():
    """Process is up"""
    return jsonify({'status': 'alive', 'timestamp': utcnow().isoformat()}), 200


@health_bp.route('/health/ready', methods=['GET'])
def readiness_probe():
    """Ready for traffic once every critical dependency answers"""
    checks = {}
    for name, (_, critical) in CHECKS.items():
        if critical:
            checks[name] = 'ready' if _run(name)[0] else 'not_ready'

    ready = all(state == 'ready' for state in checks.values())
    return jsonify({
        'status': 'ready' if ready else 'not_ready',
        'checks': checks,
        'timestamp': utcnow().isoformat()
    }), 200 if ready else 503
