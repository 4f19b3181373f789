"""
Logging Configuration
Console and rotating-file logging for the donation service
"""

import logging
import os
import sys
import time
from logging.handlers import RotatingFileHandler

LOG_DIR = os.getenv('LOG_DIR', 'logs')
MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUPS = 10

CONSOLE_FORMAT = '%(levelname)s - %(name)s - %(message)s'
FILE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# Probes hit these every few seconds
QUIET_PATHS = ('/api/v1/health/live', '/api/v1/health/ready')


def _file_handler(filename: str, level: int, fmt: str = FILE_FORMAT):
    """Rotating handler under LOG_DIR, or None when the directory cannot be created."""
    try:
        os.makedirs(LOG_DIR, exist_ok=True)
    except OSError:
        return None

    handler = RotatingFileHandler(
        os.path.join(LOG_DIR, filename),
        maxBytes=MAX_LOG_BYTES,
        backupCount=LOG_BACKUPS
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt, datefmt=DATE_FORMAT))
    return handler


def get_logger(name: str) -> logging.Logger:
    """
    Get a configured logger instance

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger writing to stdout and logs/clinic-giving.log
    """
    logger = logging.getLogger(name)

    if logger.handlers:
        return logger

    logger.setLevel(logging.INFO)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(logging.INFO)
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    logger.addHandler(console)

    file_handler = _file_handler('clinic-giving.log', logging.INFO)
    if file_handler:
        logger.addHandler(file_handler)

    return logger


def configure_app_logging(app):
    """
    Set the Flask logger level from LOG_LEVEL and, outside tests, add an
    error log that records where each error was raised
    """
    level = app.config.get('LOG_LEVEL') or ('DEBUG' if app.debug else 'INFO')
    app.logger.setLevel(getattr(logging, str(level).upper(), logging.INFO))

    if app.testing:
        return

    error_handler = _file_handler('error.log', logging.ERROR, FILE_FORMAT + '\n%(pathname)s:%(lineno)d')
    if error_handler:
        app.logger.addHandler(error_handler)


class RequestLogger:
    """Logs each request and its response status with the time taken"""

    def __init__(self, app=None):
        self.app = app
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        from flask import g, request

        request_log = get_logger('request')

        @app.before_request
        def log_request():
            g.request_started = time.monotonic()
            if request.path in QUIET_PATHS:
                return
            request_log.info(
                f'{request.method} {request.path} - '
                f'IP: {request.remote_addr} - '
                f'User-Agent: {request.headers.get("User-Agent", "Unknown")}'
            )

        @app.after_request
        def log_response(response):
            if request.path in QUIET_PATHS:
                return response
            started = g.get('request_started')
            elapsed = f'{(time.monotonic() - started) * 1000:.0f}ms' if started else '-'
            request_log.info(
                f'{request.method} {request.path} - '
                f'Status: {response.status_code} - {elapsed}'
            )
            return response
