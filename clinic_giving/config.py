import os
from datetime import timedelta
from dotenv import load_dotenv

load_dotenv()


class Config:
    """Base configuration"""
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key')
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY', 'dev-jwt-secret-change-me-in-production')
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=1)

    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL', 'postgresql://localhost/clinic_giving_dev')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.getenv('LOG_LEVEL')

    REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')

    CELERY_BROKER_URL = os.getenv('CELERY_BROKER_URL', REDIS_URL)
    CELERY_RESULT_BACKEND = os.getenv('CELERY_RESULT_BACKEND', REDIS_URL)
    LEDGER_REPAIR_INTERVAL = int(os.getenv('LEDGER_REPAIR_INTERVAL', '900'))

    SITE_URL = os.getenv('SITE_URL', 'https://mweinmed.com')

    # M-Pesa Daraja configuration
    MPESA_CONSUMER_KEY = os.getenv('MPESA_CONSUMER_KEY')
    MPESA_CONSUMER_SECRET = os.getenv('MPESA_CONSUMER_SECRET')
    MPESA_PASSKEY = os.getenv('MPESA_PASSKEY')
    MPESA_SHORT_CODE = os.getenv('MPESA_SHORT_CODE')
    MPESA_CALLBACK_URL = os.getenv('MPESA_CALLBACK_URL', '')
    MPESA_ENVIRONMENT = os.getenv('MPESA_ENVIRONMENT', 'sandbox')
    MPESA_CALLBACK_SECRET = os.getenv('MPESA_CALLBACK_SECRET', '')
    MPESA_TRANSACTION_TYPE = os.getenv('MPESA_TRANSACTION_TYPE', 'CustomerBuyGoodsOnline')
    # "memory" (per process) or "redis" (shared between workers)
    MPESA_TOKEN_CACHE = os.getenv('MPESA_TOKEN_CACHE', 'memory')
    MPESA_ACCOUNT_REFERENCE_FALLBACK = os.getenv('MPESA_ACCOUNT_REFERENCE_FALLBACK', 'MWEINCARE')

    DONATION_TRANSACTION_DESC = os.getenv('DONATION_TRANSACTION_DESC', 'Mwein Emergency Care Donation')

    # Initiate endpoint throttling (per client IP)
    DONATION_RATE_LIMIT = int(os.getenv('DONATION_RATE_LIMIT', '10'))
    DONATION_RATE_WINDOW = int(os.getenv('DONATION_RATE_WINDOW', '60'))


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    TESTING = False


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    TESTING = False


class TestingConfig(Config):
    """Testing configuration"""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv('TEST_DATABASE_URL', 'sqlite://')
    JWT_SECRET_KEY = 'test-jwt-secret-key-with-enough-length'

    MPESA_CONSUMER_KEY = 'test_consumer_key'
    MPESA_CONSUMER_SECRET = 'test_consumer_secret'
    MPESA_PASSKEY = 'test_passkey'
    MPESA_SHORT_CODE = '174379'
    MPESA_CALLBACK_URL = 'https://example.com/api/v1/donations/mpesa/callback'
    MPESA_ENVIRONMENT = 'sandbox'
    MPESA_CALLBACK_SECRET = ''
    MPESA_TOKEN_CACHE = 'memory'


config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
