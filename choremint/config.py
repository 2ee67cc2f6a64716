"""Flask configuration for the ChoreMint points service."""

import os
from pathlib import Path


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None or value == '':
        return default
    return int(value)


class Config:
    """Base configuration."""

    # Flask settings
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'

    # Database settings
    DATA_DIR = Path(os.environ.get('DATA_DIR', '/data'))
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or f"sqlite:///{DATA_DIR / 'choremint.db'}"
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # APScheduler settings
    SCHEDULER_ENABLED = os.environ.get('SCHEDULER_ENABLED', 'true').lower() == 'true'
    SCHEDULER_TIMEZONE = os.environ.get('TZ', 'UTC')
    RECONCILE_INTERVAL_MINUTES = _env_int('RECONCILE_INTERVAL_MINUTES', 5)

    # Bearer token shared with the approval workflow and parent settings UI.
    # Unset means the API is open (local development only).
    API_TOKEN = os.environ.get('API_TOKEN')

    # Goal / ledger settings
    DEFAULT_GOAL_THRESHOLD = _env_int('DEFAULT_GOAL_THRESHOLD', 100)
    GOAL_DEDUP_WINDOW_SECONDS = _env_int('GOAL_DEDUP_WINDOW_SECONDS', 60)
    BALANCE_CACHE_TTL_SECONDS = _env_int('BALANCE_CACHE_TTL_SECONDS', 5)

    # Application settings
    DEBUG = os.environ.get('DEBUG', 'false').lower() == 'true'
    TESTING = False


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True
    DATA_DIR = Path(__file__).parent / 'data'
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or f"sqlite:///{DATA_DIR / 'choremint.db'}"


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False
    # Re-evaluate DATA_DIR and database URI to ensure environment variable is picked up
    DATA_DIR = Path(os.environ.get('DATA_DIR', '/data'))
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or f"sqlite:///{DATA_DIR / 'choremint.db'}"


class TestingConfig(Config):
    """Testing configuration."""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    # Disable scheduler during tests
    SCHEDULER_ENABLED = False
    API_TOKEN = None
    DEFAULT_GOAL_THRESHOLD = 100
    GOAL_DEDUP_WINDOW_SECONDS = 60
    BALANCE_CACHE_TTL_SECONDS = 5


# Config dictionary for easy access
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
