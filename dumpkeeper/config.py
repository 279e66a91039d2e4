import os


class Config:
    """Base configuration"""

    # Database (run history)
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:////data/dumpkeeper.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Backup job definitions
    BACKUP_SETTINGS_FILE = os.environ.get('BACKUP_SETTINGS_FILE') or '/data/backup_settings.json'

    # Logging
    LOG_DIR = os.environ.get('LOG_DIR') or '/data/logs'

    # Scheduler
    SCHEDULER_ENABLED = True
    SCHEDULER_MAX_WORKERS = int(os.environ.get('SCHEDULER_MAX_WORKERS', 4))
    # None means the local timezone; schedules are computed in local time
    SCHEDULER_TIMEZONE = os.environ.get('SCHEDULER_TIMEZONE') or None


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    SQLALCHEMY_ECHO = False

    # Use local data directory for development
    BASE_DIR = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
    DATA_DIR = os.path.join(BASE_DIR, 'data')
    SQLALCHEMY_DATABASE_URI = f'sqlite:///{os.path.join(DATA_DIR, "dumpkeeper.db")}'
    BACKUP_SETTINGS_FILE = os.environ.get('BACKUP_SETTINGS_FILE') or os.path.join(DATA_DIR, 'backup_settings.json')
    LOG_DIR = os.path.join(DATA_DIR, 'logs')


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    SQLALCHEMY_ECHO = False


class TestingConfig(Config):
    """Testing configuration"""
    TESTING = True
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SCHEDULER_ENABLED = False


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': ProductionConfig
}
