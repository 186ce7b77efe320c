import os

basedir = os.path.abspath(os.path.dirname(__file__))

class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'change-me-for-production'
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or \
        'sqlite:///' + os.path.join(basedir, 'pitchside.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Custom config
    LIVE_POLL_INTERVAL = int(os.environ.get('LIVE_POLL_INTERVAL', 5))
    DUPLICATE_NAME_THRESHOLD = int(os.environ.get('DUPLICATE_NAME_THRESHOLD', 90))
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = 'test'
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
