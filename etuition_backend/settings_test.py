"""
Test settings for the etuition_backend project.

Usage:
    pytest
    python manage.py test --settings=etuition_backend.settings_test
"""

import os

from .settings import *  # noqa: F401, F403

DEBUG = False
TESTING = True

PASSWORD_HASHERS = [
    'django.contrib.auth.hashers.MD5PasswordHasher',
]

# Row-locking tests need a server database; point DB_ENGINE/TEST_DB_* at
# MySQL or PostgreSQL to run them. SQLite is the default for the rest.
if os.environ.get('TEST_DB_ENGINE'):
    DATABASES = {
        'default': {
            'ENGINE': os.environ['TEST_DB_ENGINE'],
            'NAME': os.environ.get('TEST_DB_NAME', 'etuition_test'),
            'USER': os.environ.get('TEST_DB_USER', 'etuition'),
            'PASSWORD': os.environ.get('TEST_DB_PASSWORD', ''),
            'HOST': os.environ.get('TEST_DB_HOST', '127.0.0.1'),
            'PORT': os.environ.get('TEST_DB_PORT', ''),
        }
    }
else:
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': BASE_DIR / 'test_db.sqlite3',  # noqa: F405
        }
    }

STRIPE_SECRET_KEY = 'sk_test_dummy'
STRIPE_WEBHOOK_SECRET = 'whsec_dummy'
CLIENT_DOMAIN = 'http://client.test'
CORS_ALLOWED_ORIGINS = [CLIENT_DOMAIN]

LOGGING['loggers']['tuitions']['level'] = 'CRITICAL'  # noqa: F405
