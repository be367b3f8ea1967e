# config/settings/test.py

from .base import *

# === TESTS ===

DEBUG = False

SECRET_KEY = 'orbit-test-secret-key'

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
        'LOCATION': 'orbit-test-cache',
    }
}

CHANNEL_LAYERS = {
    'default': {
        'BACKEND': 'channels.layers.InMemoryChannelLayer'
    }
}

SESSION_ENGINE = 'django.contrib.sessions.backends.db'

# Fast hashing for tests
PASSWORD_HASHERS = [
    'django.contrib.auth.hashers.MD5PasswordHasher',
]

STORAGES['staticfiles'] = {
    'BACKEND': 'django.contrib.staticfiles.storage.StaticFilesStorage',
}

# Quiet logs in tests
LOGGING['handlers'] = {
    'console': {
        'level': 'WARNING',
        'class': 'logging.StreamHandler',
        'formatter': 'simple',
    },
}
LOGGING['root']['handlers'] = ['console']
LOGGING['root']['level'] = 'WARNING'
LOGGING['loggers'] = {
    'apps': {
        'handlers': ['console'],
        'level': 'CRITICAL',
        'propagate': False,
    },
}
