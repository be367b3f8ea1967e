# config/settings/development.py

from .base import *

# === DEVELOPMENT ===

DEBUG = True

ALLOWED_HOSTS = ['localhost', '127.0.0.1', '0.0.0.0']

# === DATABASE ===

# PostgreSQL by default (same as production)
# DATABASE_URL wins over the individual variables
if env('DATABASE_URL', default=None):
    import dj_database_url

    DATABASES['default'] = dj_database_url.parse(env('DATABASE_URL'), conn_max_age=600)
else:
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.postgresql',
            'NAME': env('DB_NAME', default='orbit_board'),
            'USER': env('DB_USER', default='orbit_user'),
            'PASSWORD': env('DB_PASSWORD', default='orbit123'),
            'HOST': env('DB_HOST', default='localhost'),
            'PORT': env('DB_PORT', default='5432'),
            'OPTIONS': {
                'sslmode': 'prefer',
            },
            'CONN_MAX_AGE': 60,
        }
    }

# SQLite only when explicitly requested
if env('USE_SQLITE', cast=bool, default=False):
    print("🔄 Using SQLite for development")
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': BASE_DIR / 'db.sqlite3',
        }
    }
else:
    print(f"🐘 Using PostgreSQL: {DATABASES['default']['NAME']}@{DATABASES['default']['HOST']}")

# === MORE VERBOSE LOGGING ===

LOGGING['handlers']['console']['level'] = 'DEBUG'
LOGGING['root']['level'] = 'DEBUG'
LOGGING['loggers']['apps']['level'] = 'DEBUG'

# === DEVELOPMENT CACHE ===

# Local memory cache (Redis not required)
CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
        'LOCATION': 'orbit-dev-cache',
    }
}

# Redis when available
if env('REDIS_URL', default=None):
    import redis

    try:
        redis.from_url(env('REDIS_URL')).ping()

        CACHES['default'] = {
            'BACKEND': 'django_redis.cache.RedisCache',
            'LOCATION': env('REDIS_URL'),
            'OPTIONS': {
                'CLIENT_CLASS': 'django_redis.client.DefaultClient',
            }
        }
        print("🔴 Redis connected!")
    except redis.exceptions.ConnectionError as e:
        print(f"⚠️  Redis not available: {e}")
        print("📝 Using local memory cache")

# In-memory channel layer for development
CHANNEL_LAYERS = {
    'default': {
        'BACKEND': 'channels.layers.InMemoryChannelLayer'
    }
}

# Relaxed cookies for development
SESSION_COOKIE_SECURE = False
CSRF_COOKIE_SECURE = False

# shell_plus imports
SHELL_PLUS_IMPORTS = [
    'from apps.store.client import store, Query, SERVER_TIMESTAMP',
    'from apps.core.mappers import *',
    'from apps.core.session import SessionContext',
]

print("🚀 DEVELOPMENT settings loaded")
print(f"📁 BASE_DIR: {BASE_DIR}")
print(f"🔑 DEBUG: {DEBUG}")
