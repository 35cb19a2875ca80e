from .settings import *

DEBUG = False
SECRET_KEY = "test-secret-key"

# File-backed so threaded tests share one database; IMMEDIATE makes a second
# writer wait for the first commit instead of failing with "database is locked"
DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': os.path.join(BASE_DIR, 'test_db.sqlite3'),
        'OPTIONS': {
            'timeout': 20,
            'transaction_mode': 'IMMEDIATE',
        },
        'TEST': {
            'NAME': os.path.join(BASE_DIR, 'test_db.sqlite3'),
        },
    }
}

CHANNEL_LAYERS = {
    "default": {
        "BACKEND": "channels.layers.InMemoryChannelLayer",
    }
}

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True

# Lock behaviour is exercised with an injected client in the lock tests
ENABLE_DISTRIBUTED_LOCK = False

PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']

LOGGING['root']['level'] = 'CRITICAL'

ENABLE_SCHEDULED_RIDE_MONITOR = False
