"""
Django settings for the Letting Desk triage service.

Uses PostgreSQL as the database and django-rest-framework for the webhook
and operator API layer. The job worker runs as a management command.
"""
import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.environ.get('DJANGO_SECRET_KEY', 'dev-secret-key-change-in-production')

DEBUG = os.environ.get('DEBUG', 'True').lower() in ('true', '1', 'yes')

ALLOWED_HOSTS = os.environ.get('ALLOWED_HOSTS', 'localhost,127.0.0.1').split(',')

# Application definition
INSTALLED_APPS = [
    'django.contrib.contenttypes',
    'rest_framework',
    'corsheaders',
    'django_q',
    'triage',
]

MIDDLEWARE = [
    'corsheaders.middleware.CorsMiddleware',
    'django.middleware.common.CommonMiddleware',
]

# Don't redirect to add trailing slashes: webhook providers post to exact URLs
APPEND_SLASH = False

ROOT_URLCONF = 'letting_desk.urls'

TEMPLATES = []

WSGI_APPLICATION = 'letting_desk.wsgi.application'

# Database: PostgreSQL in production, SQLite for local dev
DB_ENGINE = os.environ.get('DB_ENGINE', 'django.db.backends.sqlite3')

if DB_ENGINE == 'django.db.backends.sqlite3':
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': BASE_DIR / 'db.sqlite3',
        }
    }
else:
    DATABASES = {
        'default': {
            'ENGINE': DB_ENGINE,
            'NAME': os.environ.get('DB_NAME', 'letting_desk'),
            'USER': os.environ.get('DB_USER', 'postgres'),
            'PASSWORD': os.environ.get('DB_PASSWORD', 'postgres'),
            'HOST': os.environ.get('DB_HOST', 'localhost'),
            'PORT': os.environ.get('DB_PORT', '5432'),
        }
    }

# CORS
CORS_ALLOW_ALL_ORIGINS = DEBUG
CORS_ALLOWED_ORIGINS = [
    'http://localhost:5173',
    'http://localhost:3000',
    'http://127.0.0.1:5173',
]

# DRF: telephony webhooks arrive form-encoded, operator calls send JSON
REST_FRAMEWORK = {
    'DEFAULT_RENDERER_CLASSES': [
        'rest_framework.renderers.JSONRenderer',
    ],
    'DEFAULT_PARSER_CLASSES': [
        'rest_framework.parsers.JSONParser',
        'rest_framework.parsers.FormParser',
    ],
    'DEFAULT_PAGINATION_CLASS': None,
    'UNAUTHENTICATED_USER': None,
    'DEFAULT_AUTHENTICATION_CLASSES': [],
    'DEFAULT_PERMISSION_CLASSES': [],
}

# Signal extraction
LLM_PROVIDER = os.environ.get('LLM_PROVIDER', 'mock')  # "openai" or "mock"
OPENAI_API_KEY = os.environ.get('OPENAI_API_KEY', '')
OPENAI_MODEL = os.environ.get('OPENAI_MODEL', 'gpt-4.1-mini')

# Outbound SMS
SMS_PROVIDER = os.environ.get('SMS_PROVIDER', 'mock')  # "twilio" or "mock"
TWILIO_ACCOUNT_SID = os.environ.get('TWILIO_ACCOUNT_SID', '')
TWILIO_AUTH_TOKEN = os.environ.get('TWILIO_AUTH_TOKEN', '')

DEFAULT_TENANT_TIMEZONE = os.environ.get('DEFAULT_TENANT_TIMEZONE', 'Europe/London')

# Job worker
WORKER_POLL_INTERVAL_SECONDS = int(os.environ.get('WORKER_POLL_INTERVAL_SECONDS', '60'))
WORKER_BATCH_SIZE = int(os.environ.get('WORKER_BATCH_SIZE', '25'))
WORKER_LOCK_TIMEOUT_SECONDS = int(os.environ.get('WORKER_LOCK_TIMEOUT_SECONDS', str(10 * 60)))
JOB_RETRY_DELAY_SECONDS = int(os.environ.get('JOB_RETRY_DELAY_SECONDS', '60'))
JOB_MAX_ATTEMPTS = int(os.environ.get('JOB_MAX_ATTEMPTS', '3'))
WORKER_ID = os.environ.get('WORKER_ID', f'worker-{os.getpid()}')
WORKER_ONCE = os.environ.get('WORKER_ONCE', '').lower() in ('true', '1', 'yes')

# django-q2: periodic compliance resync using the ORM broker (no Redis needed)
Q_CLUSTER = {
    'name': 'letting-desk',
    'workers': 1,
    'timeout': 300,
    'retry': 600,
    'orm': 'default',
    'catch_up': False,
}

# All datetimes are timezone-aware UTC
USE_TZ = True
TIME_ZONE = 'UTC'

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': os.environ.get('LOG_LEVEL', 'INFO'),
    },
}
