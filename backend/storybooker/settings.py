import json
import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "dev-insecure-change-me")
DEBUG = os.environ.get("DJANGO_DEBUG", "false").lower() == "true"

ALLOWED_HOSTS = [host.strip() for host in os.environ.get("DJANGO_ALLOWED_HOSTS", "*").split(",") if host.strip()]
if "*" not in ALLOWED_HOSTS and "backend" not in ALLOWED_HOSTS:
    ALLOWED_HOSTS.append("backend")

# Respect proxy headers so follow-up task URLs use https.
SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")
USE_X_FORWARDED_HOST = True

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.auth",
    "catalog.apps.CatalogAppConfig",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.middleware.common.CommonMiddleware",
    "storybooker.middleware.ApiTokenAuthMiddleware",
]

ROOT_URLCONF = "storybooker.urls"

WSGI_APPLICATION = "storybooker.wsgi.application"

if os.environ.get("POSTGRES_HOST"):
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": os.environ.get("POSTGRES_DB", "storybooker"),
            "USER": os.environ.get("POSTGRES_USER", "storybooker"),
            "PASSWORD": os.environ.get("POSTGRES_PASSWORD", "storybooker"),
            "HOST": os.environ.get("POSTGRES_HOST", "db"),
            "PORT": os.environ.get("POSTGRES_PORT", "5432"),
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": os.environ.get("SQLITE_PATH", str(BASE_DIR / "db.sqlite3")),
        }
    }

LANGUAGE_CODE = "en-us"
TIME_ZONE = os.environ.get("DJANGO_TIME_ZONE", "UTC")
USE_I18N = False
USE_TZ = True

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# Raw zip uploads are streamed to storage; keep large bodies out of memory.
DATA_UPLOAD_MAX_MEMORY_SIZE = int(os.environ.get("DJANGO_DATA_UPLOAD_MAX_MEMORY_SIZE", str(5 * 1024 * 1024)))
FILE_UPLOAD_MAX_MEMORY_SIZE = int(os.environ.get("DJANGO_FILE_UPLOAD_MAX_MEMORY_SIZE", str(5 * 1024 * 1024)))

LOG_LEVEL = os.environ.get("STORYBOOKER_LOG_LEVEL", "INFO").upper()

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {"format": "%(asctime)s %(levelname)s %(name)s %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "default"},
    },
    "loggers": {
        "catalog": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "storybooker": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
    },
}


def _json_env(name: str, default):
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return default


STORYBOOKER_API_TOKEN = os.environ.get("STORYBOOKER_API_TOKEN", "").strip()
STORYBOOKER_SECRET = os.environ.get("STORYBOOKER_SECRET", "").strip()
STORYBOOKER_INLINE_PROCESSING_MAX_BYTES = int(
    os.environ.get("STORYBOOKER_INLINE_PROCESSING_MAX_BYTES", str(5 * 1024 * 1024))
)
STORYBOOKER_QUEUE_LARGE_ZIP_PROCESSING = (
    os.environ.get("STORYBOOKER_QUEUE_LARGE_ZIP_PROCESSING", "false").lower() == "true"
)
STORYBOOKER_QUEUE_MODE = os.environ.get("STORYBOOKER_QUEUE_MODE", "http").strip().lower()
STORYBOOKER_JOBS_REDIS_URL = os.environ.get("STORYBOOKER_JOBS_REDIS_URL", "redis://redis:6379/0")
STORYBOOKER_DEFAULT_PURGE_AFTER_DAYS = int(os.environ.get("STORYBOOKER_DEFAULT_PURGE_AFTER_DAYS", "30"))
STORYBOOKER_WEBHOOK_TIMEOUT_MS = int(os.environ.get("STORYBOOKER_WEBHOOK_TIMEOUT_MS", "5000"))
STORYBOOKER_WEBHOOKS = _json_env("STORYBOOKER_WEBHOOKS", [])
STORYBOOKER_MAX_WORKERS = int(os.environ.get("STORYBOOKER_MAX_WORKERS", "4"))
STORYBOOKER_PLATFORM_CONFIG = _json_env(
    "STORYBOOKER_PLATFORM_CONFIG",
    {
        "storage": {
            "providers": [
                {
                    "name": "local",
                    "type": "local",
                    "local": {"base_path": os.environ.get("STORYBOOKER_STORAGE_PATH", str(BASE_DIR / ".storybooker" / "storage"))},
                }
            ],
            "primary": {"name": "local"},
        },
        "database": {
            "providers": [
                {
                    "name": "local",
                    "type": "local",
                    "local": {"filename": os.environ.get("STORYBOOKER_DATABASE_PATH", str(BASE_DIR / ".storybooker" / "db.json"))},
                }
            ],
            "primary": {"name": "local"},
        },
    },
)
