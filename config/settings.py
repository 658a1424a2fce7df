"""
Django settings for config project (Control de Obras Civiles)
"""

from pathlib import Path
import os

from dotenv import load_dotenv
import dj_database_url

# ------------------------------------------------------------------------------
# Paths / .env
# ------------------------------------------------------------------------------
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env")

# ------------------------------------------------------------------------------
# Seguridad / Debug
# ------------------------------------------------------------------------------
SECRET_KEY = os.getenv(
    "SECRET_KEY",
    "dev-only-secret-key-change-me"
)

DEBUG = os.getenv("DEBUG", "0").lower() in ("1", "true", "yes")

ALLOWED_HOSTS = [h for h in os.getenv("ALLOWED_HOSTS", "127.0.0.1,localhost,testserver").split(",") if h]

# ------------------------------------------------------------------------------
# Apps
# ------------------------------------------------------------------------------
INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",

    "obras.apps.ObrasConfig",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "config.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "config.wsgi.application"

# ------------------------------------------------------------------------------
# Base de datos (SQLite local si no hay DATABASE_URL)
# ------------------------------------------------------------------------------
DATABASES = {
    "default": dj_database_url.config(
        default=f"sqlite:///{(BASE_DIR / 'db.sqlite3').as_posix()}",
        conn_max_age=600,
    )
}

# ------------------------------------------------------------------------------
# Internacionalización
# ------------------------------------------------------------------------------
LANGUAGE_CODE = os.getenv("LANGUAGE_CODE", "es-mx")
TIME_ZONE = os.getenv("TIME_ZONE", "America/Mexico_City")
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# ------------------------------------------------------------------------------
# Logging
# ------------------------------------------------------------------------------
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {
            "format": "[{asctime}] {levelname} {name}: {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "simple",
        },
    },
    "loggers": {
        "obras": {
            "handlers": ["console"],
            "level": LOG_LEVEL,
            "propagate": False,
        },
    },
}

# ------------------------------------------------------------------------------
# Obras: reglas financieras y datos iniciales
# ------------------------------------------------------------------------------
# Porcentajes expresados como texto para construir Decimal sin errores de float
OBRAS_FINANZAS = {
    "PORCENTAJE_MATERIALES": os.getenv("OBRAS_PORCENTAJE_MATERIALES", "0.30"),
    "UMBRAL_DESVIACION_CRITICA": os.getenv("OBRAS_UMBRAL_DESVIACION_CRITICA", "10"),
    "UMBRAL_DESVIACION_ADVERTENCIA": os.getenv("OBRAS_UMBRAL_DESVIACION_ADVERTENCIA", "5"),
    "UMBRAL_DESFASE_GRAVE": os.getenv("OBRAS_UMBRAL_DESFASE_GRAVE", "25"),
    "UMBRAL_DESFASE": os.getenv("OBRAS_UMBRAL_DESFASE", "15"),
    "UMBRAL_PAGO_OBRA_TERMINADA": os.getenv("OBRAS_UMBRAL_PAGO_OBRA_TERMINADA", "95"),
}

OBRAS_ADMIN_POR_DEFECTO = {
    "username": os.getenv("OBRAS_ADMIN_USERNAME", "admin"),
    "password": os.getenv("OBRAS_ADMIN_PASSWORD", "admin123"),
    "name": "Administrador",
    "email": "admin@sismich.com",
}

OBRAS_MAX_DOCUMENTO_BYTES = int(os.getenv("OBRAS_MAX_DOCUMENTO_BYTES", str(10 * 1024 * 1024)))
