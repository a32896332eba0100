"""Django settings for the reward-advertising wallet.


The interesting part of this project is the wallet ledger in `core`:
- approved proof submissions credit the user's wallet
- admin-processed withdrawals debit it (and refund on failure)
- every balance change is an immutable wallet_ledger row


Auth is expected upstream; the JSON API trusts the X-User-Id header.
"""

import os
from pathlib import Path
from decimal import Decimal


BASE_DIR = Path(__file__).resolve().parent.parent
SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-only-insecure-key")
DEBUG = os.getenv("DEBUG", "1") in ("1", "true", "True", "yes")
ALLOWED_HOSTS = os.getenv("ALLOWED_HOSTS", "*").split(",")
CSRF_TRUSTED_ORIGINS = os.getenv("CSRF_TRUSTED_ORIGINS", "").split(",") if os.getenv("CSRF_TRUSTED_ORIGINS") else []

def env_int(name, default):
    v = os.getenv(name)
    return int(v) if v not in (None, "") else default

#######################
# Wallet rules (read through core.constants)
SUBMISSIONS_PER_AD_PER_DAY = env_int("SUBMISSIONS_PER_AD_PER_DAY", 1)
SUBMISSION_WINDOW_HOURS = env_int("SUBMISSION_WINDOW_HOURS", 24)
WITHDRAWALS_PER_WEEK = env_int("WITHDRAWALS_PER_WEEK", 3)
WITHDRAWAL_WINDOW_DAYS = env_int("WITHDRAWAL_WINDOW_DAYS", 7)
MIN_WITHDRAWAL_AMOUNT = Decimal(os.getenv("MIN_WITHDRAWAL_AMOUNT", "10.00"))

# Post-write balance verification tolerance
LEDGER_TOLERANCE = Decimal("0.01")
#######################


INSTALLED_APPS = [
	"django.contrib.admin",
	"django.contrib.auth",
	"django.contrib.contenttypes",
	"django.contrib.sessions",
	"django.contrib.messages",
	"django.contrib.staticfiles",
	# local apps
	"core",
	"api",
]


MIDDLEWARE = [
	"django.middleware.security.SecurityMiddleware",
	"django.contrib.sessions.middleware.SessionMiddleware",
	"django.middleware.common.CommonMiddleware",
	"django.middleware.csrf.CsrfViewMiddleware",
	"django.contrib.auth.middleware.AuthenticationMiddleware",
	"django.contrib.messages.middleware.MessageMiddleware",
]


ROOT_URLCONF = "adreward.urls"
TEMPLATES = [
	{
		"BACKEND": "django.template.backends.django.DjangoTemplates",
		"DIRS": [],
		"APP_DIRS": True,
		"OPTIONS": {
			"context_processors": [
				"django.template.context_processors.debug",
				"django.template.context_processors.request",
				"django.contrib.auth.context_processors.auth",
				"django.contrib.messages.context_processors.messages",
			],
		},
	},
]


WSGI_APPLICATION = "adreward.wsgi.application"


DB_ENGINE = os.getenv("DB_ENGINE", "sqlite")
if DB_ENGINE == "postgres":
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": os.getenv("POSTGRES_DB", "adreward"),
            "USER": os.getenv("POSTGRES_USER", "adreward"),
            "PASSWORD": os.getenv("POSTGRES_PASSWORD", "adreward"),
            "HOST": os.getenv("POSTGRES_HOST", "localhost"),
            "PORT": os.getenv("POSTGRES_PORT", "5432"),
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": BASE_DIR / "db.sqlite3",
        }
    }


LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "loggers": {
        "core": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "api": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
    },
}


AUTH_PASSWORD_VALIDATORS = []


LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True


STATIC_URL = "static/"
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"
