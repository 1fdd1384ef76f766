"""
Django settings for shoestore project.

Every deployment-specific value can be overridden from the environment.
"""
import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.lower() in ("1", "true", "yes", "on")


SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "insecure-dev-key-change-me")

DEBUG = env_bool("DJANGO_DEBUG", True)

ALLOWED_HOSTS = os.environ.get("DJANGO_ALLOWED_HOSTS", "*").split(",")

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "checkout",
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

ROOT_URLCONF = "shoestore.urls"

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

WSGI_APPLICATION = "shoestore.wsgi.application"
ASGI_APPLICATION = "shoestore.asgi.application"

# Database
DATABASE_ENGINE = os.environ.get("DATABASE_ENGINE", "django.db.backends.sqlite3")

if DATABASE_ENGINE == "django.db.backends.sqlite3":
    DATABASES = {
        "default": {
            "ENGINE": DATABASE_ENGINE,
            "NAME": os.environ.get("DATABASE_NAME", str(BASE_DIR / "db.sqlite3")),
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": DATABASE_ENGINE,
            "NAME": os.environ.get("DATABASE_NAME", "shoestore"),
            "USER": os.environ.get("DATABASE_USER", "shoestore"),
            "PASSWORD": os.environ.get("DATABASE_PASSWORD", ""),
            "HOST": os.environ.get("DATABASE_HOST", "localhost"),
            "PORT": os.environ.get("DATABASE_PORT", "5432"),
        }
    }

# Cache: local memory by default, Redis when REDIS_URL is set
REDIS_URL = os.environ.get("REDIS_URL")

if REDIS_URL:
    CACHES = {
        "default": {
            "BACKEND": "django.core.cache.backends.redis.RedisCache",
            "LOCATION": REDIS_URL,
            "KEY_PREFIX": "shoestore",
        }
    }
else:
    CACHES = {
        "default": {
            "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
            "LOCATION": "shoestore",
        }
    }

AUTH_PASSWORD_VALIDATORS = []

LANGUAGE_CODE = "en-us"
TIME_ZONE = "Asia/Ho_Chi_Minh"
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# Checkout core
CHECKOUT = {
    "CACHE_TTL_SECONDS": int(os.environ.get("CHECKOUT_CACHE_TTL_SECONDS", 1800)),
    "CURRENCY": "VND",
    "CURRENCY_QUANTUM": "1",
    "PAYMENT_EXPIRY_MINUTES": 15,
    "MAX_GATEWAY_AMOUNT": "50000000",
}

# Payment gateways
MOMO = {
    "API_URL": os.environ.get("MOMO_API_URL", "https://test-payment.momo.vn/gw_payment/transactionProcessor"),
    "PARTNER_CODE": os.environ.get("MOMO_PARTNER_CODE", ""),
    "ACCESS_KEY": os.environ.get("MOMO_ACCESS_KEY", ""),
    "SECRET_KEY": os.environ.get("MOMO_SECRET_KEY", ""),
    "RETURN_URL": os.environ.get("MOMO_RETURN_URL", "http://localhost:8000/payments/momo/callback/"),
    "NOTIFY_URL": os.environ.get("MOMO_NOTIFY_URL", "http://localhost:8000/payments/momo/callback/"),
    "REQUEST_TYPE": "captureMoMoWallet",
    "TIMEOUT_SECONDS": 10,
}

VNPAY = {
    "BASE_URL": os.environ.get("VNPAY_BASE_URL", "https://sandbox.vnpayment.vn/paymentv2/vpcpay.html"),
    "TMN_CODE": os.environ.get("VNPAY_TMN_CODE", ""),
    "HASH_SECRET": os.environ.get("VNPAY_HASH_SECRET", ""),
    "RETURN_URL": os.environ.get("VNPAY_RETURN_URL", "http://localhost:8000/payments/vnpay/callback/"),
    "VERSION": "2.1.0",
    "COMMAND": "pay",
    "LOCALE": "vn",
    "TIMEOUT_SECONDS": 10,
}

ZALOPAY = {
    "API_URL": os.environ.get("ZALOPAY_API_URL", "https://sb-openapi.zalopay.vn/v2/create"),
    "APP_ID": os.environ.get("ZALOPAY_APP_ID", ""),
    "KEY1": os.environ.get("ZALOPAY_KEY1", ""),
    "KEY2": os.environ.get("ZALOPAY_KEY2", ""),
    "CALLBACK_URL": os.environ.get("ZALOPAY_CALLBACK_URL", "http://localhost:8000/payments/zalopay/callback/"),
    "TIMEOUT_SECONDS": 10,
}

# Logging
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "json": {
            "()": "checkout.utils.logging.JsonFormatter",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "json",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": os.environ.get("LOG_LEVEL", "INFO"),
    },
    "loggers": {
        "django": {
            "handlers": ["console"],
            "level": "WARNING",
            "propagate": False,
        },
    },
}
