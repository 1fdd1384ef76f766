"""
Accessors for the ``CHECKOUT`` settings block.
"""
from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

from django.conf import settings

DEFAULTS = {
    "CACHE_TTL_SECONDS": 1800,
    "CURRENCY": "VND",
    "CURRENCY_QUANTUM": "1",
    "PAYMENT_EXPIRY_MINUTES": 15,
    "MAX_GATEWAY_AMOUNT": "50000000",
}


def checkout_setting(name: str):
    return getattr(settings, "CHECKOUT", {}).get(name, DEFAULTS[name])


def currency_quantum() -> Decimal:
    """Smallest currency unit amounts are rounded to."""
    return Decimal(str(checkout_setting("CURRENCY_QUANTUM")))


def currency() -> str:
    return checkout_setting("CURRENCY")


def payment_expiry() -> timedelta:
    return timedelta(minutes=int(checkout_setting("PAYMENT_EXPIRY_MINUTES")))


def max_gateway_amount() -> Decimal:
    return Decimal(str(checkout_setting("MAX_GATEWAY_AMOUNT")))
