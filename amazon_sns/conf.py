"""Settings access for the Amazon SNS app.

All options live in a single ``AMAZON_SNS`` dict in Django settings::

    AMAZON_SNS = {
        "PROTOCOL": "https",
        "BASE_URL": "https://shop.example.com",
        "REGION_NAME": "us-east-1",
        "AWS_ACCESS_KEY_ID": "...",
        "AWS_SECRET_ACCESS_KEY": "...",
    }

Missing keys fall back to :data:`DEFAULTS`.
"""

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.urls import reverse

DEFAULTS = {
    "PROTOCOL": "https",
    "BASE_URL": "",
    "REGION_NAME": None,
    "AWS_ACCESS_KEY_ID": None,
    "AWS_SECRET_ACCESS_KEY": None,
    "ENDPOINT_URL": None,
    "TIMEOUT": 10,
    "AUTHENTICATE_ON_UNSUBSCRIBE": True,
    "CERT_CACHE_TIMEOUT": 86400,  # 24 hours
    "ASYNC_NOTIFICATIONS": True,
}

ENDPOINT_URL_NAME = "amazon_sns_endpoint"


def get_setting(name):
    """Return an ``AMAZON_SNS`` option, falling back to the default."""
    if name not in DEFAULTS:
        raise KeyError(f"Unknown AMAZON_SNS setting: {name}")
    return getattr(settings, "AMAZON_SNS", {}).get(name, DEFAULTS[name])


def get_protocol():
    """Default subscription protocol for new subscriptions."""
    return get_setting("PROTOCOL")


def get_endpoint():
    """Public URL of this store's own SNS webhook endpoint."""
    base_url = get_setting("BASE_URL")
    if not base_url:
        raise ImproperlyConfigured(
            "AMAZON_SNS['BASE_URL'] is required to build the SNS endpoint URL."
        )
    return f"{base_url.rstrip('/')}{reverse(ENDPOINT_URL_NAME)}"
