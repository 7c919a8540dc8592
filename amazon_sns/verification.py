import base64
import binascii
import json
import logging
import re
from urllib.parse import urlparse

import requests
from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding
from django.core.cache import cache

from .conf import get_setting

logger = logging.getLogger(__name__)

_CERT_CACHE_PREFIX = "amazon_sns:cert"
_CERT_HOST_RE = re.compile(r"^sns\.[a-z0-9-]+\.amazonaws\.com(\.cn)?$")

# Keys included in the string to sign, in the order SNS signs them.
_NOTIFICATION_KEYS = (
    "Message",
    "MessageId",
    "Subject",
    "Timestamp",
    "TopicArn",
    "Type",
)
_SUBSCRIPTION_KEYS = (
    "Message",
    "MessageId",
    "SubscribeURL",
    "Timestamp",
    "Token",
    "TopicArn",
    "Type",
)
_SIGNED_KEYS = {
    "Notification": _NOTIFICATION_KEYS,
    "SubscriptionConfirmation": _SUBSCRIPTION_KEYS,
    "UnsubscribeConfirmation": _SUBSCRIPTION_KEYS,
}
_HASHES = {
    "1": hashes.SHA1,
    "2": hashes.SHA256,
}


def is_valid_cert_url(url: str) -> bool:
    """Only certificates served over HTTPS by SNS itself are trusted."""
    if not isinstance(url, str):
        return False
    parsed = urlparse(url)
    return (
        parsed.scheme == "https"
        and bool(_CERT_HOST_RE.match(parsed.hostname or ""))
        and parsed.path.endswith(".pem")
    )


def build_string_to_sign(message: dict) -> str:
    """Build the canonical string SNS signs for a message.

    Each signed key contributes ``"<key>\\n<value>\\n"``. ``Subject`` is only
    part of the string when the notification carries one.

    Raises:
        KeyError: the message type is unknown or a required key is missing.
    """
    parts = []
    for key in _SIGNED_KEYS[message["Type"]]:
        if key == "Subject" and key not in message:
            continue
        parts.append(f"{key}\n{message[key]}\n")
    return "".join(parts)


def _load_certificate(url):
    cache_key = f"{_CERT_CACHE_PREFIX}:{url}"
    pem = cache.get(cache_key)
    if pem is None:
        response = requests.get(url, timeout=get_setting("TIMEOUT"))
        response.raise_for_status()
        pem = response.content
        cache.set(cache_key, pem, get_setting("CERT_CACHE_TIMEOUT"))
    return x509.load_pem_x509_certificate(pem)


def verify_sns_message(raw_body: bytes) -> bool:
    """Verify the signature of an SNS HTTP(S) delivery.

    SNS signs every message it POSTs to a subscribed endpoint with the
    private key of a certificate it publishes under ``SigningCertURL``.
    The signature covers a canonical string built from the message fields
    (see :func:`build_string_to_sign`) and uses SHA1 for
    ``SignatureVersion`` 1 and SHA256 for version 2.

    Args:
        raw_body: The raw HTTP request body bytes.

    Returns:
        True if the signature is valid, False otherwise. Never raises.
    """
    try:
        message = json.loads(raw_body)
    except (TypeError, ValueError):
        logger.warning("SNS message is not valid JSON")
        return False
    if not isinstance(message, dict):
        return False

    hash_cls = _HASHES.get(str(message.get("SignatureVersion", "")))
    if hash_cls is None:
        logger.warning(
            "Unsupported SNS signature version: %s", message.get("SignatureVersion")
        )
        return False

    cert_url = message.get("SigningCertURL", "")
    if not is_valid_cert_url(cert_url):
        logger.warning("Untrusted SNS signing certificate URL: %s", cert_url)
        return False

    try:
        string_to_sign = build_string_to_sign(message)
        signature = base64.b64decode(message["Signature"], validate=True)
    except (KeyError, TypeError, binascii.Error):
        logger.warning("SNS message is missing signed fields")
        return False

    try:
        certificate = _load_certificate(cert_url)
    except (requests.RequestException, ValueError):
        logger.warning(
            "Could not load SNS signing certificate %s", cert_url, exc_info=True
        )
        return False

    try:
        certificate.public_key().verify(
            signature,
            string_to_sign.encode("utf-8"),
            padding.PKCS1v15(),
            hash_cls(),
        )
    except (InvalidSignature, TypeError, ValueError):
        logger.warning(
            "SNS signature mismatch for message %s", message.get("MessageId")
        )
        return False
    return True
