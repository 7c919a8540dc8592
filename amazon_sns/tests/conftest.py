"""Shared fixtures for the amazon_sns tests."""

import base64
import datetime
import uuid
from unittest.mock import MagicMock

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.x509.oid import NameOID
from django.core.cache import cache

from amazon_sns.client import PENDING_CONFIRMATION, SnsClient
from amazon_sns.models import Topic
from amazon_sns.services.subscriptions import SubscriptionManager
from amazon_sns.verification import build_string_to_sign

TOPIC_ARN = "arn:aws:sns:us-east-1:111:orders"
SUBSCRIPTION_ARN = f"{TOPIC_ARN}:6b0e71bd-7e97-4d97-80ce-4a0994e55286"
OWN_ENDPOINT = "https://shop.example.com/amazon/sns/endpoint/"
CERT_URL = (
    "https://sns.us-east-1.amazonaws.com/"
    "SimpleNotificationService-0000000000000000000000.pem"
)


def _make_certificate():
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "sns.amazonaws.com")])
    now = datetime.datetime.now(datetime.timezone.utc)
    certificate = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=30))
        .sign(key, hashes.SHA256())
    )
    return key, certificate.public_bytes(serialization.Encoding.PEM)


class Signer:
    """Signs SNS messages the way SNS does, with a throwaway certificate."""

    def __init__(self, key, pem):
        self.key = key
        self.pem = pem

    def sign(self, message, version="2", cert_url=CERT_URL):
        message = dict(message)
        message.setdefault("MessageId", str(uuid.uuid4()))
        message.setdefault("Timestamp", "2026-10-19T12:00:00.000Z")
        if message["Type"] != "Notification":
            message.setdefault("Message", "You have chosen to subscribe to the topic.")
            message.setdefault(
                "SubscribeURL",
                "https://sns.us-east-1.amazonaws.com/?Action=ConfirmSubscription",
            )
            message.setdefault("Token", "token")
        message["SignatureVersion"] = version
        message["SigningCertURL"] = cert_url

        digest = hashes.SHA1() if version == "1" else hashes.SHA256()
        signature = self.key.sign(
            build_string_to_sign(message).encode("utf-8"), padding.PKCS1v15(), digest
        )
        message["Signature"] = base64.b64encode(signature).decode("ascii")
        return message


@pytest.fixture(scope="session")
def _signing_material():
    return _make_certificate()


@pytest.fixture(autouse=True)
def _clear_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def signer(_signing_material, mocker):
    """A :class:`Signer` whose certificate is served for ``CERT_URL``."""
    key, pem = _signing_material
    response = MagicMock(content=pem)
    response.raise_for_status.return_value = None
    signer = Signer(key, pem)
    signer.cert_request = mocker.patch(
        "amazon_sns.verification.requests.get", return_value=response
    )
    return signer


@pytest.fixture
def sns_client():
    """A mock SnsClient with sensible successful responses."""
    client = MagicMock(spec=SnsClient)
    client.create_topic.return_value = TOPIC_ARN
    client.delete_topic.return_value = True
    client.subscribe.return_value = PENDING_CONFIRMATION
    client.unsubscribe.return_value = True
    client.confirm_subscription.return_value = SUBSCRIPTION_ARN
    client.publish.return_value = "msg-0001"
    client.list_subscriptions_by_topic.return_value = []
    return client


@pytest.fixture
def manager(sns_client):
    return SubscriptionManager(sns_client)


@pytest.fixture
def topic(db):
    return Topic.objects.create(name="orders", arn=TOPIC_ARN)


@pytest.fixture
def subscribed_topic(db):
    return Topic.objects.create(
        name="orders", arn=TOPIC_ARN, subscription_arn=SUBSCRIPTION_ARN
    )
