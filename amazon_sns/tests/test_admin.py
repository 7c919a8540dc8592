"""Tests for the Topic admin: add form, delete and bulk actions."""

import pytest
from django.contrib.messages import get_messages

from amazon_sns.exceptions import RemoteServiceError
from amazon_sns.models import InboundMessage, Topic

from .conftest import SUBSCRIPTION_ARN, TOPIC_ARN

pytestmark = pytest.mark.django_db

CHANGELIST_URL = "/admin/amazon_sns/topic/"
ADD_URL = "/admin/amazon_sns/topic/add/"
MESSAGES_URL = "/admin/amazon_sns/inboundmessage/"


@pytest.fixture(autouse=True)
def patched_client(sns_client, mocker):
    mocker.patch(
        "amazon_sns.admin.SnsClient.from_settings", return_value=sns_client
    )
    return sns_client


def _run_action(client, action, *topics):
    return client.post(
        CHANGELIST_URL,
        {"action": action, "_selected_action": [topic.pk for topic in topics]},
    )


class TestAddForm:
    def test_add_creates_remote_topic(self, admin_client, patched_client):
        response = admin_client.post(ADD_URL, {"name": "orders", "is_active": "on"})

        assert response.status_code == 302
        topic = Topic.objects.get()
        assert topic.arn == TOPIC_ARN
        patched_client.create_topic.assert_called_once_with("orders")
        patched_client.subscribe.assert_not_called()

    def test_add_and_subscribe(self, admin_client, patched_client):
        admin_client.post(
            ADD_URL, {"name": "orders", "is_active": "on", "subscribe": "on"}
        )

        topic = Topic.objects.get()
        assert topic.state == Topic.State.SUBSCRIBE_REQUESTED
        patched_client.subscribe.assert_called_once()

    def test_remote_failure_writes_nothing(self, admin_client, patched_client):
        patched_client.create_topic.side_effect = RemoteServiceError("denied")
        response = admin_client.post(ADD_URL, {"name": "orders", "is_active": "on"})

        assert response.status_code == 200
        assert b"SNS topic was not created" in response.content
        assert not Topic.objects.exists()

    def test_saving_uncreated_row_retries_remote_create(
        self, admin_client, patched_client
    ):
        draft = Topic.objects.create(name="orders")
        response = admin_client.post(
            f"{CHANGELIST_URL}{draft.pk}/change/", {"name": "orders", "is_active": "on"}
        )

        assert response.status_code == 302
        draft.refresh_from_db()
        assert draft.arn == TOPIC_ARN
        assert Topic.objects.count() == 1
        patched_client.create_topic.assert_called_once_with("orders")

    def test_change_does_not_call_sns(self, admin_client, patched_client, topic):
        admin_client.post(f"{CHANGELIST_URL}{topic.pk}/change/", {"name": "renamed"})

        topic.refresh_from_db()
        assert topic.name == "renamed"
        assert topic.is_active is False
        patched_client.create_topic.assert_not_called()


class TestDelete:
    def test_delete_view_removes_remote_topic(
        self, admin_client, patched_client, subscribed_topic
    ):
        admin_client.post(
            f"{CHANGELIST_URL}{subscribed_topic.pk}/delete/", {"post": "yes"}
        )

        patched_client.unsubscribe.assert_called_once_with(SUBSCRIPTION_ARN)
        patched_client.delete_topic.assert_called_once_with(TOPIC_ARN)
        assert not Topic.objects.exists()

    def test_bulk_delete_selected_is_removed(self, admin_client):
        response = admin_client.get(CHANGELIST_URL)
        assert b"delete_selected" not in response.content


class TestActions:
    def test_disable_and_enable(self, admin_client, topic):
        _run_action(admin_client, "disable_topics", topic)
        topic.refresh_from_db()
        assert topic.is_active is False

        _run_action(admin_client, "enable_topics", topic)
        topic.refresh_from_db()
        assert topic.is_active is True

    def test_subscribe(self, admin_client, patched_client, topic):
        _run_action(admin_client, "subscribe_topics", topic)

        topic.refresh_from_db()
        assert topic.state == Topic.State.SUBSCRIBE_REQUESTED

    def test_subscribe_reports_per_topic_errors(
        self, admin_client, patched_client, topic
    ):
        draft = Topic.objects.create(name="draft")
        response = _run_action(admin_client, "subscribe_topics", topic, draft)

        messages = [str(m) for m in get_messages(response.wsgi_request)]
        assert any(m.startswith("draft:") for m in messages)
        assert "1 topic(s) subscribed." in messages

    def test_unsubscribe(self, admin_client, patched_client, subscribed_topic):
        _run_action(admin_client, "unsubscribe_topics", subscribed_topic)

        subscribed_topic.refresh_from_db()
        assert subscribed_topic.subscription_arn == ""
        patched_client.unsubscribe.assert_called_once_with(SUBSCRIPTION_ARN)

    def test_delete(self, admin_client, patched_client, topic):
        _run_action(admin_client, "delete_topics", topic)

        patched_client.delete_topic.assert_called_once_with(TOPIC_ARN)
        assert not Topic.objects.exists()


class TestInboundMessageAdmin:
    @pytest.fixture
    def message(self, db):
        return InboundMessage.objects.create(
            message_id="b1f2c3d4-0000-4000-8000-000000000001",
            message_type="Notification",
            topic_arn=TOPIC_ARN,
            payload_hash="0" * 64,
        )

    def test_changelist_is_viewable(self, admin_client, message):
        response = admin_client.get(MESSAGES_URL)
        assert response.status_code == 200
        assert message.message_id.encode() in response.content

    def test_add_is_forbidden(self, admin_client):
        assert admin_client.get(f"{MESSAGES_URL}add/").status_code == 403

    def test_edit_is_forbidden(self, admin_client, message):
        response = admin_client.post(
            f"{MESSAGES_URL}{message.pk}/change/",
            {"message_id": "tampered", "message_type": "Notification"},
        )

        assert response.status_code == 403
        message.refresh_from_db()
        assert message.message_id == "b1f2c3d4-0000-4000-8000-000000000001"

    def test_delete_is_forbidden(self, admin_client, message):
        response = admin_client.post(
            f"{MESSAGES_URL}{message.pk}/delete/", {"post": "yes"}
        )

        assert response.status_code == 403
        assert InboundMessage.objects.filter(pk=message.pk).exists()
