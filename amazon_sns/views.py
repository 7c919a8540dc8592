import logging

from rest_framework import status
from rest_framework.permissions import AllowAny, IsAdminUser
from rest_framework.response import Response
from rest_framework.views import APIView

from .client import PENDING_CONFIRMATION, SnsClient
from .exceptions import RemoteServiceError, TopicNotFound
from .models import Topic
from .serializers import (
    MassActionSerializer,
    PublishSerializer,
    SubscribeSerializer,
    TopicCreateSerializer,
    TopicSerializer,
)
from .services.notifications import DispatchResult, NotificationDispatcher
from .services.subscriptions import (
    ByArn,
    ById,
    Loaded,
    SubscriptionManager,
    require_topic,
)

logger = logging.getLogger(__name__)


def get_manager():
    """Build a lifecycle manager with a client scoped to the current request."""
    return SubscriptionManager(SnsClient.from_settings())


class SnsEndpointView(APIView):
    """Webhook endpoint SNS posts confirmations and notifications to.

    Returns 200 for every message whose signature verifies, whatever
    happens afterwards, and 401 otherwise.
    """

    authentication_classes = []
    permission_classes = [AllowAny]

    def post(self, request):
        dispatcher = NotificationDispatcher(get_manager)
        result = dispatcher.handle(request.body)
        if result is DispatchResult.REJECTED:
            logger.warning(
                "SNS signature verification failed (remote=%s)",
                request.META.get("REMOTE_ADDR"),
            )
            return Response(
                {"error": "Signature verification failed"},
                status=status.HTTP_401_UNAUTHORIZED,
            )
        return Response(status=status.HTTP_200_OK)


class BaseTopicView(APIView):
    """Base view for the admin topic API.

    Maps missing topics to 404 and SNS failures to 502 so the admin sees
    what went wrong.
    """

    permission_classes = [IsAdminUser]

    def handle_exception(self, exc):
        if isinstance(exc, TopicNotFound):
            return Response({"error": str(exc)}, status=status.HTTP_404_NOT_FOUND)
        if isinstance(exc, RemoteServiceError):
            logger.warning("SNS call failed in %s: %s", self.__class__.__name__, exc)
            return Response({"error": str(exc)}, status=status.HTTP_502_BAD_GATEWAY)
        return super().handle_exception(exc)


class TopicListView(BaseTopicView):
    def get(self, request):
        topics = Topic.objects.order_by("-created_at")
        return Response(TopicSerializer(topics, many=True).data)

    def post(self, request):
        serializer = TopicCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = get_manager().create(
            serializer.validated_data["name"],
            auto_subscribe=serializer.validated_data["subscribe"],
        )
        return Response(
            {
                "topic": TopicSerializer(result.topic).data,
                "arn": result.value,
                "persisted": result.persisted,
            },
            status=status.HTTP_201_CREATED,
        )


class TopicDetailView(BaseTopicView):
    def get(self, request, topic_id):
        topic = require_topic(ById(topic_id))
        return Response(TopicSerializer(topic).data)

    def delete(self, request, topic_id):
        topic = require_topic(ById(topic_id))
        get_manager().delete(Loaded(topic))
        return Response(status=status.HTTP_204_NO_CONTENT)


class TopicStatusView(BaseTopicView):
    """Enable or disable forwarding for a topic. Subclasses set ``is_active``."""

    is_active = None

    def post(self, request, topic_id):
        result = get_manager().set_active(ById(topic_id), self.is_active)
        return Response(TopicSerializer(result.topic).data)


class TopicEnableView(TopicStatusView):
    is_active = True


class TopicDisableView(TopicStatusView):
    is_active = False


class TopicSubscribeView(BaseTopicView):
    def post(self, request, topic_id):
        topic = require_topic(ById(topic_id))
        serializer = SubscribeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = get_manager().request_subscription(
            Loaded(topic),
            protocol=serializer.validated_data["protocol"],
            endpoint=serializer.validated_data["endpoint"],
        )
        return Response(
            {
                "topic": TopicSerializer(result.topic).data,
                "subscription_arn": result.value,
                "pending": result.value == PENDING_CONFIRMATION,
            }
        )


class TopicUnsubscribeView(BaseTopicView):
    def post(self, request, topic_id):
        topic = require_topic(ById(topic_id))
        result = get_manager().unsubscribe(Loaded(topic))
        return Response(
            {"topic": TopicSerializer(result.topic).data, "unsubscribed": result.value}
        )


MASS_ACTIONS = {
    "enable": lambda manager, topic: manager.set_active(Loaded(topic), True),
    "disable": lambda manager, topic: manager.set_active(Loaded(topic), False),
    "subscribe": lambda manager, topic: manager.request_subscription(Loaded(topic)),
    "unsubscribe": lambda manager, topic: manager.unsubscribe(Loaded(topic)),
    "delete": lambda manager, topic: manager.delete(Loaded(topic)),
}


class TopicMassActionView(BaseTopicView):
    """Apply one action to many topics. Failures are reported per topic."""

    def post(self, request, action):
        handler = MASS_ACTIONS.get(action)
        if handler is None:
            return Response(
                {"error": f"Unknown action '{action}'"},
                status=status.HTTP_404_NOT_FOUND,
            )
        serializer = MassActionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        topic_ids = serializer.validated_data["topic_ids"]

        topics = {topic.pk: topic for topic in Topic.objects.filter(pk__in=topic_ids)}
        manager = get_manager()
        processed = 0
        failed = []
        for topic_id in topic_ids:
            topic = topics.get(topic_id)
            if topic is None:
                continue
            try:
                handler(manager, topic)
            except (RemoteServiceError, TopicNotFound) as exc:
                logger.warning(
                    "Mass %s failed for topic %s: %s", action, topic_id, exc
                )
                failed.append({"topic_id": topic_id, "error": str(exc)})
            else:
                processed += 1

        return Response(
            {
                "processed": processed,
                "failed": failed,
                "not_found": [pk for pk in topic_ids if pk not in topics],
            }
        )


class PublishView(BaseTopicView):
    def post(self, request):
        serializer = PublishSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        topic = None
        if data.get("topic_id"):
            topic = Loaded(require_topic(ById(data["topic_id"])))
        elif data["topic_arn"]:
            topic = ByArn(data["topic_arn"])

        result = get_manager().publish(
            data["message"],
            topic=topic,
            subject=data["subject"],
            target_arn=data["target_arn"],
            message_structure=data["message_structure"],
            message_attributes=data["message_attributes"] or None,
        )
        return Response({"message_id": result.value})
