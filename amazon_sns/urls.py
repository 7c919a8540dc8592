from django.urls import path

from .conf import ENDPOINT_URL_NAME
from .views import (
    PublishView,
    SnsEndpointView,
    TopicDetailView,
    TopicDisableView,
    TopicEnableView,
    TopicListView,
    TopicMassActionView,
    TopicSubscribeView,
    TopicUnsubscribeView,
)

urlpatterns = [
    path(
        "endpoint/",
        SnsEndpointView.as_view(),
        name=ENDPOINT_URL_NAME,
    ),
    path(
        "topics/",
        TopicListView.as_view(),
        name="amazon_sns_topic_list",
    ),
    path(
        "topics/mass-<str:action>/",
        TopicMassActionView.as_view(),
        name="amazon_sns_topic_mass_action",
    ),
    path(
        "topics/<int:topic_id>/",
        TopicDetailView.as_view(),
        name="amazon_sns_topic_detail",
    ),
    path(
        "topics/<int:topic_id>/enable/",
        TopicEnableView.as_view(),
        name="amazon_sns_topic_enable",
    ),
    path(
        "topics/<int:topic_id>/disable/",
        TopicDisableView.as_view(),
        name="amazon_sns_topic_disable",
    ),
    path(
        "topics/<int:topic_id>/subscribe/",
        TopicSubscribeView.as_view(),
        name="amazon_sns_topic_subscribe",
    ),
    path(
        "topics/<int:topic_id>/unsubscribe/",
        TopicUnsubscribeView.as_view(),
        name="amazon_sns_topic_unsubscribe",
    ),
    path(
        "publish/",
        PublishView.as_view(),
        name="amazon_sns_publish",
    ),
]
