from rest_framework import serializers

from .models import Topic


class TopicSerializer(serializers.ModelSerializer):
    state = serializers.CharField(read_only=True)

    class Meta:
        model = Topic
        fields = (
            "id",
            "name",
            "arn",
            "subscription_arn",
            "endpoint_type",
            "is_active",
            "state",
            "subscription_requested_at",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields


class TopicCreateSerializer(serializers.Serializer):
    name = serializers.RegexField(
        r"^[A-Za-z0-9_-]{1,256}$",
        error_messages={
            "invalid": "Topic names may only contain letters, digits, "
            "hyphens and underscores (1-256 characters)."
        },
    )
    subscribe = serializers.BooleanField(default=False)


class SubscribeSerializer(serializers.Serializer):
    protocol = serializers.CharField(required=False, allow_blank=True, default="")
    endpoint = serializers.CharField(required=False, allow_blank=True, default="")


class MassActionSerializer(serializers.Serializer):
    topic_ids = serializers.ListField(
        child=serializers.IntegerField(min_value=1), allow_empty=False
    )


class PublishSerializer(serializers.Serializer):
    message = serializers.CharField()
    topic_id = serializers.IntegerField(required=False, min_value=1)
    topic_arn = serializers.CharField(required=False, allow_blank=True, default="")
    subject = serializers.CharField(
        required=False, allow_blank=True, default="", max_length=100
    )
    target_arn = serializers.CharField(required=False, allow_blank=True, default="")
    message_structure = serializers.ChoiceField(
        choices=["", "json"], required=False, default=""
    )
    message_attributes = serializers.DictField(required=False, default=dict)

    def validate(self, attrs):
        if not (attrs.get("topic_id") or attrs["topic_arn"] or attrs["target_arn"]):
            raise serializers.ValidationError(
                "One of topic_id, topic_arn or target_arn is required."
            )
        return attrs
