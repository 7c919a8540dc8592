from django.db import models


class Topic(models.Model):
    """An SNS topic tracked by this store. One record per remote topic."""

    class EndpointType(models.TextChoices):
        STANDARD = "standard"
        EXTERNAL = "external"

    class State(models.TextChoices):
        UNCREATED = "uncreated"
        CREATED = "created"
        SUBSCRIBE_REQUESTED = "subscribe_requested"
        CONFIRMED = "confirmed"

    name = models.CharField(max_length=255)
    arn = models.CharField(max_length=255, blank=True, default="", db_index=True)
    subscription_arn = models.CharField(max_length=255, blank=True, default="")
    endpoint_type = models.CharField(
        max_length=20, choices=EndpointType.choices, default=EndpointType.STANDARD
    )
    is_active = models.BooleanField(default=True)
    subscription_requested_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "amazon_sns_topic"

    def __str__(self):
        return f"{self.name} ({self.arn or 'not created'})"

    @property
    def is_subscribed(self):
        return bool(self.subscription_arn)

    @property
    def state(self):
        """Subscription lifecycle state derived from the stored fields."""
        if not self.arn:
            return self.State.UNCREATED
        if self.subscription_arn:
            return self.State.CONFIRMED
        if self.subscription_requested_at:
            return self.State.SUBSCRIBE_REQUESTED
        return self.State.CREATED


class InboundMessage(models.Model):
    """Audit log for idempotency and debugging. Every verified delivery is recorded."""

    class Status(models.TextChoices):
        RECEIVED = "received"
        PROCESSED = "processed"
        DROPPED = "dropped"
        IGNORED = "ignored"
        FAILED = "failed"

    message_id = models.CharField(max_length=255)
    message_type = models.CharField(max_length=50)
    topic_arn = models.CharField(max_length=255, blank=True, default="", db_index=True)
    status = models.CharField(
        max_length=20, choices=Status.choices, default=Status.RECEIVED
    )
    payload_hash = models.CharField(max_length=64)
    error_message = models.TextField(blank=True, default="")
    processing_time_ms = models.IntegerField(null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "amazon_sns_inbound_message"
        indexes = [
            models.Index(
                fields=["topic_arn", "message_type", "created_at"],
                name="amazon_sns_msg_topic_idx",
            ),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["message_id"], name="unique_sns_message_id"
            ),
        ]

    def __str__(self):
        return f"{self.message_type} [{self.status}] ({self.message_id})"
