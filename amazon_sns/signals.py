from django.dispatch import Signal

# Sent for every SNS notification received on an active topic.
# Receivers get ``topic`` (Topic) and ``notification`` (decoded message body).
sns_notification = Signal()
