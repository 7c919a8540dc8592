from django.apps import AppConfig


class AmazonSnsConfig(AppConfig):
    name = "amazon_sns"
    verbose_name = "Amazon SNS"
    default_auto_field = "django.db.models.AutoField"

    def ready(self):
        # Register the signal so receivers can connect before the first delivery.
        import amazon_sns.signals  # noqa: F401
