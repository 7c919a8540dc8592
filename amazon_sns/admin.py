from django import forms
from django.contrib import admin, messages

from .client import SnsClient
from .exceptions import RemoteServiceError, TopicNotFound
from .models import InboundMessage, Topic
from .services.subscriptions import Loaded, SubscriptionManager


class TopicAdminForm(forms.ModelForm):
    """Topic form. Adding a topic creates it on SNS during validation.

    Saving a row that has no ARN yet retries the remote create. ``get_manager``
    is set by :meth:`TopicAdmin.get_form`. A failed remote create is reported
    as a form error, so no local row is written.
    """

    subscribe = forms.BooleanField(
        required=False,
        label="Subscribe",
        help_text="Subscribe this store's SNS endpoint to the new topic.",
    )

    get_manager = None
    result = None

    class Meta:
        model = Topic
        fields = ("name", "is_active")

    def clean(self):
        cleaned_data = super().clean()
        if self.errors or self.instance.arn:
            return cleaned_data
        try:
            self.result = self.get_manager().create(
                cleaned_data["name"],
                auto_subscribe=cleaned_data.get("subscribe", False),
                topic=Loaded(self.instance),
            )
        except RemoteServiceError as exc:
            raise forms.ValidationError(f"SNS topic was not created: {exc}")
        return cleaned_data


def _run_for_each(modeladmin, request, queryset, label, operation):
    """Apply *operation* to every selected topic, reporting per-topic errors."""
    manager = modeladmin.get_manager()
    done = 0
    for topic in queryset:
        try:
            operation(manager, topic)
        except (RemoteServiceError, TopicNotFound) as exc:
            modeladmin.message_user(
                request, f"{topic.name}: {exc}", level=messages.ERROR
            )
        else:
            done += 1
    if done:
        modeladmin.message_user(
            request, f"{done} topic(s) {label}.", level=messages.SUCCESS
        )


@admin.register(Topic)
class TopicAdmin(admin.ModelAdmin):
    form = TopicAdminForm
    list_display = (
        "name",
        "arn",
        "subscription_arn",
        "endpoint_type",
        "state",
        "is_active",
        "updated_at",
    )
    list_filter = (
        "is_active",
        "endpoint_type",
    )
    search_fields = (
        "name",
        "arn",
        "subscription_arn",
    )
    readonly_fields = (
        "arn",
        "subscription_arn",
        "endpoint_type",
        "subscription_requested_at",
        "created_at",
        "updated_at",
    )
    ordering = ("-created_at",)
    actions = (
        "enable_topics",
        "disable_topics",
        "subscribe_topics",
        "unsubscribe_topics",
        "delete_topics",
    )

    def get_manager(self):
        return SubscriptionManager(SnsClient.from_settings())

    def get_actions(self, request):
        # The default bulk delete would only remove local rows.
        actions = super().get_actions(request)
        actions.pop("delete_selected", None)
        return actions

    @admin.display(description="State")
    def state(self, obj):
        return obj.state.label

    def get_form(self, request, obj=None, change=False, **kwargs):
        form = super().get_form(request, obj, change=change, **kwargs)
        form.get_manager = self.get_manager
        return form

    def save_model(self, request, obj, form, change):
        super().save_model(request, obj, form, change)
        if form.result is not None and not form.result.persisted:
            self.message_user(
                request,
                "SNS topic was created but its first local save failed.",
                level=messages.WARNING,
            )

    def delete_model(self, request, obj):
        self.get_manager().delete(Loaded(obj))

    @admin.action(description="Enable selected topics")
    def enable_topics(self, request, queryset):
        _run_for_each(
            self,
            request,
            queryset,
            "enabled",
            lambda manager, topic: manager.set_active(Loaded(topic), True),
        )

    @admin.action(description="Disable selected topics")
    def disable_topics(self, request, queryset):
        _run_for_each(
            self,
            request,
            queryset,
            "disabled",
            lambda manager, topic: manager.set_active(Loaded(topic), False),
        )

    @admin.action(description="Subscribe selected topics")
    def subscribe_topics(self, request, queryset):
        _run_for_each(
            self,
            request,
            queryset,
            "subscribed",
            lambda manager, topic: manager.request_subscription(Loaded(topic)),
        )

    @admin.action(description="Unsubscribe selected topics")
    def unsubscribe_topics(self, request, queryset):
        _run_for_each(
            self,
            request,
            queryset,
            "unsubscribed",
            lambda manager, topic: manager.unsubscribe(Loaded(topic)),
        )

    @admin.action(description="Delete selected topics")
    def delete_topics(self, request, queryset):
        _run_for_each(
            self,
            request,
            queryset,
            "deleted",
            lambda manager, topic: manager.delete(Loaded(topic)),
        )


@admin.register(InboundMessage)
class InboundMessageAdmin(admin.ModelAdmin):
    list_display = (
        "message_id",
        "message_type",
        "topic_arn",
        "status",
        "processing_time_ms",
        "created_at",
    )
    list_filter = (
        "status",
        "message_type",
    )
    search_fields = (
        "message_id",
        "topic_arn",
    )
    readonly_fields = ("payload_hash", "processing_time_ms")
    date_hierarchy = "created_at"
    ordering = ("-created_at",)

    # Rows back redelivery detection; they are pruned with
    # ``sns_topics --purge-messages`` rather than edited by hand.
    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
