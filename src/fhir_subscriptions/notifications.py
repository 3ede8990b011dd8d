"""Interpretation of subscription notification payloads.

Servers deliver notifications in one of two shapes:

- a ``subscription-notification`` Bundle whose first entry is a
  SubscriptionStatus resource (current R4B/R5 style)
- a Bundle carrying the status as ``meta.extension`` elements (the earlier
  R4 backport style)

The current shape is tried first; the extension shape is only read when the
current one does not match, so one payload never mixes both.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class NotificationParseError(ValueError):
    """Raised when a payload has a recognized shape but invalid content."""


class NotificationType(str, Enum):
    """Kinds of subscription notification."""

    HANDSHAKE = "handshake"
    HEARTBEAT = "heartbeat"
    EVENT_NOTIFICATION = "event-notification"
    UNKNOWN = "unknown"


class PayloadSchema(str, Enum):
    """Payload layout a notification was read from."""

    SUBSCRIPTION_STATUS = "subscription-status"
    META_EXTENSION = "meta-extension"
    NONE = "none"


class NotificationEvent(BaseModel):
    """Event metadata extracted from a single notification."""

    event_count: int | None = Field(
        None, description="Events since the subscription started (0 for a handshake)"
    )
    bundle_event_count: int | None = Field(
        None, description="Events contained in this notification"
    )
    status: str = Field("", description="Subscription status reported by the server")
    topic_url: str = Field("", description="Topic the notification belongs to")
    subscription_url: str = Field("", description="Subscription the notification was sent for")
    notification_type: NotificationType = NotificationType.UNKNOWN
    payload_schema: PayloadSchema = PayloadSchema.NONE

    @property
    def is_handshake(self) -> bool:
        """A zero event count always marks the handshake."""
        return self.event_count == 0

    def summary(self) -> str:
        """Human-readable summary for the log."""
        if self.is_handshake:
            return (
                "Handshake:\n"
                f"\tTopic:        {self.topic_url}\n"
                f"\tSubscription: {self.subscription_url}\n"
                f"\tStatus:       {self.status}"
            )
        return (
            f"Notification #{_display(self.event_count)}:\n"
            f"\tTopic:         {self.topic_url}\n"
            f"\tSubscription:  {self.subscription_url}\n"
            f"\tStatus:        {self.status}\n"
            f"\tBundle Events: {_display(self.bundle_event_count)}\n"
            f"\tTotal Events:  {_display(self.event_count)}"
        )


def _display(count: int | None) -> str:
    return "NaN" if count is None else str(count)


# url suffix -> (event field, value[x] element)
LEGACY_EXTENSIONS: dict[str, tuple[str, str]] = {
    "subscriptionEventCount": ("event_count", "valueDecimal"),
    "subscription-event-count": ("event_count", "valueDecimal"),
    "bundleEventCount": ("bundle_event_count", "valueUnsignedInt"),
    "bundle-event-count": ("bundle_event_count", "valueUnsignedInt"),
    "subscriptionStatus": ("status", "valueString"),
    "subscription-status": ("status", "valueString"),
    "subscriptionTopicUrl": ("topic_url", "valueUrl"),
    "subscription-topic-url": ("topic_url", "valueUrl"),
    "subscriptionUrl": ("subscription_url", "valueUrl"),
    "subscription-url": ("subscription_url", "valueUrl"),
}

_COUNT_FIELDS = {"event_count", "bundle_event_count"}


def interpret_notification(payload: Any) -> NotificationEvent:
    """Extract event metadata from a notification body.

    Args:
        payload: Decoded JSON body of the notification request

    Returns:
        NotificationEvent; fields stay unset when nothing was recognized

    Raises:
        NotificationParseError: If a recognized shape carries invalid values
    """
    if _is_status_bundle(payload):
        return _from_subscription_status(payload)
    if _has_meta_extensions(payload):
        return _from_meta_extensions(payload)
    return NotificationEvent()


def _is_status_bundle(payload: Any) -> bool:
    return (
        isinstance(payload, dict)
        and payload.get("type") == "subscription-notification"
        and isinstance(payload.get("entry"), list)
        and len(payload["entry"]) > 0
    )


def _has_meta_extensions(payload: Any) -> bool:
    return (
        isinstance(payload, dict)
        and isinstance(payload.get("meta"), dict)
        and payload["meta"].get("extension") is not None
    )


def _from_subscription_status(bundle: dict[str, Any]) -> NotificationEvent:
    entry = bundle["entry"][0]
    if not isinstance(entry, dict):
        raise NotificationParseError("first bundle entry is not an object")

    status = entry.get("resource") or {}
    if not isinstance(status, dict):
        raise NotificationParseError("SubscriptionStatus entry has no resource object")

    event = NotificationEvent(
        status=_text(status.get("status")),
        topic_url=_reference(status.get("topic")),
        subscription_url=_reference(status.get("subscription")),
        payload_schema=PayloadSchema.SUBSCRIPTION_STATUS,
    )

    notification_type = status.get("notificationType")
    if notification_type == NotificationType.HANDSHAKE.value:
        event.event_count = 0
        event.bundle_event_count = 0
        event.notification_type = NotificationType.HANDSHAKE
    elif notification_type == NotificationType.HEARTBEAT.value:
        event.event_count = _count(status.get("eventsSinceSubscriptionStart"), "eventsSinceSubscriptionStart")
        event.bundle_event_count = 0
        event.notification_type = NotificationType.HEARTBEAT
    elif notification_type == NotificationType.EVENT_NOTIFICATION.value:
        event.event_count = _count(status.get("eventsSinceSubscriptionStart"), "eventsSinceSubscriptionStart")
        event.bundle_event_count = _count(status.get("eventsInNotification"), "eventsInNotification")
        event.notification_type = NotificationType.EVENT_NOTIFICATION

    return event


def _from_meta_extensions(bundle: dict[str, Any]) -> NotificationEvent:
    extensions = bundle["meta"]["extension"]
    if not isinstance(extensions, list):
        raise NotificationParseError("meta.extension is not a list")

    values: dict[str, Any] = {}
    for element in extensions:
        if not isinstance(element, dict):
            raise NotificationParseError("meta.extension element is not an object")
        url = element.get("url")
        if not isinstance(url, str):
            continue

        for suffix, (field, value_key) in LEGACY_EXTENSIONS.items():
            if url.endswith(suffix):
                raw = element.get(value_key)
                values[field] = _count(raw, suffix) if field in _COUNT_FIELDS else _text(raw)
                break

    event = NotificationEvent(payload_schema=PayloadSchema.META_EXTENSION, **values)
    event.notification_type = _classify(event)
    return event


def _classify(event: NotificationEvent) -> NotificationType:
    """Derive the notification type for payloads that do not state it."""
    if event.event_count == 0:
        return NotificationType.HANDSHAKE
    if event.bundle_event_count is None:
        return NotificationType.UNKNOWN
    if event.bundle_event_count > 0:
        return NotificationType.EVENT_NOTIFICATION
    return NotificationType.HEARTBEAT


def _count(value: Any, name: str) -> int | None:
    """Convert a FHIR count (integer, decimal or integer64 string) to int."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise NotificationParseError(f"{name} is not numeric: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not value.is_integer():
            logger.warning(f"{name} is not a whole number, leaving it unset: {value!r}")
            return None
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            raise NotificationParseError(f"{name} is not numeric: {value!r}") from None
    raise NotificationParseError(f"{name} is not numeric: {value!r}")


def _reference(value: Any) -> str:
    """Read a Reference (``{"reference": ...}``) or a plain canonical string."""
    if isinstance(value, dict):
        return _text(value.get("reference"))
    return _text(value)


def _text(value: Any) -> str:
    return "" if value is None else str(value)
