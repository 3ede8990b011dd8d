"""FHIR Subscriptions demo - topic discovery, rest-hook subscription and notification listener."""

from .client import FhirClient
from .notifications import (
    NotificationEvent,
    NotificationParseError,
    NotificationType,
    PayloadSchema,
    interpret_notification,
)
from .orchestrator import SubscriptionRun

__all__ = [
    "FhirClient",
    "NotificationEvent",
    "NotificationParseError",
    "NotificationType",
    "PayloadSchema",
    "SubscriptionRun",
    "interpret_notification",
]
