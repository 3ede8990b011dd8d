"""Listener and run configuration settings."""

from __future__ import annotations

import os
import uuid
from dataclasses import dataclass, field

from dotenv import load_dotenv

from ..orchestrator import DEFAULT_NOTIFICATION_LIMIT

load_dotenv()

DEFAULT_FHIR_SERVER_URL = "https://server.subscriptions.argo.run"
DEFAULT_PATIENT_ID = "DevDays00120"
TOPIC_RESOURCES = ("Topic", "SubscriptionTopic")


@dataclass
class ListenerConfig:
    """Configuration for the notification listener and the demo run."""

    # Server settings
    host: str = "0.0.0.0"
    port: int = 32019
    log_level: str = "info"

    # Public proxy URL used in the Subscription (blank for local only)
    public_url: str = ""

    # CORS settings
    cors_origins: list[str] = field(default_factory=lambda: ["*"])

    # FHIR server settings
    fhir_server_url: str = DEFAULT_FHIR_SERVER_URL
    topic_resource: str = "Topic"
    # None waits on the server indefinitely
    request_timeout: float | None = None

    # Run settings
    patient_id: str = DEFAULT_PATIENT_ID
    notification_limit: int = DEFAULT_NOTIFICATION_LIMIT

    @property
    def callback_url(self) -> str:
        """Endpoint the FHIR server posts notifications to."""
        if self.public_url:
            return self.public_url
        return f"http://localhost:{self.port}/notification"

    @classmethod
    def from_env(cls) -> ListenerConfig:
        """Load configuration from environment variables."""
        timeout = os.getenv("FHIR_TIMEOUT", "")
        return cls(
            host=os.getenv("SUBSCRIPTIONS_HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "32019")),
            log_level=os.getenv("SUBSCRIPTIONS_LOG_LEVEL", "info").lower(),
            public_url=os.getenv("SUBSCRIPTIONS_PUBLIC_URL", ""),
            cors_origins=os.getenv("SUBSCRIPTIONS_CORS_ORIGINS", "*").split(","),
            fhir_server_url=os.getenv("FHIR_SERVER_URL", DEFAULT_FHIR_SERVER_URL),
            topic_resource=os.getenv("SUBSCRIPTIONS_TOPIC_RESOURCE", "Topic"),
            request_timeout=float(timeout) if timeout else None,
            patient_id=os.getenv("SUBSCRIPTIONS_PATIENT_ID", DEFAULT_PATIENT_ID),
            notification_limit=int(
                os.getenv("SUBSCRIPTIONS_NOTIFICATION_LIMIT", str(DEFAULT_NOTIFICATION_LIMIT))
            ),
        )


def generate_patient_id() -> str:
    """Fresh patient id for runs that should not reuse the shared demo patient."""
    return f"DevDays-{uuid.uuid4().hex[:12]}"


# Global config instance
_config: ListenerConfig | None = None


def get_config() -> ListenerConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = ListenerConfig.from_env()
    return _config
