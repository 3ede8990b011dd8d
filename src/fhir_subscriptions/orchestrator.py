"""Subscription lifecycle for a single demo run.

``SubscriptionRun`` owns the state of one run (the subscription and encounter
ids, the notification count) and signals completion through an asyncio event
instead of exiting the process, so the caller decides what to do with the
exit code.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from .client import FhirClient
from .notifications import NotificationEvent, interpret_notification
from .resources import DEFAULT_REASON, patient_reference

logger = logging.getLogger(__name__)

DEFAULT_NOTIFICATION_LIMIT = 2


class SubscriptionRun:
    """Drives topics -> patient -> subscription -> encounter -> wait -> delete."""

    def __init__(
        self,
        client: FhirClient,
        patient_id: str,
        callback_url: str,
        topic_resource: str = "Topic",
        notification_limit: int = DEFAULT_NOTIFICATION_LIMIT,
        reason: str = DEFAULT_REASON,
    ) -> None:
        self.client = client
        self.patient_id = patient_id
        self.callback_url = callback_url
        self.topic_resource = topic_resource
        self.notification_limit = notification_limit
        self.reason = reason

        self.topics: list[dict[str, Any]] = []
        self.subscription_id = ""
        self.encounter_id = ""
        self.notification_count = 0
        self.exit_code: int | None = None

        self._closing = False
        self._finished = asyncio.Event()

    @property
    def patient_ref(self) -> str:
        return patient_reference(self.patient_id)

    @property
    def finished(self) -> bool:
        return self._finished.is_set()

    async def start(self) -> bool:
        """Run the startup sequence, stopping at the first failed step.

        The listener must already be accepting requests: the handshake can
        arrive before the subscription POST returns. A run that finishes
        while a step is in flight stops the sequence there.

        Returns:
            True once the triggering encounter has been posted
        """
        self.topics = await self.client.list_topics(self.topic_resource)
        if self._closing:
            return False
        if len(self.topics) < 1:
            logger.error("Failed to get Topics!")
            await self.finish(1)
            return False

        logger.info("Found Topics:")
        for topic in self.topics:
            logger.info(
                f" {self.topic_resource}/{topic.get('id')} - {topic.get('title')}: "
                f"{topic.get('description')} ({topic.get('url')})"
            )

        patient_ok = await self.client.ensure_patient(self.patient_id)
        if self._closing:
            return False
        if not patient_ok:
            logger.error(f"Failed to verify patient: {self.patient_ref}")
            await self.finish(1)
            return False

        subscribed = await self.create_subscription(self.topics[0])
        if self._closing:
            return False
        if not subscribed:
            logger.error("Failed to create subscription!")
            await self.finish(1)
            return False

        # Exit happens from the listener once enough notifications arrive
        posted = await self.post_encounter()
        if self._closing:
            return False
        if not posted:
            logger.error("Failed to create encounter!")
            await self.finish(1)
            return False

        return True

    async def create_subscription(self, topic: dict[str, Any]) -> bool:
        """Subscribe to a topic; the id is kept only if the server accepted it.

        A subscription that comes back after the run has finished is deleted
        straight away.
        """
        topic_url = topic.get("url")
        if not topic_url:
            logger.error(f"Topic/{topic.get('id')} has no canonical url")
            return False

        subscription_id = await self.client.create_subscription(
            topic_url,
            self.patient_ref,
            self.callback_url,
            self.reason,
        )
        if not subscription_id:
            return False

        self.subscription_id = subscription_id
        if self._closing:
            logger.warning(
                f"Run finished while creating Subscription/{subscription_id}, deleting it"
            )
            await self.delete_subscription()
            return False
        return True

    async def delete_subscription(self) -> bool:
        """Delete the current subscription; the id is cleared only on success."""
        deleted = await self.client.delete_subscription(self.subscription_id)
        if deleted:
            self.subscription_id = ""
        return deleted

    async def post_encounter(self) -> bool:
        encounter_id = await self.client.post_encounter(self.patient_ref)
        if not encounter_id:
            return False

        self.encounter_id = encounter_id
        return True

    async def handle_notification(self, body: bytes) -> NotificationEvent | None:
        """Process one notification request body.

        Returns:
            The interpreted event, or None if the body could not be parsed
        """
        logger.info("Received POST on /notification")

        try:
            payload = json.loads(body) if body.strip() else {}
            event = interpret_notification(payload)
        except ValueError as e:
            logger.error(f"Failed to parse notification: {e}")
            await self.finish(1)
            return None

        self.notification_count += 1
        logger.info(event.summary())

        if self.notification_count == self.notification_limit:
            await self.finish(0)

        return event

    async def finish(self, exit_code: int) -> None:
        """Clean up the subscription (best effort) and signal completion."""
        if self._closing:
            return
        self._closing = True

        if self.subscription_id:
            await self.delete_subscription()

        self.exit_code = exit_code
        self._finished.set()

    async def wait(self) -> int:
        """Wait for the run to finish and return its exit code."""
        await self._finished.wait()
        return self.exit_code if self.exit_code is not None else 1
