"""Async FHIR client for the subscriptions workflow.

Every operation performs a single HTTP round trip against the FHIR server and
reports the outcome as a flag, an id or a list. Transport failures, error
statuses and unexpected bodies are logged and never raised to the caller.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from .resources import (
    DEFAULT_REASON,
    FHIR_JSON,
    build_encounter,
    build_patient,
    build_subscription,
)

logger = logging.getLogger(__name__)

WRITE_HEADERS = {
    "Content-Type": f"{FHIR_JSON};charset=utf-8",
    "Prefer": "return=representation",
}


class FhirClient:
    """Async FHIR client with one lazily created httpx connection pool.

    Example:
        client = FhirClient("https://server.subscriptions.argo.run")
        topics = await client.list_topics()
        await client.close()
    """

    def __init__(
        self,
        base_url: str,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            base_url: FHIR server base URL
            timeout: Request timeout in seconds. None waits indefinitely.
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
                headers={"Accept": FHIR_JSON},
            )
        return self._client

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        """Decode a response body, returning None when it is not JSON."""
        try:
            return response.json()
        except ValueError:
            return None

    # ------------------------------------------------------------------
    # Topics
    # ------------------------------------------------------------------

    async def list_topics(self, resource_type: str = "Topic") -> list[dict[str, Any]]:
        """List the topics the server offers.

        Args:
            resource_type: ``Topic`` or ``SubscriptionTopic`` depending on the
                server's subscriptions version

        Returns:
            Topic resources from the search bundle, empty on any failure
        """
        try:
            response = await self._get_client().get(f"/{resource_type}")
        except httpx.HTTPError as e:
            logger.error(f"list_topics: {type(e).__name__}: {e}")
            return []

        if not response.is_success:
            logger.warning(f"list_topics: {response.url} returned: {response.status_code}")
            return []

        bundle = self._json(response)
        if not isinstance(bundle, dict) or not isinstance(bundle.get("entry"), list):
            return []

        return [
            entry["resource"]
            for entry in bundle["entry"]
            if isinstance(entry, dict) and entry.get("resource")
        ]

    # ------------------------------------------------------------------
    # Patient
    # ------------------------------------------------------------------

    async def ensure_patient(self, patient_id: str) -> bool:
        """Make sure the patient exists, creating it when it cannot be found.

        Returns:
            True if the patient already existed or was created
        """
        try:
            response = await self._get_client().get(f"/Patient/{patient_id}")
        except httpx.HTTPError as e:
            logger.warning(f"ensure_patient: {type(e).__name__}: {e}")
            return await self.create_patient(patient_id)

        if not response.is_success:
            return await self.create_patient(patient_id)

        body = self._json(response)
        if not isinstance(body, dict):
            return await self.create_patient(patient_id)

        # A direct read returns the Patient itself, a search returns a Bundle
        if body.get("resourceType") == "Patient":
            return True

        entries = body.get("entry")
        if not isinstance(entries, list) or len(entries) == 0:
            return await self.create_patient(patient_id)

        return True

    async def create_patient(self, patient_id: str) -> bool:
        """Create (or replace) the placeholder patient via PUT."""
        client = self._get_client()
        try:
            response = await client.put(
                f"/Patient/{patient_id}",
                params={"_format": "json"},
                json=build_patient(patient_id),
                headers=WRITE_HEADERS,
            )
        except httpx.HTTPError as e:
            logger.error(f"create_patient: {type(e).__name__}: {e}")
            return False

        if not response.is_success:
            logger.error(f"create_patient: url: {response.url} returned: {response.status_code}")
            return False

        logger.info(f"Created patient: Patient/{patient_id}")
        return True

    # ------------------------------------------------------------------
    # Subscription
    # ------------------------------------------------------------------

    async def create_subscription(
        self,
        topic_url: str,
        patient_ref: str,
        endpoint: str,
        reason: str = DEFAULT_REASON,
    ) -> str | None:
        """POST a rest-hook subscription for a topic, filtered to one patient.

        Returns:
            Server-assigned subscription id, or None on failure
        """
        subscription = build_subscription(topic_url, patient_ref, endpoint, reason)
        try:
            response = await self._get_client().post(
                "/Subscription",
                json=subscription,
                headers=WRITE_HEADERS,
            )
        except httpx.HTTPError as e:
            logger.error(f"create_subscription: {type(e).__name__}: {e}")
            return None

        if not response.is_success:
            logger.error(f"create_subscription: {response.url} returned: {response.status_code}")
            return None

        created = self._json(response)
        if not isinstance(created, dict) or not created.get("id"):
            logger.error("create_subscription: response did not contain a resource id")
            return None

        logger.info(f"Created subscription: Subscription/{created['id']}")
        return str(created["id"])

    async def delete_subscription(self, subscription_id: str) -> bool:
        """DELETE a subscription by id."""
        if not subscription_id:
            logger.warning("delete_subscription: no subscription to delete")
            return False

        try:
            response = await self._get_client().delete(
                f"/Subscription/{subscription_id}",
                headers={"Prefer": "return=representation"},
            )
        except httpx.HTTPError as e:
            logger.error(f"delete_subscription: {type(e).__name__}: {e}")
            return False

        if not response.is_success:
            logger.error(f"delete_subscription: {response.url} returned: {response.status_code}")
            return False

        logger.info(f"Deleted subscription: Subscription/{subscription_id}")
        return True

    # ------------------------------------------------------------------
    # Encounter
    # ------------------------------------------------------------------

    async def post_encounter(self, patient_ref: str) -> str | None:
        """POST an in-progress encounter for the patient to trigger the topic.

        Returns:
            Server-assigned encounter id, or None on failure
        """
        try:
            response = await self._get_client().post(
                "/Encounter",
                params={"_format": "json"},
                json=build_encounter(patient_ref),
                headers=WRITE_HEADERS,
            )
        except httpx.HTTPError as e:
            logger.error(f"post_encounter: {type(e).__name__}: {e}")
            return None

        if not response.is_success:
            logger.error(f"post_encounter: {response.url} returned: {response.status_code}")
            return None

        created = self._json(response)
        if not isinstance(created, dict) or not created.get("id"):
            logger.error("post_encounter: response did not contain a resource id")
            return None

        logger.info(f"Created encounter: Encounter/{created['id']}")
        return str(created["id"])
