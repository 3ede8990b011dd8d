"""Shared fixtures: an in-memory FHIR server behind httpx.MockTransport."""

from __future__ import annotations

import json
from collections.abc import AsyncGenerator

import httpx
import pytest
import pytest_asyncio

from fhir_subscriptions.client import FhirClient

BASE_URL = "http://fhir.test/fhir"


class FakeFhirServer:
    """Minimal FHIR server keeping resources in dicts, keyed by type and id."""

    def __init__(self) -> None:
        self.resources: dict[str, dict[str, dict]] = {}
        self.requests: list[httpx.Request] = []
        self.status_overrides: dict[tuple[str, str], int] = {}
        self._next_id = 1

    def add(self, resource: dict) -> dict:
        self.resources.setdefault(resource["resourceType"], {})[resource["id"]] = resource
        return resource

    def calls(self, method: str, resource_type: str) -> list[httpx.Request]:
        return [
            r for r in self.requests
            if r.method == method and r.url.path.split("/fhir/", 1)[-1].split("/")[0] == resource_type
        ]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        parts = request.url.path.split("/fhir/", 1)[-1].strip("/").split("/")
        resource_type = parts[0]
        resource_id = parts[1] if len(parts) > 1 else None

        override = self.status_overrides.get((request.method, resource_type))
        if override is not None:
            return httpx.Response(override, json={"resourceType": "OperationOutcome"})

        store = self.resources.setdefault(resource_type, {})

        if request.method == "GET" and resource_id is None:
            return httpx.Response(
                200,
                json={
                    "resourceType": "Bundle",
                    "type": "searchset",
                    "entry": [{"resource": r} for r in store.values()],
                },
            )
        if request.method == "GET":
            if resource_id not in store:
                return httpx.Response(404, json={"resourceType": "OperationOutcome"})
            return httpx.Response(200, json=store[resource_id])
        if request.method == "PUT":
            resource = json.loads(request.content)
            store[resource_id] = resource
            return httpx.Response(201, json=resource)
        if request.method == "POST":
            resource = json.loads(request.content)
            resource["id"] = f"{resource_type.lower()}-{self._next_id}"
            self._next_id += 1
            store[resource["id"]] = resource
            return httpx.Response(201, json=resource)
        if request.method == "DELETE":
            if store.pop(resource_id, None) is None:
                return httpx.Response(404, json={"resourceType": "OperationOutcome"})
            return httpx.Response(200, json={"resourceType": "OperationOutcome"})

        return httpx.Response(405)


@pytest.fixture
def fhir_server() -> FakeFhirServer:
    server = FakeFhirServer()
    server.add(
        {
            "resourceType": "Topic",
            "id": "t1",
            "url": "http://x/Topic/t1",
            "title": "encounter-start",
            "description": "Encounter started for a patient",
        }
    )
    return server


@pytest_asyncio.fixture
async def fhir_client(fhir_server: FakeFhirServer) -> AsyncGenerator[FhirClient, None]:
    client = FhirClient(BASE_URL, transport=httpx.MockTransport(fhir_server.handler))
    yield client
    await client.close()


@pytest.fixture
def status_bundle():
    """Build a subscription-notification bundle around a SubscriptionStatus."""

    def _build(notification_type: str, **status_fields) -> dict:
        status = {
            "resourceType": "SubscriptionStatus",
            "status": "active",
            "type": notification_type,
            "notificationType": notification_type,
            "topic": {"reference": "http://x/Topic/t1"},
            "subscription": {"reference": "http://fhir.test/fhir/Subscription/subscription-1"},
            **status_fields,
        }
        return {
            "resourceType": "Bundle",
            "type": "subscription-notification",
            "entry": [{"fullUrl": "urn:uuid:status", "resource": status}],
        }

    return _build
