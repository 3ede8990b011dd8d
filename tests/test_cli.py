"""Tests for the listener + lifecycle wiring in cli.serve().

The listener runs on a real loopback port while the FHIR server is the
in-memory fake from conftest.
"""

import asyncio
import json
import socket

import httpx
import pytest

from fhir_subscriptions.api.config import ListenerConfig
from fhir_subscriptions.cli import serve

from conftest import BASE_URL


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def _config(port: int) -> ListenerConfig:
    return ListenerConfig(
        host="127.0.0.1",
        port=port,
        log_level="warning",
        fhir_server_url=BASE_URL,
        patient_id="DevDays00120",
    )


def _notification(notification_type: str, count: int) -> dict:
    return {
        "resourceType": "Bundle",
        "type": "subscription-notification",
        "entry": [
            {
                "resource": {
                    "resourceType": "SubscriptionStatus",
                    "status": "active",
                    "notificationType": notification_type,
                    "eventsSinceSubscriptionStart": str(count),
                    "eventsInNotification": 1,
                }
            }
        ],
    }


async def _wait_for(condition, timeout: float = 5.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not condition():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.02)


class TestServe:

    @pytest.mark.asyncio
    async def test_two_notifications_exit_zero(self, fhir_client, fhir_server):
        port = _free_port()
        task = asyncio.create_task(serve(_config(port), client=fhir_client))

        await _wait_for(lambda: fhir_server.calls("POST", "Encounter") or task.done())
        assert not task.done()

        subscription = json.loads(fhir_server.calls("POST", "Subscription")[0].content)
        assert subscription["topic"]["reference"] == "http://x/Topic/t1"
        assert subscription["filterBy"][0]["value"] == "Patient/DevDays00120"
        assert subscription["channel"]["endpoint"] == f"http://localhost:{port}/notification"

        async with httpx.AsyncClient(base_url=f"http://127.0.0.1:{port}") as http:
            first = await http.post("/notification", json=_notification("handshake", 0))
            assert first.status_code == 200
            await asyncio.sleep(0.1)
            assert not task.done()
            assert fhir_server.calls("DELETE", "Subscription") == []

            second = await http.post("/notification", json=_notification("event-notification", 1))
            assert second.status_code == 200

        assert await asyncio.wait_for(task, timeout=10) == 0
        deletes = fhir_server.calls("DELETE", "Subscription")
        assert len(deletes) == 1
        assert deletes[0].url.path == "/fhir/Subscription/subscription-1"

    @pytest.mark.asyncio
    async def test_port_in_use_exits_one(self, fhir_client, fhir_server):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as taken:
            taken.bind(("127.0.0.1", 0))
            taken.listen()
            port = taken.getsockname()[1]

            exit_code = await asyncio.wait_for(serve(_config(port), client=fhir_client), timeout=10)

        assert exit_code == 1
        assert fhir_server.requests == []

    @pytest.mark.asyncio
    async def test_no_topics_exit_one(self, fhir_client, fhir_server):
        fhir_server.resources["Topic"].clear()

        exit_code = await asyncio.wait_for(
            serve(_config(_free_port()), client=fhir_client), timeout=10
        )

        assert exit_code == 1
        assert fhir_server.calls("POST", "Subscription") == []
