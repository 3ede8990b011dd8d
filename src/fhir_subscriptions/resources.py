"""FHIR resource bodies sent by the subscriptions demo.

Each builder returns a plain JSON-ready dict; nothing here talks to the server.
"""

from __future__ import annotations

from typing import Any

FHIR_JSON = "application/fhir+json"

CHANNEL_TYPE_SYSTEM = "http://terminology.hl7.org/CodeSystem/subscription-channel-type"
ACT_CODE_SYSTEM = "http://terminology.hl7.org/CodeSystem/v3-ActCode"

# Seconds between heartbeat notifications requested from the server
HEARTBEAT_PERIOD = 60

DEFAULT_REASON = "DevDays Example - Python"


def patient_reference(patient_id: str) -> str:
    """Return the relative reference for a patient id."""
    return f"Patient/{patient_id}"


def build_patient(patient_id: str) -> dict[str, Any]:
    """Build the placeholder Patient stored at a caller-chosen id."""
    return {
        "resourceType": "Patient",
        "id": patient_id,
        "name": [
            {
                "family": "Patient",
                "given": ["DevDays"],
                "use": "official",
            }
        ],
        "gender": "unknown",
        "birthDate": "2019-11-20",
    }


def build_subscription(
    topic_url: str,
    patient_ref: str,
    endpoint: str,
    reason: str = DEFAULT_REASON,
) -> dict[str, Any]:
    """Build a rest-hook Subscription filtered to a single patient.

    Args:
        topic_url: Canonical URL of the topic to subscribe to
        patient_ref: Patient reference used as the filter value
        endpoint: Callback URL the server posts notifications to
        reason: Free-text reason stored on the Subscription

    Returns:
        Subscription resource in ``requested`` status
    """
    return {
        "resourceType": "Subscription",
        "channel": {
            "endpoint": endpoint,
            "header": [],
            "heartbeatPeriod": HEARTBEAT_PERIOD,
            "payload": {
                "content": "id-only",
                "contentType": FHIR_JSON,
            },
            "type": {
                "coding": [
                    {
                        "code": "rest-hook",
                        "display": "Rest Hook",
                        "system": CHANNEL_TYPE_SYSTEM,
                    }
                ],
                "text": "REST Hook",
            },
        },
        "filterBy": [
            {
                "matchType": "=",
                "name": "patient",
                "value": patient_ref,
            }
        ],
        "end": "",
        "topic": {"reference": topic_url},
        "reason": reason,
        "status": "requested",
    }


def build_encounter(patient_ref: str) -> dict[str, Any]:
    """Build an in-progress virtual Encounter for the patient."""
    return {
        "resourceType": "Encounter",
        "class": {
            "system": ACT_CODE_SYSTEM,
            "code": "VR",
        },
        "status": "in-progress",
        "subject": {
            "reference": patient_ref,
        },
    }
