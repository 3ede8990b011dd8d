"""Command-line entry point for the subscriptions demo.

Usage:
    fhir-subscriptions
    fhir-subscriptions --topic-resource SubscriptionTopic --new-patient
    PORT=8080 SUBSCRIPTIONS_PUBLIC_URL=https://example.ngrok.io/notification fhir-subscriptions
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import replace

import uvicorn

from .api.config import TOPIC_RESOURCES, ListenerConfig, generate_patient_id, get_config
from .api.main import create_app
from .client import FhirClient
from .orchestrator import SubscriptionRun

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Create a FHIR subscription, trigger it and log the notifications",
    )
    parser.add_argument(
        "--port", type=int, default=None,
        help="Local listen port (default: $PORT or 32019)",
    )
    parser.add_argument(
        "--public-url", type=str, default=None,
        help="Public notification URL to register (default: local URL)",
    )
    parser.add_argument(
        "--fhir-server", type=str, default=None,
        help="FHIR server base URL",
    )
    parser.add_argument(
        "--topic-resource", choices=TOPIC_RESOURCES, default=None,
        help="Resource name the server uses for topics",
    )
    parser.add_argument(
        "--patient-id", type=str, default=None,
        help="Patient id to subscribe to (created if missing)",
    )
    parser.add_argument(
        "--new-patient", action="store_true",
        help="Generate a fresh patient id instead of the shared demo patient",
    )
    parser.add_argument(
        "--notifications", type=int, default=None,
        help="Number of notifications to receive before cleaning up",
    )
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace, base: ListenerConfig | None = None) -> ListenerConfig:
    """Apply command-line overrides on top of the environment configuration."""
    config = base or get_config()
    overrides = {
        "port": args.port,
        "public_url": args.public_url,
        "fhir_server_url": args.fhir_server,
        "topic_resource": args.topic_resource,
        "patient_id": args.patient_id,
        "notification_limit": args.notifications,
    }
    config = replace(config, **{k: v for k, v in overrides.items() if v is not None})
    if args.new_patient:
        config = replace(config, patient_id=generate_patient_id())
    return config


async def _run_server(server: uvicorn.Server) -> None:
    """Serve until told to exit; a failed bind ends the task instead of the process."""
    try:
        await server.serve()
    except SystemExit:
        # uvicorn exits when it cannot bind the listen socket
        logger.error("Listener stopped during startup")


async def serve(config: ListenerConfig, client: FhirClient | None = None) -> int:
    """Run the listener and the subscription lifecycle until the run finishes.

    Args:
        config: Listener and run configuration
        client: Optional FHIR client. If None, one is built for
            ``config.fhir_server_url``.

    Returns:
        Process exit code
    """
    if client is None:
        client = FhirClient(config.fhir_server_url, timeout=config.request_timeout)
    run = SubscriptionRun(
        client,
        patient_id=config.patient_id,
        callback_url=config.callback_url,
        topic_resource=config.topic_resource,
        notification_limit=config.notification_limit,
    )
    server = uvicorn.Server(
        uvicorn.Config(
            create_app(config, run),
            host=config.host,
            port=config.port,
            log_level=config.log_level,
        )
    )

    server_task = asyncio.create_task(_run_server(server))
    try:
        # Notifications can arrive as soon as the subscription exists
        while not server.started:
            if server_task.done():
                logger.error(f"Failed to start listener on port {config.port}")
                return 1
            await asyncio.sleep(0.05)

        logger.info(f"Listening on http://localhost:{config.port}")
        logger.info(f"Notifications will be sent to {config.callback_url}")

        await run.start()
        return await run.wait()
    finally:
        server.should_exit = True
        if not server_task.done():
            await server_task
        await client.close()


def main(argv: list[str] | None = None) -> None:
    """Entry point for the fhir-subscriptions command."""
    args = parse_args(argv)
    config = build_config(args)

    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    sys.exit(asyncio.run(serve(config)))


if __name__ == "__main__":
    main()
