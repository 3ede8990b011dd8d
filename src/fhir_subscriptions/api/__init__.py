"""Notification listener HTTP API."""

from .config import ListenerConfig, get_config
from .main import create_app

__all__ = ["ListenerConfig", "create_app", "get_config"]
