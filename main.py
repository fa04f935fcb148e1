"""Deployment entry point; the functions runtime loads targets from main.py."""
from notification_dispatch.logging_config import setup_logging
from notification_dispatch.functions import match_trigger, message_trigger

setup_logging()

__all__ = ["message_trigger", "match_trigger"]
