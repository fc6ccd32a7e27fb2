"""Notification subscribers."""

from .webhook import WebhookNotifier

__all__ = ["WebhookNotifier"]
