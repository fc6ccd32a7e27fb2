"""Unlock and anomaly event-lifecycle core."""
