"""Confirmation token sources standing in for chain observation."""

from __future__ import annotations

import secrets
from typing import Protocol

from chainwatch.domain.models import UnlockEvent


class ConfirmationSource(Protocol):
    """Supplies one opaque, globally unique token per real confirmation."""

    def confirmation_for(self, event: UnlockEvent) -> str | None:
        """Return the tx hash confirming ``event``, or None when not observed yet."""


class RandomTxHashSource:
    """Simulated on-chain confirmations: every due event is confirmed."""

    def __init__(self, hex_digits: int = 26) -> None:
        if hex_digits <= 0:
            raise ValueError("hex_digits must be positive")
        self.hex_digits = hex_digits

    def confirmation_for(self, event: UnlockEvent) -> str | None:
        _ = event
        return "0x" + secrets.token_hex((self.hex_digits + 1) // 2)[: self.hex_digits]
