"""Whale transfer detector."""

from __future__ import annotations

from dataclasses import dataclass

from chainwatch.config import Settings
from chainwatch.detectors.base import Detector, new_anomaly_id
from chainwatch.domain.models import AnomalyCategory, AnomalyEvent, Severity
from chainwatch.signals import MarketSignal


@dataclass(frozen=True)
class WhaleTransferParams:
    """Magnitude thresholds for whale transfers."""

    min_amount: float = 500_000.0
    critical_amount: float = 800_000.0
    usd_price: float = 0.7


def default_whale_transfer_params() -> WhaleTransferParams:
    return WhaleTransferParams()


def params_from_settings(settings: Settings) -> WhaleTransferParams:
    return WhaleTransferParams(
        min_amount=settings.whale_min_amount,
        critical_amount=settings.whale_critical_amount,
    )


class WhaleTransferDetector(Detector):
    """Flag the largest transfer at or above ``min_amount``."""

    detector_id = "whale_transfer"
    category = AnomalyCategory.WHALE_TRANSFER

    def __init__(self, params: WhaleTransferParams) -> None:
        if params.min_amount <= 0:
            raise ValueError("min_amount must be positive")
        if params.critical_amount < params.min_amount:
            raise ValueError("critical_amount must be at least min_amount")
        self.params = params

    def detect(self, signal: MarketSignal) -> AnomalyEvent | None:
        candidates = [t for t in signal.transfers if t.amount >= self.params.min_amount]
        if not candidates:
            return None
        transfer = max(candidates, key=lambda item: (item.amount, item.wallet_address))
        price = transfer.usd_price if transfer.usd_price is not None else self.params.usd_price
        usd_value = transfer.amount * price
        if transfer.amount > self.params.critical_amount:
            severity = Severity.CRITICAL
        else:
            severity = Severity.HIGH
        return AnomalyEvent(
            id=new_anomaly_id("whale"),
            category=self.category,
            severity=severity,
            title="Large Whale Transfer Detected",
            description=(
                f"Whale transferred {transfer.amount:,.0f} {transfer.token} "
                f"({usd_value:,.0f} USD)"
            ),
            created_at=signal.observed_at,
            wallet_address=transfer.wallet_address,
            amount=transfer.amount,
            token=transfer.token,
            metadata={"usdValue": usd_value, "direction": transfer.direction},
        )
