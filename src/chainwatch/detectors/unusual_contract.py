"""Unverified contract interaction detector."""

from __future__ import annotations

from dataclasses import dataclass

from chainwatch.config import Settings
from chainwatch.detectors.base import Detector, new_anomaly_id
from chainwatch.domain.models import AnomalyCategory, AnomalyEvent, Severity
from chainwatch.signals import MarketSignal


@dataclass(frozen=True)
class UnusualContractParams:
    min_interactions: int = 10


def default_unusual_contract_params() -> UnusualContractParams:
    return UnusualContractParams()


def params_from_settings(settings: Settings) -> UnusualContractParams:
    return UnusualContractParams(min_interactions=settings.contract_min_interactions)


class UnusualContractDetector(Detector):
    detector_id = "unusual_contract"
    category = AnomalyCategory.UNUSUAL_CONTRACT

    def __init__(self, params: UnusualContractParams) -> None:
        if params.min_interactions <= 0:
            raise ValueError("min_interactions must be positive")
        self.params = params

    def detect(self, signal: MarketSignal) -> AnomalyEvent | None:
        risky = [
            item
            for item in signal.contract_interactions
            if not item.verified and item.interaction_count >= self.params.min_interactions
        ]
        if not risky:
            return None
        interaction = max(risky, key=lambda item: (item.interaction_count, item.contract_address))
        return AnomalyEvent(
            id=new_anomaly_id("contract"),
            category=self.category,
            severity=Severity.MEDIUM,
            title="Risky Contract Interaction",
            description="Multiple wallets interacting with newly deployed unverified contract",
            created_at=signal.observed_at,
            wallet_address=interaction.wallet_address,
            metadata={
                "contractAddress": interaction.contract_address,
                "interactionCount": interaction.interaction_count,
            },
        )
