"""Flash loan attack detector."""

from __future__ import annotations

from dataclasses import dataclass

from chainwatch.config import Settings
from chainwatch.detectors.base import Detector, new_anomaly_id
from chainwatch.domain.models import AnomalyCategory, AnomalyEvent, Severity
from chainwatch.signals import MarketSignal


@dataclass(frozen=True)
class FlashLoanParams:
    min_amount: float = 1_000_000.0


def default_flash_loan_params() -> FlashLoanParams:
    return FlashLoanParams()


def params_from_settings(settings: Settings) -> FlashLoanParams:
    return FlashLoanParams(min_amount=settings.flash_loan_min_amount)


class FlashLoanDetector(Detector):
    """Every qualifying flash loan is critical."""

    detector_id = "flash_loan"
    category = AnomalyCategory.FLASH_LOAN

    def __init__(self, params: FlashLoanParams) -> None:
        if params.min_amount <= 0:
            raise ValueError("min_amount must be positive")
        self.params = params

    def detect(self, signal: MarketSignal) -> AnomalyEvent | None:
        loans = [loan for loan in signal.flash_loans if loan.amount >= self.params.min_amount]
        if not loans:
            return None
        loan = max(loans, key=lambda item: (item.amount, item.wallet_address))
        return AnomalyEvent(
            id=new_anomaly_id("flash"),
            category=self.category,
            severity=Severity.CRITICAL,
            title="Potential Flash Loan Attack",
            description=(
                f"Flash loan of {loan.amount:,.0f} {loan.token} detected "
                "with suspicious arbitrage pattern"
            ),
            created_at=signal.observed_at,
            wallet_address=loan.wallet_address,
            amount=loan.amount,
            token=loan.token,
            metadata={"profit": loan.profit, "protocols": list(loan.protocols)},
        )
