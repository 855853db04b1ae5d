# eventcare/services/fees.py
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from ..errors import ValidationError
from ..models.payout import PayoutMethod

METHOD_DESCRIPTIONS = {
    PayoutMethod.INSTANT: "Instant transfer (higher fee)",
    PayoutMethod.SCHEDULED: "Scheduled transfer on the monthly cycle (lower fee)",
}


def round_yen(value: Decimal) -> int:
    """Single rounding rule for every fee: whole yen, half rounds up."""
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def parse_method(method) -> PayoutMethod:
    if isinstance(method, PayoutMethod):
        return method
    try:
        return PayoutMethod(str(method).strip().lower())
    except ValueError:
        raise ValidationError(
            f"Unknown payment method: {method!r}",
            code="INVALID_PAYMENT_METHOD",
            details={"allowed": [m.value for m in PayoutMethod]},
        ) from None


@dataclass(frozen=True)
class FeeCalculation:
    base_amount: int
    platform_fee: int
    payment_fee: int
    net_amount: int
    breakdown: dict = field(default_factory=dict)

    @property
    def total_fee(self) -> int:
        return self.platform_fee + self.payment_fee

    def to_dict(self) -> dict:
        return {
            "baseAmount": self.base_amount,
            "platformFee": self.platform_fee,
            "paymentFee": self.payment_fee,
            "totalFee": self.total_fee,
            "netAmount": self.net_amount,
            "breakdown": self.breakdown,
        }


class FeeCalculator:
    """Platform and payment-method fees for a gross amount. Pure."""

    def __init__(self, platform_rate="0.10", instant_rate="0.03", scheduled_rate="0.01",
                 minimum_fee: Optional[int] = None, maximum_fee: Optional[int] = None):
        self.platform_rate = Decimal(str(platform_rate))
        self.method_rates = {
            PayoutMethod.INSTANT: Decimal(str(instant_rate)),
            PayoutMethod.SCHEDULED: Decimal(str(scheduled_rate)),
        }
        self.minimum_fee = minimum_fee
        self.maximum_fee = maximum_fee

    @classmethod
    def from_config(cls, config) -> "FeeCalculator":
        return cls(
            platform_rate=config.get("PLATFORM_FEE_RATE", "0.10"),
            instant_rate=config.get("INSTANT_PAYMENT_FEE_RATE", "0.03"),
            scheduled_rate=config.get("SCHEDULED_PAYMENT_FEE_RATE", "0.01"),
            minimum_fee=config.get("PAYMENT_FEE_MINIMUM"),
            maximum_fee=config.get("PAYMENT_FEE_MAXIMUM"),
        )

    @staticmethod
    def _check_amount(amount) -> int:
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise ValidationError("Amount must be a whole number of yen.", code="INVALID_AMOUNT")
        if amount <= 0:
            raise ValidationError("Amount must be positive.", code="INVALID_AMOUNT",
                                  details={"amount": amount})
        return amount

    def platform_fee(self, amount: int) -> int:
        return round_yen(Decimal(self._check_amount(amount)) * self.platform_rate)

    def payment_fee(self, base: int, method) -> int:
        """Method fee on an amount the platform fee was already taken from."""
        method = parse_method(method)
        if base <= 0:
            return 0
        fee = round_yen(Decimal(base) * self.method_rates[method])
        if self.minimum_fee is not None:
            fee = max(fee, self.minimum_fee)
        if self.maximum_fee is not None:
            fee = min(fee, self.maximum_fee)
        # a clamp must never push the net payout below zero
        return min(fee, base)

    def calculate_fees(self, amount: int, method) -> FeeCalculation:
        method = parse_method(method)
        amount = self._check_amount(amount)
        platform_fee = self.platform_fee(amount)
        payment_fee = self.payment_fee(amount - platform_fee, method)
        net = amount - platform_fee - payment_fee
        return FeeCalculation(
            base_amount=amount,
            platform_fee=platform_fee,
            payment_fee=payment_fee,
            net_amount=net,
            breakdown={
                "platformFeeRate": str(self.platform_rate),
                "paymentFeeRate": str(self.method_rates[method]),
                "method": method.value,
                "description": METHOD_DESCRIPTIONS[method],
            },
        )
