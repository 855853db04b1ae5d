# eventcare/services/payment_gateway.py
from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass

from ..errors import ExternalServiceError
from .result import Result

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class CaptureReceipt:
    transaction_id: str
    amount: int


class MockPaymentGateway:
    """Stand-in for the card/bank capture call.

    Keeps the contract of a real gateway (synchronous request/response,
    a transaction reference on success, an error on decline) without any
    banking rails behind it.
    """

    def __init__(self, fail: bool = False):
        self.fail = fail

    @classmethod
    def from_config(cls, config) -> "MockPaymentGateway":
        return cls(fail=bool(config.get("PAYMENT_GATEWAY_FAIL", False)))

    def capture(self, escrow) -> Result[CaptureReceipt]:
        if self.fail:
            log.warning("Mock capture declined escrow=%s amount=%s", escrow.id, escrow.gross_amount)
            return Result.failure(ExternalServiceError(
                "Payment capture was declined by the gateway.",
                code="PAYMENT_CAPTURE_FAILED",
                details={"escrowId": escrow.id},
            ))
        tx_id = f"mock_tx_{int(time.time() * 1000)}_{secrets.token_hex(5)}"
        log.info("Mock capture ok escrow=%s amount=%s tx=%s", escrow.id, escrow.gross_amount, tx_id)
        return Result.success(CaptureReceipt(transaction_id=tx_id, amount=escrow.gross_amount))
