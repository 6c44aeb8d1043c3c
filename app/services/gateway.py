import uuid
import random
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import NamedTuple, Optional

from app.core.config import get_settings
from app.schemas.schemas import PaymentMethodKind, SavedPaymentInstrument

logger = logging.getLogger(__name__)


class GatewayResult(NamedTuple):
    ok: bool
    reference: Optional[str] = None
    reason: Optional[str] = None


class PaymentGateway(ABC):
    @abstractmethod
    async def charge(self, amount: float, method: PaymentMethodKind,
                     instrument: Optional[SavedPaymentInstrument] = None) -> GatewayResult:
        """Charge the amount and return the PSP reference or a failure reason."""
        raise NotImplementedError()


class SimulatedGateway(PaymentGateway):
    """
    Simulate an external PSP call (Stripe/Razorpay).
    In production, replace with actual PSP SDK call.
    """

    def __init__(self, latency: float = 0.5, success_rate: float = 0.95,
                 currency: str = "INR", rng: Optional[random.Random] = None):
        self.latency = latency
        self.success_rate = success_rate
        self.currency = currency
        self._rng = rng or random.Random()

    async def charge(self, amount, method, instrument=None):
        # Cash is collected by the delivery partner, nothing to authorise
        if method == PaymentMethodKind.cash:
            return GatewayResult(ok=True, reference=f"TXN{uuid.uuid4().hex[:12].upper()}")

        await asyncio.sleep(self.latency)  # Simulate PSP latency

        if self._rng.random() < self.success_rate:
            ref = f"psp_{uuid.uuid4().hex[:12]}"
            logger.info("Charged %.2f %s via %s (%s)", amount, self.currency, method.value, ref)
            return GatewayResult(ok=True, reference=ref)

        logger.warning("PSP declined %.2f %s via %s", amount, self.currency, method.value)
        return GatewayResult(ok=False, reason="Payment declined by provider")


def get_gateway() -> PaymentGateway:
    settings = get_settings()
    return SimulatedGateway(
        latency=settings.gateway_latency_seconds,
        success_rate=settings.gateway_success_rate,
        currency=settings.currency,
    )
