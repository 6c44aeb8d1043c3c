import asyncio
import logging
from typing import NamedTuple, Optional

from app.core.errors import GatewayError, ValidationError
from app.schemas.schemas import PaymentMethodKind, PaymentResult, SavedPaymentInstrument
from app.services.gateway import PaymentGateway
from app.services.payment_session import PaymentSession

logger = logging.getLogger(__name__)


class CheckoutTicket(NamedTuple):
    amount: float
    method: PaymentMethodKind
    instrument: Optional[SavedPaymentInstrument]


def start_checkout(session: PaymentSession, instrument_id: Optional[str] = None) -> CheckoutTicket:
    """
    Validate that the session can be paid for and mark the payment in flight.
    Raises before touching the processing flag if anything is missing.
    """
    method = session.selected_method
    if method is None:
        raise ValidationError("Please select a payment method")
    breakdown = session.price_breakdown
    if breakdown is None:
        raise ValidationError("No price breakdown to pay for; request a quote first")

    if instrument_id:
        instrument = session.get_instrument(instrument_id)
        if instrument.kind != method:
            raise ValidationError(
                f"Instrument '{instrument_id}' is a {instrument.kind.value}, "
                f"not a {method.value}"
            )
    else:
        instrument = session.default_instrument()
        if instrument is not None and instrument.kind != method:
            instrument = None

    session.begin_payment(amount=breakdown.total, method=method,
                          instrument_id=instrument.id if instrument else None)
    logger.info("Session %s: payment of %s started via %s",
                session.session_id, breakdown.total, method.value)
    return CheckoutTicket(amount=breakdown.total, method=method, instrument=instrument)


async def settle_checkout(session: PaymentSession, gateway: PaymentGateway,
                          ticket: CheckoutTicket, timeout: Optional[float] = None) -> Optional[PaymentResult]:
    """
    Run the gateway charge for a started checkout and report the outcome
    back into the session. Gateway failures end in fail_payment, not an exception.
    """
    try:
        result = await asyncio.wait_for(
            gateway.charge(ticket.amount, ticket.method, ticket.instrument), timeout
        )
        if not result.ok:
            raise GatewayError(result.reason or "Payment failed")
    except asyncio.CancelledError:
        logger.warning("Session %s: payment cancelled", session.session_id)
        session.fail_payment("payment cancelled")
        raise
    except asyncio.TimeoutError:
        logger.warning("Session %s: gateway timeout", session.session_id)
        session.fail_payment("gateway timeout")
        return None
    except GatewayError as e:
        logger.warning("Session %s: payment failed: %s", session.session_id, e.message)
        session.fail_payment(e.message)
        return None
    except Exception as e:
        logger.exception("Session %s: gateway call raised", session.session_id)
        session.fail_payment(str(e) or e.__class__.__name__)
        return None

    payment = PaymentResult(
        transaction_ref=result.reference,
        amount=ticket.amount,
        method=ticket.method,
        instrument_id=ticket.instrument.id if ticket.instrument else None,
    )
    session.complete_payment(payment)
    logger.info("Session %s: payment settled (%s)", session.session_id, payment.transaction_ref)
    return payment
