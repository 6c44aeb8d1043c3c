import random
import asyncio
import pytest
from app.core.errors import InvalidStateError, NotFoundError, ValidationError
from app.schemas.schemas import PaymentMethodKind
from app.services.checkout import settle_checkout, start_checkout
from app.services.gateway import GatewayResult, SimulatedGateway
from app.services.payment_session import DEMO_INSTRUMENTS, PaymentSession


@pytest.fixture
def session():
    s = PaymentSession(instruments=DEMO_INSTRUMENTS)
    s.quote(5, 30, "bike")
    return s


class TestStartCheckout:
    def test_requires_selected_method(self, session):
        with pytest.raises(ValidationError):
            start_checkout(session)
        assert session.is_processing_payment is False

    def test_requires_breakdown(self):
        s = PaymentSession()
        s.select_method("cash")
        with pytest.raises(ValidationError):
            start_checkout(s)
        assert s.is_processing_payment is False

    def test_uses_default_instrument_of_matching_kind(self, session):
        session.select_method("card")
        ticket = start_checkout(session)
        assert ticket.amount == 130
        assert ticket.method == PaymentMethodKind.card
        assert ticket.instrument.last4 == "4242"
        assert session.is_processing_payment is True

    def test_default_of_other_kind_is_ignored(self, session):
        session.select_method("cash")
        assert start_checkout(session).instrument is None

    def test_explicit_instrument(self, session):
        upi = session.saved_instruments[1]
        session.select_method("upi")
        assert start_checkout(session, upi.id).instrument.id == upi.id

    def test_explicit_instrument_kind_mismatch(self, session):
        session.select_method("card")
        with pytest.raises(ValidationError):
            start_checkout(session, session.saved_instruments[1].id)
        assert session.is_processing_payment is False

    def test_unknown_instrument(self, session):
        session.select_method("card")
        with pytest.raises(NotFoundError):
            start_checkout(session, "missing")

    def test_second_checkout_rejected(self, session):
        session.select_method("cash")
        start_checkout(session)
        with pytest.raises(InvalidStateError):
            start_checkout(session)


class TestSettleCheckout:
    @pytest.mark.asyncio
    async def test_success_completes_payment(self, session, stub_gateway):
        session.select_method("card")
        ticket = start_checkout(session)
        payment = await settle_checkout(session, stub_gateway, ticket)
        assert payment.transaction_ref == "psp_test0001"
        assert payment.amount == 130
        assert payment.instrument_id == ticket.instrument.id
        assert session.last_payment == payment
        assert session.is_processing_payment is False
        assert stub_gateway.calls == [(130, PaymentMethodKind.card, ticket.instrument.id)]

    @pytest.mark.asyncio
    async def test_declined_fails_payment(self, session, gateway_factory):
        gateway = gateway_factory(result=GatewayResult(ok=False, reason="insufficient funds"))
        session.select_method("upi")
        payment = await settle_checkout(session, gateway, start_checkout(session))
        assert payment is None
        assert session.last_error == "insufficient funds"
        assert session.is_processing_payment is False

    @pytest.mark.asyncio
    async def test_timeout_then_retry(self, session, stub_gateway, gateway_factory):
        slow = gateway_factory(delay=1.0)
        session.select_method("upi")
        await settle_checkout(session, slow, start_checkout(session), timeout=0.01)
        assert session.last_error == "gateway timeout"

        payment = await settle_checkout(session, stub_gateway, start_checkout(session))
        assert payment is not None
        assert session.last_error is None

    @pytest.mark.asyncio
    async def test_gateway_exception_is_recorded(self, session, gateway_factory):
        gateway = gateway_factory(exc=ConnectionError("connection reset"))
        session.select_method("wallet")
        await settle_checkout(session, gateway, start_checkout(session))
        assert session.last_error == "connection reset"
        assert session.is_processing_payment is False


class TestSimulatedGateway:
    @pytest.mark.asyncio
    async def test_cash_settles_without_psp(self):
        result = await SimulatedGateway(latency=0, success_rate=0).charge(130, PaymentMethodKind.cash)
        assert result.ok
        assert result.reference.startswith("TXN")
        assert len(result.reference) == 15

    @pytest.mark.asyncio
    async def test_psp_success(self):
        result = await SimulatedGateway(latency=0, success_rate=1.0).charge(130, PaymentMethodKind.card)
        assert result.ok
        assert result.reference.startswith("psp_")

    @pytest.mark.asyncio
    async def test_psp_decline(self):
        gateway = SimulatedGateway(latency=0, success_rate=0.0, rng=random.Random(7))
        result = await gateway.charge(130, PaymentMethodKind.upi)
        assert not result.ok
        assert result.reason


class TestCancelledCheckout:
    @pytest.mark.asyncio
    async def test_cancel_returns_session_to_idle(self, session, gateway_factory):
        session.select_method("upi")
        ticket = start_checkout(session)
        task = asyncio.create_task(settle_checkout(session, gateway_factory(delay=5.0), ticket))
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert session.is_processing_payment is False
        assert session.last_error == "payment cancelled"
        assert session.payments[-1].reason == "payment cancelled"

    @pytest.mark.asyncio
    async def test_checkout_possible_after_cancel(self, session, gateway_factory, stub_gateway):
        session.select_method("upi")
        task = asyncio.create_task(
            settle_checkout(session, gateway_factory(delay=5.0), start_checkout(session))
        )
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        payment = await settle_checkout(session, stub_gateway, start_checkout(session))
        assert payment is not None
        assert [p.status for p in session.payments] == ["failed", "completed"]


class TestCheckoutHistory:
    @pytest.mark.asyncio
    async def test_attempts_recorded_with_amount_and_method(self, session, gateway_factory, stub_gateway):
        session.select_method("card")
        declined = gateway_factory(result=GatewayResult(ok=False, reason="card declined"))
        await settle_checkout(session, declined, start_checkout(session))
        await settle_checkout(session, stub_gateway, start_checkout(session))

        failed, completed = session.payments
        assert failed.status == "failed"
        assert failed.reason == "card declined"
        assert failed.amount == 130
        assert failed.method == PaymentMethodKind.card
        assert failed.instrument_id == session.saved_instruments[0].id
        assert failed.transaction_ref is None
        assert completed.status == "completed"
        assert completed.transaction_ref == "psp_test0001"
        assert session.get_payment("psp_test0001").id == completed.id
