import asyncio
import pytest
from app.services.gateway import GatewayResult, PaymentGateway


class StubGateway(PaymentGateway):
    """Deterministic gateway: returns a canned result, optionally after a delay or by raising."""

    def __init__(self, result=None, exc=None, delay=0.0):
        self.result = result or GatewayResult(ok=True, reference="psp_test0001")
        self.exc = exc
        self.delay = delay
        self.calls = []

    async def charge(self, amount, method, instrument=None):
        self.calls.append((amount, method, instrument.id if instrument else None))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.exc:
            raise self.exc
        return self.result


@pytest.fixture
def stub_gateway():
    return StubGateway()


@pytest.fixture
def gateway_factory():
    return StubGateway
