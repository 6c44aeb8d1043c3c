import re
import uuid
import logging
import threading
from typing import List, Optional

from app.core.errors import InvalidStateError, NotFoundError, ValidationError
from app.schemas.schemas import (
    InstrumentCreate, PaymentMethodKind, PaymentRecord, PaymentResult, PriceBreakdown,
    SavedPaymentInstrument,
)
from app.services.pricing import compute_quote

logger = logging.getLogger(__name__)

IDLE = "idle"
PROCESSING = "processing"

_EXPIRY_RE = re.compile(r"^(0[1-9]|1[0-2])/(\d{2}|\d{4})$")

# Instruments every new session starts with unless seeding is turned off
DEMO_INSTRUMENTS = [
    InstrumentCreate(kind=PaymentMethodKind.card, name="Visa",
                     card_number="4242 4242 4242 4242", expiry="12/25", is_default=True),
    InstrumentCreate(kind=PaymentMethodKind.upi, upi_id="user@okbank"),
]


def _blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def build_instrument(spec: InstrumentCreate) -> SavedPaymentInstrument:
    """
    Validate submitted instrument fields and build the saved form.
    Only the last four digits of a card number are kept.
    """
    kind = PaymentMethodKind(spec.kind)

    if kind == PaymentMethodKind.card:
        missing = [f for f in ("name", "card_number", "expiry") if _blank(getattr(spec, f))]
        if missing:
            raise ValidationError(f"card requires {', '.join(missing)}")
        digits = re.sub(r"[\s-]", "", spec.card_number)
        if not digits.isdigit() or not 12 <= len(digits) <= 19:
            raise ValidationError("card_number must contain 12 to 19 digits")
        expiry = spec.expiry.strip()
        if not _EXPIRY_RE.match(expiry):
            raise ValidationError("expiry must be formatted MM/YY")
        display_name, last4 = spec.name.strip(), digits[-4:]
    elif kind == PaymentMethodKind.upi:
        if _blank(spec.upi_id):
            raise ValidationError("upi requires upi_id")
        if "@" not in spec.upi_id:
            raise ValidationError("upi_id must look like name@bank")
        display_name, last4, expiry = spec.upi_id.strip(), None, None
    elif kind == PaymentMethodKind.cash:
        raise ValidationError("cash is paid on delivery and cannot be saved")
    else:
        display_name = spec.name.strip() if not _blank(spec.name) else kind.value.title()
        last4, expiry = None, None

    return SavedPaymentInstrument(
        id=uuid.uuid4().hex[:12],
        kind=kind,
        display_name=display_name,
        last4=last4,
        expiry=expiry,
        is_default=spec.is_default,
    )


class PaymentSession:
    """
    Payment state for one user session: selected method, saved instruments,
    current price breakdown and the in-flight payment flag.

    All mutations take the session lock, so a session may be shared between
    concurrent requests. Only one payment can be in flight at a time.
    """

    def __init__(self, session_id: Optional[str] = None,
                 instruments: Optional[List[InstrumentCreate]] = None,
                 reject_negative_trip_inputs: bool = True,
                 lock_instruments_while_processing: bool = False):
        self.session_id = session_id or uuid.uuid4().hex
        self.reject_negative_trip_inputs = reject_negative_trip_inputs
        self.lock_instruments_while_processing = lock_instruments_while_processing

        self._lock = threading.RLock()
        self._selected_method: Optional[PaymentMethodKind] = None
        self._instruments: List[SavedPaymentInstrument] = []
        self._price_breakdown: Optional[PriceBreakdown] = None
        self._processing = False
        self._last_error: Optional[str] = None
        self._last_payment: Optional[PaymentResult] = None
        self._pending: dict = {}
        self._payments: List[PaymentRecord] = []

        for spec in instruments or []:
            self.add_instrument(spec)

    # ─── Read side ────────────────────────────────────────────────────────────

    @property
    def selected_method(self) -> Optional[PaymentMethodKind]:
        return self._selected_method

    @property
    def saved_instruments(self) -> List[SavedPaymentInstrument]:
        with self._lock:
            return [i.model_copy() for i in self._instruments]

    @property
    def price_breakdown(self) -> Optional[PriceBreakdown]:
        return self._price_breakdown

    @property
    def is_processing_payment(self) -> bool:
        return self._processing

    @property
    def status(self) -> str:
        return PROCESSING if self._processing else IDLE

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    @property
    def last_payment(self) -> Optional[PaymentResult]:
        return self._last_payment

    @property
    def payments(self) -> List[PaymentRecord]:
        """Settled payment attempts, oldest first."""
        with self._lock:
            return [p.model_copy() for p in self._payments]

    def get_payment(self, payment_ref: str) -> PaymentRecord:
        """Look up an attempt by its record id or gateway transaction reference."""
        with self._lock:
            for record in self._payments:
                if payment_ref in (record.id, record.transaction_ref):
                    return record.model_copy()
        raise NotFoundError(f"Payment '{payment_ref}' not found")

    def get_instrument(self, instrument_id: str) -> SavedPaymentInstrument:
        with self._lock:
            for inst in self._instruments:
                if inst.id == instrument_id:
                    return inst.model_copy()
        raise NotFoundError(f"Payment instrument '{instrument_id}' not found")

    def default_instrument(self) -> Optional[SavedPaymentInstrument]:
        with self._lock:
            for inst in self._instruments:
                if inst.is_default:
                    return inst.model_copy()
        return None

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "session_id": self.session_id,
                "selected_method": self._selected_method,
                "saved_instruments": self.saved_instruments,
                "price_breakdown": self._price_breakdown,
                "is_processing_payment": self._processing,
                "last_error": self._last_error,
                "last_payment": self._last_payment,
            }

    # ─── Quote ────────────────────────────────────────────────────────────────

    def quote(self, distance_km: float, duration_minutes: float, vehicle_class,
              is_peak_hour: bool = False) -> PriceBreakdown:
        """Compute a quote and publish it as the session's current breakdown."""
        breakdown = compute_quote(
            distance_km, duration_minutes, vehicle_class, is_peak_hour,
            reject_negative=self.reject_negative_trip_inputs,
        )
        self.set_price_breakdown(breakdown)
        return breakdown

    def set_price_breakdown(self, breakdown: Optional[PriceBreakdown]):
        with self._lock:
            self._price_breakdown = breakdown

    # ─── Method & instruments ─────────────────────────────────────────────────

    def _check_mutable(self, action: str):
        if self.lock_instruments_while_processing and self._processing:
            raise InvalidStateError(f"Cannot {action} while a payment is processing")

    def select_method(self, kind: Optional[PaymentMethodKind]):
        with self._lock:
            self._check_mutable("change payment method")
            if kind is None:
                self._selected_method = None
                return
            try:
                self._selected_method = PaymentMethodKind(kind)
            except ValueError:
                raise ValidationError(f"Unknown payment method '{kind}'")

    def add_instrument(self, spec: InstrumentCreate) -> SavedPaymentInstrument:
        with self._lock:
            self._check_mutable("add a payment instrument")
            instrument = build_instrument(spec)
            if instrument.is_default:
                for existing in self._instruments:
                    existing.is_default = False
            self._instruments.append(instrument)
            logger.info("Session %s: saved %s instrument %s",
                        self.session_id, instrument.kind.value, instrument.id)
            return instrument.model_copy()

    def remove_instrument(self, instrument_id: str) -> bool:
        """
        Remove an instrument. Unknown ids are ignored and return False.
        Removing the default leaves the session without one.
        """
        with self._lock:
            self._check_mutable("remove a payment instrument")
            remaining = [i for i in self._instruments if i.id != instrument_id]
            removed = len(remaining) != len(self._instruments)
            self._instruments = remaining
            return removed

    def set_default_instrument(self, instrument_id: str):
        with self._lock:
            self._check_mutable("change the default instrument")
            if not any(i.id == instrument_id for i in self._instruments):
                raise NotFoundError(f"Payment instrument '{instrument_id}' not found")
            for inst in self._instruments:
                inst.is_default = inst.id == instrument_id

    # ─── Payment lifecycle ────────────────────────────────────────────────────

    def begin_payment(self, amount: Optional[float] = None,
                      method: Optional[PaymentMethodKind] = None,
                      instrument_id: Optional[str] = None):
        """
        Mark a payment in flight. Amount and method default to the current
        breakdown total and selected method, and are kept for the history record.
        """
        with self._lock:
            if self._processing:
                raise InvalidStateError("A payment is already in progress")
            if amount is None and self._price_breakdown is not None:
                amount = self._price_breakdown.total
            self._pending = {
                "amount": amount,
                "method": method if method is not None else self._selected_method,
                "instrument_id": instrument_id,
            }
            self._processing = True

    def complete_payment(self, result: PaymentResult):
        with self._lock:
            if not self._processing:
                raise InvalidStateError("No payment in progress")
            self._processing = False
            self._last_error = None
            self._last_payment = result
            self._record("completed", amount=result.amount, method=result.method,
                         instrument_id=result.instrument_id,
                         transaction_ref=result.transaction_ref)

    def fail_payment(self, error: str):
        with self._lock:
            if not self._processing:
                raise InvalidStateError("No payment in progress")
            self._processing = False
            self._last_error = str(error)
            self._record("failed", reason=self._last_error, **self._pending)

    def _record(self, status: str, **fields):
        self._payments.append(PaymentRecord(id=uuid.uuid4().hex[:12], status=status, **fields))
        self._pending = {}
