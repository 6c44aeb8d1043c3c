from enum import Enum
from pydantic import BaseModel, Field, validator
from typing import List, Optional
from datetime import datetime, timezone


# ─── Enumerations ─────────────────────────────────────────────────────────────

class VehicleClass(str, Enum):
    bike = "bike"
    auto = "auto"
    car = "car"
    van = "van"
    truck = "truck"


class PaymentMethodKind(str, Enum):
    upi = "upi"
    wallet = "wallet"
    card = "card"
    cash = "cash"
    paypal = "paypal"
    razorpay = "razorpay"


# ─── Quote Schemas ────────────────────────────────────────────────────────────

class PriceBreakdown(BaseModel):
    base_fare: float
    distance_fare: float
    time_fare: float
    surge_fare: float
    tax: float
    total: float

    class Config:
        frozen = True

    @property
    def subtotal(self) -> float:
        return self.base_fare + self.distance_fare + self.time_fare + self.surge_fare


class QuoteRequest(BaseModel):
    distance_km: float = Field(..., allow_inf_nan=False)
    duration_minutes: float = Field(..., allow_inf_nan=False)
    vehicle_class: Optional[str] = Field(default=VehicleClass.bike.value)
    is_peak_hour: bool = False
    session_id: Optional[str] = None


class EstimateRequest(BaseModel):
    pickup_lat: float = Field(..., ge=-90, le=90)
    pickup_lng: float = Field(..., ge=-180, le=180)
    dest_lat: float = Field(..., ge=-90, le=90)
    dest_lng: float = Field(..., ge=-180, le=180)
    vehicle_class: Optional[str] = Field(default=VehicleClass.bike.value)
    is_peak_hour: bool = False
    session_id: Optional[str] = None


class QuoteResponse(BaseModel):
    vehicle_class: VehicleClass
    distance_km: float
    duration_minutes: float
    is_peak_hour: bool
    subtotal: float
    breakdown: PriceBreakdown


# ─── Payment Instrument Schemas ───────────────────────────────────────────────

class InstrumentCreate(BaseModel):
    """Fields a user submits when saving a payment instrument."""
    kind: PaymentMethodKind
    name: Optional[str] = None
    card_number: Optional[str] = None
    expiry: Optional[str] = None
    upi_id: Optional[str] = None
    is_default: bool = False


class SavedPaymentInstrument(BaseModel):
    id: str
    kind: PaymentMethodKind
    display_name: str
    last4: Optional[str] = None
    expiry: Optional[str] = None
    is_default: bool = False


class PaymentMethodSelect(BaseModel):
    method: Optional[PaymentMethodKind] = None


# ─── Payment Schemas ──────────────────────────────────────────────────────────

class PaymentResult(BaseModel):
    transaction_ref: str
    amount: float
    method: PaymentMethodKind
    instrument_id: Optional[str] = None
    completed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class PaymentRecord(BaseModel):
    """One settled payment attempt, successful or not."""
    id: str
    status: str
    amount: Optional[float] = None
    method: Optional[PaymentMethodKind] = None
    instrument_id: Optional[str] = None
    transaction_ref: Optional[str] = None
    reason: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class PaymentHistoryResponse(BaseModel):
    session_id: str
    count: int
    total: int
    page: int
    pages: int
    payments: List[PaymentRecord]


class CheckoutRequest(BaseModel):
    instrument_id: Optional[str] = None


class CheckoutResponse(BaseModel):
    session_id: str
    status: str
    amount: float
    method: PaymentMethodKind
    instrument_id: Optional[str]


class PaymentStatusResponse(BaseModel):
    session_id: str
    status: str
    last_error: Optional[str]
    last_payment: Optional[PaymentResult]


# ─── Session Schemas ──────────────────────────────────────────────────────────

class SessionCreate(BaseModel):
    seed_instruments: Optional[bool] = None


class SessionResponse(BaseModel):
    session_id: str
    selected_method: Optional[PaymentMethodKind]
    saved_instruments: List[SavedPaymentInstrument]
    price_breakdown: Optional[PriceBreakdown]
    is_processing_payment: bool
    last_error: Optional[str]
    last_payment: Optional[PaymentResult]

    @validator("saved_instruments")
    def at_most_one_default(cls, v):
        if sum(1 for i in v if i.is_default) > 1:
            raise ValueError("more than one default instrument")
        return v
