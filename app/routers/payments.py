import math
from typing import Optional
from fastapi import APIRouter, BackgroundTasks, Depends, Query
from app.core.config import Settings, get_settings
from app.core.sessions import SessionStore, get_session_store
from app.schemas.schemas import (
    CheckoutRequest, CheckoutResponse, InstrumentCreate, PaymentMethodSelect,
    PaymentHistoryResponse, PaymentRecord, PaymentStatusResponse, SavedPaymentInstrument,
    SessionResponse,
)
from app.services.checkout import settle_checkout, start_checkout
from app.services.gateway import PaymentGateway, get_gateway

router = APIRouter(prefix="/v1/sessions/{session_id}", tags=["Payments"])


@router.put("/payment-method", response_model=SessionResponse)
async def select_payment_method(session_id: str, payload: PaymentMethodSelect,
                                store: SessionStore = Depends(get_session_store)):
    session = store.get(session_id)
    session.select_method(payload.method)
    return session.snapshot()


@router.post("/instruments", status_code=201, response_model=SavedPaymentInstrument)
async def add_instrument(session_id: str, payload: InstrumentCreate,
                         store: SessionStore = Depends(get_session_store)):
    return store.get(session_id).add_instrument(payload)


@router.delete("/instruments/{instrument_id}")
async def remove_instrument(session_id: str, instrument_id: str,
                            store: SessionStore = Depends(get_session_store)):
    """Remove a saved instrument. Unknown ids are a no-op."""
    removed = store.get(session_id).remove_instrument(instrument_id)
    return {"instrument_id": instrument_id, "removed": removed}


@router.post("/instruments/{instrument_id}/default", response_model=SessionResponse)
async def set_default_instrument(session_id: str, instrument_id: str,
                                 store: SessionStore = Depends(get_session_store)):
    session = store.get(session_id)
    session.set_default_instrument(instrument_id)
    return session.snapshot()


@router.post("/checkout", status_code=202, response_model=CheckoutResponse)
async def checkout(session_id: str, background_tasks: BackgroundTasks,
                   payload: Optional[CheckoutRequest] = None,
                   store: SessionStore = Depends(get_session_store),
                   gateway: PaymentGateway = Depends(get_gateway),
                   settings: Settings = Depends(get_settings)):
    """
    Pay the session's current quote with the selected method.
    Only one payment may be in flight per session; the PSP call runs in the background.
    """
    session = store.get(session_id)
    ticket = start_checkout(session, payload.instrument_id if payload else None)

    # Async PSP call
    background_tasks.add_task(
        settle_checkout, session, gateway, ticket, settings.gateway_timeout_seconds
    )

    return {
        "session_id": session_id,
        "status": session.status,
        "amount": ticket.amount,
        "method": ticket.method,
        "instrument_id": ticket.instrument.id if ticket.instrument else None,
    }


@router.get("/payment", response_model=PaymentStatusResponse)
async def get_payment_status(session_id: str, store: SessionStore = Depends(get_session_store)):
    """Get payment status for a session."""
    session = store.get(session_id)
    return {
        "session_id": session_id,
        "status": session.status,
        "last_error": session.last_error,
        "last_payment": session.last_payment,
    }


@router.get("/payments", response_model=PaymentHistoryResponse)
async def list_payments(session_id: str,
                        limit: int = Query(10, ge=1, le=100),
                        page: int = Query(1, ge=1),
                        store: SessionStore = Depends(get_session_store)):
    """Payment attempts for a session, newest first."""
    history = list(reversed(store.get(session_id).payments))
    skip = (page - 1) * limit
    items = history[skip:skip + limit]
    return {
        "session_id": session_id,
        "count": len(items),
        "total": len(history),
        "page": page,
        "pages": math.ceil(len(history) / limit),
        "payments": items,
    }


@router.get("/payments/{payment_ref}", response_model=PaymentRecord)
async def get_payment(session_id: str, payment_ref: str,
                      store: SessionStore = Depends(get_session_store)):
    """Look up one attempt by record id or transaction reference."""
    return store.get(session_id).get_payment(payment_ref)
