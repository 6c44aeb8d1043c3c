from fastapi import APIRouter, Depends
from app.core.config import Settings, get_settings
from app.core.sessions import SessionStore, get_session_store
from app.schemas.schemas import EstimateRequest, QuoteRequest, QuoteResponse
from app.services.pricing import compute_quote, estimate_trip, resolve_vehicle_class

router = APIRouter(prefix="/v1/quotes", tags=["Quotes"])


def _quote(store: SessionStore, settings: Settings, session_id, distance_km, duration_minutes,
           vehicle_class, is_peak_hour) -> dict:
    if session_id:
        # Publishing replaces the session's current breakdown
        breakdown = store.get(session_id).quote(
            distance_km, duration_minutes, vehicle_class, is_peak_hour
        )
    else:
        breakdown = compute_quote(
            distance_km, duration_minutes, vehicle_class, is_peak_hour,
            reject_negative=settings.reject_negative_trip_inputs,
        )
    return {
        "vehicle_class": resolve_vehicle_class(vehicle_class),
        "distance_km": distance_km,
        "duration_minutes": duration_minutes,
        "is_peak_hour": is_peak_hour,
        "subtotal": breakdown.subtotal,
        "breakdown": breakdown,
    }


@router.post("", response_model=QuoteResponse)
async def create_quote(payload: QuoteRequest,
                       store: SessionStore = Depends(get_session_store),
                       settings: Settings = Depends(get_settings)):
    """
    Price a trip from its distance and duration.
    When a session_id is given the quote becomes that session's price breakdown.
    """
    return _quote(store, settings, payload.session_id, payload.distance_km,
                  payload.duration_minutes, payload.vehicle_class, payload.is_peak_hour)


@router.post("/estimate", response_model=QuoteResponse)
async def estimate(payload: EstimateRequest,
                   store: SessionStore = Depends(get_session_store),
                   settings: Settings = Depends(get_settings)):
    """Price a trip from pickup and drop-off coordinates before it starts."""
    dist, duration = estimate_trip(
        payload.pickup_lat, payload.pickup_lng, payload.dest_lat, payload.dest_lng
    )
    return _quote(store, settings, payload.session_id, dist, duration,
                  payload.vehicle_class, payload.is_peak_hour)
