import math
import logging
from typing import Optional, Union

from app.core.errors import ValidationError
from app.schemas.schemas import PriceBreakdown, VehicleClass

logger = logging.getLogger(__name__)

DEFAULT_VEHICLE_CLASS = VehicleClass.bike

# Fare tables per vehicle class (INR)
BASE_FARE = {
    VehicleClass.bike: 30,
    VehicleClass.auto: 50,
    VehicleClass.car: 80,
    VehicleClass.van: 120,
    VehicleClass.truck: 200,
}
RATE_PER_KM = {
    VehicleClass.bike: 10,
    VehicleClass.auto: 15,
    VehicleClass.car: 20,
    VehicleClass.van: 25,
    VehicleClass.truck: 30,
}
RATE_PER_MIN = {
    VehicleClass.bike: 1,
    VehicleClass.auto: 1.5,
    VehicleClass.car: 2,
    VehicleClass.van: 2.5,
    VehicleClass.truck: 3,
}

PEAK_SURGE_RATE = 0.5
TAX_RATE = 0.18  # GST
AVERAGE_SPEED_KMH = 30


def round_half_up(value: float) -> int:
    """Round to the nearest whole currency unit, halves going up."""
    return math.floor(value + 0.5)


def resolve_vehicle_class(vehicle_class: Optional[Union[str, VehicleClass]]) -> VehicleClass:
    """
    Map a caller-supplied vehicle class onto the rate table.
    Anything not in the table is priced as a bike.
    """
    try:
        return VehicleClass(vehicle_class)
    except ValueError:
        logger.info(
            "Unknown vehicle class %r, falling back to %s rates",
            vehicle_class, DEFAULT_VEHICLE_CLASS.value,
        )
        return DEFAULT_VEHICLE_CLASS


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Calculate straight-line distance in km between two coordinates."""
    R = 6371
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lng2 - lng1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    return R * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def compute_quote(distance_km: float, duration_minutes: float,
                  vehicle_class: Optional[Union[str, VehicleClass]],
                  is_peak_hour: bool = False, *, reject_negative: bool = True) -> PriceBreakdown:
    """
    Compute the price breakdown for a trip.

    Peak hours add a flat 50% of the pre-tax subtotal as surge. Tax is 18% of
    the subtotal including surge. Only the total is rounded; the components
    keep their fractional values.

    With reject_negative=False a negative distance or duration is priced as-is
    and yields negative fares.
    """
    if reject_negative and (distance_km < 0 or duration_minutes < 0):
        raise ValidationError(
            f"distance_km and duration_minutes must be non-negative "
            f"(got {distance_km}, {duration_minutes})"
        )

    vc = resolve_vehicle_class(vehicle_class)
    base_fare = BASE_FARE[vc]
    distance_fare = distance_km * RATE_PER_KM[vc]
    time_fare = duration_minutes * RATE_PER_MIN[vc]
    surge_fare = PEAK_SURGE_RATE * (base_fare + distance_fare + time_fare) if is_peak_hour else 0

    subtotal = base_fare + distance_fare + time_fare + surge_fare
    tax = subtotal * TAX_RATE
    if not math.isfinite(subtotal + tax):
        raise ValidationError(
            f"distance_km and duration_minutes must be finite and within range "
            f"(got {distance_km}, {duration_minutes})"
        )

    return PriceBreakdown(
        base_fare=base_fare,
        distance_fare=distance_fare,
        time_fare=time_fare,
        surge_fare=surge_fare,
        tax=tax,
        total=round_half_up(subtotal + tax),
    )


def estimate_trip(pickup_lat: float, pickup_lng: float,
                  dest_lat: float, dest_lng: float) -> tuple:
    """Estimate (distance_km, duration_minutes) between two map points."""
    dist = haversine_km(pickup_lat, pickup_lng, dest_lat, dest_lng)
    # Estimate ~30 km/h average speed
    duration = (dist / AVERAGE_SPEED_KMH) * 60
    return dist, duration

