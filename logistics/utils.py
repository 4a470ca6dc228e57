"""
LuggEase - Logistics Utilities
===============================
Distance, travel time and fee calculations.

Routing is mocked: distances are great-circle (Haversine) distances and
travel time assumes a constant average city speed.
"""

import math
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from django.conf import settings


# ============================================
# CONSTANTS
# ============================================

EARTH_RADIUS_KM = 6371.0

BASE_FEE = Decimal('5.00')
FEE_PER_KM = Decimal('0.50')

PRIORITY_MULTIPLIERS = {
    'high': Decimal('1.5'),
    'urgent': Decimal('2'),
}

DEFAULT_AVERAGE_SPEED_KMH = 30


# ============================================
# DISTANCE CALCULATION (Haversine)
# ============================================

def calculate_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """
    Great-circle distance between two GPS points, in kilometers,
    rounded to 2 decimal places.
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lng = math.radians(lng2 - lng1)

    a = (
        math.sin(delta_lat / 2) ** 2 +
        math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(delta_lng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return round(EARTH_RADIUS_KM * c, 2)


def calculate_estimated_time(distance_km: float) -> int:
    """Estimated travel time in whole minutes (rounded up) at average city speed."""
    speed = getattr(settings, 'AVERAGE_CITY_SPEED_KMH', DEFAULT_AVERAGE_SPEED_KMH)
    return int(math.ceil((distance_km / speed) * 60))


def generate_route(pickup: dict, drop: dict, current_location: Optional[dict] = None) -> list:
    """
    Ordered waypoints for a delivery: the driver's current position when
    known, then pickup, then drop.
    """
    waypoints = []
    if current_location:
        waypoints.append(current_location)
    waypoints.append(pickup)
    waypoints.append(drop)
    return waypoints


# ============================================
# FEE CALCULATION
# ============================================

def calculate_delivery_fee(distance_km: float, priority: str) -> Decimal:
    """
    Delivery fee = (base + per_km * distance) * priority multiplier,
    rounded to the cent.

    Multipliers: high x1.5, urgent x2, anything else x1.
    """
    base_fee = Decimal(str(getattr(settings, 'DELIVERY_BASE_FEE', BASE_FEE)))
    fee_per_km = Decimal(str(getattr(settings, 'DELIVERY_FEE_PER_KM', FEE_PER_KM)))
    multiplier = PRIORITY_MULTIPLIERS.get(priority, Decimal('1'))

    raw_fee = (base_fee + fee_per_km * Decimal(str(distance_km))) * multiplier
    return raw_fee.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
