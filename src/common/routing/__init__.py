# src/common/routing/__init__.py
"""Geocoding and driving-route estimates for fare quotes."""

from .routing_service import (
    Coordinates, RouteEstimate, RoundTrip, RoutingService,
    get_routing_service, routing_service,
)

__all__ = [
    "Coordinates",
    "RouteEstimate",
    "RoundTrip",
    "RoutingService",
    "get_routing_service",
    "routing_service",
]
