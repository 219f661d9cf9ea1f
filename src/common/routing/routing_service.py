# src/common/routing/routing_service.py
"""
Route estimation over the public OpenStreetMap services.

Addresses are geocoded with Nominatim and the driving route between the two
points is looked up on OSRM. Neither service needs credentials, both are rate
limited, so every failure (timeout, HTTP error, unexpected payload) is
reported as "no quote" (``None``) rather than raised.
"""

import asyncio
import logging
from typing import Any, Optional

import httpx
from pydantic import BaseModel

from src.common.config import settings

logger = logging.getLogger(__name__)


class Coordinates(BaseModel):
    lat: float
    lon: float


class RoundTrip(BaseModel):
    """Round-trip figures as fed to the fare engine."""
    distance_km: float
    duration_minutes: int


class RouteEstimate(BaseModel):
    """One-way driving distance and duration."""
    distance_km: float
    duration_minutes: float

    def round_trip(self) -> RoundTrip:
        """Both legs: distance doubled to 2 decimals, duration doubled to whole minutes."""
        return RoundTrip(
            distance_km=round(self.distance_km * 2, 2),
            duration_minutes=int(round(self.duration_minutes * 2)),
        )


class RoutingService:
    """Client for the geocoding + driving-route oracle."""

    def __init__(
        self,
        geocoder_url: Optional[str] = None,
        router_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.geocoder_url = geocoder_url or settings.GEOCODER_URL
        self.router_url = (router_url or settings.ROUTER_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.ROUTING_TIMEOUT_SECONDS
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            transport=self.transport,
            headers={"Accept-Language": "en", "User-Agent": settings.ROUTING_USER_AGENT},
        )

    async def _get_json(self, client: httpx.AsyncClient, url: str, params: Optional[dict] = None) -> Any:
        try:
            response = await client.get(url, params=params)
            response.raise_for_status()
            return response.json()
        except httpx.TimeoutException:
            logger.warning("Routing oracle timed out after %ss: %s", self.timeout, url)
        except httpx.HTTPStatusError as e:
            logger.warning("Routing oracle returned %s for %s", e.response.status_code, url)
        except httpx.HTTPError as e:
            logger.warning("Routing oracle request failed for %s: %s", url, e)
        except ValueError:
            logger.warning("Routing oracle sent a non-JSON body for %s", url)
        return None

    async def geocode(self, address: str, client: Optional[httpx.AsyncClient] = None) -> Optional[Coordinates]:
        """Resolve an address to coordinates (first match)."""
        if not address or not address.strip():
            return None
        if client is None:
            async with self._client() as own_client:
                return await self.geocode(address, own_client)

        payload = await self._get_json(client, self.geocoder_url, {"format": "json", "q": address})
        if not isinstance(payload, list) or not payload:
            return None
        try:
            return Coordinates(lat=float(payload[0]["lat"]), lon=float(payload[0]["lon"]))
        except (KeyError, TypeError, ValueError):
            logger.warning("Unexpected geocoder payload for %r", address)
            return None

    async def get_driving_route(
        self,
        origin: Coordinates,
        destination: Coordinates,
        client: Optional[httpx.AsyncClient] = None,
    ) -> Optional[RouteEstimate]:
        """One-way driving distance (km) and duration (minutes) between two points."""
        if client is None:
            async with self._client() as own_client:
                return await self.get_driving_route(origin, destination, own_client)

        url = f"{self.router_url}/{origin.lon},{origin.lat};{destination.lon},{destination.lat}"
        payload = await self._get_json(client, url, {"overview": "false"})
        if not isinstance(payload, dict) or payload.get("code") != "Ok" or not payload.get("routes"):
            return None
        try:
            route = payload["routes"][0]
            return RouteEstimate(
                distance_km=float(route["distance"]) / 1000,  # meters -> km
                duration_minutes=float(route["duration"]) / 60,  # seconds -> minutes
            )
        except (KeyError, TypeError, ValueError):
            logger.warning("Unexpected route payload from %s", url)
            return None

    async def estimate_round_trip(self, pickup_address: str, destination_address: str) -> Optional[RouteEstimate]:
        """
        Estimate the drive between two addresses.

        Returns the one-way estimate, or None when either address cannot be
        geocoded, no route exists, or the oracle is unavailable. Use
        ``RouteEstimate.round_trip()`` for the figures the fare is based on.
        The timeout bounds the whole lookup as well as each request.
        """
        try:
            return await asyncio.wait_for(
                self._estimate(pickup_address, destination_address),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("No quote: route estimate took longer than %ss", self.timeout)
            return None

    async def _estimate(self, pickup_address: str, destination_address: str) -> Optional[RouteEstimate]:
        async with self._client() as client:
            origin, destination = await asyncio.gather(
                self.geocode(pickup_address, client),
                self.geocode(destination_address, client),
            )
            if origin is None or destination is None:
                logger.info("No quote: could not geocode %s", "pickup" if origin is None else "destination")
                return None
            return await self.get_driving_route(origin, destination, client)


routing_service = RoutingService()


async def get_routing_service() -> RoutingService:
    """Dependency returning the shared routing client."""
    return routing_service
