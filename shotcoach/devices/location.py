"""Ambient shooting context: reverse geocoding and nearby points of interest."""

from __future__ import annotations

import logging

import httpx

from shotcoach.core.conversation import AmbientContext
from shotcoach.errors import TransientRequestError

log = logging.getLogger(__name__)


class ContextStore:
    """Latest known context; read by the orchestrator at session start."""

    def __init__(self, initial: AmbientContext | None = None) -> None:
        self._ctx = initial or AmbientContext()

    def current(self) -> AmbientContext:
        return self._ctx

    def update(self, location: str, points_of_interest: list[str] | tuple[str, ...] = ()) -> AmbientContext:
        ctx = AmbientContext(
            location=location.strip(),
            points_of_interest=tuple(p.strip() for p in points_of_interest if p and p.strip()),
        )
        if ctx != self._ctx:
            log.info("context: %s (%d nearby)", ctx.location or "<unknown>", len(ctx.points_of_interest))
        self._ctx = ctx
        return ctx


class GoogleMapsLocator:
    """Geocoding + Places Nearby Search via the Google Maps web APIs."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = "https://maps.googleapis.com/maps/api",
        radius_m: int = 500,
        max_places: int = 5,
        timeout_s: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._radius_m = radius_m
        self._max_places = max_places
        self._timeout = httpx.Timeout(timeout_s, connect=5.0)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def start(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            )

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def describe(self, latitude: float, longitude: float) -> AmbientContext:
        """Address and nearby places for a coordinate.

        A failed places lookup still yields the address; a failed geocode
        raises TransientRequestError.
        """
        address = await self.reverse_geocode(latitude, longitude)
        try:
            places = await self.nearby_places(latitude, longitude)
        except TransientRequestError as e:
            log.warning("nearby places unavailable: %s", e)
            places = []
        return AmbientContext(location=address, points_of_interest=tuple(places))

    async def reverse_geocode(self, latitude: float, longitude: float) -> str:
        data = await self._get(
            "/geocode/json",
            {"latlng": f"{latitude},{longitude}", "key": self._api_key},
        )
        results = data.get("results") or []
        if not results:
            raise TransientRequestError("address not found")
        return str(results[0].get("formatted_address", ""))

    async def nearby_places(self, latitude: float, longitude: float) -> list[str]:
        data = await self._get(
            "/place/nearbysearch/json",
            {
                "location": f"{latitude},{longitude}",
                "radius": str(self._radius_m),
                "type": "tourist_attraction",
                "key": self._api_key,
            },
        )
        names: list[str] = []
        for place in data.get("results") or []:
            name = place.get("name")
            if isinstance(name, str) and name.strip():
                names.append(name.strip())
            if len(names) >= self._max_places:
                break
        return names

    async def _get(self, path: str, params: dict[str, str]) -> dict:
        if self._client is None:
            raise TransientRequestError("maps client not started")
        try:
            resp = await self._client.get(path, params=params)
        except httpx.HTTPError as e:
            raise TransientRequestError(f"{path} request failed: {e}") from e
        if resp.status_code != 200:
            raise TransientRequestError(f"{path} returned {resp.status_code}")
        try:
            data = resp.json()
        except ValueError as e:
            raise TransientRequestError(f"{path} returned invalid JSON") from e
        status = data.get("status", "OK")
        if status not in ("OK", "ZERO_RESULTS"):
            raise TransientRequestError(f"{path} status {status}: {data.get('error_message', '')}")
        return data
