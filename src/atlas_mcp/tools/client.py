from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from ..config import Settings, load_settings
from .shared import ProviderError, TransportError, log_step
from .validation import BoundingBox, Coordinate

SEARCH_API_VERSION = "2025-01-01"
ROUTE_API_VERSION = "1.0"
RENDER_API_VERSION = "2024-04-01"
GEOLOCATION_API_VERSION = "1.0"
TIMEZONE_API_VERSION = "1.0"

TILESETS = {
    "road": "microsoft.base.road",
    "satellite": "microsoft.imagery",
    "hybrid": "microsoft.base.hybrid.road",
}

Params = List[Tuple[str, Any]]


def _is_transient(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


def _provider_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            return f"Azure Maps returned HTTP {response.status_code}: {error['message']}"
    return f"Azure Maps returned HTTP {response.status_code}"


class AtlasClient:
    """Async REST client for Azure Maps.

    A fresh ``httpx.AsyncClient`` is opened per request; ``transport`` lets
    callers substitute ``httpx.MockTransport``.
    """

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.settings = settings
        self._transport = transport

    async def _request(
        self,
        method: str,
        path: str,
        api_version: str,
        params: Optional[Params] = None,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        query: Params = [
            ("api-version", api_version),
            ("subscription-key", self.settings.subscription_key),
        ]
        query.extend(params or [])
        retries = self.settings.max_retries

        for attempt in range(retries + 1):
            try:
                async with httpx.AsyncClient(
                    base_url=self.settings.base_url,
                    timeout=self.settings.timeout,
                    transport=self._transport,
                ) as client:
                    response = await client.request(method, path, params=query, json=json_body)
            except httpx.TransportError as exc:
                if attempt < retries:
                    log_step(f"  -> {path}: {type(exc).__name__}, retrying")
                    await asyncio.sleep(self.settings.backoff_seconds * (attempt + 1))
                    continue
                raise TransportError(
                    f"Azure Maps request failed: {type(exc).__name__}",
                    details={"path": path, "attempts": attempt + 1},
                ) from exc

            if _is_transient(response.status_code) and attempt < retries:
                log_step(f"  -> {path}: HTTP {response.status_code}, retrying")
                await asyncio.sleep(self.settings.backoff_seconds * (attempt + 1))
                continue
            if response.status_code >= 300:
                raise ProviderError(
                    _provider_message(response),
                    status_code=response.status_code,
                    body=response.text,
                    details={"path": path, "attempts": attempt + 1},
                )
            return response

        raise TransportError("Azure Maps request failed", details={"path": path})  # pragma: no cover

    async def get_json(self, path: str, api_version: str, params: Optional[Params] = None) -> Dict[str, Any]:
        response = await self._request("GET", path, api_version, params=params)
        return self._decode_json(response, path)

    async def post_json(
        self,
        path: str,
        api_version: str,
        body: Dict[str, Any],
        params: Optional[Params] = None,
    ) -> Dict[str, Any]:
        response = await self._request("POST", path, api_version, params=params, json_body=body)
        return self._decode_json(response, path)

    async def get_image(self, path: str, api_version: str, params: Optional[Params] = None) -> Tuple[bytes, str]:
        response = await self._request("GET", path, api_version, params=params)
        content_type = response.headers.get("content-type", "")
        if not content_type.startswith("image/") or not response.content:
            raise ProviderError(
                "Azure Maps returned a malformed image payload",
                status_code=response.status_code,
                details={"path": path, "content_type": content_type},
            )
        return response.content, content_type

    @staticmethod
    def _decode_json(response: httpx.Response, path: str) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderError(
                "Azure Maps returned a malformed payload",
                status_code=response.status_code,
                body=response.text,
                details={"path": path},
            ) from exc
        if not isinstance(data, dict):
            raise ProviderError(
                "Azure Maps returned a malformed payload",
                status_code=response.status_code,
                details={"path": path},
            )
        return data

    async def geocode(self, query: str, top: int) -> Dict[str, Any]:
        return await self.get_json(
            "/geocode",
            SEARCH_API_VERSION,
            [("query", query), ("top", top)],
        )

    async def reverse_geocode(self, point: Coordinate) -> Dict[str, Any]:
        return await self.get_json(
            "/reverseGeocode",
            SEARCH_API_VERSION,
            [("coordinates", point.as_lon_lat())],
        )

    async def get_polygon(self, point: Coordinate, result_type: str, resolution: str) -> Dict[str, Any]:
        return await self.get_json(
            "/search/polygon",
            SEARCH_API_VERSION,
            [
                ("coordinates", point.as_lon_lat()),
                ("resultType", result_type),
                ("resolution", resolution),
            ],
        )

    async def route_directions(
        self,
        points: Sequence[Coordinate],
        travel_mode: str,
        route_type: str,
        avoid: Sequence[str] = (),
    ) -> Dict[str, Any]:
        params: Params = [
            ("query", ":".join(point.as_lat_lon() for point in points)),
            ("travelMode", travel_mode),
            ("routeType", route_type),
            ("instructionsType", "text"),
            ("traffic", "true"),
        ]
        params.extend(("avoid", item) for item in avoid)
        return await self.get_json("/route/directions/json", ROUTE_API_VERSION, params)

    async def route_matrix(
        self,
        origins: Sequence[Coordinate],
        destinations: Sequence[Coordinate],
        travel_mode: str,
        route_type: str,
    ) -> Dict[str, Any]:
        body = {
            "origins": {
                "type": "MultiPoint",
                "coordinates": [[p.longitude, p.latitude] for p in origins],
            },
            "destinations": {
                "type": "MultiPoint",
                "coordinates": [[p.longitude, p.latitude] for p in destinations],
            },
        }
        return await self.post_json(
            "/route/matrix/sync/json",
            ROUTE_API_VERSION,
            body,
            [("travelMode", travel_mode), ("routeType", route_type)],
        )

    async def route_range(
        self,
        center: Coordinate,
        travel_mode: str,
        route_type: str,
        time_budget_seconds: Optional[int] = None,
        distance_budget_meters: Optional[int] = None,
    ) -> Dict[str, Any]:
        params: Params = [
            ("query", center.as_lat_lon()),
            ("travelMode", travel_mode),
            ("routeType", route_type),
        ]
        if time_budget_seconds is not None:
            params.append(("timeBudgetInSec", time_budget_seconds))
        if distance_budget_meters is not None:
            params.append(("distanceBudgetInMeters", distance_budget_meters))
        return await self.get_json("/route/range/json", ROUTE_API_VERSION, params)

    async def static_map_image(
        self,
        style: str,
        zoom: int,
        width: int,
        height: int,
        bounding_box: Optional[BoundingBox] = None,
        center: Optional[Coordinate] = None,
        pins: Sequence[str] = (),
        paths: Sequence[str] = (),
    ) -> Tuple[bytes, str]:
        params: Params = [
            ("tilesetId", TILESETS[style]),
            ("zoom", zoom),
            ("width", width),
            ("height", height),
        ]
        if bounding_box is not None:
            box = bounding_box
            params.append(("bbox", f"{box.west},{box.south},{box.east},{box.north}"))
        elif center is not None:
            params.append(("center", center.as_lon_lat()))
        params.extend(("pins", pin) for pin in pins)
        params.extend(("path", path) for path in paths)
        return await self.get_image("/map/static", RENDER_API_VERSION, params)

    async def timezone_by_coordinates(self, point: Coordinate, include_transitions: bool) -> Dict[str, Any]:
        return await self.get_json(
            "/timezone/byCoordinates/json",
            TIMEZONE_API_VERSION,
            [
                ("query", point.as_lat_lon()),
                ("options", "all" if include_transitions else "zoneInfo"),
            ],
        )

    async def ip_country_code(self, ip_address: str) -> Optional[str]:
        data = await self.get_json(
            "/geolocation/ip/json",
            GEOLOCATION_API_VERSION,
            [("ip", ip_address)],
        )
        region = data.get("countryRegion") or {}
        if not isinstance(region, dict):
            raise ProviderError("Azure Maps returned a malformed payload", details={"ip": ip_address})
        code = region.get("isoCode")
        if code is None or code == "":
            return None
        if not isinstance(code, str):
            raise ProviderError("Azure Maps returned a malformed payload", details={"ip": ip_address})
        return code


_CLIENT: Optional[AtlasClient] = None


def get_client() -> AtlasClient:
    global _CLIENT
    if _CLIENT is None:
        _CLIENT = AtlasClient(load_settings())
    return _CLIENT


def set_client(client: Optional[AtlasClient]) -> None:
    global _CLIENT
    _CLIENT = client
