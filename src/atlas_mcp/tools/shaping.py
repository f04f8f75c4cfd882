"""Compact projections of Azure Maps payloads.

Each ``shape_*`` function pulls only the fields a caller needs out of the raw
provider JSON. Keys are PascalCase to match the published tool output.
"""

from __future__ import annotations

import base64
from typing import Any, Dict, List, Optional, Sequence, TypedDict

from .shared import ProviderError, ToolFailure
from .validation import BoundingBox, Coordinate


class Coordinates(TypedDict):
    Latitude: float
    Longitude: float


class AddressDetails(TypedDict):
    FormattedAddress: Optional[str]
    StreetNumber: Optional[str]
    StreetName: Optional[str]
    Locality: Optional[str]
    AdminDistrict: Optional[str]
    PostalCode: Optional[str]
    CountryRegion: Optional[str]
    CountryCode: Optional[str]


class GeocodeMatch(TypedDict):
    Coordinates: Coordinates
    AddressDetails: AddressDetails
    Confidence: Optional[str]
    MatchType: Optional[str]


class BoundaryPolygon(TypedDict):
    Index: int
    PointCount: int
    Coordinates: List[List[float]]


class RouteSummary(TypedDict):
    DistanceMeters: Optional[float]
    TravelTimeSeconds: Optional[float]
    TrafficDelaySeconds: Optional[float]


class MatrixCell(TypedDict, total=False):
    OriginIndex: int
    DestinationIndex: int
    Success: bool
    DistanceMeters: Optional[float]
    TravelTimeSeconds: Optional[float]
    TrafficDelaySeconds: Optional[float]
    Error: str


class IPLookupResult(TypedDict, total=False):
    Index: int
    IPAddress: str
    Success: bool
    CountryCode: str
    CountryName: str
    Error: str


class WaypointCountry(TypedDict, total=False):
    WaypointIndex: int
    Coordinates: Coordinates
    Success: bool
    CountryCode: Optional[str]
    CountryName: Optional[str]
    Address: Optional[str]
    Error: str


class CountryRecord(TypedDict):
    CountryName: str
    CountryShortCode: str
    Alpha3Code: str
    NumericCode: Optional[str]
    OfficialName: Optional[str]


def coordinates(point: Coordinate) -> Coordinates:
    return {"Latitude": point.latitude, "Longitude": point.longitude}


def _lat_lon(position: Sequence[Any]) -> List[float]:
    # GeoJSON positions are [lon, lat]; output is [lat, lon].
    return [float(position[1]), float(position[0])]


def _point_dict(point: Dict[str, Any]) -> List[float]:
    return [float(point.get("latitude")), float(point.get("longitude"))]


def address_details(address: Dict[str, Any]) -> AddressDetails:
    districts = address.get("adminDistricts") or []
    admin = None
    if districts and isinstance(districts[0], dict):
        admin = districts[0].get("shortName") or districts[0].get("name")
    country = address.get("countryRegion") or {}
    return {
        "FormattedAddress": address.get("formattedAddress"),
        "StreetNumber": address.get("streetNumber"),
        "StreetName": address.get("streetName"),
        "Locality": address.get("locality"),
        "AdminDistrict": admin,
        "PostalCode": address.get("postalCode"),
        "CountryRegion": country.get("name"),
        "CountryCode": country.get("ISO") or country.get("iso"),
    }


def _feature_point(feature: Dict[str, Any]) -> Coordinates:
    geometry = feature.get("geometry") or {}
    position = geometry.get("coordinates") or []
    if len(position) < 2:
        raise ProviderError("Azure Maps returned a feature without coordinates")
    lat, lon = _lat_lon(position)
    return {"Latitude": lat, "Longitude": lon}


def shape_geocode(query: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    features = payload.get("features") or []
    if not features:
        raise ToolFailure(f"no results found for location {query!r}", {"query": query})
    results: List[GeocodeMatch] = []
    for feature in features:
        properties = feature.get("properties") or {}
        results.append(
            {
                "Coordinates": _feature_point(feature),
                "AddressDetails": address_details(properties.get("address") or {}),
                "Confidence": properties.get("confidence"),
                "MatchType": properties.get("type"),
            }
        )
    return {"query": query, "results": results}


def shape_reverse_geocode(point: Coordinate, payload: Dict[str, Any]) -> Dict[str, Any]:
    features = payload.get("features") or []
    if not features:
        raise ToolFailure(
            f"no address found at {point.as_lat_lon()}",
            {"coordinates": coordinates(point)},
        )
    properties = features[0].get("properties") or {}
    return {
        "Coordinates": coordinates(point),
        "AddressDetails": address_details(properties.get("address") or {}),
    }


def _outer_rings(geometry: Dict[str, Any]) -> List[List[Any]]:
    kind = geometry.get("type")
    if kind == "Polygon":
        rings = geometry.get("coordinates") or []
        return rings[:1]
    if kind == "MultiPolygon":
        return [polygon[0] for polygon in geometry.get("coordinates") or [] if polygon]
    if kind == "GeometryCollection":
        rings: List[List[Any]] = []
        for child in geometry.get("geometries") or []:
            rings.extend(_outer_rings(child))
        return rings
    return []


def shape_polygon(
    point: Coordinate,
    result_type: str,
    resolution: str,
    payload: Dict[str, Any],
) -> Dict[str, Any]:
    features = payload.get("features")
    feature = features[0] if features else payload
    geometry = feature.get("geometry") or {}
    properties = feature.get("properties") or {}

    polygons: List[BoundaryPolygon] = []
    for index, ring in enumerate(_outer_rings(geometry)):
        points = [_lat_lon(position) for position in ring]
        polygons.append({"Index": index, "PointCount": len(points), "Coordinates": points})
    if not polygons:
        raise ToolFailure(
            f"no {result_type} boundary found at {point.as_lat_lon()}",
            {"result_type": result_type},
        )

    return {
        "BoundaryInfo": {
            "ResultType": result_type,
            "Resolution": resolution,
            "QueryCoordinates": coordinates(point),
            "Name": properties.get("name"),
            "Copyright": properties.get("copyright"),
        },
        "PolygonCount": len(polygons),
        "Polygons": polygons,
    }


def route_summary(summary: Dict[str, Any]) -> RouteSummary:
    return {
        "DistanceMeters": summary.get("lengthInMeters"),
        "TravelTimeSeconds": summary.get("travelTimeInSeconds"),
        "TrafficDelaySeconds": summary.get("trafficDelayInSeconds"),
    }


def shape_route_directions(payload: Dict[str, Any]) -> Dict[str, Any]:
    routes = payload.get("routes") or []
    if not routes:
        raise ToolFailure("no route found between the specified coordinates")
    route = routes[0]

    legs = []
    geometry: List[List[float]] = []
    for index, leg in enumerate(route.get("legs") or []):
        points = [_point_dict(point) for point in leg.get("points") or []]
        geometry.extend(points)
        legs.append({"Index": index, "Summary": route_summary(leg.get("summary") or {}), "PointCount": len(points)})

    guidance = route.get("guidance") or {}
    instructions = [
        {
            "Message": item.get("message"),
            "Maneuver": item.get("maneuver"),
            "RouteOffsetMeters": item.get("routeOffsetInMeters"),
            "TravelTimeSeconds": item.get("travelTimeInSeconds"),
        }
        for item in guidance.get("instructions") or []
    ]

    return {
        "Summary": route_summary(route.get("summary") or {}),
        "Legs": legs,
        "Geometry": geometry,
        "Instructions": instructions,
    }


def _matrix_cell(origin: int, destination: int, cell: Optional[Dict[str, Any]]) -> MatrixCell:
    result: MatrixCell = {"OriginIndex": origin, "DestinationIndex": destination}
    if not isinstance(cell, dict):
        result["Success"] = False
        result["Error"] = "no result returned for this pair"
        return result
    status = cell.get("statusCode")
    response = cell.get("response") or {}
    if status != 200:
        error = response.get("error") or {}
        result["Success"] = False
        result["Error"] = error.get("message") or f"route calculation failed with status {status}"
        return result
    summary = route_summary(response.get("routeSummary") or {})
    result["Success"] = True
    result.update(summary)  # type: ignore[typeddict-item]
    return result


def shape_route_matrix(origin_count: int, destination_count: int, payload: Dict[str, Any]) -> Dict[str, Any]:
    matrix = payload.get("matrix")
    if not isinstance(matrix, list):
        raise ProviderError("Azure Maps returned no route matrix data")

    results: List[MatrixCell] = []
    for i in range(origin_count):
        row = matrix[i] if i < len(matrix) and isinstance(matrix[i], list) else []
        for j in range(destination_count):
            cell = row[j] if j < len(row) else None
            results.append(_matrix_cell(i, j, cell))

    successful = sum(1 for item in results if item["Success"])
    return {
        "Summary": {
            "Origins": origin_count,
            "Destinations": destination_count,
            "TotalRequests": len(results),
            "SuccessfulRequests": successful,
            "FailedRequests": len(results) - successful,
        },
        "Results": results,
    }


def shape_route_range(
    center: Coordinate,
    travel_mode: str,
    route_type: str,
    budget: Dict[str, int],
    payload: Dict[str, Any],
) -> Dict[str, Any]:
    reachable = payload.get("reachableRange")
    if not isinstance(reachable, dict):
        raise ProviderError("Azure Maps returned no reachable range data")
    boundary = [_point_dict(point) for point in reachable.get("boundary") or []]
    reported = reachable.get("center") or {}
    return {
        "Center": {
            "Latitude": reported.get("latitude", center.latitude),
            "Longitude": reported.get("longitude", center.longitude),
        },
        "Budget": budget,
        "TravelMode": travel_mode,
        "RouteType": route_type,
        "Boundary": boundary,
        "PointCount": len(boundary),
    }


def shape_static_map(
    image: bytes,
    style: str,
    zoom: int,
    width: int,
    height: int,
    marker_count: int,
    path_count: int,
    bounding_box: Optional[BoundingBox] = None,
    center: Optional[Coordinate] = None,
) -> Dict[str, Any]:
    encoded = base64.b64encode(image).decode("ascii")
    box = None
    if bounding_box is not None:
        box = {
            "West": bounding_box.west,
            "South": bounding_box.south,
            "East": bounding_box.east,
            "North": bounding_box.north,
        }
        center = bounding_box.center
    return {
        "Image": {
            "Format": "PNG",
            "DataUri": f"data:image/png;base64,{encoded}",
            "SizeBytes": len(image),
        },
        "MapInfo": {
            "BoundingBox": box,
            "Center": coordinates(center) if center else None,
            "ZoomLevel": zoom,
            "Dimensions": {"Width": width, "Height": height},
            "Style": style,
            "MarkerCount": marker_count,
            "PathCount": path_count,
        },
    }


def shape_ip_batch(results: List[IPLookupResult]) -> Dict[str, Any]:
    successful = sum(1 for item in results if item.get("Success"))
    total = len(results)
    return {
        "Summary": {
            "TotalRequests": total,
            "SuccessfulRequests": successful,
            "FailedRequests": total - successful,
            "SuccessRate": round(successful / total * 100, 1) if total else 0.0,
        },
        "Results": results,
    }


def shape_route_countries(waypoints: List[WaypointCountry], countries: List[CountryRecord]) -> Dict[str, Any]:
    codes = list(dict.fromkeys(item["CountryCode"] for item in waypoints if item.get("CountryCode")))
    return {
        "RouteSummary": {
            "TotalWaypoints": len(waypoints),
            "CountriesTraversed": len(codes),
            "CountryCodes": codes,
        },
        "WaypointAnalysis": waypoints,
        "Countries": countries,
        "InternationalTravel": len(codes) > 1,
        "BorderCrossings": max(len(codes) - 1, 0),
    }


def _offset_minutes(value: Any) -> int:
    # Offsets arrive as "-08:00:00" or "01:00:00".
    if value is None or value == "":
        return 0
    if not isinstance(value, str):
        raise ProviderError("Azure Maps returned a malformed time zone offset")
    text = value.strip()
    sign = -1 if text.startswith("-") else 1
    parts = text.lstrip("+-").split(":")
    try:
        hours = int(parts[0])
        minutes = int(parts[1]) if len(parts) > 1 else 0
    except ValueError as exc:
        raise ProviderError(f"Azure Maps returned a malformed time zone offset: {value!r}") from exc
    return sign * (hours * 60 + minutes)


def format_offset(minutes: int) -> str:
    sign = "-" if minutes < 0 else "+"
    hours, rest = divmod(abs(minutes), 60)
    return f"{sign}{hours:02d}:{rest:02d}"


def shape_timezone(point: Coordinate, include_transitions: bool, payload: Dict[str, Any]) -> Dict[str, Any]:
    zones = payload.get("TimeZones") or []
    if not zones:
        raise ToolFailure(
            f"no time zone found at {point.as_lat_lon()}",
            {"coordinates": coordinates(point)},
        )
    zone = zones[0]
    reference = zone.get("ReferenceTime") or {}
    names = zone.get("Names") or {}
    standard = _offset_minutes(reference.get("StandardOffset"))
    daylight = _offset_minutes(reference.get("DaylightSavings"))
    summary: Dict[str, Any] = {
        "TimeZoneId": zone.get("Id"),
        "Name": names.get("Generic") or names.get("Standard"),
        "Tag": reference.get("Tag"),
        "Offset": {
            "Standard": format_offset(standard),
            "Daylight": format_offset(daylight),
            "Total": format_offset(standard + daylight),
        },
        "WallTime": reference.get("WallTime"),
        "Sunrise": reference.get("Sunrise"),
        "Sunset": reference.get("Sunset"),
    }
    if include_transitions:
        summary["Transitions"] = [
            {
                "Tag": item.get("Tag"),
                "Offset": format_offset(
                    _offset_minutes(item.get("StandardOffset")) + _offset_minutes(item.get("DaylightSavings"))
                ),
                "UtcStart": item.get("UtcStart"),
                "UtcEnd": item.get("UtcEnd"),
            }
            for item in zone.get("TimeTransitions") or []
        ]
    return {
        "Coordinates": coordinates(point),
        "ZoneCount": len(zones),
        "TimeZone": summary,
    }

def country_record(country: Any) -> CountryRecord:
    return {
        "CountryName": getattr(country, "common_name", None) or country.name,
        "CountryShortCode": country.alpha_2,
        "Alpha3Code": country.alpha_3,
        "NumericCode": getattr(country, "numeric", None),
        "OfficialName": getattr(country, "official_name", None),
    }
