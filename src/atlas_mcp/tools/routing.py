from __future__ import annotations

import asyncio
from typing import Any, Dict, List

from claude_agent_sdk import tool
from lmnr import observe

from .client import get_client
from .country import CATALOG
from .shaping import (
    WaypointCountry,
    coordinates,
    country_record,
    shape_reverse_geocode,
    shape_route_countries,
    shape_route_directions,
    shape_route_matrix,
    shape_route_range,
)
from .shared import (
    ToolFailure,
    ValidationError,
    log_step,
    log_tool_call,
    log_tool_result,
    tool_crash,
    tool_failure,
    tool_json,
)
from .validation import (
    ROUTE_TYPES,
    TRAVEL_MODES,
    Coordinate,
    is_missing,
    parse_enum,
    validate_boolean_string,
    validate_coordinate_list,
    validate_coordinates,
    validate_dimension,
)

MAX_ROUTE_POINTS = 150
MAX_MATRIX_PAIRS = 700
MAX_TIME_BUDGET_SECONDS = 86400
MAX_DISTANCE_BUDGET_METERS = 500000

COORDINATE_SCHEMA = {
    "type": "object",
    "properties": {
        "latitude": {"type": "number"},
        "longitude": {"type": "number"},
    },
    "required": ["latitude", "longitude"],
}

_TRAVEL_MODE_SCHEMA = {
    "type": "string",
    "description": "One of: " + ", ".join(TRAVEL_MODES) + ". Default: car.",
}
_ROUTE_TYPE_SCHEMA = {"type": "string", "description": "fastest or shortest. Default: fastest."}


def _modes(travel_mode: Any, route_type: Any) -> tuple[str, str]:
    mode = "car" if is_missing(travel_mode) else parse_enum(travel_mode, TRAVEL_MODES, "travel_mode").unwrap()
    kind = "fastest" if is_missing(route_type) else parse_enum(route_type, ROUTE_TYPES, "route_type").unwrap()
    return mode, kind


def _flag(value: Any, param_name: str) -> bool:
    if is_missing(value):
        return False
    return validate_boolean_string(value, param_name).unwrap()


async def fetch_route_directions(
    coordinates: Any,
    travel_mode: Any = None,
    route_type: Any = None,
    avoid_tolls: Any = None,
    avoid_highways: Any = None,
) -> Dict[str, Any]:
    points = validate_coordinate_list(
        coordinates, "coordinates", min_count=2, max_count=MAX_ROUTE_POINTS
    ).unwrap()
    mode, kind = _modes(travel_mode, route_type)
    avoid: List[str] = []
    if _flag(avoid_tolls, "avoid_tolls"):
        avoid.append("tollRoads")
    if _flag(avoid_highways, "avoid_highways"):
        avoid.append("motorways")
    payload = await get_client().route_directions(points, mode, kind, avoid)
    result = shape_route_directions(payload)
    result["TravelMode"] = mode
    result["RouteType"] = kind
    return result


async def fetch_route_matrix(
    origins: Any,
    destinations: Any,
    travel_mode: Any = None,
    route_type: Any = None,
) -> Dict[str, Any]:
    origin_points = validate_coordinate_list(origins, "origins", max_count=MAX_MATRIX_PAIRS).unwrap()
    destination_points = validate_coordinate_list(
        destinations, "destinations", max_count=MAX_MATRIX_PAIRS
    ).unwrap()
    pairs = len(origin_points) * len(destination_points)
    if pairs > MAX_MATRIX_PAIRS:
        raise ValidationError(
            f"route matrix supports at most {MAX_MATRIX_PAIRS} origin x destination pairs, got {pairs}"
        )
    mode, kind = _modes(travel_mode, route_type)
    payload = await get_client().route_matrix(origin_points, destination_points, mode, kind)
    return shape_route_matrix(len(origin_points), len(destination_points), payload)


async def fetch_route_range(
    latitude: Any,
    longitude: Any,
    time_budget_seconds: Any = None,
    distance_budget_meters: Any = None,
    travel_mode: Any = None,
    route_type: Any = None,
) -> Dict[str, Any]:
    center = validate_coordinates(latitude, longitude).unwrap()
    has_time = not is_missing(time_budget_seconds)
    has_distance = not is_missing(distance_budget_meters)
    if has_time == has_distance:
        raise ValidationError(
            "specify exactly one of time_budget_seconds or distance_budget_meters"
        )

    time_budget = None
    distance_budget = None
    if has_time:
        time_budget = validate_dimension(
            time_budget_seconds, 1, MAX_TIME_BUDGET_SECONDS, "time_budget_seconds"
        ).unwrap()
        budget = {"TimeSeconds": time_budget}
    else:
        distance_budget = validate_dimension(
            distance_budget_meters, 1, MAX_DISTANCE_BUDGET_METERS, "distance_budget_meters"
        ).unwrap()
        budget = {"DistanceMeters": distance_budget}

    mode, kind = _modes(travel_mode, route_type)
    payload = await get_client().route_range(
        center,
        mode,
        kind,
        time_budget_seconds=time_budget,
        distance_budget_meters=distance_budget,
    )
    return shape_route_range(center, mode, kind, budget, payload)


async def fetch_route_countries(waypoints: Any) -> Dict[str, Any]:
    points = validate_coordinate_list(
        waypoints, "coordinates", min_count=2, max_count=MAX_ROUTE_POINTS
    ).unwrap()
    client = get_client()
    semaphore = asyncio.Semaphore(client.settings.batch_concurrency)

    async def _locate(index: int, point: Coordinate) -> WaypointCountry:
        entry: WaypointCountry = {"WaypointIndex": index, "Coordinates": coordinates(point)}
        async with semaphore:
            try:
                payload = await client.reverse_geocode(point)
                address = shape_reverse_geocode(point, payload)["AddressDetails"]
            except ToolFailure as exc:
                entry["Success"] = False
                entry["Error"] = exc.message
                return entry
        entry["Success"] = True
        code = address["CountryCode"]
        entry["CountryCode"] = code if isinstance(code, str) and code else None
        entry["CountryName"] = address["CountryRegion"]
        entry["Address"] = address["FormattedAddress"]
        return entry

    log_step(f"  -> resolving countries for {len(points)} waypoints")
    located = list(await asyncio.gather(*(_locate(index, point) for index, point in enumerate(points))))

    countries = []
    for code in dict.fromkeys(item.get("CountryCode") for item in located):
        country = CATALOG.get(code) if code else None
        if country is not None:
            countries.append(country_record(country))
    return shape_route_countries(located, countries)


@tool(
    "route_directions",
    "Calculate a route through 2 to 150 waypoints with distance, travel time and turn-by-turn "
    "instructions. avoid_tolls and avoid_highways take the strings 'true' or 'false'.",
    {
        "type": "object",
        "properties": {
            "coordinates": {"type": "array", "items": COORDINATE_SCHEMA, "minItems": 2},
            "travel_mode": _TRAVEL_MODE_SCHEMA,
            "route_type": _ROUTE_TYPE_SCHEMA,
            "avoid_tolls": {"type": "string", "enum": ["true", "false"]},
            "avoid_highways": {"type": "string", "enum": ["true", "false"]},
        },
        "required": ["coordinates"],
    },
)
@observe()
async def route_directions(args: Dict[str, Any]) -> Dict[str, Any]:
    call_id = log_tool_call("route_directions", args)
    try:
        result = await fetch_route_directions(
            args.get("coordinates"),
            args.get("travel_mode"),
            args.get("route_type"),
            args.get("avoid_tolls"),
            args.get("avoid_highways"),
        )
    except ToolFailure as exc:
        return tool_failure("route_directions", exc, call_id=call_id)
    except Exception as exc:  # pragma: no cover - best-effort tool guard
        return tool_crash("route_directions", exc, call_id=call_id)
    log_tool_result("route_directions", "ok", call_id=call_id)
    return tool_json(result)


@tool(
    "route_matrix",
    "Calculate travel times and distances between every origin and every destination "
    "(at most 700 pairs). Results are ordered origin by origin.",
    {
        "type": "object",
        "properties": {
            "origins": {"type": "array", "items": COORDINATE_SCHEMA, "minItems": 1},
            "destinations": {"type": "array", "items": COORDINATE_SCHEMA, "minItems": 1},
            "travel_mode": _TRAVEL_MODE_SCHEMA,
            "route_type": _ROUTE_TYPE_SCHEMA,
        },
        "required": ["origins", "destinations"],
    },
)
@observe()
async def route_matrix(args: Dict[str, Any]) -> Dict[str, Any]:
    call_id = log_tool_call("route_matrix", args)
    try:
        result = await fetch_route_matrix(
            args.get("origins"),
            args.get("destinations"),
            args.get("travel_mode"),
            args.get("route_type"),
        )
    except ToolFailure as exc:
        return tool_failure("route_matrix", exc, call_id=call_id)
    except Exception as exc:  # pragma: no cover - best-effort tool guard
        return tool_crash("route_matrix", exc, call_id=call_id)
    log_tool_result("route_matrix", "ok", call_id=call_id)
    return tool_json(result)


@tool(
    "route_range",
    "Calculate the area reachable from a point within a time budget (seconds) or a distance "
    "budget (meters). Provide exactly one budget.",
    {
        "type": "object",
        "properties": {
            "latitude": {"type": "number"},
            "longitude": {"type": "number"},
            "time_budget_seconds": {"type": "integer", "minimum": 1, "maximum": MAX_TIME_BUDGET_SECONDS},
            "distance_budget_meters": {
                "type": "integer",
                "minimum": 1,
                "maximum": MAX_DISTANCE_BUDGET_METERS,
            },
            "travel_mode": _TRAVEL_MODE_SCHEMA,
            "route_type": _ROUTE_TYPE_SCHEMA,
        },
        "required": ["latitude", "longitude"],
    },
)
@observe()
async def route_range(args: Dict[str, Any]) -> Dict[str, Any]:
    call_id = log_tool_call("route_range", args)
    try:
        result = await fetch_route_range(
            args.get("latitude"),
            args.get("longitude"),
            args.get("time_budget_seconds"),
            args.get("distance_budget_meters"),
            args.get("travel_mode"),
            args.get("route_type"),
        )
    except ToolFailure as exc:
        return tool_failure("route_range", exc, call_id=call_id)
    except Exception as exc:  # pragma: no cover - best-effort tool guard
        return tool_crash("route_range", exc, call_id=call_id)
    log_tool_result("route_range", "ok", call_id=call_id)
    return tool_json(result)


@tool(
    "routing_countries",
    "Identify the countries along a route given as 2 to 150 waypoints. Each waypoint is "
    "reverse geocoded on its own; useful for cross-border checks.",
    {
        "type": "object",
        "properties": {
            "coordinates": {"type": "array", "items": COORDINATE_SCHEMA, "minItems": 2},
        },
        "required": ["coordinates"],
    },
)
@observe()
async def routing_countries(args: Dict[str, Any]) -> Dict[str, Any]:
    call_id = log_tool_call("routing_countries", args)
    try:
        result = await fetch_route_countries(args.get("coordinates"))
    except ToolFailure as exc:
        return tool_failure("routing_countries", exc, call_id=call_id)
    except Exception as exc:  # pragma: no cover - best-effort tool guard
        return tool_crash("routing_countries", exc, call_id=call_id)
    log_tool_result("routing_countries", "ok", call_id=call_id)
    return tool_json(result)
