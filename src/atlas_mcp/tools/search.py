from __future__ import annotations

from typing import Any, Dict

from claude_agent_sdk import tool
from lmnr import observe

from .client import get_client
from .shaping import shape_geocode, shape_polygon, shape_reverse_geocode
from .shared import ToolFailure, log_tool_call, log_tool_result, tool_crash, tool_failure, tool_json
from .validation import (
    RESOLUTIONS,
    RESULT_TYPES,
    is_missing,
    parse_enum,
    validate_coordinates,
    validate_dimension,
    validate_string_input,
)


async def fetch_geocode(location: Any, max_results: Any = None) -> Dict[str, Any]:
    query = validate_string_input(location, "location", min_length=2, max_length=2048).unwrap()
    top = 5 if is_missing(max_results) else validate_dimension(max_results, 1, 20, "max_results").unwrap()
    payload = await get_client().geocode(query, top)
    return shape_geocode(query, payload)


async def fetch_reverse_geocode(latitude: Any, longitude: Any) -> Dict[str, Any]:
    point = validate_coordinates(latitude, longitude).unwrap()
    payload = await get_client().reverse_geocode(point)
    return shape_reverse_geocode(point, payload)


async def fetch_polygon(
    latitude: Any,
    longitude: Any,
    result_type: Any = None,
    resolution: Any = None,
) -> Dict[str, Any]:
    point = validate_coordinates(latitude, longitude).unwrap()
    kind = "locality" if is_missing(result_type) else parse_enum(result_type, RESULT_TYPES, "result_type").unwrap()
    detail = "small" if is_missing(resolution) else parse_enum(resolution, RESOLUTIONS, "resolution").unwrap()
    payload = await get_client().get_polygon(point, kind, detail)
    return shape_polygon(point, kind, detail, payload)


@tool(
    "geocode",
    "Convert an address or place name into coordinates and structured address details.",
    {
        "type": "object",
        "properties": {
            "location": {"type": "string", "description": "Address, landmark or place name."},
            "max_results": {"type": "integer", "minimum": 1, "maximum": 20, "description": "Default: 5."},
        },
        "required": ["location"],
    },
)
@observe()
async def geocode(args: Dict[str, Any]) -> Dict[str, Any]:
    call_id = log_tool_call("geocode", args)
    try:
        result = await fetch_geocode(args.get("location"), args.get("max_results"))
    except ToolFailure as exc:
        return tool_failure("geocode", exc, call_id=call_id)
    except Exception as exc:  # pragma: no cover - best-effort tool guard
        return tool_crash("geocode", exc, call_id=call_id)
    log_tool_result("geocode", "ok", call_id=call_id)
    return tool_json(result)


@tool(
    "reverse_geocode",
    "Convert latitude/longitude into a street address.",
    {"latitude": float, "longitude": float},
)
@observe()
async def reverse_geocode(args: Dict[str, Any]) -> Dict[str, Any]:
    call_id = log_tool_call("reverse_geocode", args)
    try:
        result = await fetch_reverse_geocode(args.get("latitude"), args.get("longitude"))
    except ToolFailure as exc:
        return tool_failure("reverse_geocode", exc, call_id=call_id)
    except Exception as exc:  # pragma: no cover - best-effort tool guard
        return tool_crash("reverse_geocode", exc, call_id=call_id)
    log_tool_result("reverse_geocode", "ok", call_id=call_id)
    return tool_json(result)


@tool(
    "search_polygon",
    "Get the administrative boundary polygon (locality, postalCode, adminDistrict, countryRegion) "
    "containing a point. Resolution is small, medium or large.",
    {
        "type": "object",
        "properties": {
            "latitude": {"type": "number"},
            "longitude": {"type": "number"},
            "result_type": {"type": "string", "description": "Default: locality."},
            "resolution": {"type": "string", "description": "Default: small."},
        },
        "required": ["latitude", "longitude"],
    },
)
@observe()
async def search_polygon(args: Dict[str, Any]) -> Dict[str, Any]:
    call_id = log_tool_call("search_polygon", args)
    try:
        result = await fetch_polygon(
            args.get("latitude"),
            args.get("longitude"),
            args.get("result_type"),
            args.get("resolution"),
        )
    except ToolFailure as exc:
        return tool_failure("search_polygon", exc, call_id=call_id)
    except Exception as exc:  # pragma: no cover - best-effort tool guard
        return tool_crash("search_polygon", exc, call_id=call_id)
    log_tool_result("search_polygon", "ok", call_id=call_id)
    return tool_json(result)
