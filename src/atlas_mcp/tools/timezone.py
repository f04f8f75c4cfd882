from __future__ import annotations

from typing import Any, Dict

from claude_agent_sdk import tool
from lmnr import observe

from .client import get_client
from .shaping import shape_timezone
from .shared import ToolFailure, log_tool_call, log_tool_result, tool_crash, tool_failure, tool_json
from .validation import is_missing, validate_boolean_string, validate_coordinates


async def fetch_timezone(latitude: Any, longitude: Any, include_transitions: Any = None) -> Dict[str, Any]:
    point = validate_coordinates(latitude, longitude).unwrap()
    transitions = False
    if not is_missing(include_transitions):
        transitions = validate_boolean_string(include_transitions, "include_transitions").unwrap()
    payload = await get_client().timezone_by_coordinates(point, transitions)
    return shape_timezone(point, transitions, payload)


@tool(
    "timezone_by_coordinates",
    "Get the time zone at a point: IANA id, UTC offsets, daylight saving, local wall time and "
    "sunrise/sunset. include_transitions ('true' or 'false', default 'false') adds DST transitions.",
    {
        "type": "object",
        "properties": {
            "latitude": {"type": "number"},
            "longitude": {"type": "number"},
            "include_transitions": {"type": "string", "enum": ["true", "false"]},
        },
        "required": ["latitude", "longitude"],
    },
)
@observe()
async def timezone_by_coordinates(args: Dict[str, Any]) -> Dict[str, Any]:
    call_id = log_tool_call("timezone_by_coordinates", args)
    try:
        result = await fetch_timezone(
            args.get("latitude"),
            args.get("longitude"),
            args.get("include_transitions"),
        )
    except ToolFailure as exc:
        return tool_failure("timezone_by_coordinates", exc, call_id=call_id)
    except Exception as exc:  # pragma: no cover - best-effort tool guard
        return tool_crash("timezone_by_coordinates", exc, call_id=call_id)
    log_tool_result("timezone_by_coordinates", "ok", call_id=call_id)
    return tool_json(result)
