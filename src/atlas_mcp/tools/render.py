from __future__ import annotations

import re
from typing import Any, Dict, List, Mapping, Optional, Tuple

from claude_agent_sdk import tool
from lmnr import observe

from .client import get_client
from .routing import COORDINATE_SCHEMA
from .shaping import shape_static_map
from .shared import (
    ToolFailure,
    ValidationError,
    log_tool_call,
    log_tool_result,
    tool_crash,
    tool_failure,
    tool_json,
)
from .validation import (
    MAP_STYLES,
    Coordinate,
    is_missing,
    parse_enum,
    validate_array_size,
    validate_bounding_box,
    validate_coordinate_list,
    validate_coordinates,
    validate_dimension,
)

MAX_MARKERS = 50
MAX_PATHS = 20
DEFAULT_ZOOM = 13
DEFAULT_SIZE = 512
DEFAULT_PATH_COLOR = "0000FF"
DEFAULT_PATH_WIDTH = 3

HEX_COLOR_RE = re.compile(r"^#?([0-9a-fA-F]{6})$")
NAMED_COLORS = {
    "red": "FF0000",
    "green": "008000",
    "blue": "0000FF",
    "yellow": "FFFF00",
    "orange": "FFA500",
    "purple": "800080",
    "black": "000000",
    "white": "FFFFFF",
    "gray": "808080",
    "grey": "808080",
}


def _color(value: Any, param_name: str) -> Optional[str]:
    if is_missing(value):
        return None
    text = str(value).strip()
    named = NAMED_COLORS.get(text.lower())
    if named:
        return named
    match = HEX_COLOR_RE.match(text)
    if not match:
        raise ValidationError(
            f"{param_name} must be a hex color like #FF0000 or one of: {', '.join(sorted(NAMED_COLORS))}"
        )
    return match.group(1).upper()


def _label(value: Any) -> str:
    if is_missing(value):
        return ""
    return str(value).replace("'", "").replace("|", " ").strip()


def _build_pins(markers: List[Any]) -> List[str]:
    # Markers sharing a color share one pin style, in first-seen order.
    groups: Dict[Optional[str], List[str]] = {}
    for position, marker in enumerate(markers, start=1):
        if not isinstance(marker, Mapping):
            raise ValidationError(f"markers[{position}] must be an object with latitude and longitude")
        checked = validate_coordinates(marker.get("latitude"), marker.get("longitude"))
        if not checked.ok:
            raise ValidationError(f"markers[{position}]: {checked.error}")
        point = checked.value
        color = _color(marker.get("color"), f"markers[{position}].color")
        label = _label(marker.get("label"))
        entry = f"{point.longitude} {point.latitude}"
        if label:
            entry = f"'{label}'{entry}"
        groups.setdefault(color, []).append(entry)

    pins = []
    for color, entries in groups.items():
        style = f"default|co{color}" if color else "default"
        pins.append(f"{style}||" + "|".join(entries))
    return pins


def _build_paths(paths: List[Any]) -> List[str]:
    rendered = []
    for position, path in enumerate(paths, start=1):
        if not isinstance(path, Mapping):
            raise ValidationError(f"paths[{position}] must be an object with coordinates")
        points = validate_coordinate_list(
            path.get("coordinates"), f"paths[{position}].coordinates", min_count=2, max_count=1000
        ).unwrap()
        color = _color(path.get("color"), f"paths[{position}].color") or DEFAULT_PATH_COLOR
        width = DEFAULT_PATH_WIDTH
        if not is_missing(path.get("width")):
            width = validate_dimension(path.get("width"), 1, 20, f"paths[{position}].width").unwrap()
        line = "|".join(f"{p.longitude} {p.latitude}" for p in points)
        rendered.append(f"lc{color}|lw{width}||{line}")
    return rendered


def _map_area(bounding_box: Any, latitude: Any, longitude: Any) -> Tuple[Any, Optional[Coordinate]]:
    has_center = not is_missing(latitude) or not is_missing(longitude)
    if not is_missing(bounding_box):
        if has_center:
            raise ValidationError("provide either bounding_box or latitude/longitude, not both")
        return validate_bounding_box(bounding_box).unwrap(), None
    if has_center:
        return None, validate_coordinates(latitude, longitude).unwrap()
    raise ValidationError("bounding_box or latitude/longitude is required")


def _optional_list(value: Any, max_items: int, param_name: str) -> List[Any]:
    if is_missing(value) or value == []:
        return []
    return validate_array_size(value, max_items, param_name).unwrap()


async def fetch_static_map(args: Dict[str, Any]) -> Dict[str, Any]:
    bounding_box, center = _map_area(args.get("bounding_box"), args.get("latitude"), args.get("longitude"))

    def _dimension(name: str, default: int, minimum: int, maximum: int) -> int:
        value = args.get(name)
        if is_missing(value):
            return default
        return validate_dimension(value, minimum, maximum, name).unwrap()

    zoom = _dimension("zoom", DEFAULT_ZOOM, 1, 22)
    width = _dimension("width", DEFAULT_SIZE, 1, 8192)
    height = _dimension("height", DEFAULT_SIZE, 1, 8192)
    style = "road"
    if not is_missing(args.get("map_style")):
        style = parse_enum(args.get("map_style"), MAP_STYLES, "map_style").unwrap()

    markers = _optional_list(args.get("markers"), MAX_MARKERS, "markers")
    paths = _optional_list(args.get("paths"), MAX_PATHS, "paths")
    pins = _build_pins(markers)
    lines = _build_paths(paths)

    image, _content_type = await get_client().static_map_image(
        style,
        zoom,
        width,
        height,
        bounding_box=bounding_box,
        center=center,
        pins=pins,
        paths=lines,
    )
    return shape_static_map(
        image,
        style,
        zoom,
        width,
        height,
        marker_count=len(markers),
        path_count=len(paths),
        bounding_box=bounding_box,
        center=center,
    )


@tool(
    "render_static_map",
    "Render a PNG map image for a bounding box or a center point, with optional markers and paths.",
    {
        "type": "object",
        "properties": {
            "bounding_box": {
                "type": "string",
                "description": 'JSON like {"west": -122.4, "south": 47.5, "east": -122.2, "north": 47.7}',
            },
            "latitude": {"type": "number", "description": "Map center latitude (instead of bounding_box)."},
            "longitude": {"type": "number", "description": "Map center longitude (instead of bounding_box)."},
            "zoom": {"type": "integer", "minimum": 1, "maximum": 22, "description": "Default: 13."},
            "width": {"type": "integer", "minimum": 1, "maximum": 8192, "description": "Default: 512."},
            "height": {"type": "integer", "minimum": 1, "maximum": 8192, "description": "Default: 512."},
            "map_style": {"type": "string", "description": "road, satellite or hybrid. Default: road."},
            "markers": {
                "type": "array",
                "maxItems": MAX_MARKERS,
                "items": {
                    "type": "object",
                    "properties": {
                        **COORDINATE_SCHEMA["properties"],
                        "label": {"type": "string"},
                        "color": {"type": "string"},
                    },
                    "required": ["latitude", "longitude"],
                },
            },
            "paths": {
                "type": "array",
                "maxItems": MAX_PATHS,
                "items": {
                    "type": "object",
                    "properties": {
                        "coordinates": {"type": "array", "items": COORDINATE_SCHEMA, "minItems": 2},
                        "color": {"type": "string"},
                        "width": {"type": "integer", "minimum": 1, "maximum": 20},
                    },
                    "required": ["coordinates"],
                },
            },
        },
    },
)
@observe()
async def render_static_map(args: Dict[str, Any]) -> Dict[str, Any]:
    call_id = log_tool_call("render_static_map", args)
    try:
        result = await fetch_static_map(args)
    except ToolFailure as exc:
        return tool_failure("render_static_map", exc, call_id=call_id)
    except Exception as exc:  # pragma: no cover - best-effort tool guard
        return tool_crash("render_static_map", exc, call_id=call_id)
    log_tool_result("render_static_map", "ok", call_id=call_id)
    encoded = result["Image"]["DataUri"].split(",", 1)[1]
    return tool_json(result, extra_content=[{"type": "image", "data": encoded, "mimeType": "image/png"}])
