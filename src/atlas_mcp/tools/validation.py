"""Input validation for Azure Maps tool parameters.

Validators never raise. Each returns a ``ValidationResult`` carrying either the
normalized value or a human-readable reason; handlers call ``unwrap()`` to turn
a failure into a ``ValidationError`` before any request leaves the process.
"""

from __future__ import annotations

import ipaddress
import json
import math
from dataclasses import dataclass
from typing import Any, Generic, List, Mapping, Optional, Sequence, TypeVar, Union

from .shared import ValidationError

T = TypeVar("T")

TRAVEL_MODES = ("car", "truck", "taxi", "bus", "van", "motorcycle", "bicycle", "pedestrian")
ROUTE_TYPES = ("fastest", "shortest")
RESULT_TYPES = ("locality", "postalCode", "adminDistrict", "countryRegion")
RESOLUTIONS = ("small", "medium", "large")
MAP_STYLES = ("road", "satellite", "hybrid")

_PRIVATE_V4 = (
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
)
_PRIVATE_V6 = (
    ipaddress.ip_network("fc00::/7"),
    ipaddress.ip_network("fec0::/10"),
)


@dataclass(frozen=True)
class ValidationResult(Generic[T]):
    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None

    @classmethod
    def success(cls, value: T) -> "ValidationResult[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: str) -> "ValidationResult[T]":
        return cls(ok=False, error=error)

    def unwrap(self) -> T:
        if not self.ok:
            raise ValidationError(self.error or "invalid input")
        return self.value  # type: ignore[return-value]


@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float

    def as_lat_lon(self) -> str:
        return f"{self.latitude},{self.longitude}"

    def as_lon_lat(self) -> str:
        return f"{self.longitude},{self.latitude}"


@dataclass(frozen=True)
class BoundingBox:
    west: float
    south: float
    east: float
    north: float

    @property
    def center(self) -> Coordinate:
        return Coordinate((self.south + self.north) / 2, (self.west + self.east) / 2)


@dataclass(frozen=True)
class ParsedIP:
    address: Union[ipaddress.IPv4Address, ipaddress.IPv6Address]
    scope: str

    @property
    def version(self) -> int:
        return self.address.version

    @property
    def can_geolocate(self) -> bool:
        return self.scope == "public" and self.address.is_global


def is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _parse_number(value: Any, param_name: str) -> ValidationResult[float]:
    if is_missing(value):
        return ValidationResult.failure(f"{param_name} is required")
    if isinstance(value, bool):
        return ValidationResult.failure(f"{param_name} must be a number")
    if not isinstance(value, (int, float, str)):
        return ValidationResult.failure(f"{param_name} must be a number")
    try:
        number = float(value.strip() if isinstance(value, str) else value)
    except ValueError:
        return ValidationResult.failure(f"{param_name} must be a number, got {value!r}")
    except OverflowError:
        return ValidationResult.failure(f"{param_name} is out of range")
    if not math.isfinite(number):
        return ValidationResult.failure(f"{param_name} must be a finite number")
    return ValidationResult.success(number)


def _check_degrees(value: Any, param_name: str, limit: int) -> ValidationResult[float]:
    parsed = _parse_number(value, param_name)
    if not parsed.ok:
        return parsed
    if parsed.value < -limit or parsed.value > limit:
        return ValidationResult.failure(
            f"{param_name} must be between -{limit} and {limit} degrees"
        )
    return parsed


def validate_coordinates(latitude: Any, longitude: Any) -> ValidationResult[Coordinate]:
    lat = _check_degrees(latitude, "latitude", 90)
    if not lat.ok:
        return ValidationResult.failure(lat.error)
    lon = _check_degrees(longitude, "longitude", 180)
    if not lon.ok:
        return ValidationResult.failure(lon.error)
    return ValidationResult.success(Coordinate(lat.value, lon.value))


def validate_boolean_string(value: Any, param_name: str) -> ValidationResult[bool]:
    # Only the exact lowercase literals are accepted; native booleans are not.
    if is_missing(value):
        return ValidationResult.failure(f"{param_name} is required ('true' or 'false')")
    if not isinstance(value, str):
        return ValidationResult.failure(f"{param_name} must be the string 'true' or 'false'")
    if value == "true":
        return ValidationResult.success(True)
    if value == "false":
        return ValidationResult.success(False)
    return ValidationResult.failure(
        f"{param_name} must be 'true' or 'false', got {value!r}"
    )


def parse_enum(value: Any, allowed: Sequence[str], param_name: str) -> ValidationResult[str]:
    if is_missing(value):
        return ValidationResult.failure(f"{param_name} is required")
    text = str(value).strip().lower()
    for option in allowed:
        if option.lower() == text:
            return ValidationResult.success(option)
    return ValidationResult.failure(
        f"invalid {param_name} {value!r}; allowed values: {', '.join(allowed)}"
    )


def _classify(address: Union[ipaddress.IPv4Address, ipaddress.IPv6Address]) -> str:
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped:
        return _classify(address.ipv4_mapped)
    if address.is_loopback:
        return "loopback"
    if address.is_link_local:
        return "link-local"
    networks = _PRIVATE_V4 if address.version == 4 else _PRIVATE_V6
    if any(address in network for network in networks):
        return "private"
    return "public"


def validate_ip_address(value: Any) -> ValidationResult[ParsedIP]:
    if is_missing(value):
        return ValidationResult.failure("ip_address is required")
    if not isinstance(value, str):
        return ValidationResult.failure("ip_address must be a string")
    text = value.strip()
    try:
        address = ipaddress.ip_address(text)
    except ValueError:
        return ValidationResult.failure(f"invalid IP address format: {text!r}")
    if getattr(address, "scope_id", None):
        return ValidationResult.failure(f"IPv6 zone identifiers are not supported: {text!r}")
    return ValidationResult.success(ParsedIP(address=address, scope=_classify(address)))


def validate_bounding_box(value: Any) -> ValidationResult[BoundingBox]:
    if is_missing(value):
        return ValidationResult.failure("bounding_box is required")
    raw: Any = value
    if isinstance(value, str):
        try:
            raw = json.loads(value)
        except json.JSONDecodeError:
            return ValidationResult.failure("bounding_box is not valid JSON")
    if not isinstance(raw, Mapping):
        return ValidationResult.failure(
            "bounding_box must be an object with west, south, east and north"
        )

    fields = {}
    for name, limit in (("west", 180), ("south", 90), ("east", 180), ("north", 90)):
        if name not in raw:
            return ValidationResult.failure(f"bounding_box is missing '{name}'")
        checked = _check_degrees(raw[name], f"bounding_box.{name}", limit)
        if not checked.ok:
            return ValidationResult.failure(checked.error)
        fields[name] = checked.value

    if fields["west"] > fields["east"]:
        return ValidationResult.failure("bounding_box is inverted: west is greater than east")
    if fields["south"] > fields["north"]:
        return ValidationResult.failure("bounding_box is inverted: south is greater than north")
    return ValidationResult.success(BoundingBox(**fields))


def validate_array_size(items: Any, max_items: int, param_name: str) -> ValidationResult[list]:
    if items is None:
        return ValidationResult.failure(f"{param_name} is required")
    if isinstance(items, (str, bytes)) or not isinstance(items, Sequence):
        return ValidationResult.failure(f"{param_name} must be an array")
    if len(items) == 0:
        return ValidationResult.failure(f"{param_name} must contain at least one item")
    if len(items) > max_items:
        return ValidationResult.failure(
            f"{param_name} contains {len(items)} items; maximum is {max_items}"
        )
    return ValidationResult.success(list(items))


def validate_dimension(value: Any, minimum: int, maximum: int, param_name: str) -> ValidationResult[int]:
    parsed = _parse_number(value, param_name)
    if not parsed.ok:
        return ValidationResult.failure(parsed.error)
    if not parsed.value.is_integer():
        return ValidationResult.failure(f"{param_name} must be an integer")
    number = int(parsed.value)
    if number < minimum or number > maximum:
        return ValidationResult.failure(f"{param_name} must be between {minimum} and {maximum}")
    return ValidationResult.success(number)


def validate_string_input(
    value: Any,
    param_name: str,
    min_length: int = 1,
    max_length: int = 2048,
) -> ValidationResult[str]:
    if is_missing(value):
        return ValidationResult.failure(f"{param_name} is required")
    if not isinstance(value, str):
        return ValidationResult.failure(f"{param_name} must be a string")
    text = value.strip()
    if len(text) < min_length:
        return ValidationResult.failure(f"{param_name} must be at least {min_length} characters long")
    if len(text) > max_length:
        return ValidationResult.failure(f"{param_name} exceeds maximum length of {max_length} characters")
    return ValidationResult.success(text)


def validate_coordinate_list(
    items: Any,
    param_name: str,
    min_count: int = 1,
    max_count: int = 150,
) -> ValidationResult[List[Coordinate]]:
    sized = validate_array_size(items, max_count, param_name)
    if not sized.ok:
        return ValidationResult.failure(sized.error)
    if len(sized.value) < min_count:
        return ValidationResult.failure(f"{param_name} requires at least {min_count} coordinates")

    points: List[Coordinate] = []
    for position, item in enumerate(sized.value, start=1):
        if not isinstance(item, Mapping):
            return ValidationResult.failure(
                f"{param_name}[{position}] must be an object with latitude and longitude"
            )
        checked = validate_coordinates(item.get("latitude"), item.get("longitude"))
        if not checked.ok:
            return ValidationResult.failure(f"{param_name}[{position}]: {checked.error}")
        points.append(checked.value)
    return ValidationResult.success(points)
