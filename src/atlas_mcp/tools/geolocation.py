from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Tuple

from claude_agent_sdk import tool
from lmnr import observe

from .client import get_client
from .country import CATALOG
from .shaping import IPLookupResult, shape_ip_batch
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
from .validation import ParsedIP, validate_array_size, validate_ip_address

MAX_BATCH_SIZE = 100


def _geolocation_block(parsed: ParsedIP) -> Optional[str]:
    if parsed.scope == "loopback":
        return "loopback address refers to the local machine and cannot be geolocated"
    if parsed.scope != "public":
        return f"{parsed.scope} IP address cannot be geolocated"
    if not parsed.can_geolocate:
        return "IP address is not globally routable and cannot be geolocated"
    return None


async def fetch_ip_country(ip_address: Any) -> Dict[str, Any]:
    parsed = validate_ip_address(ip_address).unwrap()
    blocked = _geolocation_block(parsed)
    if blocked:
        raise ValidationError(blocked, {"ip_address": str(parsed.address), "scope": parsed.scope})
    address = str(parsed.address)
    code = await get_client().ip_country_code(address)
    if not code:
        raise ToolFailure(f"no country data available for {address}", {"ip_address": address})
    return {"IPAddress": address, "CountryCode": code, "CountryName": CATALOG.name_for(code)}


async def fetch_ip_batch(ip_addresses: Any) -> Dict[str, Any]:
    items = validate_array_size(ip_addresses, MAX_BATCH_SIZE, "ip_addresses").unwrap()
    client = get_client()
    semaphore = asyncio.Semaphore(client.settings.batch_concurrency)

    async def _lookup(address: str) -> Tuple[Optional[str], Optional[str]]:
        async with semaphore:
            try:
                code = await client.ip_country_code(address)
            except ToolFailure as exc:
                return None, exc.message
        if not code:
            return None, "no country data available"
        return code, None

    # One outbound call per distinct address; results map back to every input position.
    resolved: List[Tuple[str, Optional[str]]] = []
    for item in items:
        checked = validate_ip_address(item)
        if not checked.ok:
            resolved.append((str(item), checked.error))
            continue
        resolved.append((str(checked.value.address), _geolocation_block(checked.value)))

    distinct = list(dict.fromkeys(address for address, error in resolved if error is None))
    log_step(f"  -> geolocating {len(distinct)} distinct addresses")
    outcomes = dict(zip(distinct, await asyncio.gather(*(_lookup(address) for address in distinct))))

    results: List[IPLookupResult] = []
    for index, (raw, (address, error)) in enumerate(zip(items, resolved)):
        entry: IPLookupResult = {"Index": index, "IPAddress": raw if isinstance(raw, str) else address}
        if error is None:
            code, error = outcomes[address]
        if error is None:
            entry["Success"] = True
            entry["CountryCode"] = code
            entry["CountryName"] = CATALOG.name_for(code)
        else:
            entry["Success"] = False
            entry["Error"] = error
        results.append(entry)
    return shape_ip_batch(results)


def describe_ip(ip_address: Any) -> Dict[str, Any]:
    parsed = validate_ip_address(ip_address).unwrap()
    return {
        "ValidationResult": {
            "IsValid": True,
            "IPAddress": str(parsed.address),
            "AddressFamily": f"IPv{parsed.version}",
            "IsIPv4": parsed.version == 4,
            "IsIPv6": parsed.version == 6,
            "IsLoopback": parsed.scope == "loopback",
            "IsPrivate": parsed.scope == "private",
            "IsLinkLocal": parsed.scope == "link-local",
            "Scope": parsed.scope,
            "CanGeolocate": parsed.can_geolocate,
        }
    }


@tool(
    "geolocate_ip",
    "Get the country for a public IPv4 or IPv6 address. Private and loopback addresses are rejected.",
    {"ip_address": str},
)
@observe()
async def geolocate_ip(args: Dict[str, Any]) -> Dict[str, Any]:
    call_id = log_tool_call("geolocate_ip", args)
    try:
        result = await fetch_ip_country(args.get("ip_address"))
    except ToolFailure as exc:
        return tool_failure("geolocate_ip", exc, call_id=call_id)
    except Exception as exc:  # pragma: no cover - best-effort tool guard
        return tool_crash("geolocate_ip", exc, call_id=call_id)
    log_tool_result("geolocate_ip", "ok", call_id=call_id)
    return tool_json(result)


@tool(
    "geolocate_ip_batch",
    "Get countries for up to 100 IP addresses. Each address succeeds or fails on its own; "
    "results keep the input order.",
    {
        "type": "object",
        "properties": {
            "ip_addresses": {
                "type": "array",
                "items": {"type": "string"},
                "minItems": 1,
                "maxItems": MAX_BATCH_SIZE,
            }
        },
        "required": ["ip_addresses"],
    },
)
@observe()
async def geolocate_ip_batch(args: Dict[str, Any]) -> Dict[str, Any]:
    call_id = log_tool_call("geolocate_ip_batch", args)
    try:
        result = await fetch_ip_batch(args.get("ip_addresses"))
    except ToolFailure as exc:
        return tool_failure("geolocate_ip_batch", exc, call_id=call_id)
    except Exception as exc:  # pragma: no cover - best-effort tool guard
        return tool_crash("geolocate_ip_batch", exc, call_id=call_id)
    log_tool_result("geolocate_ip_batch", "ok", call_id=call_id)
    return tool_json(result)


@tool(
    "validate_ip",
    "Check whether a string is a valid IPv4 or IPv6 address and classify it "
    "(public, private, loopback, link-local). No network call is made.",
    {"ip_address": str},
)
@observe()
async def validate_ip(args: Dict[str, Any]) -> Dict[str, Any]:
    call_id = log_tool_call("validate_ip", args)
    try:
        result = describe_ip(args.get("ip_address"))
    except ToolFailure as exc:
        return tool_failure("validate_ip", exc, call_id=call_id)
    except Exception as exc:  # pragma: no cover - best-effort tool guard
        return tool_crash("validate_ip", exc, call_id=call_id)
    log_tool_result("validate_ip", "ok", call_id=call_id)
    return tool_json(result)
