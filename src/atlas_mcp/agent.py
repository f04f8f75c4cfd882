from __future__ import annotations

import os
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Sequence, Tuple

from claude_agent_sdk import (
    AssistantMessage,
    ClaudeAgentOptions,
    ClaudeSDKClient,
    TextBlock,
    create_sdk_mcp_server,
)
from lmnr import Laminar, observe

from .tools import TOOLS
from .tools.client import get_client
from .tools.shared import pop_tool_errors

SERVER_NAME = "atlas"

SYSTEM_PROMPT = """
You are a geospatial assistant backed by Azure Maps. Answer location questions with the provided tools.

Available capabilities:
- geocode / reverse_geocode: addresses to coordinates and back.
- search_polygon: administrative boundaries (locality, postalCode, adminDistrict, countryRegion).
- route_directions, route_matrix, route_range: routes, travel-time matrices and reachable areas.
- routing_countries: countries crossed by a route, for border checks.
- render_static_map: PNG map images with markers and paths.
- geolocate_ip, geolocate_ip_batch, validate_ip: IP address country lookup and classification.
- get_country_info, search_countries: ISO country reference data.
- timezone_by_coordinates: time zone, UTC offset and local time at a point.

Guidelines:
- Geocode free-form places before calling tools that need coordinates.
- avoid_tolls and avoid_highways take the strings "true" or "false".
- Every tool returns an envelope with success, data and error. When success is false, report the error plainly and do not invent data.
- Quote distances in kilometers and travel times in minutes unless the user asks otherwise.
- Keep answers concise and cite the numbers the tools returned.
""".strip()


@dataclass
class MapsResult:
    report_markdown: str
    trace_id: str | None
    session_id: str


@observe()
def trace_complete(mode: str, status: str = "ok") -> Dict[str, str]:
    return {"mode": mode, "status": status}


def allowed_tool_names() -> List[str]:
    return [f"mcp__{SERVER_NAME}__{item.name}" for item in TOOLS]


def _build_mcp_server():
    # Raises ConfigurationError when Azure Maps is not configured.
    get_client()
    return create_sdk_mcp_server(name=SERVER_NAME, tools=TOOLS)


async def _collect_report(
    client: ClaudeSDKClient,
    stream_callback: Callable[[str], None] | None = None,
) -> str:
    parts: List[str] = []
    async for message in client.receive_response():
        if isinstance(message, AssistantMessage):
            for block in message.content:
                if isinstance(block, TextBlock):
                    parts.append(block.text)
                    if stream_callback:
                        stream_callback(block.text)
    return "".join(parts).strip()


def _build_chat_prompt(
    message: str,
    history: Sequence[Tuple[str, str]] | None = None,
) -> str:
    if not history:
        return f"User: {message}\nAssistant:"

    lines: List[str] = ["Conversation so far:"]
    for user_msg, assistant_msg in history[-6:]:
        lines.append(f"User: {user_msg}")
        lines.append(f"Assistant: {assistant_msg}")
    lines.append(f"User: {message}")
    lines.append("Assistant:")
    return "\n".join(lines)


@observe()
async def run_chat_query(
    message: str,
    history: Sequence[Tuple[str, str]] | None = None,
    user_id: str | None = None,
    session_id: str | None = None,
    stream_callback: Callable[[str], None] | None = None,
    metadata: Dict[str, Any] | None = None,
) -> MapsResult:
    pop_tool_errors()
    session_id = session_id or str(uuid.uuid4())
    Laminar.set_trace_session_id(session_id=session_id)
    Laminar.set_trace_user_id(user_id=user_id or "cli-user")
    base_metadata: Dict[str, Any] = {"mode": "chat", "session_id": session_id}
    if metadata:
        base_metadata.update(metadata)
    Laminar.set_trace_metadata(base_metadata)

    options = ClaudeAgentOptions(
        model=os.environ.get("CLAUDE_MODEL", "claude-sonnet-4-20250514"),
        system_prompt=SYSTEM_PROMPT,
        mcp_servers={SERVER_NAME: _build_mcp_server()},
        allowed_tools=allowed_tool_names(),
        max_turns=12,
    )

    prompt = _build_chat_prompt(message, history=history)

    async with ClaudeSDKClient(options=options) as client:
        await client.query(prompt)
        response = await _collect_report(client, stream_callback=stream_callback)

    trace_complete(mode="chat", status="ok")
    trace_id = Laminar.get_trace_id()
    return MapsResult(report_markdown=response, trace_id=trace_id, session_id=session_id)
