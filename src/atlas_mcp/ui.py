from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text


TOOL_DISPLAY_NAMES = {
    "geocode": "Geocoding",
    "reverse_geocode": "Reverse Geocoding",
    "search_polygon": "Boundary Search",
    "route_directions": "Directions",
    "route_matrix": "Route Matrix",
    "route_range": "Reachable Range",
    "routing_countries": "Route Countries",
    "render_static_map": "Static Map",
    "geolocate_ip": "IP Geolocation",
    "geolocate_ip_batch": "IP Batch Geolocation",
    "validate_ip": "IP Validation",
    "get_country_info": "Country Lookup",
    "search_countries": "Country Search",
    "timezone_by_coordinates": "Time Zone",
}

TOOL_RESULT_SUMMARIES = {
    "geocode": "Resolved",
    "reverse_geocode": "Resolved address",
    "search_polygon": "Loaded boundary",
    "route_directions": "Calculated route",
    "route_matrix": "Calculated matrix",
    "route_range": "Calculated range",
    "routing_countries": "Checked route countries",
    "render_static_map": "Rendered image",
    "geolocate_ip": "Located",
    "geolocate_ip_batch": "Located batch",
    "validate_ip": "Classified",
    "get_country_info": "Found country",
    "search_countries": "Listed countries",
    "timezone_by_coordinates": "Looked up time zone",
}


@dataclass
class ToolRun:
    name: str
    preview: str
    started: float
    status: Optional[str] = None


class MapsUI:
    def __init__(self, console: Console) -> None:
        self.console = console
        self._tool_runs: Dict[int, ToolRun] = {}
        self._active_tools: Dict[int, str] = {}
        self._answer_line_start = True

    def render_header(self, version: str) -> None:
        header = Panel(
            Text(f" atlas-mcp {version} ", style="bold"),
            border_style="bright_cyan",
            expand=True,
        )
        self.console.print(header)
        self.console.print(Text("Azure Maps tools for Claude.", style="dim"))
        self.console.print(Text("Powered by Claude Agent SDK · Traced by Laminar", style="dim"))
        self.console.print()

    def render_help(self) -> None:
        self.console.print(
            Text("Commands: /tools  /clear  /help  /exit", style="bright_cyan")
        )

    def render_tools(self, tools: Any) -> None:
        table = Table(show_lines=False)
        table.add_column("Tool")
        table.add_column("Description")
        for item in tools:
            table.add_row(item.name, item.description)
        self.console.print(table)

    def handle_event(self, event: Any) -> None:
        if isinstance(event, str):
            self.console.print(event, style="dim")
            return

        if not isinstance(event, dict):
            return

        event_type = event.get("type")
        if event_type == "tool_start":
            call_id = int(event.get("call_id", 0))
            name = event.get("name") or "tool"
            preview = event.get("preview") or ""
            display = TOOL_DISPLAY_NAMES.get(name, name)
            self._active_tools[call_id] = display
            self._tool_runs[call_id] = ToolRun(
                name=name,
                preview=preview,
                started=event.get("ts", time.perf_counter()),
            )
            if not self._answer_line_start:
                self.console.print()
                self._answer_line_start = True
            self.console.print(f"  ● {display}(\"{preview}\")", style="bright_cyan")
            self._render_active_tools()
            return

        if event_type == "tool_end":
            call_id = int(event.get("call_id", 0))
            run = self._tool_runs.get(call_id)
            self._active_tools.pop(call_id, None)
            if not run:
                return
            run.status = event.get("status")
            if run.status == "error":
                return
            elapsed = time.perf_counter() - run.started
            summary = TOOL_RESULT_SUMMARIES.get(run.name, "Completed")
            self.console.print(f"    └ {summary} in {elapsed:.1f}s", style="dim")
            self._render_active_tools()
            return

        if event_type == "tool_error":
            call_id = int(event.get("call_id", 0))
            run = self._tool_runs.get(call_id)
            self._active_tools.pop(call_id, None)
            reason = event.get("message") or event.get("error") or "Unknown error"
            line = f"└ ✗ Failed: {reason}"
            if run:
                line += f" ({time.perf_counter() - run.started:.1f}s)"
            self.console.print(f"    {line}", style="red")
            self._render_active_tools()
            return

    def begin_answer(self) -> None:
        self._answer_line_start = True

    def stream_answer(self, text: str) -> None:
        if not text:
            return
        prefix = "  " if self._answer_line_start else ""
        body = text.replace("\n", "\n  ")
        self.console.print(prefix + body, end="", soft_wrap=True, highlight=False)
        self._answer_line_start = text.endswith("\n")

    def end_answer(self) -> None:
        self.console.print()
        self._answer_line_start = True

    def _render_active_tools(self) -> None:
        if len(self._active_tools) < 2:
            return
        active = ", ".join(self._active_tools.values())
        self.console.print(f"    ⏳ Active: {active}", style="dim")
