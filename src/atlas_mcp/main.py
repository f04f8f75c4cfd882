from __future__ import annotations

import asyncio
import json
import os
import readline  # noqa: F401 - enables history navigation
from typing import Dict, List

from dotenv import load_dotenv
from lmnr import Laminar, observe
from rich.console import Console
from rich.text import Text

from . import __version__
from .agent import run_chat_query, trace_complete
from .config import ConfigurationError, load_settings
from .tools import TOOLS
from .tools.client import AtlasClient, set_client
from .tools.shared import pop_tool_errors, set_log_sink
from .ui import MapsUI

REQUIRED_ENV = [
    "ANTHROPIC_API_KEY",
    "AZURE_MAPS_SUBSCRIPTION_KEY",
]


def _validate_env(console: Console) -> None:
    missing = [key for key in REQUIRED_ENV if not os.getenv(key)]
    if missing:
        console.print(
            "[bold red]Missing required environment variables:[/bold red] "
            + ", ".join(missing)
        )
        raise SystemExit(1)


def _configure_client(console: Console) -> None:
    try:
        settings = load_settings()
    except ConfigurationError as exc:
        console.print(f"[bold red]Configuration error:[/bold red] {exc}")
        raise SystemExit(1) from exc
    set_client(AtlasClient(settings))


def _init_laminar() -> None:
    api_key = os.getenv("LMNR_PROJECT_API_KEY")
    if api_key:
        Laminar.initialize(project_api_key=api_key)


@observe(name="user_query")
async def _answer_query(
    query: str,
    session_id: str,
    history: List[tuple[str, str]],
    user_id: str,
    stream_callback,
) -> str:
    result = await run_chat_query(
        query,
        history=history,
        user_id=user_id,
        session_id=session_id,
        stream_callback=stream_callback,
    )
    trace_complete(mode="chat", status="ok")
    return result.report_markdown


@observe(name="session")
def _session_marker(session_id: str, user_id: str) -> Dict[str, str]:
    Laminar.set_trace_session_id(session_id=session_id)
    Laminar.set_trace_user_id(user_id=user_id)
    return {"session_id": session_id, "user_id": user_id}


def main() -> None:
    load_dotenv()
    os.environ.setdefault("ATLAS_MCP_VERBOSE", "1")
    console = Console()
    ui = MapsUI(console)
    set_log_sink(ui.handle_event)

    ui.render_header(__version__)

    _validate_env(console)
    _configure_client(console)
    _init_laminar()

    session_id = os.getenv("ATLAS_MCP_SESSION_ID") or os.urandom(8).hex()
    user_id = os.getenv("ATLAS_MCP_USER_ID") or os.getenv("USER") or "cli-user"
    _session_marker(session_id, user_id)

    console.print(
        Text("Ask a location question, e.g. 'How long is the drive from Seattle to Portland?'", style="dim")
    )

    history: List[tuple[str, str]] = []

    while True:
        try:
            query = input("\n> ").strip()
        except (EOFError, KeyboardInterrupt):
            break

        if not query:
            continue
        if query.lower() in {"exit", "quit", "q", "/exit"}:
            break
        if query == "/help":
            ui.render_help()
            continue
        if query == "/tools":
            ui.render_tools(TOOLS)
            continue
        if query == "/clear":
            history.clear()
            console.print("Session cleared.")
            continue

        pop_tool_errors()

        ui.begin_answer()
        response = asyncio.run(
            _answer_query(
                query,
                session_id=session_id,
                history=history,
                user_id=user_id,
                stream_callback=ui.stream_answer,
            )
        )
        ui.end_answer()

        tool_errors = pop_tool_errors()
        if tool_errors:
            console.print(f":warning: {len(tool_errors)} tool failures recorded.")
            console.print("Tool Failures (System):")
            console.print(
                "```json\n"
                + json.dumps(tool_errors, ensure_ascii=True, indent=2)
                + "\n```"
            )

        history.append((query, response))

    console.print("\nBye!")


if __name__ == "__main__":
    main()
