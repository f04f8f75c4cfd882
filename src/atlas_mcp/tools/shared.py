from __future__ import annotations

import json
import os
import sys
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

_TOOL_ERRORS: List[Dict[str, Any]] = []
_LOG_SINK = None
_TOOL_CALL_ID = 0
_LAST_TOOL_CALL_ID: Optional[int] = None


class ToolFailure(Exception):
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(ToolFailure):
    """Input rejected before any call to Azure Maps."""


class ProviderError(ToolFailure):
    """Azure Maps answered with a non-2xx status or an unusable payload."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        merged: Dict[str, Any] = dict(details or {})
        if status_code is not None:
            merged["status"] = status_code
            merged["error_type"] = _classify_http_error(status_code)
        if body:
            merged["body"] = body[:500]
        super().__init__(message, merged)
        self.status_code = status_code
        self.body = body


class TransportError(ProviderError):
    """Network failure that outlived the retry budget."""


def _classify_http_error(status_code: int) -> str:
    if status_code in {401, 403}:
        return "auth_error"
    if status_code == 429:
        return "rate_limited"
    if 400 <= status_code < 500:
        return "bad_request"
    if 500 <= status_code:
        return "upstream_error"
    return "unknown_error"


def _envelope_meta() -> Dict[str, str]:
    return {
        "requestId": uuid.uuid4().hex,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


def success_envelope(data: Any) -> Dict[str, Any]:
    return {"success": True, "meta": _envelope_meta(), "data": data, "error": None}


def error_envelope(message: str) -> Dict[str, Any]:
    return {
        "success": False,
        "meta": _envelope_meta(),
        "data": None,
        "error": message or "unknown error",
    }


def _text_block(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "type": "text",
        "text": json.dumps(payload, ensure_ascii=True, sort_keys=True),
    }


def tool_json(data: Any, extra_content: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    content = [_text_block(success_envelope(data))]
    if extra_content:
        content.extend(extra_content)
    return {"content": content}


def _is_verbose() -> bool:
    return os.getenv("ATLAS_MCP_VERBOSE", "").lower() in {"1", "true", "yes", "on"}


def _short_json(payload: Dict[str, Any], limit: int = 180) -> str:
    try:
        text = json.dumps(payload, ensure_ascii=True, sort_keys=True)
    except TypeError:
        text = str(payload)
    if len(text) > limit:
        return text[: limit - 3] + "..."
    return text


def _preview_from_payload(payload: Dict[str, Any]) -> str:
    parts: List[str] = []
    for key in ("location", "ip_address", "country_code", "search_term", "latitude", "longitude"):
        value = payload.get(key)
        if value is not None and value != "":
            parts.append(str(value))
    if parts:
        return " ".join(parts)
    return _short_json(payload)


def log_step(message: str) -> None:
    if not _is_verbose():
        return
    if _LOG_SINK:
        _LOG_SINK(message)
        return
    print(message, file=sys.stderr, flush=True)


def set_log_sink(sink) -> None:
    global _LOG_SINK
    _LOG_SINK = sink


def log_tool_call(name: str, payload: Dict[str, Any]) -> int:
    global _TOOL_CALL_ID, _LAST_TOOL_CALL_ID
    _TOOL_CALL_ID += 1
    _LAST_TOOL_CALL_ID = _TOOL_CALL_ID
    preview = _preview_from_payload(payload)
    event = {
        "type": "tool_start",
        "name": name,
        "preview": preview,
        "call_id": _TOOL_CALL_ID,
        "ts": time.perf_counter(),
    }
    if _is_verbose() and _LOG_SINK:
        _LOG_SINK(event)
    else:
        log_step(f"- {name} {preview}")
    return _TOOL_CALL_ID


def log_tool_result(name: str, status: str, call_id: Optional[int] = None) -> None:
    call_id = call_id or _LAST_TOOL_CALL_ID
    event = {
        "type": "tool_end",
        "name": name,
        "status": status,
        "call_id": call_id,
        "ts": time.perf_counter(),
    }
    if _is_verbose() and _LOG_SINK:
        _LOG_SINK(event)
    else:
        log_step(f"  -> {name}: {status}")


def record_tool_error(payload: Dict[str, Any]) -> None:
    _TOOL_ERRORS.append(payload)


def pop_tool_errors() -> List[Dict[str, Any]]:
    errors = list(_TOOL_ERRORS)
    _TOOL_ERRORS.clear()
    return errors


def tool_error(message: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"status": "error", "error": message}
    if details:
        payload["details"] = details
    if _is_verbose() and _LOG_SINK:
        _LOG_SINK(
            {
                "type": "tool_error",
                "message": message,
                "error": message,
                "details": details or {},
                "call_id": _LAST_TOOL_CALL_ID,
                "ts": time.perf_counter(),
            }
        )
    else:
        log_step(f"  -> tool error: {message}")
    record_tool_error(payload)
    return {
        "content": [_text_block(error_envelope(message))],
        "is_error": True,
    }


def tool_failure(name: str, exc: ToolFailure, call_id: Optional[int] = None) -> Dict[str, Any]:
    log_tool_result(name, "error", call_id=call_id)
    details = dict(exc.details)
    details.setdefault("tool", name)
    return tool_error(exc.message, details)


def tool_crash(name: str, exc: Exception, call_id: Optional[int] = None) -> Dict[str, Any]:
    log_tool_result(name, "error", call_id=call_id)
    return tool_error(
        f"{name} failed unexpectedly: {exc}",
        {"tool": name, "exception": type(exc).__name__},
    )
