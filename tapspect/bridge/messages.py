"""Typed bridge messages and their host-boundary validation.

Page payloads are arbitrary JSON. Each field is checked here and replaced by
its default when it has the wrong type, so nothing dynamic reaches the store.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class ConsoleMessage:
    level: str
    message: str


@dataclass(frozen=True)
class NetworkMessage:
    method: str
    url: str
    status: Optional[int] = None
    duration: Optional[float] = None
    request_headers: Optional[Dict[str, str]] = None
    request_body: Optional[str] = None
    response_headers: Optional[Dict[str, str]] = None
    response_body: Optional[str] = None
    response_content_type: Optional[str] = None


def _str(value: Any, default: Optional[str] = None) -> Optional[str]:
    return value if isinstance(value, str) else default


def _int(value: Any) -> Optional[int]:
    # bool is an int subclass; JSON true/false is not a status code
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def _float(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _headers(value: Any) -> Optional[Dict[str, str]]:
    if not isinstance(value, dict):
        return None
    return {str(k): v if isinstance(v, str) else json.dumps(v) for k, v in value.items()}


def parse_payload(payload: Any) -> Optional[Dict[str, Any]]:
    """Decode a binding payload; anything but a JSON object yields None."""
    if isinstance(payload, (str, bytes, bytearray)):
        try:
            payload = json.loads(payload)
        except (ValueError, TypeError):
            return None
    return payload if isinstance(payload, dict) else None


def console_message_from_payload(body: Dict[str, Any]) -> ConsoleMessage:
    return ConsoleMessage(
        level=_str(body.get("level"), "log"),
        message=_str(body.get("message"), "")
    )


def network_message_from_payload(body: Dict[str, Any]) -> NetworkMessage:
    return NetworkMessage(
        method=_str(body.get("method"), "GET"),
        url=_str(body.get("url"), ""),
        status=_int(body.get("status")),
        duration=_float(body.get("duration")),
        request_headers=_headers(body.get("requestHeaders")),
        request_body=_str(body.get("requestBody")),
        response_headers=_headers(body.get("responseHeaders")),
        response_body=_str(body.get("responseBody")),
        response_content_type=_str(body.get("responseContentType"))
    )
