"""Relay between API clients and the conversational agent server."""
from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional
from urllib import error as urllib_error
from urllib import request as urllib_request
from uuid import uuid4

logger = logging.getLogger(__name__)

END_OF_STREAM = {"done": True, "finished": True}

# Tool outputs embed one JSON document per marker line; visible text stops at "---".
_METADATA_MARKERS = (
    ("**MÉTADONNÉES_IMAGE:**", "images", None),
    ("**MÉTADONNÉES_VIDÉO:**", "videos", None),
    ("**MÉTADONNÉES_PDF:**", "pdfs", None),
    ("**MÉTADONNÉES_SERVICES:**", "services", "services"),
    ("**MÉTADONNÉES_WEBSITE:**", "websites", None),
    ("**MÉTADONNÉES_ORGANISATIONS:**", "organizations", "organizations"),
    ("**MÉTADONNÉES_PRESTATAIRES:**", "prestataires", "prestataires"),
)
_CONTENT_SEPARATOR = "---"


class AgentRelayError(Exception):
    """The agent server could not be reached or answered with an error."""

    def __init__(self, status_code: int, message: str, *, details: Optional[str] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.details = details


def parse_tool_output(output: str) -> Dict[str, Any]:
    """Split a tool result into visible content and attached media lists."""

    result: Dict[str, Any] = {"content": output}
    for _, key, _ in _METADATA_MARKERS:
        result[key] = []

    for marker, key, nested_key in _METADATA_MARKERS:
        start = output.find(marker)
        if start < 0:
            continue
        meta_line = output[start:]
        line_end = meta_line.find("\n")
        if line_end > 0:
            meta_line = meta_line[:line_end]
        json_text = meta_line.replace(marker, "", 1).strip()
        try:
            data = json.loads(json_text)
        except ValueError:
            logger.warning("Unable to parse %s metadata from tool output", key)
            continue

        if nested_key is None:
            result[key] = [data]
        elif isinstance(data, dict):
            result[key] = list(data.get(nested_key) or [])

        separator = output.find(_CONTENT_SEPARATOR)
        if separator > 0:
            result["content"] = output[:separator].strip()
    return result


def _ndjson(payload: Dict[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False) + "\n"


def transform_event_stream(lines: Iterable[str]) -> Iterator[str]:
    """Convert server-sent event lines into newline-delimited JSON chunks.

    Token events become ``{"content": ...}``; completed tool calls become the
    dictionary produced by :func:`parse_tool_output`. The stream always ends
    with an explicit end marker.
    """

    for raw_line in lines:
        line = raw_line.rstrip("\r\n")
        if not line.strip() or line.startswith("event:"):
            continue
        if not line.startswith("data:"):
            continue

        data_text = line[len("data:"):].strip()
        if not data_text:
            continue
        try:
            data = json.loads(data_text)
        except ValueError:
            logger.warning("Skipping malformed event stream line")
            continue
        if not isinstance(data, dict):
            continue

        if data.get("token"):
            yield _ndjson({"content": data["token"]})
        elif data.get("name") and data.get("output"):
            yield _ndjson(parse_tool_output(str(data["output"])))

    yield _ndjson(END_OF_STREAM)


class AgentRelayClient:
    """Forwards chat messages to ``<base_url>/<agent_id>/{invoke,stream}``."""

    def __init__(
        self,
        base_url: str,
        *,
        bearer_token: Optional[str] = None,
        timeout: float = 60.0,
        opener: Callable[..., Any] = urllib_request.urlopen,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._bearer_token = bearer_token
        self._timeout = timeout
        self._opener = opener

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self._bearer_token:
            headers["Authorization"] = f"Bearer {self._bearer_token}"
        return headers

    def build_payload(self, message: str, thread_id: str) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "message": message,
            "thread_id": thread_id,
            "conversation_id": thread_id,
            "chat_id": thread_id,
        }
        if self._bearer_token:
            payload["context"] = {"configurable": {"__bearer_token": self._bearer_token}}
        return payload

    def _open(self, request: urllib_request.Request):
        try:
            return self._opener(request, timeout=self._timeout)
        except urllib_error.HTTPError as exc:
            details = exc.read().decode("utf-8", errors="replace")
            logger.error(
                "Agent server returned an error",
                extra={"agent_url": request.full_url, "status": exc.code},
            )
            raise AgentRelayError(exc.code, "Agent server error", details=details) from exc
        except urllib_error.URLError as exc:
            logger.error(
                "Agent server unreachable",
                extra={"agent_url": request.full_url, "error": str(exc.reason)},
            )
            raise AgentRelayError(502, "Agent server unreachable") from exc

    def _post(self, agent_id: str, endpoint: str, message: str, thread_id: Optional[str]):
        payload = self.build_payload(message, thread_id or uuid4().hex)
        request = urllib_request.Request(
            f"{self._base_url}/{agent_id}/{endpoint}",
            data=json.dumps(payload).encode("utf-8"),
            headers=self._headers(),
            method="POST",
        )
        return self._open(request)

    def invoke(self, agent_id: str, message: str, *, thread_id: Optional[str] = None) -> Dict[str, Any]:
        with self._post(agent_id, "invoke", message, thread_id) as response:
            body = response.read()
        try:
            return json.loads(body.decode("utf-8"))
        except (ValueError, UnicodeDecodeError) as exc:
            raise AgentRelayError(502, "Agent server returned an invalid response") from exc

    def stream(self, agent_id: str, message: str, *, thread_id: Optional[str] = None) -> Iterator[str]:
        """Open the upstream stream eagerly so errors surface before streaming starts."""

        response = self._post(agent_id, "stream", message, thread_id)
        return self._iter_stream(response)

    def _iter_stream(self, response) -> Iterator[str]:
        try:
            lines = (raw.decode("utf-8", errors="replace") for raw in response)
            yield from transform_event_stream(lines)
        finally:
            response.close()

    def list_agents(self) -> List[Dict[str, Any]]:
        request = urllib_request.Request(
            f"{self._base_url}/agents",
            headers=self._headers(),
            method="GET",
        )
        with self._open(request) as response:
            body = response.read()
        try:
            payload = json.loads(body.decode("utf-8"))
        except (ValueError, UnicodeDecodeError) as exc:
            raise AgentRelayError(502, "Agent server returned an invalid response") from exc
        if isinstance(payload, dict):
            payload = payload.get("agents") or []
        return list(payload)


__all__ = [
    "AgentRelayClient",
    "AgentRelayError",
    "END_OF_STREAM",
    "parse_tool_output",
    "transform_event_stream",
]
