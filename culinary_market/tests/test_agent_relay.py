from __future__ import annotations

import io
import json
from typing import List
from urllib import error as urllib_error

import pytest

from culinary_market.app.agents import (
    END_OF_STREAM,
    AgentRelayClient,
    AgentRelayError,
    parse_tool_output,
    transform_event_stream,
)


class FakeResponse(io.BytesIO):
    def __init__(self, lines: List[str]) -> None:
        super().__init__("".join(lines).encode("utf-8"))
        self.closed_by_client = False

    def close(self) -> None:
        self.closed_by_client = True
        super().close()


class RecordingOpener:
    def __init__(self, response=None, error=None) -> None:
        self.response = response
        self.error = error
        self.requests = []

    def __call__(self, request, timeout=None):
        self.requests.append((request, timeout))
        if self.error is not None:
            raise self.error
        return self.response


def _decode(chunks) -> list:
    return [json.loads(chunk) for chunk in chunks]


def test_parse_tool_output_extracts_metadata_and_trims_content():
    output = (
        "Here is your logo.\n---\n"
        '**MÉTADONNÉES_IMAGE:** {"url": "https://img.example/logo.png", "alt": "Logo"}\n'
        '**MÉTADONNÉES_SERVICES:** {"services": [{"id": 1, "title": "Catering"}]}\n'
    )

    result = parse_tool_output(output)

    assert result["content"] == "Here is your logo."
    assert result["images"] == [{"url": "https://img.example/logo.png", "alt": "Logo"}]
    assert result["services"] == [{"id": 1, "title": "Catering"}]
    assert result["videos"] == []
    assert result["prestataires"] == []


def test_parse_tool_output_without_markers_keeps_content():
    result = parse_tool_output("Plain answer --- with dashes")

    assert result["content"] == "Plain answer --- with dashes"
    assert result["websites"] == []


def test_parse_tool_output_skips_invalid_json():
    result = parse_tool_output("Text\n---\n**MÉTADONNÉES_PDF:** {not json}\n")

    assert result["pdfs"] == []


def test_transform_event_stream_converts_tokens_and_tools():
    lines = [
        "event: message\n",
        'data: {"token": "Bon"}\n',
        "\n",
        'data: {"token": "jour"}\n',
        "data: not-json\n",
        'data: {"name": "search_services", "output": "Found\\n---\\n**MÉTADONNÉES_ORGANISATIONS:** {\\"organizations\\": [{\\"id\\": 4}]}"}\n',
        'data: {"token": ""}\n',
    ]

    chunks = list(transform_event_stream(lines))

    assert all(chunk.endswith("\n") for chunk in chunks)
    decoded = _decode(chunks)
    assert decoded[0] == {"content": "Bon"}
    assert decoded[1] == {"content": "jour"}
    assert decoded[2]["content"] == "Found"
    assert decoded[2]["organizations"] == [{"id": 4}]
    assert decoded[-1] == END_OF_STREAM
    assert len(decoded) == 4


def test_transform_event_stream_keeps_unicode_readable():
    chunk = next(transform_event_stream(['data: {"token": "crème brûlée"}']))

    assert "crème brûlée" in chunk


def test_build_payload_forwards_bearer_token():
    client = AgentRelayClient("http://agents.local/", bearer_token="agent-token")

    payload = client.build_payload("Hello", "thread-1")

    assert payload["thread_id"] == payload["conversation_id"] == payload["chat_id"] == "thread-1"
    assert payload["context"] == {"configurable": {"__bearer_token": "agent-token"}}
    assert "context" not in AgentRelayClient("http://agents.local").build_payload("Hello", "t")


def test_stream_posts_to_agent_endpoint_and_closes_response():
    response = FakeResponse(['data: {"token": "Hi"}\n'])
    opener = RecordingOpener(response=response)
    client = AgentRelayClient("http://agents.local/", bearer_token="agent-token", timeout=5, opener=opener)

    chunks = list(client.stream("cuisinier", "Hello", thread_id="t-1"))

    request, timeout = opener.requests[0]
    assert request.full_url == "http://agents.local/cuisinier/stream"
    assert request.get_header("Authorization") == "Bearer agent-token"
    assert json.loads(request.data)["message"] == "Hello"
    assert timeout == 5
    assert _decode(chunks) == [{"content": "Hi"}, END_OF_STREAM]
    assert response.closed_by_client is True


def test_invoke_returns_json_body():
    opener = RecordingOpener(response=io.BytesIO(b'{"output": "Bonjour"}'))
    client = AgentRelayClient("http://agents.local", opener=opener)

    assert client.invoke("cuisinier", "Hello") == {"output": "Bonjour"}
    assert opener.requests[0][0].full_url == "http://agents.local/cuisinier/invoke"


def test_upstream_http_error_keeps_status_and_body():
    error = urllib_error.HTTPError(
        "http://agents.local/cuisinier/invoke",
        503,
        "Service Unavailable",
        hdrs=None,
        fp=io.BytesIO(b"overloaded"),
    )
    client = AgentRelayClient("http://agents.local", opener=RecordingOpener(error=error))

    with pytest.raises(AgentRelayError) as exc:
        client.invoke("cuisinier", "Hello")

    assert exc.value.status_code == 503
    assert exc.value.details == "overloaded"


def test_unreachable_server_maps_to_bad_gateway():
    client = AgentRelayClient("http://agents.local", opener=RecordingOpener(error=urllib_error.URLError("refused")))

    with pytest.raises(AgentRelayError) as exc:
        client.list_agents()

    assert exc.value.status_code == 502


def test_list_agents_accepts_wrapped_payload():
    opener = RecordingOpener(response=io.BytesIO(b'{"agents": [{"id": "cuisinier"}]}'))

    assert AgentRelayClient("http://agents.local", opener=opener).list_agents() == [{"id": "cuisinier"}]
