"""Conversational agent relay and agent tool integrations."""

from .relay import (
    END_OF_STREAM,
    AgentRelayClient,
    AgentRelayError,
    parse_tool_output,
    transform_event_stream,
)
from .tools import (
    AgentToolError,
    GeneratedLogo,
    LogoGenerationTool,
    WeatherLookupTool,
    WeatherReport,
)

__all__ = [
    "END_OF_STREAM",
    "AgentRelayClient",
    "AgentRelayError",
    "AgentToolError",
    "GeneratedLogo",
    "LogoGenerationTool",
    "WeatherLookupTool",
    "WeatherReport",
    "parse_tool_output",
    "transform_event_stream",
]
