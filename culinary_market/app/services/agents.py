"""Application wiring for the agent relay and agent tools."""
from __future__ import annotations

from functools import lru_cache
from typing import List

import openai
from langchain_openai import ChatOpenAI

from ...config import load_app_config
from ..agents import AgentRelayClient, AgentToolError, LogoGenerationTool, WeatherLookupTool
from ..entitlements import AGENT_CATALOG, upgrade_message
from ..feature_gates import EntitlementContext
from ..schemas.agents import AgentOut


@lru_cache(maxsize=1)
def get_agent_relay_client() -> AgentRelayClient:
    config = load_app_config()
    return AgentRelayClient(
        config.agent_api_url,
        bearer_token=config.agent_api_bearer_token,
        timeout=config.agent_api_timeout,
    )


def _require_openai_key() -> str:
    config = load_app_config()
    if not config.openai_api_key:
        raise AgentToolError("OpenAI API key is not configured")
    return config.openai_api_key


@lru_cache(maxsize=1)
def get_weather_tool() -> WeatherLookupTool:
    api_key = _require_openai_key()
    llm = ChatOpenAI(model=load_app_config().openai_chat_model, api_key=api_key, temperature=0.2)
    return WeatherLookupTool(llm)


@lru_cache(maxsize=1)
def get_logo_tool() -> LogoGenerationTool:
    api_key = _require_openai_key()
    return LogoGenerationTool(openai.OpenAI(api_key=api_key), model=load_app_config().openai_image_model)


def list_agent_catalog(account) -> List[AgentOut]:
    """Agents with accessibility evaluated against the caller's subscription."""

    context = EntitlementContext.for_account(account)
    agents = []
    for agent in AGENT_CATALOG:
        accessible = context.has(agent.tier)
        agents.append(
            AgentOut(
                id=agent.agent_id,
                name=agent.name,
                description=agent.description,
                type=agent.tier,
                accessible=accessible,
                upgrade_message=None if accessible else (upgrade_message(agent.tier) or "Sign in to use this assistant"),
            )
        )
    return agents


__all__ = [
    "get_agent_relay_client",
    "get_logo_tool",
    "get_weather_tool",
    "list_agent_catalog",
]
