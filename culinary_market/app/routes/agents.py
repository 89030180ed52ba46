"""API routes for the agent catalog, chat relay and capability-gated tools."""
from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Callable, Dict, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status
from fastapi.responses import StreamingResponse

from ..agents import (
    AgentRelayError,
    AgentToolError,
    GeneratedLogo,
    LogoGenerationTool,
    WeatherLookupTool,
    WeatherReport,
)
from ..entitlements import get_agent_definition
from ..feature_gates import EntitlementContext, FeatureGateError
from ..schemas.agents import AgentListResponse, ChatRequest, LogoRequest, WeatherRequest
from ..services.agents import get_agent_relay_client, get_logo_tool, get_weather_tool, list_agent_catalog

logger = logging.getLogger(__name__)

NDJSON_MEDIA_TYPE = "application/x-ndjson"


def _resolve_get_current_user() -> Callable[..., Any]:  # pragma: no cover
    from ...main import get_current_user as resolved

    return resolved


def _resolve_get_optional_current_user() -> Callable[..., Any]:  # pragma: no cover
    from ...main import get_optional_current_user as resolved

    return resolved


@lru_cache(maxsize=1)
def _get_current_user_callable() -> Callable[..., Any]:
    return _resolve_get_current_user()


@lru_cache(maxsize=1)
def _get_optional_current_user_callable() -> Callable[..., Any]:
    return _resolve_get_optional_current_user()


def _get_current_user(authorization: Optional[str] = Header(None)):
    resolved = _get_current_user_callable()
    return resolved(authorization=authorization)


def _get_optional_current_user(authorization: Optional[str] = Header(None)):
    resolved = _get_optional_current_user_callable()
    return resolved(authorization=authorization)


def _relay_failure(exc: AgentRelayError) -> HTTPException:
    return HTTPException(
        status_code=exc.status_code,
        detail={"error": exc.message, "details": exc.details},
    )


def _require_tier(current_user, tier) -> None:
    try:
        EntitlementContext.for_account(current_user).require(tier)
    except FeatureGateError as exc:
        raise exc.to_http_exception() from exc


router = APIRouter(prefix="/api", tags=["agents"])


@router.get("/agents", response_model=AgentListResponse)
def read_agents(*, current_user=Depends(_get_optional_current_user)) -> AgentListResponse:
    return AgentListResponse(agents=list_agent_catalog(current_user))


@router.post("/chat")
def chat(payload: ChatRequest, *, current_user=Depends(_get_current_user)):
    message = (payload.message or "").strip()
    if not message or not payload.agent_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="message and agentId are required",
        )

    agent = get_agent_definition(payload.agent_id)
    if agent is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Agent not found")
    _require_tier(current_user, agent.tier)

    client = get_agent_relay_client()
    logger.info(
        "Relaying chat message",
        extra={"account_id": current_user.id, "agent_id": agent.agent_id, "stream": payload.use_stream},
    )
    try:
        if payload.use_stream:
            chunks = client.stream(agent.agent_id, message, thread_id=payload.thread_id)
            return StreamingResponse(chunks, media_type=NDJSON_MEDIA_TYPE)
        return client.invoke(agent.agent_id, message, thread_id=payload.thread_id)
    except AgentRelayError as exc:
        raise _relay_failure(exc) from exc


@router.get("/chat/agents")
def read_remote_agents() -> Dict[str, Any]:
    client = get_agent_relay_client()
    try:
        agents = client.list_agents()
    except AgentRelayError as exc:
        raise _relay_failure(exc) from exc
    return {"agents": agents}


@router.post("/agents/tools/weather", response_model=WeatherReport)
def run_weather_tool(
    payload: WeatherRequest,
    *,
    current_user=Depends(_get_current_user),
) -> WeatherReport:
    _require_tier(current_user, WeatherLookupTool.tier)
    try:
        return get_weather_tool().run(payload.location, date=payload.date)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except AgentToolError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc


@router.post("/agents/tools/logo", response_model=GeneratedLogo)
def run_logo_tool(
    payload: LogoRequest,
    *,
    current_user=Depends(_get_current_user),
) -> GeneratedLogo:
    _require_tier(current_user, LogoGenerationTool.tier)
    try:
        return get_logo_tool().run(payload.business_name, style=payload.style, colors=payload.colors)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except AgentToolError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
