"""API schemas for agents, chat relay and agent tools."""
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..entitlements import CapabilityTier


class AgentOut(BaseModel):
    id: str
    name: str
    description: str
    type: CapabilityTier
    accessible: bool
    upgrade_message: Optional[str] = Field(default=None, alias="upgradeMessage")

    model_config = ConfigDict(populate_by_name=True)


class ChatRequest(BaseModel):
    message: Optional[str] = None
    agent_id: Optional[str] = Field(default=None, alias="agentId")
    thread_id: Optional[str] = Field(default=None, alias="threadId")
    use_stream: bool = Field(default=True, alias="useStream")

    model_config = ConfigDict(populate_by_name=True)


class WeatherRequest(BaseModel):
    location: str
    date: Optional[str] = None


class LogoRequest(BaseModel):
    business_name: str = Field(alias="businessName")
    style: Optional[str] = None
    colors: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class AgentListResponse(BaseModel):
    agents: List[AgentOut]
