"""Prompt-templated tools backed by chat completion and image generation APIs."""
from __future__ import annotations

import logging
from typing import Any, Optional

import openai
from langchain_core.language_models import BaseChatModel
from langchain_core.prompts import ChatPromptTemplate, PromptTemplate
from pydantic import BaseModel, ConfigDict, Field

from ..entitlements.models import CapabilityTier

logger = logging.getLogger(__name__)

WEATHER_PROMPT = ChatPromptTemplate.from_messages(
    [
        (
            "system",
            "You are a weather assistant for restaurant and catering professionals. "
            "Answer in a few sentences: expected conditions, temperature range and any "
            "impact on outdoor service, deliveries or fresh produce.",
        ),
        ("human", "What is the weather in {location} for {date}?"),
    ]
)

LOGO_PROMPT = PromptTemplate.from_template(
    "A clean, professional logo for a culinary business named \"{business_name}\". "
    "Style: {style}. Color palette: {colors}. Flat vector design, centered, plain background, "
    "no photorealism, legible lettering."
)


class AgentToolError(RuntimeError):
    """An upstream model provider failed while running a tool."""


class WeatherReport(BaseModel):
    location: str
    date: str
    summary: str

    model_config = ConfigDict(frozen=True)


class GeneratedLogo(BaseModel):
    business_name: str = Field(alias="businessName")
    prompt: str
    image_url: Optional[str] = Field(default=None, alias="imageUrl")
    revised_prompt: Optional[str] = Field(default=None, alias="revisedPrompt")

    model_config = ConfigDict(populate_by_name=True, frozen=True)


def _message_text(message: Any) -> str:
    content = getattr(message, "content", message)
    if isinstance(content, list):
        parts = [part.get("text", "") if isinstance(part, dict) else str(part) for part in content]
        return "".join(parts).strip()
    return str(content).strip()


class WeatherLookupTool:
    """Weather summary generated by a chat completion model."""

    name = "weather_lookup"
    tier = CapabilityTier.BASIC

    def __init__(self, llm: BaseChatModel) -> None:
        self._chain = WEATHER_PROMPT | llm

    def run(self, location: str, *, date: Optional[str] = None) -> WeatherReport:
        location = (location or "").strip()
        if not location:
            raise ValueError("location is required")
        target_date = (date or "").strip() or "today"

        try:
            message = self._chain.invoke({"location": location, "date": target_date})
        except openai.OpenAIError as exc:
            logger.warning("Weather lookup failed", extra={"location": location, "error": str(exc)})
            raise AgentToolError("Weather lookup failed") from exc
        return WeatherReport(location=location, date=target_date, summary=_message_text(message))


class LogoGenerationTool:
    """Logo image generated from a templated prompt."""

    name = "logo_generation"
    tier = CapabilityTier.PREMIUM

    def __init__(self, client: openai.OpenAI, *, model: str = "dall-e-3", size: str = "1024x1024") -> None:
        self._client = client
        self._model = model
        self._size = size

    def build_prompt(self, business_name: str, *, style: Optional[str] = None, colors: Optional[str] = None) -> str:
        return LOGO_PROMPT.format(
            business_name=business_name,
            style=(style or "").strip() or "modern and minimal",
            colors=(colors or "").strip() or "warm, appetizing tones",
        )

    def run(self, business_name: str, *, style: Optional[str] = None, colors: Optional[str] = None) -> GeneratedLogo:
        business_name = (business_name or "").strip()
        if not business_name:
            raise ValueError("businessName is required")

        prompt = self.build_prompt(business_name, style=style, colors=colors)
        try:
            response = self._client.images.generate(model=self._model, prompt=prompt, size=self._size, n=1)
        except openai.OpenAIError as exc:
            logger.warning("Logo generation failed", extra={"business_name": business_name, "error": str(exc)})
            raise AgentToolError("Logo generation failed") from exc

        if not response.data:
            raise AgentToolError("Logo generation returned no image")
        image = response.data[0]
        return GeneratedLogo(
            business_name=business_name,
            prompt=prompt,
            image_url=getattr(image, "url", None),
            revised_prompt=getattr(image, "revised_prompt", None),
        )


__all__ = [
    "AgentToolError",
    "GeneratedLogo",
    "LOGO_PROMPT",
    "LogoGenerationTool",
    "WEATHER_PROMPT",
    "WeatherLookupTool",
    "WeatherReport",
]
