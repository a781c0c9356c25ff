"""Request-side models for a chat call. All models are Pydantic models."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Role(str, Enum):
    """Message author as sent to the provider."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ContextMessage(BaseModel):
    """One earlier turn of the conversation. Sorted by added_on before sending."""

    message: str = Field(description="Message text")
    is_bot: bool = Field(default=False, description="True when the model wrote it")
    added_on: float = Field(default=0.0, description="Unix timestamp, used for ordering")

    @property
    def role(self) -> Role:
        return Role.ASSISTANT if self.is_bot else Role.USER


class ChatOptions(BaseModel):
    """Per-call options. json and xml select the output mode and are mutually exclusive."""

    context: list[ContextMessage] = Field(default_factory=list)
    prefill: str = Field(default="", description="Seed text; sent as an assistant continuation")
    max_tokens: Optional[int] = Field(default=None, gt=0)
    temperature: float = 0.7
    timeout: Optional[float] = Field(default=None, gt=0, description="Overall per-call seconds")
    json_mode: bool = Field(default=False, alias="json")
    xml: Optional[list[str]] = Field(default=None, description="Tag allow-list")

    model_config = ConfigDict(populate_by_name=True)

    @model_validator(mode="after")
    def _check_output_mode(self) -> "ChatOptions":
        if self.json_mode and self.xml:
            raise ValueError("json and xml output modes are mutually exclusive")
        return self

    def sorted_context(self) -> list[ContextMessage]:
        return sorted(self.context, key=lambda m: m.added_on)
