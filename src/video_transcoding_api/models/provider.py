from __future__ import annotations

from typing import Sequence

from pydantic import BaseModel, ConfigDict, Field


class Capabilities(BaseModel):
    model_config = ConfigDict(frozen=True)

    input_formats: Sequence[str] = Field(default_factory=list)
    output_formats: Sequence[str] = Field(default_factory=list)
    destinations: Sequence[str] = Field(default_factory=list)


class Health(BaseModel):
    ok: bool
    message: str | None = None


class ProviderDescription(BaseModel):
    name: str
    enabled: bool
    capabilities: Capabilities = Field(default_factory=Capabilities)
    health: Health | None = None


__all__ = ["Capabilities", "Health", "ProviderDescription"]
