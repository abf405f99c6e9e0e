"""Pydantic request/response schemas for the Deal Scout API."""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from dealscout.pipeline import VARIANTS


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RunScoutRequest(BaseModel):
    variant: str | None = None

    @field_validator("variant")
    @classmethod
    def _known_variant(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        v = v.strip().lower()
        if v not in VARIANTS:
            raise ValueError(f"variant must be one of {sorted(VARIANTS)}")
        return v


class RunScoutResponse(_CamelModel):
    success: bool
    targets_found: int
    analysis_complete: int
    acquisition_theses: list[dict[str, Any]] = []
    timestamp: str
    data_source: str
    variant: str


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    details: str
    stack: str | None = None


class StageOut(_CamelModel):
    name: str
    label: str
    field: str
    max_tokens: int


class VariantOut(BaseModel):
    name: str
    stages: list[str]
    required: list[str]
    description: str = ""
    default: bool = False


class StageCatalogOut(BaseModel):
    stages: list[StageOut]
    variants: list[VariantOut]


class HealthOut(_CamelModel):
    ok: bool
    provider: str
    model: str
    llm_configured: bool
    default_variant: str
