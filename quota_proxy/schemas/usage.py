"""Pydantic schema for per-client usage counters."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class UsageCounters(BaseModel):
    """Outcome counters stored per client identity.

    Stored as JSON with camelCase keys. ``hit_max_limit_count`` counts
    non-exempt requests whose upstream outcome failed (status 500 or a
    transport error); requests rejected with 429 are not recorded at all.
    """

    model_config = ConfigDict(populate_by_name=True)

    models_count: int = Field(
        0, ge=0, alias="modelsCount", description="Requests to an exempted path."
    )
    success_count: int = Field(
        0, ge=0, alias="successCount", description="Non-exempt requests with a successful outcome."
    )
    hit_max_limit_count: int = Field(
        0,
        ge=0,
        alias="hitMaxLimitCount",
        description="Non-exempt requests with a failed upstream outcome.",
    )

    @property
    def total(self) -> int:
        return self.models_count + self.success_count + self.hit_max_limit_count
