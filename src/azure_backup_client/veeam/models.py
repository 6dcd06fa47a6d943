from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class PolicyPage(BaseModel):
    """One page of ``GET /api/v3/policies``.

    Policies are kept as the raw JSON objects the appliance returned.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow", frozen=True)

    offset: int | None = None
    limit: int | None = None
    total_count: int | None = Field(
        default=None,
        validation_alias=AliasChoices("totalCount", "total_count"),
    )
    results: list[dict[str, Any]] = Field(default_factory=list)

    @classmethod
    def from_response(cls, payload: Any) -> "PolicyPage":
        if isinstance(payload, list):
            return cls(results=payload, total_count=len(payload))
        return cls.model_validate(payload)

    @property
    def has_more(self) -> bool:
        if self.total_count is None:
            return False
        return (self.offset or 0) + len(self.results) < self.total_count

    def names(self) -> list[str]:
        return [
            str(policy.get("name"))
            for policy in self.results
            if policy.get("name") is not None
        ]


__all__ = ["PolicyPage"]
