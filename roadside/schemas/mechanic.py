from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator


class Mechanic(BaseModel):
    """A mechanic candidate as found by the mechanic search.

    Unknown keys are kept so callers can attach provider-specific data.
    """

    international_phone_number: str = Field(min_length=1)
    formatted_address: str = ""
    display_name: str = ""
    language_code: str = "en"
    source: str = "database"  # database | google
    has_onboarded: bool = False
    first_name: str = ""
    labour: str = ""
    distance: float | None = None

    model_config = {"extra": "allow"}

    @field_validator("display_name", mode="before")
    @classmethod
    def flatten_display_name(cls, v: Any) -> Any:
        # Places API shape: {"text": "...", "languageCode": "en"}
        if isinstance(v, dict):
            return v.get("text", "")
        return v

    @field_validator("source")
    @classmethod
    def validate_source(cls, v: str) -> str:
        if v not in ("database", "google"):
            raise ValueError(f"Invalid source: {v}")
        return v

    @property
    def name(self) -> str:
        return self.display_name or self.first_name or "mechanic"

    def extra_fields(self) -> dict[str, Any]:
        return dict(self.model_extra or {})
