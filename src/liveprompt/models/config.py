"""Configuration models for liveprompt."""

from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field, HttpUrl, field_validator

from liveprompt.models.override import OverrideScope


MetadataField = Literal["conversation", "request", "model", "surface", "interception", "dirty"]
OutlineSection = Literal["request_options", "raw_request"]

DEFAULT_METADATA_FIELDS: list[str] = ["conversation", "request"]


class InspectorSettings(BaseModel):
    """Settings for the live request editor."""

    enabled: bool = Field(
        default=True,
        description="Master switch; disabling clears all interception state"
    )

    metadata_fields: list[MetadataField] = Field(
        default_factory=lambda: list(DEFAULT_METADATA_FIELDS),
        description="Session metadata rows shown by the visual surface"
    )

    extra_sections: list[OutlineSection] = Field(
        default_factory=list,
        description="Optional outline sections (request options, raw payload)"
    )

    override_scope: OverrideScope = Field(
        default=OverrideScope.SESSION,
        description="Scope used when capturing override sets"
    )

    override_preview_limit: int = Field(
        default=80,
        ge=8,
        le=1000,
        description="Maximum characters shown per override preview line"
    )

    override_store_path: Optional[Path] = Field(
        default=None,
        description="JSON file for workspace-scoped override sets"
    )

    parity_endpoint: Optional[HttpUrl] = Field(
        default=None,
        description="Request log service queried for logged payload hashes"
    )

    @field_validator("metadata_fields", "extra_sections")
    @classmethod
    def dedupe(cls, v: list[str]) -> list[str]:
        """Drop duplicate entries while keeping order."""
        return list(dict.fromkeys(v))

    @field_validator("override_store_path")
    @classmethod
    def expand_store_path(cls, v: Optional[Path]) -> Optional[Path]:
        return v.expanduser() if v is not None else None

    model_config = {"frozen": True}
