"""Pydantic models shared across the API, validator, gateway, and dataset tools.

Beginner terms used in this file:
- Model: a typed schema class used for validation/serialization.
- Literal: restricts a field to a fixed set of allowed string values.
- Field(ge=..., le=...): numeric bounds enforced once at the API boundary.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

# Maximum characters allowed in a fine-tune prompt or completion.
MAX_FIELD_LENGTH = 4096

DEFAULT_PURPOSE = "fine-tune"

LogCategory = Literal["generation", "edit", "variation"]
ExportFormat = Literal["jsonl", "csv", "excel", "txt"]


class ValidationRecord(BaseModel):
    """Outcome of validating one JSONL stream."""

    total_lines: int = Field(default=0, ge=0)
    # One message per defect, in line order.
    errors: list[str] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


class GenerationOptions(BaseModel):
    """Every recognized text-generation option with its default.

    ``model`` is left unset here so the route can fall back to the configured
    default model.
    """

    prompt: str = Field(min_length=1)
    model: str | None = None
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    presence_penalty: float = Field(default=0.0, ge=-2.0, le=2.0)
    max_tokens: int = Field(default=150, ge=1)


class ImageGenerationOptions(BaseModel):
    prompt: str = Field(min_length=1)
    model: str = "dall-e-3"
    size: str = "1024x1024"
    quality: str = "standard"
    n: int = Field(default=1, ge=1)


class UploadedFileInfo(BaseModel):
    """Upstream file record plus the validator's line count."""

    # Serialized with the camelCase key the UI reads.
    model_config = ConfigDict(populate_by_name=True)

    id: str
    purpose: str
    filename: str
    bytes: int
    created_at: int
    status: str | None = None
    total_lines: int = Field(alias="totalLines")


class UploadResponse(BaseModel):
    message: str
    file: UploadedFileInfo


class ValidateResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    total_lines: int = Field(alias="totalLines")


class DeleteFileResponse(BaseModel):
    message: str
    deleted: bool
    id: str


class GenerateResponse(BaseModel):
    result: str | None
    usage: dict[str, Any] | None = None


class PreviewRow(BaseModel):
    line_number: int
    prompt: Any = None
    completion: Any = None
    raw: str


class PreviewResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_lines: int = Field(alias="totalLines")
    rows: list[PreviewRow] = Field(default_factory=list)


class SuggestionCategory(BaseModel):
    name: str
    prompts: list[str]


class PromptSuggestions(BaseModel):
    categories: list[SuggestionCategory]
    modifiers: list[str]
