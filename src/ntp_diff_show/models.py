"""Pydantic models for validation."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class TimeSourceModel(BaseModel):
    """Validated `{name, host}` record from the source list."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    name: str = Field(min_length=1)
    host: str = Field(min_length=1)


class NtpTimeResponse(BaseModel):
    """Successful payload of the HTTP facade."""

    time: str
    host: str


class ErrorResponse(BaseModel):
    """Failure payload of the HTTP facade."""

    error: str
