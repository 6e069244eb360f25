"""Pydantic request/response models for API endpoints."""

from pydantic import BaseModel


class PreviewBody(BaseModel):
    path: str
    source: str | None = None  # read from disk when omitted


class JumpBody(BaseModel):
    line: int | None = None
    text: str | None = None


class DefinitionBody(BaseModel):
    line: int
    character: int
