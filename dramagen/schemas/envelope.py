from pydantic import BaseModel, Field


class ErrorLocation(BaseModel):
    field: str | None = None
    index: int | None = None
    path: str | None = None
    track_type: str | None = None


class ErrorInfo(BaseModel):
    code: str
    message: str
    location: ErrorLocation | None = None
    retryable: bool = False
    suggested_fix: str | None = None  # Human-readable fix suggestion
    details: dict[str, str | int | list[str]] = Field(default_factory=dict)
