"""Common Pydantic schemas."""

from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ..core.clock import COURT_COUNT, end_for_start, is_valid_start


class Money(BaseModel):
    """Money representation with amount in minor units."""

    amount: int = Field(..., ge=0, description="Amount in minor units (e.g., paise)")
    currency: str = Field(..., min_length=3, max_length=3, pattern=r"^[A-Z]{3}$", description="ISO 4217 currency code")


class SlotSelection(BaseModel):
    """One requested cell of the daily grid."""

    court_id: int = Field(..., ge=1, le=COURT_COUNT, description="Court number")
    start: str = Field(..., pattern=r"^\d{2}:\d{2}$", description="Slot start time (HH:MM)")
    end: Optional[str] = Field(None, pattern=r"^\d{2}:\d{2}$", description="Slot end time (HH:MM)")

    @field_validator("start")
    @classmethod
    def validate_start(cls, v: str) -> str:
        if not is_valid_start(v):
            raise ValueError("start must be a grid start time between 06:00 and 22:00")
        return v

    @model_validator(mode="after")
    def fill_end(self) -> "SlotSelection":
        expected = end_for_start(self.start)
        if self.end is None:
            self.end = expected
        elif self.end != expected:
            raise ValueError(f"end must be {expected} for a slot starting at {self.start}")
        return self


def unique_cells(selections: List[SlotSelection]) -> List[SlotSelection]:
    """Reject a request that names the same cell twice."""
    seen = set()
    for selection in selections:
        cell = (selection.court_id, selection.start)
        if cell in seen:
            raise ValueError(f"duplicate selection for court {selection.court_id} at {selection.start}")
        seen.add(cell)
    return selections


class WarningItem(BaseModel):
    """Soft failure of a best-effort step; the operation itself succeeded."""

    code: str = Field(..., description="Warning code")
    message: str = Field(..., description="Human-readable explanation")
    followup_id: Optional[str] = Field(None, description="Settlement follow-up tracking this step")


class Violation(BaseModel):
    """Validation error violation."""

    path: str = Field(..., description="JSON path to the invalid field")
    message: str = Field(..., description="Validation error message")


class Problem(BaseModel):
    """RFC 9457 Problem Details response."""

    type: Optional[str] = Field(None, description="Problem type URI")
    title: str = Field(..., description="Short human-readable summary")
    status: int = Field(..., description="HTTP status code")
    detail: Optional[str] = Field(None, description="Human-readable explanation")
    instance: Optional[str] = Field(None, description="URI reference for this occurrence")
    code: Optional[str] = Field(None, description="Application-specific error code")
    retryable: Optional[bool] = Field(None, description="Whether the operation can be retried")
    violations: Optional[List[Violation]] = Field(None, description="Validation errors")
