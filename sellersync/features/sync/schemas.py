"""Pydantic schemas for sync endpoints."""

import datetime

from pydantic import BaseModel, Field, model_validator


class SyncRunRequest(BaseModel):
    """Request schema for an on-demand sync.

    Without ``cabinet_id`` every eligible cabinet is queued. Without dates the
    window is the two weeks ending yesterday.
    """

    cabinet_id: int | None = Field(
        None,
        ge=1,
        description="Cabinet to sync. Omit to sync every eligible cabinet.",
    )
    date_from: datetime.date | None = Field(
        None,
        description="First day of the window (inclusive).",
    )
    date_to: datetime.date | None = Field(
        None,
        description="Last day of the window (inclusive).",
    )

    @model_validator(mode="after")
    def validate_dates(self) -> "SyncRunRequest":
        """Reject windows that end before they start."""
        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise ValueError("date_from must be on or before date_to")
        return self


class SyncRunAccepted(BaseModel):
    """Response schema for an accepted sync request."""

    status: str = Field("accepted", description="Always 'accepted'; the run continues in background.")
    cabinet_id: int | None = Field(None, description="Cabinet queued, or null for all cabinets.")
    date_from: datetime.date = Field(..., description="First day of the window.")
    date_to: datetime.date = Field(..., description="Last day of the window.")
