"""Pydantic schemas for cabinet teardown."""

from pydantic import BaseModel, Field


class TeardownResponse(BaseModel):
    """Rows removed when a cabinet was deleted."""

    cabinet_id: int = Field(..., description="Deleted cabinet.")
    deleted: dict[str, int] = Field(
        ...,
        description="Deleted row count per table, in deletion order.",
    )
    total: int = Field(..., description="Sum of all deleted rows.")
