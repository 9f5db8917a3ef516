from typing import Optional
from pydantic import BaseModel, Field


class BoothCreate(BaseModel):
    """branch_id comes from the selected branch, not the body."""

    booth_id: Optional[str] = Field(None, max_length=50)
    name: str = Field(..., min_length=1, max_length=100)
    status: bool = True
    notes: Optional[str] = None
