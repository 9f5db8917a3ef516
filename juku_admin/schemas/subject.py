from typing import Optional
from pydantic import BaseModel, Field


class SubjectCreate(BaseModel):
    subject_id: Optional[str] = Field(None, max_length=50)
    name: str = Field(..., min_length=1, max_length=100)
    notes: Optional[str] = None
