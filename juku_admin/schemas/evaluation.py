from typing import Optional
from pydantic import BaseModel, Field


class EvaluationCreate(BaseModel):
    evaluation_id: Optional[str] = Field(None, max_length=50)
    name: str = Field(..., min_length=1, max_length=100)
    score: Optional[int] = None
    notes: Optional[str] = Field(None, max_length=255)
