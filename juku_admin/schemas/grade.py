from typing import Optional
from pydantic import BaseModel, Field


class GradeCreate(BaseModel):
    grade_id: Optional[str] = Field(None, max_length=50)
    name: str = Field(..., min_length=1, max_length=100)
    grade_type: Optional[str] = Field(None, max_length=50)   # 小学生 / 中学生 / 高校生 ...
    grade_number: Optional[str] = Field(None, max_length=20)
    notes: Optional[str] = None
