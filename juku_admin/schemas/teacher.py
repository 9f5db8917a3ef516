from datetime import date
from typing import Optional
from pydantic import BaseModel, Field


class TeacherCreate(BaseModel):
    teacher_id: Optional[str] = Field(None, max_length=50)
    username: str = Field(..., min_length=3, max_length=50)
    password: str = Field(..., min_length=6, max_length=72)
    name: str = Field(..., min_length=1, max_length=100)
    kana_name: Optional[str] = Field(None, max_length=100)
    email: Optional[str] = Field(None, max_length=100)
    evaluation_id: Optional[str] = None
    birth_date: Optional[date] = None
    mobile_number: Optional[str] = Field(None, max_length=20)
    university: Optional[str] = Field(None, max_length=100)
    line_id: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = None
    branch_ids: list[str] = []


class TeacherUpdate(BaseModel):
    username: Optional[str] = Field(None, min_length=3, max_length=50)
    password: Optional[str] = Field(None, min_length=6, max_length=72)
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    kana_name: Optional[str] = Field(None, max_length=100)
    email: Optional[str] = Field(None, max_length=100)
    evaluation_id: Optional[str] = None
    birth_date: Optional[date] = None
    mobile_number: Optional[str] = Field(None, max_length=20)
    university: Optional[str] = Field(None, max_length=100)
    line_id: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = None
    branch_ids: Optional[list[str]] = None
