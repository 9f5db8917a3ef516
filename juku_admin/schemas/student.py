from datetime import date
from typing import Optional, Literal
from pydantic import BaseModel, Field

StudentStatus = Literal["ACTIVE", "SICK", "PERMANENTLY_LEFT"]
SchoolType = Literal["PUBLIC", "PRIVATE"]


class StudentCreate(BaseModel):
    student_id: Optional[str] = Field(None, max_length=50)
    username: str = Field(..., min_length=3, max_length=50)
    password: str = Field(..., min_length=6, max_length=72)
    email: Optional[str] = Field(None, max_length=100)
    name: str = Field(..., min_length=1, max_length=100)
    kana_name: Optional[str] = Field(None, max_length=100)
    grade_id: Optional[str] = None
    grade_year: Optional[int] = Field(None, ge=1, le=12)
    school_name: Optional[str] = Field(None, max_length=100)
    school_type: Optional[SchoolType] = None
    birth_date: Optional[date] = None
    parent_email: Optional[str] = Field(None, max_length=100)
    status: StudentStatus = "ACTIVE"
    line_id: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = None
    branch_ids: list[str] = []


class StudentUpdate(BaseModel):
    username: Optional[str] = Field(None, min_length=3, max_length=50)
    password: Optional[str] = Field(None, min_length=6, max_length=72)
    email: Optional[str] = Field(None, max_length=100)
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    kana_name: Optional[str] = Field(None, max_length=100)
    grade_id: Optional[str] = None
    grade_year: Optional[int] = Field(None, ge=1, le=12)
    school_name: Optional[str] = Field(None, max_length=100)
    school_type: Optional[SchoolType] = None
    birth_date: Optional[date] = None
    parent_email: Optional[str] = Field(None, max_length=100)
    status: Optional[StudentStatus] = None
    line_id: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = None
    branch_ids: Optional[list[str]] = None
