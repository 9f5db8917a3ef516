from datetime import date
from typing import Optional
from pydantic import BaseModel, Field

from juku_admin.schemas.student import SchoolType, StudentStatus


# CSV 行。パスワードは新規作成時のみ必須 (csv_import 側で確認)
class TeacherImportRow(BaseModel):
    username: str = Field(..., min_length=3, max_length=50)
    password: Optional[str] = Field(None, min_length=6, max_length=72)
    name: str = Field(..., min_length=1, max_length=100)
    kana_name: Optional[str] = Field(None, max_length=100)
    email: Optional[str] = Field(None, max_length=100)
    evaluation_id: Optional[str] = None
    birth_date: Optional[date] = None
    mobile_number: Optional[str] = Field(None, max_length=20)
    university: Optional[str] = Field(None, max_length=100)
    line_id: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = None


class StudentImportRow(BaseModel):
    username: str = Field(..., min_length=3, max_length=50)
    password: Optional[str] = Field(None, min_length=6, max_length=72)
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


class StaffImportRow(BaseModel):
    username: str = Field(..., min_length=3, max_length=50)
    password: Optional[str] = Field(None, min_length=6, max_length=72)
    email: Optional[str] = Field(None, max_length=100)
    branch_ids: list[str] = []
