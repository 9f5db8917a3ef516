from typing import Optional
from pydantic import BaseModel, Field, model_validator


class ClassTypeCreate(BaseModel):
    class_type_id: Optional[str] = Field(None, max_length=50)
    name: str = Field(..., min_length=1, max_length=100)
    parent_id: Optional[str] = Field(None, max_length=50)
    order: Optional[int] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def _not_own_parent(self):
        if self.parent_id and self.parent_id == self.class_type_id:
            raise ValueError("A class type cannot be its own parent")
        return self
