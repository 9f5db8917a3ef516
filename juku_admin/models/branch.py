from sqlalchemy import Column, String, Integer, Text, DateTime
from sqlalchemy.sql import func

from juku_admin.database import Base, new_id


class Branch(Base):
    __tablename__ = "branches"

    branch_id = Column(String(50), primary_key=True, default=new_id)
    name = Column(String(100), unique=True, nullable=False)
    notes = Column(Text)
    order = Column(Integer)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
