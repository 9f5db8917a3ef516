from sqlalchemy import Column, String, Text

from juku_admin.database import Base, new_id


class Subject(Base):
    __tablename__ = "subjects"

    subject_id = Column(String(50), primary_key=True, default=new_id)
    name = Column(String(100), unique=True, nullable=False)
    notes = Column(Text)
