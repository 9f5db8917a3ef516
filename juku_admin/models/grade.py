from sqlalchemy import Column, String, Text

from juku_admin.database import Base, new_id


class Grade(Base):
    __tablename__ = "grades"

    grade_id = Column(String(50), primary_key=True, default=new_id)
    name = Column(String(100), nullable=False)
    grade_type = Column(String(50))
    grade_number = Column(String(20))
    notes = Column(Text)
