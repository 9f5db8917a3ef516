from sqlalchemy import Column, String, Integer

from juku_admin.database import Base, new_id


class Evaluation(Base):
    __tablename__ = "evaluations"

    evaluation_id = Column(String(50), primary_key=True, default=new_id)
    name = Column(String(100), nullable=False)
    score = Column(Integer)
    notes = Column(String(255))
