from sqlalchemy import Column, String, Text, Time

from juku_admin.database import Base, new_id


class TimeSlot(Base):
    __tablename__ = "time_slots"

    time_slot_id = Column(String(50), primary_key=True, default=new_id)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    notes = Column(Text)
