from datetime import date, time
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from juku_admin.models.class_session import ClassSession


def ranges_overlap(a_start: time, a_end: time, b_start: time, b_end: time) -> bool:
    """半開区間 [start, end) が重なるか (10:00-11:00 と 11:00-12:00 は重ならない)"""
    return a_start < b_end and b_start < a_end


def find_session_conflicts(
    db: Session,
    on: date,
    start: time,
    end: time,
    teacher_id: Optional[str] = None,
    student_id: Optional[str] = None,
    booth_id: Optional[str] = None,
    exclude_id: Optional[str] = None,
) -> list[dict]:
    """
    Non-cancelled sessions on the same day that overlap [start, end) and share
    the teacher, the student or the booth.
    """
    same_resource = []
    if teacher_id:
        same_resource.append(ClassSession.teacher_id == teacher_id)
    if student_id:
        same_resource.append(ClassSession.student_id == student_id)
    if booth_id:
        same_resource.append(ClassSession.booth_id == booth_id)
    if not same_resource:
        return []

    q = db.query(ClassSession).filter(
        ClassSession.date == on,
        ClassSession.is_cancelled.is_(False),
        or_(*same_resource),
    )
    if exclude_id:
        q = q.filter(ClassSession.class_id != exclude_id)

    conflicts = []
    for s in q.order_by(ClassSession.start_time).all():
        if not ranges_overlap(start, end, s.start_time, s.end_time):
            continue
        reasons = []
        if teacher_id and s.teacher_id == teacher_id:
            reasons.append("TEACHER")
        if student_id and s.student_id == student_id:
            reasons.append("STUDENT")
        if booth_id and s.booth_id == booth_id:
            reasons.append("BOOTH")
        conflicts.append({"class_id": s.class_id, "types": reasons})
    return conflicts
