from datetime import date, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Header
from sqlalchemy import func
from sqlalchemy.orm import Session

from juku_admin.database import get_db
from juku_admin.models.booth import Booth
from juku_admin.models.branch import Branch
from juku_admin.models.class_session import ClassSession
from juku_admin.models.course import Course, CourseEnrollment
from juku_admin.models.notification import Notification
from juku_admin.models.student import Student
from juku_admin.models.subject import Subject
from juku_admin.models.teacher import Teacher
from juku_admin.models.user import User, UserBranch
from juku_admin.utils.auth import get_current_user, get_selected_branch
from juku_admin.utils.crud_factory import envelope
from juku_admin.utils.errors import NotFoundError
from juku_admin.utils.import_session import import_sessions

router = APIRouter(prefix="/api/dashboard", tags=["Dashboard"])

UPCOMING_DAYS = 7


def _count(db: Session, model) -> int:
    return db.query(func.count()).select_from(model).scalar()


def _members(db: Session, model, branch_id: str) -> int:
    return (
        db.query(func.count(model.user_id))
        .select_from(model)
        .join(UserBranch, UserBranch.user_id == model.user_id)
        .filter(UserBranch.branch_id == branch_id)
        .scalar()
    )


def _session_out(s: ClassSession) -> dict:
    return {
        "class_id": s.class_id,
        "branch_id": s.branch_id,
        "date": s.date,
        "start_time": s.start_time,
        "end_time": s.end_time,
        "teacher_id": s.teacher_id,
        "student_id": s.student_id,
        "subject_id": s.subject_id,
        "booth_id": s.booth_id,
    }


def _upcoming(db: Session, **owner) -> list[dict]:
    today = date.today()
    q = db.query(ClassSession).filter(
        ClassSession.date >= today,
        ClassSession.date < today + timedelta(days=UPCOMING_DAYS),
        ClassSession.is_cancelled.is_(False),
    )
    for field, value in owner.items():
        q = q.filter(getattr(ClassSession, field) == value)
    return [_session_out(s) for s in q.order_by(ClassSession.date, ClassSession.start_time).all()]


def _admin(db: Session, user: User) -> dict:
    return {
        "role": "ADMIN",
        "counts": {
            "branches": _count(db, Branch),
            "booths": _count(db, Booth),
            "teachers": _count(db, Teacher),
            "students": _count(db, Student),
            "subjects": _count(db, Subject),
            "class_sessions": _count(db, ClassSession),
        },
        "pending_notifications": (
            db.query(func.count()).select_from(Notification)
            .filter(Notification.status == "PENDING")
            .scalar()
        ),
        "recent_imports": [s.to_dict() for s in import_sessions.list_for_user(None, limit=5)],
    }


def _staff(db: Session, branch_id: str) -> dict:
    today = date.today()
    todays = (
        db.query(ClassSession)
        .filter(ClassSession.branch_id == branch_id, ClassSession.date == today)
        .order_by(ClassSession.start_time)
        .all()
    )
    return {
        "role": "STAFF",
        "branch_id": branch_id,
        "counts": {
            "booths": db.query(func.count(Booth.booth_id)).filter(Booth.branch_id == branch_id).scalar(),
            "teachers": _members(db, Teacher, branch_id),
            "students": _members(db, Student, branch_id),
            "todays_sessions": sum(1 for s in todays if not s.is_cancelled),
        },
        "todays_sessions": [_session_out(s) for s in todays],
    }


def _teacher(db: Session, user: User) -> dict:
    t = db.query(Teacher).filter(Teacher.user_id == user.id).first()
    if not t:
        raise NotFoundError("Teacher profile not found")
    return {
        "role": "TEACHER",
        "profile": {
            "teacher_id": t.teacher_id,
            "name": t.name,
            "kana_name": t.kana_name,
            "email": t.email,
            "branch_ids": user.branch_ids,
        },
        "upcoming_sessions": _upcoming(db, teacher_id=t.teacher_id),
    }


def _student(db: Session, user: User) -> dict:
    s = db.query(Student).filter(Student.user_id == user.id).first()
    if not s:
        raise NotFoundError("Student profile not found")
    enrollments = (
        db.query(CourseEnrollment, Course)
        .join(Course, Course.course_id == CourseEnrollment.course_id)
        .filter(CourseEnrollment.student_id == s.student_id)
        .all()
    )
    return {
        "role": "STUDENT",
        "profile": {
            "student_id": s.student_id,
            "name": s.name,
            "kana_name": s.kana_name,
            "grade_id": s.grade_id,
            "status": s.status,
            "branch_ids": user.branch_ids,
        },
        "upcoming_sessions": _upcoming(db, student_id=s.student_id),
        "enrollments": [
            {"enrollment_id": e.enrollment_id, "course_id": c.course_id, "course_name": c.name, "status": e.status}
            for e, c in enrollments
        ],
    }


@router.get("")
def get_dashboard(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    x_selected_branch: Optional[str] = Header(None),
):
    if user.role == "ADMIN":
        return envelope(_admin(db, user))
    if user.role == "STAFF":
        branch_id = get_selected_branch(user=user, db=db, x_selected_branch=x_selected_branch)
        return envelope(_staff(db, branch_id))
    if user.role == "TEACHER":
        return envelope(_teacher(db, user))
    return envelope(_student(db, user))
