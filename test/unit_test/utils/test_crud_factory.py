import pytest

from juku_admin.models.booth import Booth
from juku_admin.models.course import Course, CourseEnrollment
from juku_admin.models.student import Student
from juku_admin.models.subject import Subject
from juku_admin.routers.master_data import (
    booth_actions,
    course_actions,
    subject_actions,
    time_slot_actions,
)
from juku_admin.schemas.subject import SubjectCreate
from juku_admin.utils.crud_factory import pagination, partial_schema
from juku_admin.utils.errors import BadRequestError, ConflictError, NotFoundError


def test_create_and_get(db):
    s = subject_actions.create(db, {"name": "英語", "notes": "必修"})

    assert s.subject_id
    got = subject_actions.get_one(db, s.subject_id)
    assert got.name == "英語"
    assert subject_actions.serialize(got) == {"subject_id": s.subject_id, "name": "英語", "notes": "必修"}


def test_create_validation_error(db):
    with pytest.raises(BadRequestError) as exc:
        subject_actions.create(db, {"name": ""})

    assert exc.value.details[0]["field"] == "name"


def test_create_with_existing_id_conflicts(db):
    subject_actions.create(db, {"subject_id": "sub-1", "name": "英語"})

    with pytest.raises(ConflictError):
        subject_actions.create(db, {"subject_id": "sub-1", "name": "数学"})


def test_unique_violation_becomes_conflict(db):
    subject_actions.create(db, {"name": "英語"})

    with pytest.raises(ConflictError) as exc:
        subject_actions.create(db, {"name": "英語"})
    assert "name" in exc.value.message


def test_get_all_orders_filters_and_pages(db):
    for n in ("数学", "英語", "国語", "理科"):
        subject_actions.create(db, {"name": n})

    items, total = subject_actions.get_all(db)
    assert total == 4
    assert [i.name for i in items] == sorted(["数学", "英語", "国語", "理科"])

    items, total = subject_actions.get_all(db, page=2, limit=3)
    assert total == 4
    assert len(items) == 1

    items, total = subject_actions.get_all(db, name="英")
    assert total == 1 and items[0].name == "英語"


def test_update_is_partial(db):
    s = subject_actions.create(db, {"name": "英語", "notes": "old"})

    updated = subject_actions.update(db, s.subject_id, {"notes": "new"})
    assert updated.name == "英語"
    assert updated.notes == "new"


def test_update_missing(db):
    with pytest.raises(NotFoundError):
        subject_actions.update(db, "missing", {"notes": "x"})


def test_update_check_runs_on_merged_row(db):
    slot = time_slot_actions.create(db, {"start_time": "10:00", "end_time": "11:00"})

    with pytest.raises(BadRequestError):
        time_slot_actions.update(db, slot.time_slot_id, {"end_time": "09:00"})

    db.expire_all()
    assert str(time_slot_actions.get_one(db, slot.time_slot_id).end_time) == "11:00:00"


def test_remove_restricted_by_dependents(db):
    s = subject_actions.create(db, {"name": "英語"})
    db.add(Course(name="夏期講習", subject_id=s.subject_id))
    db.commit()

    with pytest.raises(ConflictError) as exc:
        subject_actions.remove(db, s.subject_id)
    assert exc.value.details == {"courses": 1}
    assert db.get(Subject, s.subject_id) is not None


def test_remove_cascades(db, branch, make_user):
    account = make_user("student1", "STUDENT", [branch.branch_id])
    student = Student(user_id=account.id, name="生徒")
    db.add(student)
    db.flush()
    course = course_actions.create(db, {"name": "冬期講習"})
    db.add(CourseEnrollment(course_id=course.course_id, student_id=student.student_id))
    db.commit()

    assert course_actions.remove(db, course.course_id) == {"success": True}
    assert db.query(CourseEnrollment).count() == 0
    assert db.query(Course).count() == 0


def test_branch_scoped_actions(db, branch, make_branch):
    other = make_branch("駅前校")
    booth = booth_actions.create(db, {"name": "Booth-1", "branch_id": other.branch_id}, branch.branch_id)

    assert booth.branch_id == branch.branch_id
    items, total = booth_actions.get_all(db, branch_id=other.branch_id)
    assert total == 0
    with pytest.raises(NotFoundError):
        booth_actions.get_one(db, booth.booth_id, other.branch_id)

    booth_actions.update(db, booth.booth_id, {"name": "Booth-A"}, branch.branch_id)
    assert db.get(Booth, booth.booth_id).name == "Booth-A"


def test_partial_schema_keeps_constraints():
    Partial = partial_schema(SubjectCreate)

    assert Partial.model_validate({}).model_dump(exclude_unset=True) == {}
    with pytest.raises(Exception):
        Partial.model_validate({"name": ""})


def test_pagination():
    assert pagination(0, None, None) == {"total": 0, "page": 1, "limit": 0, "pages": 1}
    assert pagination(25, 2, 10) == {"total": 25, "page": 2, "limit": 10, "pages": 3}
    assert pagination(0, 1, 10)["pages"] == 0
