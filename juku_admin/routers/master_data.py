"""
Reference tables served by the CRUD factory.

Delete rules: `restrict` refuses the delete while dependent rows exist,
`cascade` removes the dependent rows first.
"""
from juku_admin.models.booth import Booth
from juku_admin.models.branch import Branch
from juku_admin.models.class_session import ClassSession
from juku_admin.models.class_type import ClassType
from juku_admin.models.course import Course, CourseEnrollment
from juku_admin.models.evaluation import Evaluation
from juku_admin.models.grade import Grade
from juku_admin.models.line_channel import BranchLineChannel
from juku_admin.models.student import Student
from juku_admin.models.subject import Subject
from juku_admin.models.teacher import Teacher
from juku_admin.models.time_slot import TimeSlot
from juku_admin.models.user import UserBranch
from juku_admin.schemas.booth import BoothCreate
from juku_admin.schemas.branch import BranchCreate
from juku_admin.schemas.class_type import ClassTypeCreate
from juku_admin.schemas.course import CourseCreate, EnrollmentCreate
from juku_admin.schemas.evaluation import EvaluationCreate
from juku_admin.schemas.grade import GradeCreate
from juku_admin.schemas.subject import SubjectCreate
from juku_admin.schemas.time_slot import TimeSlotCreate, TimeSlotUpdate
from juku_admin.utils.crud_factory import CrudActions, RelatedModel, create_crud_router
from juku_admin.utils.errors import BadRequestError


def _time_slot_order(slot):
    if slot.start_time and slot.end_time and slot.end_time <= slot.start_time:
        raise BadRequestError("end_time must be after start_time")


branch_actions = CrudActions(
    Branch,
    "branch_id",
    BranchCreate,
    related_models=[
        RelatedModel(Booth, "branch_id"),
        RelatedModel(UserBranch, "branch_id"),
        RelatedModel(ClassSession, "branch_id"),
        RelatedModel(BranchLineChannel, "branch_id", on_delete="cascade"),
    ],
    order_by=[("order", "asc"), ("name", "asc")],
)

evaluation_actions = CrudActions(
    Evaluation,
    "evaluation_id",
    EvaluationCreate,
    related_models=[RelatedModel(Teacher, "evaluation_id")],
    order_by=[("score", "desc"), ("name", "asc")],
)

grade_actions = CrudActions(
    Grade,
    "grade_id",
    GradeCreate,
    related_models=[
        RelatedModel(Student, "grade_id"),
        RelatedModel(Course, "grade_id"),
    ],
)

subject_actions = CrudActions(
    Subject,
    "subject_id",
    SubjectCreate,
    related_models=[
        RelatedModel(Course, "subject_id"),
        RelatedModel(ClassSession, "subject_id"),
    ],
)

class_type_actions = CrudActions(
    ClassType,
    "class_type_id",
    ClassTypeCreate,
    related_models=[
        RelatedModel(ClassType, "parent_id"),
        RelatedModel(ClassSession, "class_type_id"),
    ],
    order_by=[("order", "asc"), ("name", "asc")],
    entity_label="Class type",
)

time_slot_actions = CrudActions(
    TimeSlot,
    "time_slot_id",
    TimeSlotCreate,
    update_schema=TimeSlotUpdate,
    order_by=[("start_time", "asc")],
    entity_label="Time slot",
    check=_time_slot_order,
)

booth_actions = CrudActions(
    Booth,
    "booth_id",
    BoothCreate,
    related_models=[RelatedModel(ClassSession, "booth_id")],
    branch_scoped=True,
)

course_actions = CrudActions(
    Course,
    "course_id",
    CourseCreate,
    related_models=[RelatedModel(CourseEnrollment, "course_id", on_delete="cascade")],
)

enrollment_actions = CrudActions(
    CourseEnrollment,
    "enrollment_id",
    EnrollmentCreate,
    order_by=[("enrollment_date", "desc")],
    entity_label="Enrollment",
)

routers = [
    create_crud_router(branch_actions, "/api/branches", tags=["Branches"], read_roles=("ADMIN", "STAFF", "TEACHER", "STUDENT"), write_roles=("ADMIN",)),
    create_crud_router(evaluation_actions, "/api/evaluations", tags=["Evaluations"]),
    create_crud_router(grade_actions, "/api/grades", tags=["Grades"]),
    create_crud_router(subject_actions, "/api/subjects", tags=["Subjects"]),
    create_crud_router(class_type_actions, "/api/class-types", tags=["Class types"]),
    create_crud_router(time_slot_actions, "/api/time-slots", tags=["Time slots"]),
    create_crud_router(booth_actions, "/api/booths", tags=["Booths"]),
    create_crud_router(course_actions, "/api/courses", tags=["Courses"]),
    create_crud_router(enrollment_actions, "/api/enrollments", tags=["Enrollments"]),
]
