"""
CSV import / export definitions.

Each importable table gets an `ImportDefinition`: the Japanese CSV headers and
the model fields they map to, a row schema, the natural key used to detect
existing records, and the create / update functions. `run_import` drives one
upload through parse -> header check -> per-row validation -> write.

Row decision:
  - `ID` cell filled     -> update that record (unknown id is a row error)
  - natural key exists   -> skipped with a warning
  - otherwise            -> create

Row numbers are CSV line numbers, header = 1.
"""
import logging
import re
import time
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Optional, Type

from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from juku_admin.models.booth import Booth
from juku_admin.models.branch import Branch
from juku_admin.models.class_type import ClassType
from juku_admin.models.evaluation import Evaluation
from juku_admin.models.grade import Grade
from juku_admin.models.student import Student
from juku_admin.models.subject import Subject
from juku_admin.models.teacher import Teacher
from juku_admin.models.user import User, UserBranch
from juku_admin.schemas.booth import BoothCreate
from juku_admin.schemas.branch import BranchCreate
from juku_admin.schemas.class_type import ClassTypeCreate
from juku_admin.schemas.evaluation import EvaluationCreate
from juku_admin.schemas.grade import GradeCreate
from juku_admin.schemas.imports import StaffImportRow, StudentImportRow, TeacherImportRow
from juku_admin.schemas.subject import SubjectCreate
from juku_admin.utils.crud_factory import partial_schema
from juku_admin.utils.csv_parser import ParseResult, generate_csv, parse_csv, validate_csv_headers
from juku_admin.utils.db_errors import describe_db_error
from juku_admin.utils.errors import AppError, BadRequestError, NotFoundError
from juku_admin.utils.users import apply_user_changes, create_user, user_conflicts

logger = logging.getLogger("juku_admin.import")

ID_HEADER = "ID"
ERROR_HEADER = "エラー"
# 複数値セルの区切り (書き出しは「、」)
NAME_SEP = re.compile(r"[、,;]")
NAME_JOIN = "、"


# ---------- cell parsers / formatters ----------
def _text(v: str) -> str:
    return v


def _int(v: str) -> int:
    try:
        return int(float(v.replace(",", "")))
    except (ValueError, OverflowError):
        raise ValueError("must be a number")


def _date(v: str) -> date:
    for fmt in ("%Y-%m-%d", "%Y/%m/%d"):
        try:
            return datetime.strptime(v, fmt).date()
        except ValueError:
            continue
    raise ValueError("must be a date (YYYY-MM-DD)")


def _choice(mapping: dict) -> Callable[[str], Any]:
    """表示名 or コード値 -> コード値"""
    reverse = {code: code for code in mapping.values()}

    def parse(v: str):
        if v in mapping:
            return mapping[v]
        if v.upper() in reverse:
            return v.upper()
        raise ValueError(f"must be one of {', '.join(mapping)}")

    return parse


def _label(mapping: dict) -> Callable[[Any], str]:
    reverse = {code: label for label, code in mapping.items()}
    return lambda v: reverse.get(v, "" if v is None else str(v))


def _fmt(v: Any) -> str:
    if v is None:
        return ""
    if isinstance(v, bool):
        return "true" if v else "false"
    if isinstance(v, (date, datetime)):
        return v.isoformat()
    return str(v)


BOOTH_STATUS = {"有効": True, "無効": False}
STUDENT_STATUS = {"在籍": "ACTIVE", "休会": "SICK", "退会": "PERMANENTLY_LEFT"}
SCHOOL_TYPE = {"公立": "PUBLIC", "私立": "PRIVATE"}


def _booth_status(v: str) -> bool:
    if v in BOOTH_STATUS:
        return BOOTH_STATUS[v]
    if v.lower() in ("true", "1"):
        return True
    if v.lower() in ("false", "0"):
        return False
    raise ValueError("must be 有効 or 無効")


@dataclass
class Reference:
    """Cell holds a display name; stored value is the referenced row's id."""

    model: Any
    id_field: str
    name_field: str = "name"
    many: bool = False  # "本校、駅前校" -> [id, id]


@dataclass
class ImportColumn:
    header: str
    field: str
    required: bool = False
    parse: Callable[[str], Any] = _text
    fmt: Callable[[Any], str] = _fmt
    ref: Optional[Reference] = None
    export: bool = True


@dataclass
class ImportDefinition:
    entity: str
    label: str
    model: Any
    id_field: str
    columns: list[ImportColumn]
    row_schema: Type[BaseModel]
    find_existing: Callable[[Session, dict, Optional[str]], Any]
    create: Callable[[Session, dict, Optional[str]], Any]
    update: Callable[[Session, Any, dict], None]
    key_field: str = "name"
    roles: tuple = ("ADMIN", "STAFF")
    branch_scoped: bool = False
    assigns_branch: bool = False  # new users join the selected branch
    get_value: Callable[[Any, str], Any] = getattr
    id_type: Callable[[str], Any] = str
    where: tuple = ()

    @property
    def headers(self) -> list[str]:
        return [ID_HEADER] + [c.header for c in self.columns]

    @property
    def required_headers(self) -> list[str]:
        return [c.header for c in self.columns if c.required]

    @property
    def needs_branch(self) -> bool:
        return self.branch_scoped or self.assigns_branch

    def query(self, db: Session, branch_id: Optional[str] = None):
        q = db.query(self.model).filter(*self.where)
        if self.branch_scoped and branch_id:
            q = q.filter(self.model.branch_id == branch_id)
        if self.assigns_branch and branch_id:
            # 講師・生徒は所属校舎 (user_branches) で絞る
            q = q.join(UserBranch, UserBranch.user_id == self.model.user_id).filter(UserBranch.branch_id == branch_id)
        return q

    @property
    def order_by(self):
        for name in ("name", self.key_field, self.id_field):
            if hasattr(self.model, name):
                return getattr(self.model, name)


# ---------- persistence helpers ----------
def _by_name(model, scoped: bool = False):
    def find(db: Session, values: dict, branch_id: Optional[str]):
        q = db.query(model).filter(model.name == values.get("name"))
        if scoped:
            q = q.filter(model.branch_id == branch_id)
        return q.first()

    return find


def _plain_create(model, id_field: str, scoped: bool = False):
    def create(db: Session, values: dict, branch_id: Optional[str]):
        values = {k: v for k, v in values.items() if k != id_field}
        if scoped:
            values["branch_id"] = branch_id
        obj = model(**values)
        db.add(obj)
        return obj

    return create


def _plain_update(db: Session, obj, values: dict):
    for k, v in values.items():
        setattr(obj, k, v)


def _find_user(db: Session, values: dict, branch_id: Optional[str]):
    return db.query(User).filter(User.username == values.get("username")).first()


def _person_create(model, role: str):
    def create(db: Session, values: dict, branch_id: Optional[str]):
        password = values.pop("password", None)
        if not password:
            raise ValueError("パスワード: required for new rows")
        user = create_user(
            db,
            username=values.pop("username"),
            password=password,
            role=role,
            email=values.get("email"),
            branch_ids=[branch_id] if branch_id else [],
        )
        obj = model(user_id=user.id, **{k: v for k, v in values.items() if hasattr(model, k)})
        db.add(obj)
        return obj

    return create


def _account(obj) -> User:
    return obj if isinstance(obj, User) else obj.user


def _person_update(db: Session, obj, values: dict):
    apply_user_changes(db, obj.user, values)
    for k, v in values.items():
        if hasattr(obj, k):
            setattr(obj, k, v)


def _person_value(obj, name: str):
    if name == "username":
        return obj.user.username
    if name == "password":
        return None
    if name == "email" and not hasattr(type(obj), "email"):
        return obj.user.email
    return getattr(obj, name)


def _staff_create(db: Session, values: dict, branch_id: Optional[str]):
    password = values.pop("password", None)
    if not password:
        raise ValueError("パスワード: required for new rows")
    return create_user(
        db,
        username=values["username"],
        password=password,
        role="STAFF",
        email=values.get("email"),
        branch_ids=values.get("branch_ids") or [],
    )


def _staff_value(user: User, name: str):
    return None if name == "password" else getattr(user, name)


DEFINITIONS: dict[str, ImportDefinition] = {}


def _register(d: ImportDefinition):
    DEFINITIONS[d.entity] = d
    return d


_register(ImportDefinition(
    entity="branches",
    label="Branch",
    model=Branch,
    id_field="branch_id",
    columns=[
        ImportColumn("校舎名", "name", required=True),
        ImportColumn("表示順", "order", parse=_int),
        ImportColumn("備考", "notes"),
    ],
    row_schema=BranchCreate,
    find_existing=_by_name(Branch),
    create=_plain_create(Branch, "branch_id"),
    update=_plain_update,
    roles=("ADMIN",),
))

_register(ImportDefinition(
    entity="subjects",
    label="Subject",
    model=Subject,
    id_field="subject_id",
    columns=[
        ImportColumn("科目名", "name", required=True),
        ImportColumn("備考", "notes"),
    ],
    row_schema=SubjectCreate,
    find_existing=_by_name(Subject),
    create=_plain_create(Subject, "subject_id"),
    update=_plain_update,
))

_register(ImportDefinition(
    entity="grades",
    label="Grade",
    model=Grade,
    id_field="grade_id",
    columns=[
        ImportColumn("学年名", "name", required=True),
        ImportColumn("学年種別", "grade_type"),
        ImportColumn("学年番号", "grade_number"),
        ImportColumn("備考", "notes"),
    ],
    row_schema=GradeCreate,
    find_existing=_by_name(Grade),
    create=_plain_create(Grade, "grade_id"),
    update=_plain_update,
))

_register(ImportDefinition(
    entity="evaluations",
    label="Evaluation",
    model=Evaluation,
    id_field="evaluation_id",
    columns=[
        ImportColumn("評価名", "name", required=True),
        ImportColumn("スコア", "score", parse=_int),
        ImportColumn("備考", "notes"),
    ],
    row_schema=EvaluationCreate,
    find_existing=_by_name(Evaluation),
    create=_plain_create(Evaluation, "evaluation_id"),
    update=_plain_update,
))

_register(ImportDefinition(
    entity="class-types",
    label="Class type",
    model=ClassType,
    id_field="class_type_id",
    columns=[
        ImportColumn("授業タイプ名", "name", required=True),
        ImportColumn("親授業タイプ", "parent_id", ref=Reference(ClassType, "class_type_id")),
        ImportColumn("表示順", "order", parse=_int),
        ImportColumn("備考", "notes"),
    ],
    row_schema=ClassTypeCreate,
    find_existing=_by_name(ClassType),
    create=_plain_create(ClassType, "class_type_id"),
    update=_plain_update,
))

_register(ImportDefinition(
    entity="booths",
    label="Booth",
    model=Booth,
    id_field="booth_id",
    columns=[
        ImportColumn("ブース名", "name", required=True),
        ImportColumn("ステータス", "status", parse=_booth_status, fmt=_label(BOOTH_STATUS)),
        ImportColumn("備考", "notes"),
    ],
    row_schema=BoothCreate,
    find_existing=_by_name(Booth, scoped=True),
    create=_plain_create(Booth, "booth_id", scoped=True),
    update=_plain_update,
    branch_scoped=True,
))

_register(ImportDefinition(
    entity="teachers",
    label="Teacher",
    model=Teacher,
    id_field="teacher_id",
    columns=[
        ImportColumn("名前", "name", required=True),
        ImportColumn("カナ", "kana_name"),
        ImportColumn("ユーザー名", "username", required=True),
        ImportColumn("パスワード", "password"),
        ImportColumn("メールアドレス", "email"),
        ImportColumn("携帯番号", "mobile_number"),
        ImportColumn("大学", "university"),
        ImportColumn("生年月日", "birth_date", parse=_date),
        ImportColumn("評価", "evaluation_id", ref=Reference(Evaluation, "evaluation_id")),
        ImportColumn("LINE ID", "line_id"),
        ImportColumn("備考", "notes"),
    ],
    row_schema=TeacherImportRow,
    find_existing=_find_user,
    create=_person_create(Teacher, "TEACHER"),
    update=_person_update,
    key_field="username",
    assigns_branch=True,
    get_value=_person_value,
))

_register(ImportDefinition(
    entity="students",
    label="Student",
    model=Student,
    id_field="student_id",
    columns=[
        ImportColumn("名前", "name", required=True),
        ImportColumn("カナ", "kana_name"),
        ImportColumn("ユーザー名", "username", required=True),
        ImportColumn("パスワード", "password"),
        ImportColumn("メールアドレス", "email"),
        ImportColumn("学年", "grade_id", ref=Reference(Grade, "grade_id")),
        ImportColumn("学年年次", "grade_year", parse=_int),
        ImportColumn("学校名", "school_name"),
        ImportColumn("学校種別", "school_type", parse=_choice(SCHOOL_TYPE), fmt=_label(SCHOOL_TYPE)),
        ImportColumn("生年月日", "birth_date", parse=_date),
        ImportColumn("保護者メール", "parent_email"),
        ImportColumn("ステータス", "status", parse=_choice(STUDENT_STATUS), fmt=_label(STUDENT_STATUS)),
        ImportColumn("LINE ID", "line_id"),
        ImportColumn("備考", "notes"),
    ],
    row_schema=StudentImportRow,
    find_existing=_find_user,
    create=_person_create(Student, "STUDENT"),
    update=_person_update,
    key_field="username",
    assigns_branch=True,
    get_value=_person_value,
))

_register(ImportDefinition(
    entity="staffs",
    label="Staff",
    model=User,
    id_field="id",
    columns=[
        ImportColumn("ユーザー名", "username", required=True),
        ImportColumn("パスワード", "password"),
        ImportColumn("メールアドレス", "email"),
        ImportColumn("所属校舎", "branch_ids", ref=Reference(Branch, "branch_id", many=True)),
    ],
    row_schema=StaffImportRow,
    find_existing=_find_user,
    create=_staff_create,
    update=apply_user_changes,
    key_field="username",
    roles=("ADMIN",),
    get_value=_staff_value,
    id_type=int,
    where=(User.role == "STAFF",),
))


def get_definition(entity: str) -> ImportDefinition:
    d = DEFINITIONS.get(entity)
    if d is None:
        raise NotFoundError(f"Unknown import target: {entity}")
    return d


# ---------- import ----------
@dataclass
class ImportResult:
    processed: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: list = field(default_factory=list)     # [{"row": n, "errors": [...]}]
    warnings: list = field(default_factory=list)   # [{"row": n, "warnings": [...]}]
    encoding: Optional[str] = None
    dry_run: bool = False

    @property
    def written(self) -> int:
        return self.created + self.updated

    @property
    def all_failed(self) -> bool:
        return bool(self.errors) and self.written == 0

    def summary(self) -> dict:
        return {
            "processed": self.processed,
            "created": self.created,
            "updated": self.updated,
            "skipped": self.skipped,
            "errors": self.errors,
            "warnings": self.warnings,
            "encoding": self.encoding,
            "dry_run": self.dry_run,
        }


def _row_values(db: Session, d: ImportDefinition, row: dict) -> tuple[dict, list[str]]:
    """Non-empty cells -> field values; references resolved to ids."""
    values, problems = {}, []
    for col in d.columns:
        raw = row.get(col.header, "")
        if raw == "":
            continue
        if col.ref is not None:
            ref = col.ref
            names = [n.strip() for n in NAME_SEP.split(raw) if n.strip()] if ref.many else [raw]
            ids = []
            for n in names:
                found = (
                    db.query(getattr(ref.model, ref.id_field))
                    .filter(getattr(ref.model, ref.name_field) == n)
                    .first()
                )
                if found is None:
                    problems.append(f"{col.header}: '{n}' not found")
                else:
                    ids.append(found[0])
            values[col.field] = ids if ref.many else (ids[0] if ids else None)
            continue
        try:
            values[col.field] = col.parse(raw)
        except ValueError as e:
            problems.append(f"{col.header}: {e}")
    return values, problems


def _header_for(d: ImportDefinition, field_name: str) -> str:
    for c in d.columns:
        if c.field == field_name:
            return c.header
    return field_name


def _schema_errors(d: ImportDefinition, exc: ValidationError) -> list[str]:
    out = []
    for err in exc.errors():
        loc = [str(p) for p in err["loc"]]
        where = _header_for(d, loc[0]) if loc else ""
        out.append(f"{where}: {err['msg']}" if where else err["msg"])
    return out


def _process_row(
    db: Session,
    d: ImportDefinition,
    row: dict,
    line: int,
    branch_id: Optional[str],
    seen_keys: set,
    result: ImportResult,
):
    values, problems = _row_values(db, d, row)
    record_id = row.get(ID_HEADER, "")

    schema = partial_schema(d.row_schema) if record_id else d.row_schema
    try:
        validated = schema.model_validate(values)
    except ValidationError as e:
        problems.extend(_schema_errors(d, e))
        validated = None

    if problems:
        result.errors.append({"row": line, "errors": problems})
        return

    clean = validated.model_dump(exclude_unset=True) if record_id else validated.model_dump(exclude_none=True)
    clean.pop(d.id_field, None)

    key = clean.get(d.key_field)
    if key is not None and key in seen_keys:
        result.skipped += 1
        result.warnings.append({"row": line, "warnings": [f"'{key}' appears earlier in this file; skipped"]})
        return
    if key is not None:
        seen_keys.add(key)

    if record_id:
        try:
            obj = d.query(db, branch_id).filter(getattr(d.model, d.id_field) == d.id_type(record_id)).first()
        except ValueError:
            obj = None
        if obj is None:
            result.errors.append({"row": line, "errors": [f"{d.label} with ID '{record_id}' not found"]})
            return
        if d.key_field == "username":
            taken = user_conflicts(db, clean.get("username"), clean.get("email"), exclude_user_id=_account(obj).id)
            if taken:
                result.errors.append({"row": line, "errors": taken})
                return
        elif key is not None:
            other = d.find_existing(db, clean, branch_id)
            if other is not None and other is not obj:
                result.errors.append({"row": line, "errors": [f"{d.label} '{key}' already exists"]})
                return
        d.update(db, obj, clean)
        db.flush()
        result.updated += 1
        return

    if d.find_existing(db, clean, branch_id) is not None:
        result.skipped += 1
        result.warnings.append({"row": line, "warnings": [f"{d.label} '{key}' already exists; skipped"]})
        return

    if d.key_field == "username":
        taken = user_conflicts(db, None, clean.get("email"))
        if taken:
            result.errors.append({"row": line, "errors": taken})
            return
    try:
        d.create(db, clean, branch_id)
    except (ValueError, AppError) as e:
        result.errors.append({"row": line, "errors": [str(e)]})
        return
    db.flush()
    result.created += 1


def run_import(
    db: Session,
    d: ImportDefinition,
    raw: bytes,
    branch_id: Optional[str] = None,
    dry_run: bool = False,
    parsed: Optional[ParseResult] = None,
) -> ImportResult:
    """
    Validate and write every row of one CSV upload in a single transaction.
    Raises BadRequestError for file-level problems (parse failure, empty file,
    missing required columns). Nothing is committed when every row failed or
    when `dry_run` is set.
    """
    parsed = parsed or parse_csv(raw)
    if parsed.errors:
        raise BadRequestError("Failed to parse CSV file", details=parsed.errors)
    if not parsed.data:
        raise BadRequestError("CSV file is empty")

    actual = parsed.headers
    ok, header_problems = validate_csv_headers(actual, d.headers, required=d.required_headers)
    if any(h not in actual for h in d.required_headers):
        raise BadRequestError(header_problems[0], details=header_problems)

    result = ImportResult(encoding=parsed.encoding, dry_run=dry_run)
    if not ok:
        # 未知の列は無視して続行
        result.warnings.append({"row": 1, "warnings": header_problems})

    seen: set = set()
    try:
        for i, row in enumerate(parsed.data):
            result.processed += 1
            _process_row(db, d, row, i + 2, branch_id, seen, result)

        if dry_run or result.all_failed:
            db.rollback()
        else:
            db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning("%s import aborted: %s", d.entity, e)
        raise describe_db_error(e, d.label)
    except Exception:
        db.rollback()
        raise
    return result


def audit_import(entity: str, filename: Optional[str], result: ImportResult, started: float):
    logger.info(
        "import entity=%s file=%s encoding=%s processed=%d created=%d updated=%d skipped=%d errors=%d dry_run=%s duration_ms=%d",
        entity,
        filename,
        result.encoding,
        result.processed,
        result.created,
        result.updated,
        result.skipped,
        len(result.errors),
        result.dry_run,
        int((time.time() - started) * 1000),
    )


def errors_csv(parsed: ParseResult, result: ImportResult) -> str:
    """Failed rows as uploaded, plus an error column."""
    by_row = {e["row"]: "; ".join(e["errors"]) for e in result.errors}
    columns = parsed.headers + [ERROR_HEADER]
    rows = []
    for i, row in enumerate(parsed.data):
        msg = by_row.get(i + 2)
        if msg is None:
            continue
        rows.append({**row, ERROR_HEADER: msg})
    return generate_csv(rows, columns)


# ---------- template / export ----------
def template_csv(d: ImportDefinition) -> str:
    return generate_csv([], d.headers)


def export_rows(db: Session, d: ImportDefinition, branch_id: Optional[str] = None) -> list[dict]:
    names: dict = {}
    for col in d.columns:
        if col.ref is not None:
            ref = col.ref
            names[col.field] = {
                i: n
                for i, n in db.query(getattr(ref.model, ref.id_field), getattr(ref.model, ref.name_field)).all()
            }

    rows = []
    for obj in d.query(db, branch_id).order_by(d.order_by).all():
        row = {ID_HEADER: getattr(obj, d.id_field)}
        for col in d.columns:
            if not col.export:
                continue
            v = d.get_value(obj, col.field)
            if col.field in names:
                lookup = names[col.field]
                v = NAME_JOIN.join(lookup.get(i, "") for i in v) if col.ref.many else lookup.get(v)
            row[col.header] = col.fmt(v)
        rows.append(row)
    return rows
