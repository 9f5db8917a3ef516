import re
from typing import Optional

from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

from juku_admin.utils.errors import AppError, BadRequestError, ConflictError


def describe_db_error(exc: SQLAlchemyError, entity: Optional[str] = None) -> AppError:
    """
    IntegrityError などを利用者向けメッセージに変換する
    (postgres / sqlite どちらのメッセージ形式にも対応)
    """
    label = entity or "record"
    raw = str(getattr(exc, "orig", exc))
    lowered = raw.lower()

    if isinstance(exc, IntegrityError):
        if "unique" in lowered or "duplicate key" in lowered:
            field = _match_field(raw)
            if field:
                return ConflictError(f"Duplicate value for '{field}': this value must be unique")
            return ConflictError(f"This {label} already exists")

        if "foreign key" in lowered:
            return BadRequestError(
                f"Invalid reference: a related record for this {label} does not exist or is still in use"
            )

        if "not null" in lowered or "null value" in lowered:
            field = _match_field(raw)
            if field:
                return BadRequestError(f"Required field '{field}' cannot be empty")
            return BadRequestError("A required field is empty")

        return BadRequestError(f"Invalid data for {label}")

    if isinstance(exc, OperationalError):
        return AppError("Database connection error", status_code=500)

    return AppError("Database error", status_code=500)


def _match_field(raw: str) -> Optional[str]:
    # sqlite: "UNIQUE constraint failed: branches.name"
    m = re.search(r"constraint failed: [\w]+\.(\w+)", raw)
    if m:
        return m.group(1)
    # postgres: 'Key (name)=(foo) already exists.' / 'column "name"'
    m = re.search(r"Key \((\w+)\)", raw) or re.search(r'column "(\w+)"', raw)
    if m:
        return m.group(1)
    return None
