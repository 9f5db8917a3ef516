import logging
import time
from datetime import date
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Header, Query, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, Response
from sqlalchemy.orm import Session

from juku_admin.config import settings
from juku_admin.database import get_db, get_session_factory
from juku_admin.models.user import User
from juku_admin.utils.auth import get_current_user, get_selected_branch
from juku_admin.utils.crud_factory import envelope
from juku_admin.utils.csv_import import (
    ImportDefinition,
    ImportResult,
    audit_import,
    errors_csv,
    export_rows,
    get_definition,
    run_import,
    template_csv,
)
from juku_admin.utils.csv_parser import generate_csv, parse_csv
from juku_admin.utils.errors import (
    AppError,
    BadRequestError,
    ForbiddenError,
    NotFoundError,
    PayloadTooLargeError,
    TooManyRequestsError,
)
from juku_admin.utils.excel_export import make_filename, rows_to_xlsx_bytes
from juku_admin.utils.import_lock import acquire_import_lock, release_import_lock
from juku_admin.utils.import_session import import_sessions
from juku_admin.utils.rate_limit import allow_rate

logger = logging.getLogger("juku_admin.import")

router = APIRouter(prefix="/api/import", tags=["Import"])
export_router = APIRouter(prefix="/api/export", tags=["Export"])


def _definition_for(entity: str, user: User) -> ImportDefinition:
    d = get_definition(entity)
    if user.role not in d.roles:
        raise ForbiddenError("Forbidden")
    return d


def _branch_for(d: ImportDefinition, user: User, db: Session, x_selected_branch: Optional[str]) -> Optional[str]:
    if not d.needs_branch:
        return None
    return get_selected_branch(user=user, db=db, x_selected_branch=x_selected_branch)


def _finish_session(session_id: str, result: ImportResult):
    if result.all_failed:
        import_sessions.transition(
            session_id, "failed",
            encoding=result.encoding,
            processed=result.processed,
            skipped=result.skipped,
            errors=len(result.errors),
            message="All rows failed",
        )
        return
    import_sessions.transition(
        session_id, "succeeded",
        encoding=result.encoding,
        processed=result.processed,
        created=result.created,
        updated=result.updated,
        skipped=result.skipped,
        errors=len(result.errors),
        message="Completed with errors" if result.errors else "Completed",
    )


def _run_in_background(
    session_factory,
    d: ImportDefinition,
    raw: bytes,
    branch_id: Optional[str],
    dry_run: bool,
    session_id: str,
    user_id: int,
    filename: Optional[str],
    started: float,
):
    db = session_factory()
    try:
        import_sessions.transition(session_id, "running")
        result = run_import(db, d, raw, branch_id=branch_id, dry_run=dry_run)
        _finish_session(session_id, result)
        audit_import(d.entity, filename, result, started)
    except AppError as e:
        import_sessions.transition(session_id, "failed", message=e.message)
        logger.warning("background import %s failed: %s", session_id, e.message)
    except Exception:
        import_sessions.transition(session_id, "failed", message="Internal server error")
        logger.exception("background import %s crashed", session_id)
    finally:
        db.close()
        release_import_lock(user_id)


# ---------- sessions ----------
@router.get("/sessions")
def list_sessions(
    user: User = Depends(get_current_user),
    limit: int = Query(20, ge=1, le=100),
):
    return envelope([s.to_dict() for s in import_sessions.list_for_user(user.id, limit)])


@router.get("/sessions/{session_id}")
def get_session(session_id: str, user: User = Depends(get_current_user)):
    s = import_sessions.get(session_id)
    if s is None:
        raise NotFoundError("Import session not found")
    if s.user_id != user.id and user.role != "ADMIN":
        raise ForbiddenError("Forbidden")
    return envelope(s.to_dict())


# ---------- template ----------
@router.get("/{entity}/template")
def download_template(entity: str, user: User = Depends(get_current_user)):
    d = _definition_for(entity, user)
    return Response(
        content=template_csv(d).encode("utf-8"),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{entity}_template.csv"'},
    )


# ---------- import ----------
@router.post("/{entity}")
def import_csv(
    entity: str,
    background_tasks: BackgroundTasks,
    file: Optional[UploadFile] = File(None),
    dry_run: bool = Query(False),
    return_: Optional[str] = Query(None, alias="return"),
    background: bool = Query(False),
    x_selected_branch: Optional[str] = Header(None),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    session_factory=Depends(get_session_factory),
):
    started = time.time()
    d = _definition_for(entity, user)
    branch_id = _branch_for(d, user, db, x_selected_branch)

    if not acquire_import_lock(user.id):
        raise TooManyRequestsError("An import is already running. Retry after it completes.")
    lock_held = True
    try:
        if not allow_rate(f"import:{user.id}", settings.IMPORT_RATE_CAPACITY, settings.IMPORT_RATE_REFILL_PER_SEC):
            raise TooManyRequestsError("Too many import requests. Please wait and retry.")

        if file is None:
            raise BadRequestError("No file uploaded")
        raw = file.file.read(settings.IMPORT_MAX_BYTES + 1)
        if len(raw) > settings.IMPORT_MAX_BYTES:
            raise PayloadTooLargeError(f"File exceeds the {settings.IMPORT_MAX_BYTES} byte limit")
        if not raw.strip():
            raise BadRequestError("CSV file is empty")

        session = import_sessions.create(d.entity, user_id=user.id, filename=file.filename)

        if background:
            background_tasks.add_task(
                _run_in_background,
                session_factory, d, raw, branch_id, dry_run,
                session.id, user.id, file.filename, started,
            )
            lock_held = False
            return envelope(session.to_dict(), status_code=202)

        import_sessions.transition(session.id, "running")
        try:
            parsed = parse_csv(raw)
            result = run_import(db, d, raw, branch_id=branch_id, dry_run=dry_run, parsed=parsed)
        except AppError as e:
            import_sessions.transition(session.id, "failed", message=e.message)
            raise
        except Exception:
            import_sessions.transition(session.id, "failed", message="Internal server error")
            raise

        _finish_session(session.id, result)
        audit_import(d.entity, file.filename, result, started)

        body = result.summary()
        body["session_id"] = session.id
        if return_ == "errors_csv" and result.errors:
            body["error_csv"] = errors_csv(parsed, result)
            body["error_csv_filename"] = f"{d.entity}_import_errors_{date.today().isoformat()}.csv"

        if result.all_failed:
            err = BadRequestError("All rows failed to import", details=body)
            return JSONResponse(status_code=err.status_code, content=jsonable_encoder(err.to_body()))
        return envelope(body, status_code=207 if result.errors else 200)
    finally:
        if lock_held:
            release_import_lock(user.id)


# ---------- export ----------
@export_router.get("/{entity}")
def export_entity(
    entity: str,
    format: str = Query("csv", pattern="^(csv|xlsx)$"),
    x_selected_branch: Optional[str] = Header(None),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    d = _definition_for(entity, user)
    branch_id = _branch_for(d, user, db, x_selected_branch)
    rows = export_rows(db, d, branch_id)

    if format == "xlsx":
        return Response(
            content=rows_to_xlsx_bytes(rows, d.headers, sheet_name=d.entity),
            media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            headers={"Content-Disposition": f'attachment; filename="{make_filename(d.entity, "xlsx")}"'},
        )

    return Response(
        content=generate_csv(rows, d.headers).encode("utf-8"),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{make_filename(d.entity, "csv")}"'},
    )
