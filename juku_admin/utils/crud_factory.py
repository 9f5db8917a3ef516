"""
Generic CRUD factory.

`CrudActions` holds the create/read/update/delete logic for one table,
parameterized over the primary-key field, the create/update pydantic schemas
and the dependent tables that must be checked (or cascaded) on delete.
`create_crud_router` exposes an actions object as REST routes that answer
with `{"data": ...}` / `{"error": ...}` envelopes.
"""
import logging
import math
from dataclasses import dataclass
from typing import Annotated, Any, Callable, Iterable, Optional, Sequence, Type

from fastapi import APIRouter, Depends, Query
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError, create_model
from sqlalchemy import func, inspect as sa_inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from juku_admin.database import get_db
from juku_admin.utils.auth import require_roles, get_selected_branch
from juku_admin.utils.db_errors import describe_db_error
from juku_admin.utils.errors import AppError, BadRequestError, ConflictError, NotFoundError

logger = logging.getLogger("juku_admin.crud")


@dataclass(frozen=True)
class RelatedModel:
    """Rows of `model` whose `field` points at the parent id."""

    model: Any
    field: str
    on_delete: str = "restrict"  # or "cascade"


def partial_schema(schema: Type[BaseModel], name: Optional[str] = None) -> Type[BaseModel]:
    """Same fields and constraints as `schema`, every one optional (PATCH-style updates)."""
    fields = {}
    for field_name, info in schema.model_fields.items():
        annotation = Optional[info.annotation]
        if info.metadata:
            annotation = Annotated[(annotation, *info.metadata)]
        fields[field_name] = (annotation, None)
    return create_model(name or f"{schema.__name__}Partial", __base__=BaseModel, **fields)


def validation_details(exc: ValidationError) -> list[dict]:
    return [
        {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
        for err in exc.errors()
    ]


class CrudActions:
    def __init__(
        self,
        model,
        id_field: str,
        create_schema: Type[BaseModel],
        update_schema: Optional[Type[BaseModel]] = None,
        related_models: Iterable[RelatedModel] = (),
        order_by: Optional[Sequence[tuple[str, str]]] = None,
        branch_scoped: bool = False,
        entity_label: Optional[str] = None,
        check: Optional[Callable[[Any], None]] = None,
    ):
        self.model = model
        self.id_field = id_field
        self.create_schema = create_schema
        self.update_schema = update_schema or partial_schema(create_schema)
        self.related_models = list(related_models)
        self.branch_scoped = branch_scoped
        self.entity_label = entity_label or model.__name__
        self.check = check
        self._columns = [c.key for c in sa_inspect(model).mapper.column_attrs]

        if order_by is not None:
            self.order_by = list(order_by)
        elif "name" in self._columns:
            self.order_by = [("name", "asc")]
        else:
            self.order_by = [(id_field, "asc")]

    # ---------- helpers ----------
    def _col(self, name: str):
        return getattr(self.model, name)

    def _validate(self, schema: Type[BaseModel], data) -> BaseModel:
        if isinstance(data, BaseModel):
            return data
        try:
            return schema.model_validate(data)
        except ValidationError as e:
            raise BadRequestError("Validation error", details=validation_details(e))

    def _query(self, db: Session, branch_id: Optional[str] = None):
        q = db.query(self.model)
        if self.branch_scoped and branch_id:
            q = q.filter(self.model.branch_id == branch_id)
        return q

    def _commit(self, db: Session):
        try:
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.warning("%s write failed: %s", self.entity_label, e)
            raise describe_db_error(e, self.entity_label)

    def serialize(self, obj) -> dict:
        return {c: getattr(obj, c) for c in self._columns}

    # ---------- operations ----------
    def get_all(
        self,
        db: Session,
        page: Optional[int] = None,
        limit: Optional[int] = None,
        name: Optional[str] = None,
        branch_id: Optional[str] = None,
    ):
        q = self._query(db, branch_id)
        if name and "name" in self._columns:
            q = q.filter(self.model.name.ilike(f"%{name.strip()}%"))

        total = q.count()

        for col, direction in self.order_by:
            c = self._col(col)
            q = q.order_by(c.desc() if direction == "desc" else c.asc())

        if limit:
            q = q.offset(((page or 1) - 1) * limit).limit(limit)
        return q.all(), total

    def get_one(self, db: Session, item_id: str, branch_id: Optional[str] = None):
        item = self._query(db, branch_id).filter(self._col(self.id_field) == item_id).first()
        if not item:
            raise NotFoundError(f"{self.entity_label} not found")
        return item

    def create(self, db: Session, data, branch_id: Optional[str] = None):
        validated = self._validate(self.create_schema, data)
        values = validated.model_dump()

        given_id = values.get(self.id_field)
        if given_id:
            exists = db.query(self._col(self.id_field)).filter(self._col(self.id_field) == given_id).first()
            if exists:
                raise ConflictError(f"{self.entity_label} with this ID already exists")
        else:
            values.pop(self.id_field, None)

        if self.branch_scoped and branch_id:
            values["branch_id"] = branch_id

        item = self.model(**{k: v for k, v in values.items() if k in self._columns})
        if self.check:
            self.check(item)
        db.add(item)
        self._commit(db)
        db.refresh(item)
        logger.info("created %s %s", self.entity_label, getattr(item, self.id_field))
        return item

    def update(self, db: Session, item_id: str, data, branch_id: Optional[str] = None):
        validated = self._validate(self.update_schema, data)
        item = self.get_one(db, item_id, branch_id)

        changes = validated.model_dump(exclude_unset=True)
        changes.pop(self.id_field, None)
        if self.branch_scoped:
            changes.pop("branch_id", None)
        for k, v in changes.items():
            if k in self._columns:
                setattr(item, k, v)

        if self.check:
            try:
                self.check(item)
            except AppError:
                db.rollback()
                raise
        self._commit(db)
        db.refresh(item)
        return item

    def remove(self, db: Session, item_id: str, branch_id: Optional[str] = None):
        item = self.get_one(db, item_id, branch_id)

        blocking: dict[str, int] = {}
        for rel in self.related_models:
            if rel.on_delete != "restrict":
                continue
            count = (
                db.query(func.count())
                .select_from(rel.model)
                .filter(getattr(rel.model, rel.field) == item_id)
                .scalar()
            )
            if count:
                blocking[rel.model.__tablename__] = count

        if blocking:
            raise ConflictError(
                f"Cannot delete {self.entity_label} with associated records",
                details=blocking,
            )

        for rel in self.related_models:
            if rel.on_delete == "cascade":
                (
                    db.query(rel.model)
                    .filter(getattr(rel.model, rel.field) == item_id)
                    .delete(synchronize_session=False)
                )

        db.delete(item)
        self._commit(db)
        logger.info("deleted %s %s", self.entity_label, item_id)
        return {"success": True}


def _no_branch() -> None:
    return None


def envelope(data, status_code: int = 200, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=jsonable_encoder({"data": data, **extra}))


def pagination(total: int, page: Optional[int], limit: Optional[int]) -> dict:
    if not limit:
        return {"total": total, "page": 1, "limit": total, "pages": 1}
    return {"total": total, "page": page or 1, "limit": limit, "pages": math.ceil(total / limit) if total else 0}


def create_crud_router(
    actions: CrudActions,
    prefix: str,
    tags: Optional[list[str]] = None,
    read_roles: Sequence[str] = ("ADMIN", "STAFF"),
    write_roles: Sequence[str] = ("ADMIN", "STAFF"),
) -> APIRouter:
    router = APIRouter(prefix=prefix, tags=tags or [actions.entity_label])
    reader = require_roles(*read_roles)
    writer = require_roles(*write_roles)
    branch_dep = get_selected_branch if actions.branch_scoped else _no_branch
    CreateBody = actions.create_schema
    UpdateBody = actions.update_schema

    @router.get("")
    def list_items(
        db: Session = Depends(get_db),
        user=Depends(reader),
        branch_id: Optional[str] = Depends(branch_dep),
        page: Optional[int] = Query(None, ge=1),
        limit: Optional[int] = Query(None, ge=1, le=100),
        name: Optional[str] = Query(None),
    ):
        items, total = actions.get_all(db, page=page, limit=limit, name=name, branch_id=branch_id)
        return envelope(
            [actions.serialize(i) for i in items],
            pagination=pagination(total, page, limit),
        )

    @router.get("/{item_id}")
    def get_item(
        item_id: str,
        db: Session = Depends(get_db),
        user=Depends(reader),
        branch_id: Optional[str] = Depends(branch_dep),
    ):
        return envelope(actions.serialize(actions.get_one(db, item_id, branch_id)))

    @router.post("")
    def create_item(
        body: CreateBody,
        db: Session = Depends(get_db),
        user=Depends(writer),
        branch_id: Optional[str] = Depends(branch_dep),
    ):
        item = actions.create(db, body, branch_id)
        return envelope(actions.serialize(item), status_code=201)

    @router.put("/{item_id}")
    def update_item(
        item_id: str,
        body: UpdateBody,
        db: Session = Depends(get_db),
        user=Depends(writer),
        branch_id: Optional[str] = Depends(branch_dep),
    ):
        return envelope(actions.serialize(actions.update(db, item_id, body, branch_id)))

    @router.delete("/{item_id}")
    def delete_item(
        item_id: str,
        db: Session = Depends(get_db),
        user=Depends(writer),
        branch_id: Optional[str] = Depends(branch_dep),
    ):
        return envelope(actions.remove(db, item_id, branch_id))

    return router
