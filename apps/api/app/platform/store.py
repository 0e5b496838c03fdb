from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Generic, TypeVar

from sqlalchemy import Select, and_, func, select, update
from sqlalchemy.orm import Session

from app.workflow.actors import Actor
from app.workflow.errors import EntityNotFoundError, WorkflowConflictError
from app.workflow.models import WorkflowEntityMixin, utcnow
from app.workflow.statuses import UserType

ModelT = TypeVar("ModelT", bound=WorkflowEntityMixin)


class EntityStore(Generic[ModelT]):
    """CRUD access to one workflow entity table.

    Every query goes through the ``notDeleted`` default scope. Passing an actor
    to the read methods additionally applies the ``visibleToUser`` scope.
    """

    model: type[ModelT]
    resource: str = "entity"

    def base_query(self, *, with_deleted: bool = False) -> Select[tuple[ModelT]]:
        stmt = select(self.model)
        if not with_deleted:
            stmt = stmt.where(self.model.deleted_at.is_(None))
        return stmt

    def apply_visibility(self, stmt: Select[Any], actor: Actor | None) -> Select[Any]:
        if actor is None:
            return stmt
        if actor.tenant_profile is not None:
            return stmt.where(self.model.tenant_id == actor.tenant_profile.id)
        if actor.user.type == UserType.USER:
            return stmt.where(and_(self.model.created_by == actor.user.id, self.model.tenant_id.is_(None)))
        return stmt

    def apply_filters(self, stmt: Select[Any], filters: Mapping[str, Any] | None) -> Select[Any]:
        for key, value in (filters or {}).items():
            column = getattr(self.model, key, None)
            if column is None:
                continue
            if isinstance(value, (list, tuple, set, frozenset)):
                stmt = stmt.where(column.in_(list(value)))
            elif value is None:
                stmt = stmt.where(column.is_(None))
            else:
                stmt = stmt.where(column == value)
        return stmt

    def find(
        self,
        session: Session,
        *,
        actor: Actor | None = None,
        filters: Mapping[str, Any] | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[ModelT]:
        stmt = self.apply_filters(self.apply_visibility(self.base_query(), actor), filters)
        stmt = stmt.order_by(self.model.created_at.desc(), self.model.id.desc()).offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(session.scalars(stmt).all())

    def count(self, session: Session, *, actor: Actor | None = None, filters: Mapping[str, Any] | None = None) -> int:
        stmt = self.apply_filters(self.apply_visibility(self.base_query(), actor), filters)
        return int(session.scalar(select(func.count()).select_from(stmt.subquery())) or 0)

    def find_one(
        self,
        session: Session,
        entity_id: int,
        *,
        actor: Actor | None = None,
        with_deleted: bool = False,
    ) -> ModelT | None:
        stmt = self.apply_visibility(self.base_query(with_deleted=with_deleted), actor)
        return session.scalar(stmt.where(self.model.id == entity_id))

    def resolve(self, session: Session, entity_id: int, *, actor: Actor | None = None) -> ModelT:
        entity = self.find_one(session, entity_id, actor=actor)
        if entity is None:
            raise EntityNotFoundError(f"{self.resource} not found", details={"id": entity_id})
        return entity

    def create(self, session: Session, values: Mapping[str, Any], *, user_id: int | None) -> ModelT:
        entity = self.model(**dict(values))
        if user_id is not None and entity.created_by is None:
            entity.created_by = user_id
        entity.created_at = utcnow()
        entity.row_version = 1
        session.add(entity)
        session.commit()
        session.refresh(entity)
        return entity

    def update(
        self,
        session: Session,
        entity_id: int,
        *,
        expected_version: int,
        changes: Mapping[str, Any],
        user_id: int | None,
    ) -> ModelT:
        """Apply ``changes`` only if nobody committed since ``expected_version`` was read."""
        values = dict(changes)
        values["updated_at"] = utcnow()
        values["updated_by"] = user_id
        values["row_version"] = self.model.row_version + 1

        result = session.execute(
            update(self.model)
            .where(
                and_(
                    self.model.id == entity_id,
                    self.model.row_version == expected_version,
                    self.model.deleted_at.is_(None),
                )
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            session.rollback()
            raise WorkflowConflictError(f"{self.resource} was modified concurrently", details={"id": entity_id})
        session.commit()

        updated = session.get(self.model, entity_id, populate_existing=True)
        if updated is None:
            raise EntityNotFoundError(f"{self.resource} not found", details={"id": entity_id})
        return updated

    def soft_delete(self, session: Session, entity: ModelT, *, user_id: int | None) -> None:
        entity.deleted_at = utcnow()
        entity.deleted_by = user_id
        session.commit()
