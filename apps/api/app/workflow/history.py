from __future__ import annotations

import logging
from typing import Any, Generic, TypeVar

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.metrics import observe_history_record
from app.workflow.models import HistoryRecordMixin, utcnow
from app.workflow.statuses import HistoryType


logger = logging.getLogger("app.workflow.history")

HistoryT = TypeVar("HistoryT", bound=HistoryRecordMixin)


class HistoryTrail(Generic[HistoryT]):
    """Append-only history for one entity type. Records are never edited or deleted."""

    def __init__(self, model: type[HistoryT], entity_type: str) -> None:
        self.model = model
        self.entity_type = entity_type

    def append(
        self,
        session: Session,
        parent_id: int,
        history_type: HistoryType,
        *,
        comment: str | None = None,
        created_by: int | None = None,
    ) -> HistoryT:
        record = self.model(
            parent_id=parent_id,
            type=history_type.value,
            comment=comment,
            created_by=created_by,
            created_at=utcnow(),
        )
        session.add(record)
        session.commit()
        session.refresh(record)
        observe_history_record(self.entity_type, history_type.value)
        logger.info(
            "workflow.history.appended",
            extra={"entity_type": self.entity_type, "entity_id": parent_id, "history_type": history_type.value},
        )
        return record

    def list(
        self,
        session: Session,
        parent_id: int,
        *,
        page: int = 1,
        page_size: int = 10,
    ) -> tuple[list[HistoryT], int]:
        base: Any = select(self.model).where(self.model.parent_id == parent_id)  # type: ignore[attr-defined]
        total = int(session.scalar(select(func.count()).select_from(base.subquery())) or 0)
        rows = session.scalars(
            base.order_by(self.model.created_at.desc(), self.model.id.desc())
            .offset(max(page - 1, 0) * page_size)
            .limit(page_size)
        ).all()
        return list(rows), total
