"""Append-only event log."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlmodel import Session, col, select

from tales.models import EventView
from tales.storage.common import dump_json, load_json, to_db_datetime, to_utc_aware_datetime
from tales.storage.sqlmodel_models import EventRow


def append(  # noqa: PLR0913
    session: Session,
    *,
    event_id: str,
    kind: str,
    payload: dict[str, Any],
    actor_kind: str,
    actor_id: str | None,
    timestamp: datetime,
) -> EventView:
    """Insert one event row through the caller's transaction."""

    row = EventRow(
        id=event_id,
        kind=kind,
        payload_json=dump_json(payload),
        actor_kind=actor_kind,
        actor_id=actor_id,
        timestamp=to_db_datetime(timestamp),
    )
    session.add(row)
    session.flush()
    return _to_event_view(row)


def list_events(
    session: Session,
    *,
    kind: str | None = None,
    limit: int | None = None,
) -> list[EventView]:
    statement = select(EventRow)
    if kind is not None:
        statement = statement.where(EventRow.kind == kind)
    statement = statement.order_by(col(EventRow.timestamp).asc(), col(EventRow.id).asc())
    if limit is not None:
        statement = statement.limit(limit)
    return [_to_event_view(row) for row in session.exec(statement).all()]


def _to_event_view(row: EventRow) -> EventView:
    return EventView(
        event_id=row.id,
        kind=row.kind,
        actor_kind=row.actor_kind,
        actor_id=row.actor_id,
        timestamp=to_utc_aware_datetime(row.timestamp),
        payload=load_json(row.payload_json),
    )
