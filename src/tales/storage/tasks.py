"""Persistent queue of deferred commands."""

from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import update as sa_update
from sqlmodel import Session, col, select

from tales.errors import InvalidStateError, TaskNotFound
from tales.models import TaskCreate, TaskStatus, TaskView
from tales.storage.common import dump_json, load_json, to_db_datetime, to_utc_aware_datetime
from tales.storage.database import Database
from tales.storage.sqlmodel_models import TaskRow


class TaskStore:
    """Task queue facade; each method runs in its own transaction unless given a session."""

    def __init__(self, database: Database) -> None:
        self.database = database

    def create(self, payload: TaskCreate, *, now: datetime) -> TaskView:
        """Persist a pending task."""

        with self.database.session() as session:
            row = TaskRow(
                id=payload.task_id,
                command_kind=payload.command_kind,
                payload_json=dump_json(payload.payload),
                actor_kind=payload.actor_kind,
                actor_id=payload.actor_id,
                status=TaskStatus.PENDING.value,
                created_at=to_db_datetime(now),
                scheduled_at=to_db_datetime(payload.scheduled_at),
            )
            session.add(row)
            session.commit()
            return _to_task_view(row)

    def get(self, task_id: str) -> TaskView | None:
        with self.database.session() as session:
            row = session.get(TaskRow, task_id)
            return _to_task_view(row) if row is not None else None

    def list_tasks(
        self,
        *,
        status: TaskStatus | None = None,
        limit: int = 50,
    ) -> list[TaskView]:
        with self.database.session() as session:
            statement = select(TaskRow)
            if status is not None:
                statement = statement.where(TaskRow.status == status.value)
            rows = session.exec(
                statement.order_by(
                    col(TaskRow.scheduled_at).asc(),
                    col(TaskRow.created_at).asc(),
                ).limit(limit),
            ).all()
            return [_to_task_view(row) for row in rows]

    def claim_next_due(self, *, worker_id: str, now: datetime) -> TaskView | None:
        """Atomically move the earliest due pending task to running."""

        while True:
            with self.database.session() as session:
                candidate = session.exec(
                    select(TaskRow)
                    .where(
                        TaskRow.status == TaskStatus.PENDING.value,
                        TaskRow.scheduled_at <= to_db_datetime(now),
                    )
                    .order_by(
                        col(TaskRow.scheduled_at).asc(),
                        col(TaskRow.created_at).asc(),
                    )
                    .limit(1),
                ).one_or_none()
                if candidate is None:
                    return None

                result = session.exec(
                    sa_update(TaskRow)
                    .where(
                        col(TaskRow.id) == candidate.id,
                        col(TaskRow.status) == TaskStatus.PENDING.value,
                    )
                    .values(
                        status=TaskStatus.RUNNING.value,
                        worker_id=worker_id,
                        started_at=to_db_datetime(now),
                        error_summary=None,
                    ),
                )
                if result.rowcount != 1:
                    session.rollback()
                    continue

                session.commit()
                claimed = session.get(TaskRow, candidate.id, populate_existing=True)
                if claimed is None:
                    return None
                return _to_task_view(claimed)

    def mark_succeeded(
        self,
        *,
        session: Session,
        task_id: str,
        worker_id: str,
        completed_at: datetime,
    ) -> None:
        """Mark a running task done through the caller's transaction."""

        result = session.exec(
            sa_update(TaskRow)
            .where(
                col(TaskRow.id) == task_id,
                col(TaskRow.status) == TaskStatus.RUNNING.value,
                col(TaskRow.worker_id) == worker_id,
            )
            .values(
                status=TaskStatus.SUCCEEDED.value,
                completed_at=to_db_datetime(completed_at),
            ),
        )
        if result.rowcount != 1:
            raise InvalidStateError(
                f"Task {task_id} is no longer running for worker {worker_id}.",
            )

    def mark_failed(
        self,
        *,
        task_id: str,
        worker_id: str,
        error_summary: str,
        completed_at: datetime,
    ) -> bool:
        with self.database.session() as session:
            result = session.exec(
                sa_update(TaskRow)
                .where(
                    col(TaskRow.id) == task_id,
                    col(TaskRow.status) == TaskStatus.RUNNING.value,
                    col(TaskRow.worker_id) == worker_id,
                )
                .values(
                    status=TaskStatus.FAILED.value,
                    error_summary=error_summary,
                    completed_at=to_db_datetime(completed_at),
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            session.commit()
            return True

    def recover_stale_running(self, *, stale_after: timedelta, now: datetime) -> int:
        """Return abandoned running tasks to pending; their commands never committed."""

        cutoff = to_db_datetime(now - stale_after)
        with self.database.session() as session:
            result = session.exec(
                sa_update(TaskRow)
                .where(
                    col(TaskRow.status) == TaskStatus.RUNNING.value,
                    col(TaskRow.started_at) < cutoff,
                )
                .values(
                    status=TaskStatus.PENDING.value,
                    worker_id=None,
                    started_at=None,
                ),
            )
            session.commit()
            return int(result.rowcount or 0)

    def retry(self, task_id: str, *, now: datetime) -> TaskView:
        """Manual operator retry for a failed task."""

        with self.database.session() as session:
            row = session.get(TaskRow, task_id)
            if row is None:
                raise TaskNotFound(f"Task not found: {task_id}", entity_id=task_id)
            if row.status != TaskStatus.FAILED.value:
                raise InvalidStateError(
                    f"Only failed tasks can be retried, got {row.status}.",
                )
            row.status = TaskStatus.PENDING.value
            row.scheduled_at = to_db_datetime(now)
            row.started_at = None
            row.completed_at = None
            row.worker_id = None
            row.error_summary = None
            session.add(row)
            session.commit()
            return _to_task_view(row)


def _to_task_view(row: TaskRow) -> TaskView:
    return TaskView(
        task_id=row.id,
        command_kind=row.command_kind,
        payload=load_json(row.payload_json),
        actor_kind=row.actor_kind,
        actor_id=row.actor_id,
        status=TaskStatus(row.status),
        created_at=to_utc_aware_datetime(row.created_at),
        scheduled_at=to_utc_aware_datetime(row.scheduled_at),
        started_at=to_utc_aware_datetime(row.started_at) if row.started_at is not None else None,
        completed_at=(
            to_utc_aware_datetime(row.completed_at) if row.completed_at is not None else None
        ),
        worker_id=row.worker_id,
        error_summary=row.error_summary,
    )
