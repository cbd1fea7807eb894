"""User registration and lookup."""

from __future__ import annotations

from sqlmodel import Session

from tales.models import UserView
from tales.storage.common import to_db_datetime, to_utc_aware_datetime, utc_now
from tales.storage.sqlmodel_models import AppUser


def find(session: Session, user_id: str) -> UserView | None:
    row = session.get(AppUser, user_id)
    if row is None:
        return None
    return _to_user_view(row)


def exists(session: Session, user_id: str) -> bool:
    return session.get(AppUser, user_id) is not None


def create(session: Session, *, user_id: str, display_name: str | None = None) -> UserView:
    """Register a user; the caller commits."""

    row = AppUser(
        user_id=user_id,
        display_name=display_name or user_id,
        created_at=to_db_datetime(utc_now()),
    )
    session.add(row)
    session.flush()
    return _to_user_view(row)


def _to_user_view(row: AppUser) -> UserView:
    return UserView(
        user_id=row.user_id,
        display_name=row.display_name,
        created_at=to_utc_aware_datetime(row.created_at),
    )
