"""Follow and like relations."""

from __future__ import annotations

from sqlalchemy import and_, func, or_
from sqlmodel import Session, col, delete, select

from tales.models import Follow, Like
from tales.storage.common import to_db_datetime, to_utc_aware_datetime
from tales.storage.sqlmodel_models import FollowRow, LikeRow


def find_follow(session: Session, follower_id: str, followee_id: str) -> Follow | None:
    row = session.get(FollowRow, (follower_id, followee_id))
    if row is None:
        return None
    return Follow(
        follower_id=row.follower_id,
        followee_id=row.followee_id,
        created_at=to_utc_aware_datetime(row.created_at),
    )


def save_follow(session: Session, follow: Follow) -> Follow:
    session.add(
        FollowRow(
            follower_id=follow.follower_id,
            followee_id=follow.followee_id,
            created_at=to_db_datetime(follow.created_at),
        ),
    )
    session.flush()
    return follow


def delete_follow(session: Session, follower_id: str, followee_id: str) -> bool:
    """Remove a follow; return whether a row was actually deleted."""

    result = session.exec(
        delete(FollowRow).where(
            col(FollowRow.follower_id) == follower_id,
            col(FollowRow.followee_id) == followee_id,
        ),
    )
    return result.rowcount > 0


def follow_each_other(session: Session, first_id: str, second_id: str) -> bool:
    """True when both users follow one another."""

    count = session.exec(
        select(func.count()).select_from(FollowRow).where(
            or_(
                and_(
                    col(FollowRow.follower_id) == first_id,
                    col(FollowRow.followee_id) == second_id,
                ),
                and_(
                    col(FollowRow.follower_id) == second_id,
                    col(FollowRow.followee_id) == first_id,
                ),
            ),
        ),
    ).one()
    return int(count) == 2  # noqa: PLR2004


def list_followees(session: Session, follower_id: str) -> list[str]:
    rows = session.exec(
        select(FollowRow.followee_id)
        .where(FollowRow.follower_id == follower_id)
        .order_by(col(FollowRow.created_at).asc()),
    ).all()
    return list(rows)


def find_like(session: Session, user_id: str, fragment_id: str) -> Like | None:
    row = session.get(LikeRow, (user_id, fragment_id))
    if row is None:
        return None
    return Like(
        user_id=row.user_id,
        fragment_id=row.fragment_id,
        created_at=to_utc_aware_datetime(row.created_at),
    )


def save_like(session: Session, like: Like) -> Like:
    session.add(
        LikeRow(
            user_id=like.user_id,
            fragment_id=like.fragment_id,
            created_at=to_db_datetime(like.created_at),
        ),
    )
    session.flush()
    return like


def delete_like(session: Session, user_id: str, fragment_id: str) -> bool:
    """Remove a like; return whether a row was actually deleted."""

    result = session.exec(
        delete(LikeRow).where(
            col(LikeRow.user_id) == user_id,
            col(LikeRow.fragment_id) == fragment_id,
        ),
    )
    return result.rowcount > 0


def count_likes(session: Session, fragment_id: str) -> int:
    count = session.exec(
        select(func.count()).select_from(LikeRow).where(LikeRow.fragment_id == fragment_id),
    ).one()
    return int(count)
