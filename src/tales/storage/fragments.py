"""Fragment and review persistence.

Functions take the caller's session so that command handlers read and write
through the transaction the executor opened.
"""

from __future__ import annotations

import json

from sqlmodel import Session, col, select

from tales.models import Fragment, FragmentState, Review, ReviewAction
from tales.storage.common import to_db_datetime, to_utc_aware_datetime
from tales.storage.sqlmodel_models import FragmentRow, ReviewRow


def find(session: Session, fragment_id: str) -> Fragment | None:
    row = session.get(FragmentRow, fragment_id)
    if row is None:
        return None
    return _to_fragment(row)


def find_parent(session: Session, fragment: Fragment) -> Fragment | None:
    if fragment.parent_id is None:
        return None
    return find(session, fragment.parent_id)


def list_children(session: Session, fragment_id: str) -> list[Fragment]:
    rows = session.exec(
        select(FragmentRow)
        .where(FragmentRow.parent_id == fragment_id)
        .order_by(col(FragmentRow.created_at).asc()),
    ).all()
    return [_to_fragment(row) for row in rows]


def save(session: Session, fragment: Fragment) -> Fragment:
    """Insert a new fragment."""

    row = FragmentRow(
        id=fragment.id,
        author_id=fragment.author_id,
        content=fragment.content,
        state=fragment.state.value,
        parent_id=fragment.parent_id,
        path_json=json.dumps(list(fragment.path)),
        is_end=fragment.end,
        created_at=to_db_datetime(fragment.created_at),
        last_modified_at=to_db_datetime(fragment.last_modified_at),
    )
    session.add(row)
    session.flush()
    return _to_fragment(row)


def update(session: Session, fragment: Fragment) -> Fragment:
    """Persist the mutable columns of an existing fragment.

    Identity, authorship, parent and path are never rewritten.
    """

    row = session.get(FragmentRow, fragment.id)
    if row is None:
        raise LookupError(f"Fragment not found for update: {fragment.id}")
    row.content = fragment.content
    row.state = fragment.state.value
    row.is_end = fragment.end
    row.last_modified_at = to_db_datetime(fragment.last_modified_at)
    session.add(row)
    session.flush()
    return _to_fragment(row)


def save_review(session: Session, review: Review) -> Review:
    session.add(
        ReviewRow(
            id=review.id,
            fragment_id=review.fragment_id,
            reviewer_id=review.reviewer_id,
            action=review.action.value,
            comment=review.comment,
            created_at=to_db_datetime(review.created_at),
        ),
    )
    session.flush()
    return review


def list_reviews(session: Session, fragment_id: str) -> list[Review]:
    rows = session.exec(
        select(ReviewRow)
        .where(ReviewRow.fragment_id == fragment_id)
        .order_by(col(ReviewRow.created_at).asc()),
    ).all()
    return [
        Review(
            id=row.id,
            fragment_id=row.fragment_id,
            reviewer_id=row.reviewer_id,
            action=ReviewAction(row.action),
            comment=row.comment,
            created_at=to_utc_aware_datetime(row.created_at),
        )
        for row in rows
    ]


def _to_fragment(row: FragmentRow) -> Fragment:
    return Fragment(
        id=row.id,
        author_id=row.author_id,
        content=row.content,
        state=FragmentState(row.state),
        parent_id=row.parent_id,
        path=tuple(json.loads(row.path_json or "[]")),
        end=row.is_end,
        created_at=to_utc_aware_datetime(row.created_at),
        last_modified_at=to_utc_aware_datetime(row.last_modified_at),
    )
