"""User lookups shared by admin listings."""

from typing import Iterable

from sqlalchemy.orm import Session

from app.models.user import User


def full_names_by_id(db: Session, user_ids: Iterable[int | None]) -> dict[int, str]:
    """
    Resolve user ids to full names in one query.

    None values are skipped. Ids with no user are absent from the result,
    so callers can also use it to drop ids of deleted accounts.
    """
    ids = {uid for uid in user_ids if uid is not None}
    if not ids:
        return {}
    rows = db.query(User.id, User.full_name).filter(User.id.in_(ids)).all()
    return {row.id: row.full_name for row in rows}
