import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session, joinedload

from app.db.database import get_db
from app.models.bookmark import Bookmark
from app.models.resource import Resource
from app.models.user import User
from app.schemas.bookmark import BookmarkToggleResponse
from app.schemas.resource import ResourceResponse
from app.api.deps import get_current_user
from app.api.routes.resources import can_view
from app.services.resource_service import to_response
from app.services.storage import StorageBackend, get_storage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookmarks", tags=["Bookmarks"])


def _get_bookmarkable_or_404(db: Session, resource_id: int, user: User) -> Resource:
    resource = db.query(Resource).filter(Resource.id == resource_id).first()
    if not resource or not can_view(resource, user):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Resource not found")
    return resource


def _find(db: Session, user_id: int, resource_id: int) -> Bookmark | None:
    return (
        db.query(Bookmark)
        .filter(Bookmark.user_id == user_id, Bookmark.resource_id == resource_id)
        .first()
    )


@router.get("/", response_model=list[ResourceResponse])
def list_bookmarks(
    db: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage),
    current_user: User = Depends(get_current_user),
):
    """Bookmarked resources, most recently bookmarked first."""
    bookmarks = (
        db.query(Bookmark)
        .options(
            joinedload(Bookmark.resource).joinedload(Resource.course),
            joinedload(Bookmark.resource).joinedload(Resource.uploaded_by),
        )
        .filter(Bookmark.user_id == current_user.id)
        .order_by(Bookmark.created_at.desc(), Bookmark.id.desc())
        .all()
    )
    # Resources pulled back to pending/rejected drop out of the list until visible again
    resources = [b.resource for b in bookmarks if can_view(b.resource, current_user)]
    ids = {r.id for r in resources}
    return [to_response(r, ids, storage) for r in resources]


@router.get("/ids", response_model=list[int])
def list_bookmark_ids(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    rows = (
        db.query(Bookmark.resource_id)
        .filter(Bookmark.user_id == current_user.id)
        .order_by(Bookmark.created_at.desc(), Bookmark.id.desc())
        .all()
    )
    return [r[0] for r in rows]


@router.post("/{resource_id}", response_model=BookmarkToggleResponse)
def add_bookmark(
    resource_id: int,
    response: Response,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Bookmark a resource. Adding an existing bookmark is a no-op (200)."""
    _get_bookmarkable_or_404(db, resource_id, current_user)
    if _find(db, current_user.id, resource_id):
        return BookmarkToggleResponse(resource_id=resource_id, bookmarked=True)

    db.add(Bookmark(user_id=current_user.id, resource_id=resource_id))
    db.commit()
    response.status_code = status.HTTP_201_CREATED
    return BookmarkToggleResponse(resource_id=resource_id, bookmarked=True)


@router.delete("/{resource_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_bookmark(
    resource_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    bookmark = _find(db, current_user.id, resource_id)
    if not bookmark:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Bookmark not found")
    db.delete(bookmark)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{resource_id}/toggle", response_model=BookmarkToggleResponse)
def toggle_bookmark(
    resource_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    bookmark = _find(db, current_user.id, resource_id)
    if bookmark:
        db.delete(bookmark)
        db.commit()
        return BookmarkToggleResponse(resource_id=resource_id, bookmarked=False)

    _get_bookmarkable_or_404(db, resource_id, current_user)
    db.add(Bookmark(user_id=current_user.id, resource_id=resource_id))
    db.commit()
    return BookmarkToggleResponse(resource_id=resource_id, bookmarked=True)
